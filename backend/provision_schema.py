#!/usr/bin/env python3
"""Script to create the CRM tables and patch in optional columns on the configured database."""

from gestionale_import.core.config import get_settings
from gestionale_import.db.provisioning import provision
from gestionale_import.db.session import engine

settings = get_settings()

print(f"Provisioning schema on {engine.url.render_as_string(hide_password=True)}...")
added = provision(engine, admin_email=settings.import_actor_email)

if added:
    print(f"\nAdded {len(added)} column(s):")
    for column in added:
        print(f"  + {column}")
else:
    print("\n✓ Schema already up to date")

print(f"✓ Import actor {settings.import_actor_email} present")
print("\nDone!")
