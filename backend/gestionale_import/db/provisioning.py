"""Idempotent schema provisioning for the CRM tables the importer writes to.

Deployments are patched by hand and may lag behind, so the importer never
relies on this module having run. It exists to bootstrap development
databases and test fixtures with the same base-tables-then-patches layout
production went through.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from gestionale_import.services.schema_introspection import table_columns

logger = logging.getLogger(__name__)

BASE_TABLES: dict[str, str] = {
    "users": """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT,
            nome TEXT,
            cognome TEXT,
            ruolo TEXT DEFAULT 'operatore',
            attivo INTEGER DEFAULT 1,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "clienti_privati": """
        CREATE TABLE IF NOT EXISTS clienti_privati (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            nome TEXT,
            cognome TEXT,
            codice_fiscale TEXT,
            data_nascita TEXT,
            email_principale TEXT,
            telefono_mobile TEXT,
            via_residenza TEXT,
            citta_residenza TEXT,
            consenso_privacy INTEGER DEFAULT 0,
            consenso_marketing INTEGER DEFAULT 0,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "clienti_aziende": """
        CREATE TABLE IF NOT EXISTS clienti_aziende (
            id TEXT PRIMARY KEY,
            ragione_sociale TEXT,
            partita_iva TEXT,
            codice_ateco TEXT,
            email_referente TEXT,
            telefono_referente TEXT,
            citta_sede_legale TEXT,
            consenso_privacy INTEGER DEFAULT 0,
            consenso_marketing INTEGER DEFAULT 0,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "contratti_luce": """
        CREATE TABLE IF NOT EXISTS contratti_luce (
            id TEXT PRIMARY KEY,
            cliente_privato_id TEXT,
            cliente_azienda_id TEXT,
            tipo_cliente TEXT,
            numero_contratto TEXT,
            pod TEXT,
            fornitore TEXT,
            data_attivazione TEXT,
            data_scadenza TEXT,
            prezzo_energia REAL,
            stato TEXT DEFAULT 'attivo',
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "contratti_gas": """
        CREATE TABLE IF NOT EXISTS contratti_gas (
            id TEXT PRIMARY KEY,
            cliente_privato_id TEXT,
            cliente_azienda_id TEXT,
            tipo_cliente TEXT,
            numero_contratto TEXT,
            pdr TEXT,
            fornitore TEXT,
            data_attivazione TEXT,
            data_scadenza TEXT,
            prezzo_gas REAL,
            stato TEXT DEFAULT 'attivo',
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """,
}

# Columns added by later patches, per table, with their DDL type.
COLUMN_PATCHES: dict[str, list[tuple[str, str]]] = {
    "clienti_privati": [
        ("codice_cliente", "TEXT"),
        ("email_secondaria", "TEXT"),
        ("telefono_fisso", "TEXT"),
        ("pec", "TEXT"),
        ("civico_residenza", "TEXT"),
        ("cap_residenza", "TEXT"),
        ("provincia_residenza", "TEXT"),
        ("tipo_documento", "TEXT"),
        ("numero_documento", "TEXT"),
        ("ente_rilascio", "TEXT"),
        ("data_scadenza_documento", "TEXT"),
        ("iban", "TEXT"),
        ("stato", "TEXT"),
        ("assigned_agent_id", "TEXT"),
        ("note", "TEXT"),
        ("data_consenso", "TEXT"),
        ("created_by", "TEXT"),
    ],
    "clienti_aziende": [
        ("codice_cliente", "TEXT"),
        ("provincia_sede_legale", "TEXT"),
        ("email_principale", "TEXT"),
        ("stato", "TEXT"),
        ("assigned_agent_id", "TEXT"),
        ("note", "TEXT"),
        ("data_consenso", "TEXT"),
        ("created_by", "TEXT"),
    ],
    "contratti_luce": [
        ("data_inizio", "TEXT"),
        ("created_by", "TEXT"),
    ],
    "contratti_gas": [
        ("data_inizio", "TEXT"),
        ("created_by", "TEXT"),
    ],
}


def create_base_schema(conn: Connection) -> None:
    """Create the base tables when missing."""
    for table, ddl in BASE_TABLES.items():
        conn.execute(text(ddl))
        logger.info(f"Ensured table {table}")


def apply_column_patches(conn: Connection) -> list[str]:
    """Add every patch column a table still lacks; return ``table.column`` added."""
    added: list[str] = []
    for table, columns in COLUMN_PATCHES.items():
        existing = table_columns(conn, table)
        if not existing:
            logger.warning(f"Table {table} not found, skipping its column patches")
            continue
        for name, ddl_type in columns:
            if name in existing:
                logger.debug(f"{table}.{name} already present, skip")
                continue
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl_type}"))
            added.append(f"{table}.{name}")
            logger.info(f"Added column {table}.{name}")
    return added


def seed_user(conn: Connection, email: str, *, ruolo: str = "admin") -> str:
    """Ensure a user with ``email`` exists and return its id."""
    row = conn.execute(
        text("SELECT id FROM users WHERE email = :email LIMIT 1"), {"email": email}
    ).first()
    if row:
        return str(row[0])
    user_id = str(uuid.uuid4())
    conn.execute(
        text(
            "INSERT INTO users (id, email, nome, cognome, ruolo, attivo) "
            "VALUES (:id, :email, :nome, :cognome, :ruolo, 1)"
        ),
        {"id": user_id, "email": email, "nome": "Super", "cognome": "Admin", "ruolo": ruolo},
    )
    return user_id


def provision(engine: Engine, *, admin_email: str | None = None) -> list[str]:
    """Create base tables, apply patches and optionally seed the import actor."""
    with engine.begin() as conn:
        create_base_schema(conn)
        added = apply_column_patches(conn)
        if admin_email:
            seed_user(conn, admin_email)
    return added
