from sqlalchemy import text

from gestionale_import.db.provisioning import (
    apply_column_patches,
    create_base_schema,
    provision,
    seed_user,
)
from gestionale_import.services.schema_introspection import table_columns


def test_provision_is_idempotent(engine):
    first = provision(engine, admin_email="admin@gestionale.it")
    second = provision(engine, admin_email="admin@gestionale.it")

    assert "clienti_privati.assigned_agent_id" in first
    assert "contratti_luce.created_by" in first
    assert second == []
    with engine.connect() as conn:
        users = conn.execute(text("SELECT COUNT(*) FROM users")).scalar_one()
    assert users == 1


def test_patches_only_add_missing_columns(engine):
    with engine.begin() as conn:
        create_base_schema(conn)
        conn.execute(text("ALTER TABLE clienti_privati ADD COLUMN iban TEXT"))
        added = apply_column_patches(conn)
        columns = table_columns(conn, "clienti_privati")

    assert "clienti_privati.iban" not in added
    assert "clienti_privati.cap_residenza" in added
    assert {"iban", "cap_residenza", "data_consenso"} <= columns


def test_patches_skip_missing_tables(engine):
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE contratti_gas (id TEXT PRIMARY KEY, pdr TEXT)"))
        added = apply_column_patches(conn)

    assert added == ["contratti_gas.data_inizio", "contratti_gas.created_by"]


def test_seed_user_returns_existing_id(provisioned_engine):
    with provisioned_engine.begin() as conn:
        agent_id = seed_user(conn, "agente@gestionale.it", ruolo="agente")
        again = seed_user(conn, "agente@gestionale.it")

    assert agent_id == again
