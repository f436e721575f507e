"""Shared fixtures: a provisioned SQLite CRM per test and an in-memory job store."""

import pytest
from sqlalchemy import event, text
from sqlalchemy.orm import sessionmaker

from gestionale_import.db.provisioning import provision
from gestionale_import.db.session import create_db_engine
from gestionale_import.services.import_runner import ImportRunner
from gestionale_import.services.job_store import MemoryJobStore

ACTOR_EMAIL = "admin@gestionale.it"

SCENARIO_CSV = (
    "tipo_record,nome,cognome,codice_fiscale,email_principale,pod,numero_contratto\n"
    "privato,Mario,Rossi,RSSMRA80A01H501U,mario@example.com,IT001E000001,C-001\n"
)

SCENARIO_UPDATE_CSV = (
    "tipo_record,modalita_import,nome,cognome,codice_fiscale,email_principale,pod,numero_contratto\n"
    "privato,update,Mario,Rossi,RSSMRA80A01H501U,mario@example.com,IT001E000001,C-001\n"
)


def count_rows(engine, table):
    with engine.connect() as conn:
        return conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one()


def fetch_all(engine, table):
    with engine.connect() as conn:
        return [dict(row._mapping) for row in conn.execute(text(f"SELECT * FROM {table} ORDER BY id"))]


def record_statements(engine):
    """Collect every SQL statement sent to the driver from now on."""
    statements = []

    @event.listens_for(engine, "before_cursor_execute")
    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    return statements


@pytest.fixture
def engine(tmp_path):
    """Empty SQLite database; tests that need a lagging schema write their own DDL."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'crm.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def provisioned_engine(engine):
    provision(engine, admin_email=ACTOR_EMAIL)
    return engine


@pytest.fixture
def session_factory(provisioned_engine):
    return sessionmaker(bind=provisioned_engine, autoflush=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def job_store():
    return MemoryJobStore()


@pytest.fixture
def runner(session_factory, job_store):
    return ImportRunner(session_factory, job_store, actor_email=ACTOR_EMAIL)
