from sqlalchemy import text

from conftest import record_statements
from gestionale_import.services.contract_kinds import GAS, LUCE
from gestionale_import.services.resolver import (
    find_contract,
    find_customer,
    find_user_by_email,
)


def _add_customer(session, cf=None, email=None):
    result = session.execute(
        text("INSERT INTO clienti_privati (codice_fiscale, email_principale) VALUES (:cf, :email)"),
        {"cf": cf, "email": email},
    )
    return str(result.lastrowid)


def _add_contract(session, table, contract_id, customer_id, **columns):
    values = {"id": contract_id, "cliente_privato_id": customer_id, **columns}
    names = ", ".join(values)
    placeholders = ", ".join(f":{name}" for name in values)
    session.execute(text(f"INSERT INTO {table} ({names}) VALUES ({placeholders})"), values)


def test_find_customer_by_fiscal_code_first(session):
    by_cf = _add_customer(session, cf="RSSMRA80A01H501U", email="other@example.com")
    _add_customer(session, cf="VRDLGU70A01H501X", email="mario@example.com")

    result = find_customer(session, {"codice_fiscale": "RSSMRA80A01H501U", "email_principale": "mario@example.com"})

    assert result.found
    assert result.value == by_cf


def test_find_customer_falls_back_to_email(session):
    by_email = _add_customer(session, email="mario@example.com")

    result = find_customer(session, {"codice_fiscale": "NOTKNOWN00000000", "cliente_email": "mario@example.com"})

    assert result.value == by_email


def test_find_customer_without_keys_is_not_found(session):
    _add_customer(session, cf="RSSMRA80A01H501U")

    result = find_customer(session, {"nome": "Mario"})

    assert not result.found
    assert not result.failed


def test_lookup_failure_is_distinguishable_but_absent(engine):
    with engine.connect() as conn:
        result = find_user_by_email(conn, "admin@gestionale.it")

    assert not result.found
    assert result.failed


def test_find_user_by_email(session):
    assert find_user_by_email(session, "admin@gestionale.it").found
    assert not find_user_by_email(session, "nobody@gestionale.it").found
    assert not find_user_by_email(session, None).found


def test_find_contract_by_number_is_global(session):
    owner = _add_customer(session, cf="A")
    other = _add_customer(session, cf="B")
    _add_contract(session, "contratti_luce", "luce-1", owner, numero_contratto="C-001", pod="IT001")

    result = find_contract(session, {"numero_contratto": "C-001"}, LUCE, customer_id=other)

    assert result.value == "luce-1"


def test_find_contract_by_point_is_scoped_to_customer(session):
    first = _add_customer(session, cf="A")
    second = _add_customer(session, cf="B")
    _add_contract(session, "contratti_gas", "gas-1", first, pdr="PDR-1")
    _add_contract(session, "contratti_gas", "gas-2", second, pdr="PDR-1")

    assert find_contract(session, {"pdr": "PDR-1"}, GAS, customer_id=second).value == "gas-2"
    assert find_contract(session, {"contratto_gas_pdr": "PDR-1"}, GAS).value == "gas-1"


def test_find_contract_number_miss_falls_back_to_point(session):
    owner = _add_customer(session, cf="A")
    _add_contract(session, "contratti_luce", "luce-1", owner, numero_contratto="C-001", pod="IT001")

    result = find_contract(session, {"numero_contratto": "C-999", "pod": "IT001"}, LUCE, customer_id=owner)

    assert result.value == "luce-1"


def test_find_contract_without_keys_is_not_found(session):
    assert not find_contract(session, {"fornitore": "Enel"}, LUCE).found


def test_failed_lookup_keeps_the_transaction_usable(engine):
    statements = record_statements(engine)

    with engine.connect() as conn:
        conn.execute(text("CREATE TABLE marker (id INTEGER)"))
        conn.execute(text("INSERT INTO marker (id) VALUES (1)"))

        result = find_user_by_email(conn, "admin@gestionale.it")

        assert result.failed
        assert conn.execute(text("SELECT COUNT(*) FROM marker")).scalar_one() == 1

    assert any(stmt.startswith("ROLLBACK TO SAVEPOINT") for stmt in statements)
