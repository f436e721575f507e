"""Schema-adaptive inserts and upserts for customers and contracts.

Every statement is assembled from the live table shape: a column the table
lacks is left out rather than failing the row.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from gestionale_import.core.errors import SchemaCompatibilityError
from gestionale_import.services.consent import DEFAULT_CONSENT, ConsentPolicy
from gestionale_import.services.contract_kinds import ContractKind
from gestionale_import.services.field_aliases import (
    CUSTOMER_FIELDS,
    IMPORT_MODE_FIELD,
    ImportRecord,
    map_fields,
)
from gestionale_import.services.resolver import CUSTOMER_REFERENCE_COLUMNS, find_contract
from gestionale_import.services.schema_introspection import SchemaShape, connection_for, introspect

logger = logging.getLogger(__name__)

CUSTOMER_TABLE = "clienti_privati"
DEFAULT_CONTRACT_STATE = "compilazione"
UPDATE_MODES = {"update", "upsert"}


class WriteAction(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    WOULD_INSERT = "would_insert"
    WOULD_UPDATE = "would_update"

    @property
    def is_insert(self) -> bool:
        return self in (WriteAction.INSERTED, WriteAction.WOULD_INSERT)


@dataclass(frozen=True)
class WriteOutcome:
    id: str
    action: WriteAction


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _insert(session: Session, shape: SchemaShape, values: dict[str, Any]) -> str | None:
    """INSERT the shape-present subset of ``values``; return the generated id if any."""
    present = {col: val for col, val in values.items() if shape.has(col)}
    if not present:
        raise SchemaCompatibilityError(
            f"Schema {shape.table} non compatibile: nessuna colonna disponibile per l'inserimento"
        )
    columns = ", ".join(present)
    placeholders = ", ".join(f":{col}" for col in present)
    sql = f"INSERT INTO {shape.table} ({columns}) VALUES ({placeholders})"
    if not shape.generated_pk:
        session.execute(text(sql), present)
        return None

    # lastrowid is only the new key on sqlite/mysql drivers
    returning = connection_for(session).dialect.insert_returning
    if returning:
        sql += " RETURNING id"
    result = session.execute(text(sql), present)
    new_id = result.scalar_one_or_none() if returning else result.lastrowid
    if new_id is None:
        raise SchemaCompatibilityError(
            f"Schema {shape.table} non compatibile: id generato non restituito dal database"
        )
    return str(new_id)


def wants_update(record: ImportRecord) -> bool:
    """True when the row asks for update-over-insert via ``modalita_import``."""
    return (record.get(IMPORT_MODE_FIELD) or "").strip().lower() in UPDATE_MODES


def insert_customer(
    session: Session,
    record: ImportRecord,
    *,
    created_by: str | None,
    assigned_agent_id: str | None = None,
    dry_run: bool = False,
    consent: ConsentPolicy = DEFAULT_CONSENT,
) -> str:
    """Create a private customer from ``record`` and return its id.

    In dry run a placeholder id is returned and nothing is written.
    """
    if dry_run:
        return _new_id()

    now = _now()
    values: dict[str, Any] = dict(map_fields(record, CUSTOMER_FIELDS))
    values.update(consent.columns(now))
    values["created_by"] = created_by
    if assigned_agent_id:
        values["assigned_agent_id"] = assigned_agent_id
    values["created_at"] = now.isoformat()

    shape = introspect(session, CUSTOMER_TABLE)
    minted_id: str | None = None
    if shape.has("id") and not shape.generated_pk:
        minted_id = _new_id()
        values = {"id": minted_id, **values}

    generated_id = _insert(session, shape, values)
    customer_id = minted_id or generated_id
    if customer_id is None:
        raise SchemaCompatibilityError(
            f"Schema {CUSTOMER_TABLE} non compatibile: impossibile determinare l'id del cliente"
        )
    logger.debug(f"Inserted customer {customer_id}")
    return customer_id


def _contract_values(record: ImportRecord, kind: ContractKind, shape: SchemaShape) -> dict[str, Any]:
    """Incoming contract fields keyed by their destination column."""
    fields = map_fields(record, kind.aliases)
    return {
        "numero_contratto": fields["numero_contratto"],
        kind.point_field: fields[kind.point_field],
        "fornitore": fields["fornitore"],
        "data_attivazione": fields["data_attivazione"],
        shape.expiry_column: fields["data_scadenza"],
        kind.price_field: fields[kind.price_field],
        "stato": fields["stato"],
    }


def _update_contract(session: Session, kind: ContractKind, contract_id: str, record: ImportRecord) -> None:
    shape = introspect(session, kind.table)
    sets = {
        col: val
        for col, val in _contract_values(record, kind, shape).items()
        if val is not None and shape.has(col)
    }
    if not sets:
        return
    assignments = ", ".join(f"{col} = :{col}" for col in sets)
    session.execute(
        text(f"UPDATE {kind.table} SET {assignments} WHERE id = :contract_id"),
        {**sets, "contract_id": contract_id},
    )


def _insert_contract(
    session: Session,
    kind: ContractKind,
    record: ImportRecord,
    customer_id: str,
    created_by: str | None,
    default_state: str,
) -> str:
    shape = introspect(session, kind.table)
    contract_id = _new_id()
    reference = next(
        (col for col in CUSTOMER_REFERENCE_COLUMNS if shape.has(col)),
        CUSTOMER_REFERENCE_COLUMNS[0],
    )
    values: dict[str, Any] = {
        "id": contract_id,
        reference: customer_id,
        "tipo_cliente": "privato",
    }
    values.update(_contract_values(record, kind, shape))
    values["stato"] = values["stato"] or default_state
    values["created_by"] = created_by
    if shape.generated_pk:
        values.pop("id")

    generated_id = _insert(session, shape, values)
    return generated_id or contract_id


def upsert_contract(
    session: Session,
    record: ImportRecord,
    kind: ContractKind,
    *,
    customer_id: str,
    created_by: str | None,
    dry_run: bool = False,
    default_state: str = DEFAULT_CONTRACT_STATE,
) -> WriteOutcome:
    """Insert a contract, or update the matching one when the row asks for it.

    Without an update/upsert ``modalita_import`` every row is inserted, even
    when a contract with the same number already exists.
    """
    if wants_update(record):
        existing = find_contract(session, record, kind, customer_id)
        if existing.found:
            if dry_run:
                return WriteOutcome(existing.value, WriteAction.WOULD_UPDATE)
            _update_contract(session, kind, existing.value, record)
            return WriteOutcome(existing.value, WriteAction.UPDATED)

    if dry_run:
        return WriteOutcome(_new_id(), WriteAction.WOULD_INSERT)
    contract_id = _insert_contract(session, kind, record, customer_id, created_by, default_state)
    return WriteOutcome(contract_id, WriteAction.INSERTED)


def assign_agent(session: Session, customer_id: str, agent_id: str) -> int | None:
    """Point an existing customer at ``agent_id``.

    Returns the number of rows changed, or None when the table has no
    ``assigned_agent_id`` column.
    """
    if not introspect(session, CUSTOMER_TABLE).has("assigned_agent_id"):
        return None
    result = session.execute(
        text(f"UPDATE {CUSTOMER_TABLE} SET assigned_agent_id = :agent_id WHERE id = :customer_id"),
        {"agent_id": agent_id, "customer_id": customer_id},
    )
    return result.rowcount
