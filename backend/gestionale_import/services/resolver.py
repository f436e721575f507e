"""Best-effort lookups of existing rows by natural key."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gestionale_import.services.contract_kinds import ContractKind
from gestionale_import.services.field_aliases import (
    CUSTOMER_FIELDS,
    ImportRecord,
    first_value,
)
from gestionale_import.services.schema_introspection import introspect

logger = logging.getLogger(__name__)

CUSTOMER_REFERENCE_COLUMNS = ("cliente_privato_id", "cliente_id")


@dataclass(frozen=True)
class LookupResult:
    """Outcome of a lookup: an id, nothing, or a failure treated as nothing."""

    value: str | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.value is not None

    @property
    def failed(self) -> bool:
        return self.error is not None


NOT_FOUND = LookupResult()


def _first_id(session: Session, sql: str, params: dict[str, Any]) -> LookupResult:
    # savepoint keeps a failed SELECT from aborting the job transaction
    try:
        with session.begin_nested():
            row = session.execute(text(sql), params).first()
    except SQLAlchemyError as exc:
        logger.debug(f"Lookup failed ({sql}): {exc}")
        return LookupResult(error=str(exc))
    if row is None or row[0] is None:
        return NOT_FOUND
    return LookupResult(value=str(row[0]))


def find_user_by_email(session: Session, email: str | None) -> LookupResult:
    if not email:
        return NOT_FOUND
    return _first_id(session, "SELECT id FROM users WHERE email = :email LIMIT 1", {"email": email})


def find_customer(session: Session, record: ImportRecord) -> LookupResult:
    """Find a private customer by fiscal code, then by principal email."""
    cf = first_value(record, CUSTOMER_FIELDS["codice_fiscale"])
    email = first_value(record, CUSTOMER_FIELDS["email_principale"])
    failure: LookupResult | None = None

    if cf:
        result = _first_id(
            session,
            "SELECT id FROM clienti_privati WHERE codice_fiscale = :cf LIMIT 1",
            {"cf": cf},
        )
        if result.found:
            return result
        failure = result if result.failed else None
    if email:
        result = _first_id(
            session,
            "SELECT id FROM clienti_privati WHERE email_principale = :email LIMIT 1",
            {"email": email},
        )
        if result.found or result.failed:
            return result
    return failure or NOT_FOUND


def find_contract(
    session: Session,
    record: ImportRecord,
    kind: ContractKind,
    customer_id: str | None = None,
) -> LookupResult:
    """Find a contract by number (global), then by metering point.

    The metering-point lookup is narrowed to ``customer_id`` when the table
    carries a customer reference column.
    """
    number = first_value(record, kind.aliases["numero_contratto"])
    point = first_value(record, kind.aliases[kind.point_field])
    failure: LookupResult | None = None

    if number:
        result = _first_id(
            session,
            f"SELECT id FROM {kind.table} WHERE numero_contratto = :numero LIMIT 1",
            {"numero": number},
        )
        if result.found:
            return result
        failure = result if result.failed else None

    if point:
        sql = f"SELECT id FROM {kind.table} WHERE {kind.point_field} = :point"
        params: dict[str, Any] = {"point": point}
        if customer_id:
            shape = introspect(session, kind.table)
            reference = next((col for col in CUSTOMER_REFERENCE_COLUMNS if shape.has(col)), None)
            if reference:
                sql += f" AND {reference} = :customer_id"
                params["customer_id"] = customer_id
        result = _first_id(session, sql + " LIMIT 1", params)
        if result.found or result.failed:
            return result
    return failure or NOT_FOUND
