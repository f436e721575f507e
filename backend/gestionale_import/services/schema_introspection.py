"""Discover which columns a live table exposes.

Deployments are migrated by hand and can lag behind each other, so every
dynamic statement is built from a fresh look at the table rather than a
fixed model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Union

from sqlalchemy import Integer, inspect
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

EXPIRY_COLUMNS = ("data_scadenza", "data_fine")
FALLBACK_EXPIRY_COLUMN = "data_fine"

Bind = Union[Session, Connection]


@dataclass(frozen=True)
class SchemaShape:
    """Columns currently present on ``table``."""

    table: str
    columns: frozenset[str] = field(default_factory=frozenset)
    expiry_column: str = FALLBACK_EXPIRY_COLUMN
    generated_pk: bool = False
    error: str | None = None

    def has(self, column: str) -> bool:
        return column.lower() in self.columns

    @property
    def available(self) -> bool:
        return bool(self.columns)


def connection_for(bind: Bind) -> Connection:
    if isinstance(bind, Session):
        return bind.connection()
    return bind


def _pick_expiry_column(columns: frozenset[str]) -> str:
    for name in EXPIRY_COLUMNS:
        if name in columns:
            return name
    return FALLBACK_EXPIRY_COLUMN


def introspect(bind: Bind, table: str) -> SchemaShape:
    """Return the live shape of ``table``; an empty shape when it cannot be read.

    Reflection runs in its own savepoint so a failed read leaves the
    surrounding transaction usable.
    """
    try:
        with bind.begin_nested():
            inspector = inspect(connection_for(bind))
            raw_columns = inspector.get_columns(table)
            pk_columns = inspector.get_pk_constraint(table).get("constrained_columns") or []
    except SQLAlchemyError as exc:
        logger.debug(f"Could not introspect table {table}: {exc}")
        return SchemaShape(table=table, error=str(exc))

    columns = frozenset(str(col["name"]).lower() for col in raw_columns if col.get("name"))
    generated_pk = False
    if [name.lower() for name in pk_columns] == ["id"]:
        id_column = next(col for col in raw_columns if str(col["name"]).lower() == "id")
        generated_pk = isinstance(id_column["type"], Integer)

    return SchemaShape(
        table=table,
        columns=columns,
        expiry_column=_pick_expiry_column(columns),
        generated_pk=generated_pk,
    )


def table_columns(bind: Bind, table: str) -> frozenset[str]:
    return introspect(bind, table).columns


def expiry_column_name(bind: Bind, table: str) -> str:
    """Name of the contract expiry column: ``data_scadenza`` or ``data_fine``."""
    return introspect(bind, table).expiry_column
