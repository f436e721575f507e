"""Soft checks on imported values.

Findings never block a row: they are reported back as warnings so operators
can clean the source file.
"""

from __future__ import annotations

import re
from datetime import datetime

from gestionale_import.services.classifier import RecordType
from gestionale_import.services.field_aliases import (
    CUSTOMER_FIELDS,
    GAS_FIELDS,
    LUCE_FIELDS,
    ImportRecord,
    first_value,
)

FISCAL_CODE = re.compile(r"^[A-Z0-9]{16}$", re.IGNORECASE)
EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y")


def _is_date(value: str) -> bool:
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(value, fmt)
            return True
        except ValueError:
            continue
    return False


def _is_number(value: str) -> bool:
    try:
        float(value.replace(",", "."))
    except ValueError:
        return False
    return True


def _check_customer(record: ImportRecord) -> list[str]:
    problems: list[str] = []
    cf = first_value(record, CUSTOMER_FIELDS["codice_fiscale"])
    if cf and not FISCAL_CODE.match(cf):
        problems.append(f"codice_fiscale '{cf}' non valido")
    email = first_value(record, CUSTOMER_FIELDS["email_principale"])
    if email and not EMAIL.match(email):
        problems.append(f"email '{email}' non valida")
    for key in ("data_nascita", "data_scadenza_documento"):
        value = first_value(record, CUSTOMER_FIELDS[key])
        if value and not _is_date(value):
            problems.append(f"{key} '{value}' non è una data valida")
    return problems


def _check_contract(record: ImportRecord, aliases: dict[str, tuple[str, ...]], price_field: str) -> list[str]:
    problems: list[str] = []
    for key in ("data_attivazione", "data_scadenza"):
        value = first_value(record, aliases[key])
        if value and not _is_date(value):
            problems.append(f"{key} '{value}' non è una data valida")
    price = first_value(record, aliases[price_field])
    if price and not _is_number(price):
        problems.append(f"{price_field} '{price}' non numerico")
    return problems


def validate_record(record: ImportRecord, record_type: RecordType) -> list[str]:
    """Return human-readable problems found in ``record`` (empty when clean)."""
    problems = _check_customer(record)
    if record_type in (RecordType.CLIENTE_PRIVATO, RecordType.CONTRATTO_LUCE):
        if first_value(record, LUCE_FIELDS["pod"]) or first_value(record, LUCE_FIELDS["numero_contratto"]):
            problems.extend(_check_contract(record, LUCE_FIELDS, "prezzo_energia"))
    if record_type in (RecordType.CLIENTE_PRIVATO, RecordType.CONTRATTO_GAS):
        if first_value(record, GAS_FIELDS["pdr"]) or first_value(record, GAS_FIELDS["numero_contratto"]):
            problems.extend(_check_contract(record, GAS_FIELDS, "prezzo_gas"))
    # De-duplicate while keeping order: luce and gas share date headers.
    return list(dict.fromkeys(problems))
