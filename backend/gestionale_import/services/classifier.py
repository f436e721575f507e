"""Decide what kind of entity a CSV row describes."""

from __future__ import annotations

from enum import Enum

from gestionale_import.services.field_aliases import (
    RECORD_TYPE_HINTS,
    ImportRecord,
    first_value,
)


class RecordType(str, Enum):
    CLIENTE_PRIVATO = "cliente_privato"
    CLIENTE_AZIENDA = "cliente_azienda"
    CONTRATTO_LUCE = "contratto_luce"
    CONTRATTO_GAS = "contratto_gas"
    UNKNOWN = "unknown"


SUPPORTED_TYPES = [
    RecordType.CLIENTE_PRIVATO,
    RecordType.CLIENTE_AZIENDA,
    RecordType.CONTRATTO_LUCE,
    RecordType.CONTRATTO_GAS,
]

# Substring of the type hint -> record type, checked in order.
HINT_KEYWORDS = (
    ("privat", RecordType.CLIENTE_PRIVATO),
    ("aziend", RecordType.CLIENTE_AZIENDA),
    ("luce", RecordType.CONTRATTO_LUCE),
    ("gas", RecordType.CONTRATTO_GAS),
)

POD_FIELDS = ("pod", "contratto_luce_pod")
PDR_FIELDS = ("pdr", "contratto_gas_pdr")
PRIVATE_CUSTOMER_FIELDS = ("codice_fiscale", "email_principale", "cliente_email")


def detect_record_type(record: ImportRecord) -> RecordType:
    """Classify from the type hint first, then from which columns are filled."""
    hint = (first_value(record, RECORD_TYPE_HINTS) or "").lower()
    for keyword, record_type in HINT_KEYWORDS:
        if keyword in hint:
            return record_type

    if first_value(record, POD_FIELDS):
        return RecordType.CONTRATTO_LUCE
    if first_value(record, PDR_FIELDS):
        return RecordType.CONTRATTO_GAS
    if first_value(record, PRIVATE_CUSTOMER_FIELDS):
        return RecordType.CLIENTE_PRIVATO
    return RecordType.UNKNOWN


def classify(record: ImportRecord, *, auto_detect: bool = True) -> RecordType | str:
    """Return the record type of ``record``.

    With ``auto_detect`` off an explicit ``tipo_record`` is trusted verbatim:
    canonical names map to their type, anything else is returned as the raw
    string so the caller can report it.
    """
    explicit = (record.get("tipo_record") or "").strip()
    if not auto_detect and explicit:
        try:
            return RecordType(explicit.lower())
        except ValueError:
            return explicit
    return detect_record_type(record)
