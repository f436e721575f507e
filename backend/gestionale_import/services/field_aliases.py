"""CSV header spellings accepted for each canonical field.

Existing export templates depend on every spelling listed here; the order
matters, the first non-empty header wins.
"""

from __future__ import annotations

from typing import Mapping

ImportRecord = Mapping[str, str]

CUSTOMER_FIELDS: dict[str, tuple[str, ...]] = {
    "nome": ("nome", "cliente_nome"),
    "cognome": ("cognome", "cliente_cognome"),
    "codice_fiscale": ("codice_fiscale", "cliente_codice_fiscale"),
    "data_nascita": ("data_nascita", "cliente_data_nascita"),
    "email_principale": ("email_principale", "cliente_email"),
    "telefono_mobile": ("telefono_mobile", "cliente_telefono"),
    "via_residenza": ("via_residenza", "cliente_indirizzo"),
    "civico_residenza": ("civico_residenza",),
    "cap_residenza": ("cap_residenza", "cliente_cap"),
    "citta_residenza": ("citta_residenza", "cliente_citta"),
    "provincia_residenza": ("provincia_residenza", "cliente_provincia"),
    "tipo_documento": ("tipo_documento", "cliente_documento_tipo"),
    "numero_documento": ("numero_documento", "cliente_documento_numero"),
    "ente_rilascio": ("ente_rilascio", "cliente_documento_rilasciato_da"),
    "data_scadenza_documento": (
        "data_scadenza_documento",
        "cliente_documento_data_scadenza",
    ),
    "iban": ("iban",),
}

LUCE_FIELDS: dict[str, tuple[str, ...]] = {
    "numero_contratto": ("numero_contratto", "contratto_luce_numero", "numero_contratto_luce"),
    "pod": ("pod", "contratto_luce_pod", "pod_pdr"),
    "fornitore": ("fornitore", "contratto_luce_fornitore_precedente"),
    "data_attivazione": ("data_attivazione", "contratto_luce_data_inizio"),
    "data_scadenza": (
        "data_scadenza",
        "contratto_luce_data_fine",
        "contratto_luce_data_scadenza",
    ),
    "prezzo_energia": ("prezzo_energia", "contratto_luce_prezzo_energia"),
    "stato": ("stato", "stato_contratto", "stato contratto luce", "stato_contratto_luce"),
}

GAS_FIELDS: dict[str, tuple[str, ...]] = {
    "numero_contratto": ("numero_contratto", "contratto_gas_numero", "numero_contratto_gas"),
    "pdr": ("pdr", "contratto_gas_pdr", "pod_pdr"),
    "fornitore": ("fornitore", "contratto_gas_fornitore_precedente"),
    "data_attivazione": ("data_attivazione", "contratto_gas_data_inizio"),
    "data_scadenza": (
        "data_scadenza",
        "contratto_gas_data_fine",
        "contratto_gas_data_scadenza",
    ),
    "prezzo_gas": ("prezzo_gas", "contratto_gas_prezzo_gas"),
    "stato": ("stato", "stato_contratto", "stato contratto gas", "stato_contratto_gas"),
}

RECORD_TYPE_HINTS = ("tipo_record", "cliente_tipo", "tipo")
IMPORT_MODE_FIELD = "modalita_import"
AGENT_ID_FIELDS = ("assigned_agent_id", "agente_id", "agent_id")
AGENT_EMAIL_FIELDS = (
    "assigned_agent_email",
    "agente_email",
    "agent_email",
    "assegnato_a_email",
)


def first_value(record: ImportRecord, headers: tuple[str, ...]) -> str | None:
    """Return the first non-empty value among ``headers``, or None."""
    for header in headers:
        value = record.get(header)
        if value:
            return value
    return None


def map_fields(record: ImportRecord, aliases: dict[str, tuple[str, ...]]) -> dict[str, str | None]:
    """Resolve every canonical field of ``aliases`` against ``record``."""
    return {field: first_value(record, headers) for field, headers in aliases.items()}
