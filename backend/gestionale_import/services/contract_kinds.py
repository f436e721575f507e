"""Electricity and gas contracts share one write path; these describe the differences."""

from __future__ import annotations

from dataclasses import dataclass

from gestionale_import.services.field_aliases import GAS_FIELDS, LUCE_FIELDS


@dataclass(frozen=True)
class ContractKind:
    name: str
    table: str
    point_field: str
    price_field: str
    aliases: dict[str, tuple[str, ...]]
    # Headers whose presence on a customer row means "this row also carries a contract".
    trigger_fields: tuple[str, ...]


LUCE = ContractKind(
    name="contratto_luce",
    table="contratti_luce",
    point_field="pod",
    price_field="prezzo_energia",
    aliases=LUCE_FIELDS,
    trigger_fields=("pod", "contratto_luce_pod", "numero_contratto_luce"),
)

GAS = ContractKind(
    name="contratto_gas",
    table="contratti_gas",
    point_field="pdr",
    price_field="prezzo_gas",
    aliases=GAS_FIELDS,
    trigger_fields=("pdr", "contratto_gas_pdr", "numero_contratto_gas"),
)
