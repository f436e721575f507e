"""Line-oriented CSV parsing for spreadsheet exports.

Fields are split on bare commas: quoted fields containing commas or line
breaks are not supported by the export templates this reads.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

BOM = "\ufeff"
SEPARATOR_DECLARATION = re.compile(r"^sep\s*=\s*[,;\t]$", re.IGNORECASE)
LINE_BREAK = re.compile(r"\r?\n")


@dataclass
class ParsedCsv:
    headers: list[str] = field(default_factory=list)
    records: list[dict[str, str]] = field(default_factory=list)


def _clean_field(value: str) -> str:
    value = value.strip()
    if value.startswith('"'):
        value = value[1:]
    if value.endswith('"'):
        value = value[:-1]
    return value


def _split_line(line: str) -> list[str]:
    return [_clean_field(part) for part in line.split(",")]


def decode_upload(content: bytes) -> str:
    """Decode uploaded bytes as UTF-8; a leading BOM is dropped."""
    return content.decode("utf-8-sig", errors="replace")


def parse_csv(content: str) -> ParsedCsv:
    """Turn raw CSV text into headers plus one header-keyed dict per data line.

    Returns an empty result when there is no header line followed by at
    least one data line.
    """
    lines = [line for line in LINE_BREAK.split(content) if line.strip()]
    if not lines:
        return ParsedCsv()

    if SEPARATOR_DECLARATION.match(lines[0].lstrip(BOM).strip()):
        lines = lines[1:]

    if len(lines) < 2:
        return ParsedCsv()

    headers = _split_line(lines[0].lstrip(BOM))
    records: list[dict[str, str]] = []
    for raw in lines[1:]:
        values = _split_line(raw.lstrip(BOM))
        records.append(
            {header: (values[idx] if idx < len(values) else "") for idx, header in enumerate(headers)}
        )
    return ParsedCsv(headers=headers, records=records)
