"""Spreadsheet-friendly CSV export."""

from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Any, Sequence

UTF8_BOM = "\ufeff"


def to_csv_bytes(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    *,
    preamble: Sequence[Sequence[Any]] = (),
    footer: Sequence[Sequence[Any]] = (),
    delimiter: str = ";",
    bom: bool = True,
) -> bytes:
    """Encode rows as UTF-8 CSV.

    The byte-order mark and ``;`` delimiter make Excel in Spanish locales
    open the file with accents and columns intact.
    """
    out = io.StringIO()
    if bom:
        out.write(UTF8_BOM)

    writer = csv.writer(out, delimiter=delimiter, lineterminator="\r\n")
    for line in preamble:
        writer.writerow([_stringify(value) for value in line])
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_stringify(value) for value in row])
    for line in footer:
        writer.writerow([_stringify(value) for value in line])
    return out.getvalue().encode("utf-8")


def format_decimal(value: float | None, places: int = 2) -> str:
    if value is None:
        return ""
    return f"{value:.{places}f}".replace(".", ",")


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, float):
        return format_decimal(value)
    return str(value)
