"""Tabular normalisation: CSV/Excel bytes into uppercase-keyed string records.

CSV files come in two locales. Files exported with ``;`` as the delimiter use
``,`` as the decimal mark (``-7,85``); files delimited by ``,`` use ``.``.
The delimiter is detected from the first lines of the file and numeric
columns are rewritten to the ``.`` convention, so downstream parsing only ever
sees one decimal format.
"""

from __future__ import annotations

import csv
import io
import math
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from dryness.common.constants import (
    DELIMITED_SUFFIXES,
    DELIMITER_SAMPLE_LINES,
    NUMERIC_COLUMNS,
    SPREADSHEET_SUFFIXES,
)
from dryness.common.errors import EmptyFileError, ParseError, UnsupportedFormatError

DELIMITED = "delimited"
SPREADSHEET = "spreadsheet"


@dataclass(frozen=True)
class NormalizedTable:
    columns: tuple[str, ...]
    records: list[dict[str, str]]
    delimiter: str | None
    decimal_separator: str


def container_kind(file_name: str) -> str:
    lower = file_name.lower()
    if lower.endswith(DELIMITED_SUFFIXES):
        return DELIMITED
    if lower.endswith(SPREADSHEET_SUFFIXES):
        return SPREADSHEET
    raise UnsupportedFormatError(
        f"Unsupported file format for {file_name!r}. Please upload CSV or Excel (.xls, .xlsx) file."
    )


def detect_csv_format(text: str) -> tuple[str, str]:
    """Return ``(delimiter, decimal_separator)`` for a CSV text.

    ``;`` wins only when strictly more frequent than ``,`` in the sample.
    """
    sample = "\n".join(text.split("\n")[:DELIMITER_SAMPLE_LINES])
    if sample.count(";") > sample.count(","):
        return ";", ","
    return ",", "."


def canonical_column(name: str) -> str:
    normalized = name.strip().upper()
    if normalized == "SH%":
        return "SH"
    return normalized


def normalize_decimal(value: str, decimal_separator: str) -> str:
    if decimal_separator == ",":
        return value.replace(",", ".")
    return value


def _normalize_value(column: str, value: str, decimal_separator: str) -> str:
    value = value.strip()
    if column in NUMERIC_COLUMNS:
        return normalize_decimal(value, decimal_separator)
    return value


def _is_blank_line(row: list[str]) -> bool:
    return not row or (len(row) == 1 and not row[0].strip())


def read_delimited(data: bytes) -> NormalizedTable:
    text = data.decode("utf-8-sig", errors="replace")
    delimiter, decimal_separator = detect_csv_format(text)

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)
    header: list[str] | None = None
    records: list[dict[str, str]] = []
    try:
        for row in reader:
            if _is_blank_line(row):
                continue
            if header is None:
                header = [canonical_column(name) for name in row]
                continue
            if len(row) != len(header):
                raise ParseError(
                    f"CSV parsing error: line {reader.line_num} has {len(row)} fields, expected {len(header)}"
                )
            records.append(
                {
                    column: _normalize_value(column, value, decimal_separator)
                    for column, value in zip(header, row)
                }
            )
    except csv.Error as exc:
        raise ParseError(f"CSV parsing error: {exc}") from exc

    if header is None or not records:
        raise EmptyFileError("CSV file has no data rows")

    return NormalizedTable(
        columns=tuple(header),
        records=records,
        delimiter=delimiter,
        decimal_separator=decimal_separator,
    )


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def read_spreadsheet(data: bytes, file_name: str = "data.xlsx") -> NormalizedTable:
    import pandas as pd

    engine = "xlrd" if file_name.lower().endswith(".xls") else "openpyxl"
    try:
        frame = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=object, engine=engine)
    except Exception as exc:
        raise ParseError(f"Failed to parse Excel: {exc}") from exc

    rows = frame.astype(object).where(frame.notna(), None).values.tolist()
    if not rows:
        raise EmptyFileError("Excel file is empty")

    header = [canonical_column(_cell_text(cell)) for cell in rows[0]]
    records: list[dict[str, str]] = []
    for row in rows[1:]:
        record = {column: _cell_text(cell) for column, cell in zip(header, row)}
        if any(value != "" for value in record.values()):
            records.append(record)

    if not records:
        raise EmptyFileError("Excel file has no data rows")

    return NormalizedTable(columns=tuple(header), records=records, delimiter=None, decimal_separator=".")


def read_tabular(data: bytes, file_name: str) -> NormalizedTable:
    kind = container_kind(file_name)
    if kind == DELIMITED:
        return read_delimited(data)
    return read_spreadsheet(data, file_name)


def read_tabular_file(path: Path) -> NormalizedTable:
    container_kind(path.name)
    return read_tabular(path.read_bytes(), path.name)
