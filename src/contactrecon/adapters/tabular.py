"""Spreadsheet import source and reconciled-output writer.

Responsibilities of this adapter:
- read CSV or Excel sheets with pandas
- pick the name and phone columns from fixed header synonym lists
- turn every other column into tagged attribute values, verbatim
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

import pandas as pd

from contactrecon.domain.model import AttributeValue, ImportRecord

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterable, Sequence
    from pathlib import Path

    from contactrecon.domain.model import ReconciledRecord

log = logging.getLogger(__name__)

NAME_HEADERS: Final = (
    "name",
    "contact name",
    "client name",
    "party name",
    "contact",
    "client",
    "party",
    "full name",
    "company name",
    "business name",
    "firm name",
)
PHONE_HEADERS: Final = (
    "phone",
    "phone number",
    "phoneno",
    "phone_no",
    "mobile",
    "mobile number",
    "contact number",
    "cell",
    "telephone",
    "tel",
    "mob",
    "whatsapp",
    "whatsapp number",
)
EXCEL_SUFFIXES: Final = frozenset({".xlsx", ".xlsm", ".xls"})


class ImportSourceError(ValueError):
    """Raised when a sheet cannot be turned into import records."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


def detect_column(headers: Sequence[str], synonyms: Iterable[str]) -> str | None:
    """First header matching the earliest synonym, compared case-insensitively."""

    folded = {header: header.strip().casefold() for header in headers}
    for synonym in synonyms:
        for header, key in folded.items():
            if key == synonym:
                return header
    return None


def load_table(path: Path, *, sheet: str | int = 0) -> pd.DataFrame:
    if path.suffix.lower() in EXCEL_SUFFIXES:
        return pd.read_excel(path, sheet_name=sheet, dtype=object)
    return pd.read_csv(path, dtype=object, keep_default_na=False, na_values=[""])


def records_from_frame(frame: pd.DataFrame, *, first_row_number: int = 2) -> list[ImportRecord]:
    """Build one :class:`ImportRecord` per row.

    ``source_row_index`` is the spreadsheet row number (header row is 1).
    """

    headers = [str(column) for column in frame.columns]
    name_column = detect_column(headers, NAME_HEADERS)
    if name_column is None:
        raise ImportSourceError(f"No name column found among headers: {', '.join(headers)}")
    phone_column = detect_column(headers, PHONE_HEADERS)
    log.debug("Detected columns: name=%r, phone=%r", name_column, phone_column)

    records: list[ImportRecord] = []
    for offset, row in enumerate(frame.itertuples(index=False, name=None)):
        cells: dict[str, object] = dict(zip(headers, row, strict=True))
        attributes = {
            header: AttributeValue.from_raw(_clean_cell(value))
            for header, value in cells.items()
            if header not in {name_column, phone_column}
        }
        records.append(
            ImportRecord(
                name=_text_cell(cells[name_column]),
                phone=_text_cell(cells[phone_column]) if phone_column else None,
                attributes=attributes,
                source_row_index=first_row_number + offset,
            )
        )
    return records


def read_import_records(path: Path, *, sheet: str | int = 0) -> list[ImportRecord]:
    if not path.exists():
        raise ImportSourceError(f"Import file not found: {path}", path=path)
    frame = load_table(path, sheet=sheet)
    records = records_from_frame(frame)
    log.info("Read %d rows from %s", len(records), path)
    return records


def reconciled_frame(records: Iterable[ReconciledRecord]) -> pd.DataFrame:
    rows: list[dict[Hashable, object]] = []
    for record in records:
        row: dict[Hashable, object] = {
            "row": record.source_row_index,
            "name": record.final_name,
            "phone": record.final_phone,
            "provenance": str(record.provenance),
            "cluster": record.cluster_id or "",
        }
        for key, value in record.source_attributes.items():
            row.setdefault(key, str(value))
        rows.append(row)
    return pd.DataFrame(rows)


def write_reconciled(records: Iterable[ReconciledRecord], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    reconciled_frame(records).to_csv(path, index=False)
    log.info("Wrote reconciled records to %s", path)
    return path


def _clean_cell(value: object) -> object:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    return value


def _text_cell(value: object) -> str:
    cleaned = _clean_cell(value)
    if cleaned is None:
        return ""
    if isinstance(cleaned, float) and cleaned.is_integer():
        return str(int(cleaned))
    return str(cleaned).strip()
