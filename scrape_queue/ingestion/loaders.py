"""Utilities for turning provider payloads and result workbooks into records."""
from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd

from ..models import SLOT_KEYS, EmailSlot, RawRecord

PathLike = Union[str, Path]
WorkbookSource = Union[PathLike, bytes]

_TYPED_FIELDS = {"display_name", "postal_code", "phone"}


class UnsupportedFileTypeError(ValueError):
    """Raised when an unsupported file format is passed to the loader."""


def records_from_payload(rows: Optional[Iterable[Mapping[str, Any]]]) -> List[RawRecord]:
    """Convert the ``data`` list of a provider response into :class:`RawRecord` objects."""

    return [_row_to_record(row) for row in rows or [] if isinstance(row, Mapping)]


def _row_to_record(row: Mapping[str, Any]) -> RawRecord:
    slot_fields = set()
    slots: List[EmailSlot] = []
    for key in SLOT_KEYS:
        slot = EmailSlot(
            key=key,
            email=_clean_text(row.get(key)),
            title=_clean_text(row.get(f"{key}_title")),
            first_name=_clean_text(row.get(f"{key}_first_name")),
            last_name=_clean_text(row.get(f"{key}_last_name")),
        )
        slot_fields.update(slot.field_names)
        slots.append(slot)

    attributes = {
        key: value
        for key, value in row.items()
        if key not in slot_fields and key not in _TYPED_FIELDS and not key.startswith("is_email_valid")
    }

    return RawRecord(
        display_name=_clean_text(row.get("display_name")),
        postal_code=_clean_text(row.get("postal_code")),
        phone=_clean_text(row.get("phone")),
        slots=slots,
        attributes=attributes,
    )


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value).strip()


def read_workbook_sheets(source: WorkbookSource) -> Dict[str, pd.DataFrame]:
    """Read every sheet of an ``.xlsx`` workbook as strings, keyed by sheet name."""

    if isinstance(source, (bytes, bytearray)):
        handle: Any = io.BytesIO(source)
    else:
        path = Path(source)
        if path.suffix.lower() not in {".xlsx", ".xlsm"}:
            raise UnsupportedFileTypeError(f"Unsupported file extension: {path.suffix}")
        handle = path

    sheets = pd.read_excel(handle, sheet_name=None, dtype=str, engine="openpyxl")
    return {name: frame.fillna("") for name, frame in sheets.items()}


def load_area_code_rows(source: WorkbookSource) -> List[Dict[str, Any]]:
    """Read the first sheet of the postcode/area-code workbook (or CSV) as row dicts."""

    if isinstance(source, (bytes, bytearray)):
        frame = pd.read_excel(io.BytesIO(source), sheet_name=0, dtype=str, engine="openpyxl")
    else:
        path = Path(source)
        suffix = path.suffix.lower()
        if suffix == ".csv":
            frame = pd.read_csv(path, dtype=str)
        elif suffix in {".xls", ".xlsx", ".xlsm"}:
            frame = pd.read_excel(path, sheet_name=0, dtype=str, engine="openpyxl")
        else:
            raise UnsupportedFileTypeError(f"Unsupported file extension: {path.suffix}")
    return frame.fillna("").to_dict(orient="records")


__all__ = [
    "UnsupportedFileTypeError",
    "load_area_code_rows",
    "read_workbook_sheets",
    "records_from_payload",
]
