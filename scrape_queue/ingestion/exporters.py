"""Export utilities for transformed lead records."""
from __future__ import annotations

import io
import json
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence, Union

import pandas as pd

from ..models import EnrichedRecord

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

WITH_EMAILS_SHEET = "With Emails"
NO_EMAILS_SHEET = "No Emails"
NO_DATA_SHEET = "No Data"

COLUMN_ORDER: List[str] = [
    "display_name", "types", "type", "country_code", "state", "city", "county", "street", "postal_code",
    "enrich area codes", "address", "latitude", "longitude", "phone", "phone_type",
    "linkedin", "facebook", "twitter", "instagram", "tiktok", "whatsapp", "youtube", "site",
    "site_generator", "photo", "photos_count", "rating", "rating_history", "reviews",
    "reviews_link", "range", "business_status", "business_status_history", "booking_appointment_link",
    "menu_link", "verified", "owner_title", "located_in", "os_id", "google_id", "place_id",
    "cid", "gmb_link", "located_os_id", "working_hours", "area_service", "about",
    "corp_name", "corp_employees", "corp_revenue", "corp_founded_year", "corp_is_public",
    "added_at", "updated_at", "email", "email_title", "email_first_name", "email_last_name", "is_email_valid",
]

BOOLEAN_COLUMNS = frozenset({"is_email_valid", "verified", "area_service", "corp_is_public"})
TEXT_COLUMNS = frozenset({"phone"})

RowLike = Mapping[str, Any]


def project_row(row: RowLike, columns: Sequence[str] = COLUMN_ORDER) -> Dict[str, Any]:
    """Project a row onto ``columns``, rendering values the way the sheet expects."""

    projected: Dict[str, Any] = {}
    for column in columns:
        value = row.get(column)
        if value is None or (isinstance(value, float) and pd.isna(value)):
            value = ""
        if column in BOOLEAN_COLUMNS and isinstance(value, bool):
            value = "TRUE" if value else "FALSE"
        if isinstance(value, (dict, list, tuple)):
            value = json.dumps(value, ensure_ascii=False)
        if column in TEXT_COLUMNS and value != "":
            value = str(value)
        projected[column] = value
    return projected


def records_to_dataframe(
    records: Sequence[Union[EnrichedRecord, RowLike]], columns: Sequence[str] = COLUMN_ORDER
) -> pd.DataFrame:
    """Convert enriched records (or plain rows) into a :class:`pandas.DataFrame`."""

    rows = [project_row(_as_row(record), columns) for record in records]
    return pd.DataFrame(rows, columns=list(columns))


def _as_row(record: Union[EnrichedRecord, RowLike]) -> RowLike:
    as_row = getattr(record, "as_row", None)
    if callable(as_row):
        return as_row()
    return record


def build_workbook(
    sheets: Mapping[str, pd.DataFrame],
    *,
    text_columns: Sequence[str] = tuple(TEXT_COLUMNS),
    exporter_kwargs: Optional[MutableMapping[str, object]] = None,
) -> bytes:
    """Write non-empty frames as named sheets and return the ``.xlsx`` bytes.

    A placeholder sheet is written when every frame is empty so the workbook
    is always valid.
    """

    exporter_kwargs = dict(exporter_kwargs or {})
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        written = 0
        for sheet_name, frame in sheets.items():
            if frame.empty:
                continue
            frame.to_excel(writer, index=False, sheet_name=sheet_name, **exporter_kwargs)
            _force_text_columns(writer.sheets[sheet_name], list(frame.columns), text_columns)
            written += 1
        if not written:
            pd.DataFrame([["No data available"]]).to_excel(
                writer, index=False, header=False, sheet_name=NO_DATA_SHEET
            )
    return buffer.getvalue()


def _force_text_columns(worksheet, columns: List[str], text_columns: Sequence[str]) -> None:
    for name in text_columns:
        if name not in columns:
            continue
        column_index = columns.index(name) + 1
        for (cell,) in worksheet.iter_rows(min_row=2, min_col=column_index, max_col=column_index):
            if cell.value is None:
                continue
            cell.value = str(cell.value)
            cell.data_type = "s"
            cell.number_format = "@"


def build_results_workbook(
    with_email: Sequence[Union[EnrichedRecord, RowLike]],
    without_email: Sequence[Union[EnrichedRecord, RowLike]],
    columns: Sequence[str] = COLUMN_ORDER,
) -> bytes:
    """Build the two-sheet results workbook from the transformer partitions."""

    return build_workbook(
        {
            WITH_EMAILS_SHEET: records_to_dataframe(with_email, columns),
            NO_EMAILS_SHEET: records_to_dataframe(without_email, columns),
        }
    )


__all__ = [
    "BOOLEAN_COLUMNS",
    "COLUMN_ORDER",
    "NO_DATA_SHEET",
    "NO_EMAILS_SHEET",
    "WITH_EMAILS_SHEET",
    "XLSX_CONTENT_TYPE",
    "build_results_workbook",
    "build_workbook",
    "project_row",
    "records_to_dataframe",
]
