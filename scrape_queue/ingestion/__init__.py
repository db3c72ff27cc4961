"""Reading provider payloads and workbooks, and writing result workbooks."""

from .exporters import build_results_workbook, records_to_dataframe
from .loaders import UnsupportedFileTypeError, read_workbook_sheets, records_from_payload

__all__ = [
    "UnsupportedFileTypeError",
    "build_results_workbook",
    "read_workbook_sheets",
    "records_from_payload",
    "records_to_dataframe",
]
