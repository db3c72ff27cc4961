"""Postal-code to telephone-area-code enrichment table."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from .ingestion.loaders import WorkbookSource, load_area_code_rows

LOGGER = logging.getLogger(__name__)

POSTCODE_COLUMN = "postcode"
AREA_CODE_COLUMN = "telephone area code"


def postal_key(postal_code: Any) -> str:
    """Return the lookup key for a postal code: its first token, upper-cased."""

    if postal_code is None:
        return ""
    tokens = str(postal_code).split()
    return tokens[0].upper() if tokens else ""


class AreaCodeMap:
    """Immutable lookup loaded once per run and passed to the transformer."""

    def __init__(self, mapping: Optional[Mapping[str, str]] = None) -> None:
        self._mapping: Dict[str, str] = {}
        for postcode, area_code in (mapping or {}).items():
            key = postal_key(postcode)
            code = str(area_code or "").strip()
            if key and code:
                self._mapping[key] = code

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Any]],
        *,
        postcode_column: str = POSTCODE_COLUMN,
        area_code_column: str = AREA_CODE_COLUMN,
    ) -> "AreaCodeMap":
        mapping: Dict[str, str] = {}
        for row in rows:
            key = postal_key(row.get(postcode_column))
            code = str(row.get(area_code_column) or "").strip()
            if key and code:
                mapping[key] = code
        return cls(mapping)

    @classmethod
    def load(cls, source: WorkbookSource) -> "AreaCodeMap":
        area_codes = cls.from_rows(load_area_code_rows(source))
        LOGGER.info("Area code map loaded with %s entries", len(area_codes))
        return area_codes

    def lookup(self, postal_code: Any) -> str:
        return self._mapping.get(postal_key(postal_code), "")

    def __len__(self) -> int:
        return len(self._mapping)
