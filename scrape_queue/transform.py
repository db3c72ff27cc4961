"""Flattening verified provider records into one deduplicated row per email."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Set, Tuple

from .area_codes import AreaCodeMap
from .models import EmailSlot, EnrichedRecord, RawRecord

TEXT_MARKER = "'"


@dataclass
class TransformContext:
    """Per-run inputs for the transformer."""

    area_codes: AreaCodeMap = field(default_factory=AreaCodeMap)


def normalise_phone(phone: str) -> str:
    """Prefix the phone with a text marker so spreadsheets keep leading zeros."""

    text = (phone or "").strip()
    if not text or text.startswith(TEXT_MARKER):
        return text
    return f"{TEXT_MARKER}{text}"


class RecordTransformer:
    """Splits records into a with-email and a without-email partition.

    The seen-email set spans the whole batch passed to :meth:`transform`, so an
    address repeated across slots or across records is emitted only once.
    """

    def transform(
        self, records: Iterable[RawRecord], context: TransformContext
    ) -> Tuple[List[EnrichedRecord], List[EnrichedRecord]]:
        seen: Set[str] = set()
        with_email: List[EnrichedRecord] = []
        without_email: List[EnrichedRecord] = []

        for record in records:
            base = record.base_row()
            area_code = context.area_codes.lookup(record.postal_code)
            phone = normalise_phone(record.phone)

            emitted = False
            for slot in record.slots:
                if not slot.email or slot.email in seen:
                    continue
                seen.add(slot.email)
                emitted = True
                with_email.append(self._from_slot(base, slot, area_code, phone))

            if not emitted:
                without_email.append(EnrichedRecord(attributes=base, enrich_area_code=area_code, phone=phone))

        return with_email, without_email

    @staticmethod
    def _from_slot(base: dict, slot: EmailSlot, area_code: str, phone: str) -> EnrichedRecord:
        return EnrichedRecord(
            attributes=dict(base),
            email=slot.email,
            email_title=slot.title,
            email_first_name=slot.first_name,
            email_last_name=slot.last_name,
            is_email_valid=bool(slot.is_valid),
            enrich_area_code=area_code,
            phone=phone,
        )
