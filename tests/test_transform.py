"""Unit tests for :mod:`scrape_queue.transform` and :mod:`scrape_queue.area_codes`."""
from __future__ import annotations

from scrape_queue.area_codes import AreaCodeMap, postal_key
from scrape_queue.ingestion.loaders import records_from_payload
from scrape_queue.models import VerificationResult
from scrape_queue.transform import RecordTransformer, TransformContext, normalise_phone
from scrape_queue.verification import EmailVerifier


class ValidFor:
    def __init__(self, *valid: str) -> None:
        self._valid = set(valid)

    def verify_email(self, email: str) -> VerificationResult:
        return VerificationResult(email=email, is_valid=email in self._valid)


def _context(**mapping: str) -> TransformContext:
    return TransformContext(area_codes=AreaCodeMap(mapping))


def test_postal_key_uses_first_token_upper_cased() -> None:
    assert postal_key("sw1a 1aa") == "SW1A"
    assert postal_key("  m1  ") == "M1"
    assert postal_key("") == ""
    assert postal_key(None) == ""


def test_area_code_lookup_hits_and_misses() -> None:
    area_codes = AreaCodeMap({"SW1A": "020"})

    assert area_codes.lookup("sw1a 1aa") == "020"
    assert area_codes.lookup("EC1A 1BB") == ""
    assert len(area_codes) == 1


def test_area_code_map_from_spreadsheet_rows() -> None:
    rows = [
        {"postcode": "b1 1aa", "telephone area code": "0121"},
        {"postcode": "", "telephone area code": "0161"},
        {"postcode": "LS1 4AP", "telephone area code": ""},
    ]

    area_codes = AreaCodeMap.from_rows(rows)

    assert area_codes.lookup("B1 2ZZ") == "0121"
    assert len(area_codes) == 1


def test_normalise_phone_adds_text_marker_once() -> None:
    assert normalise_phone("01234 567") == "'01234 567"
    assert normalise_phone("'01234") == "'01234"
    assert normalise_phone("") == ""


def test_duplicate_email_across_slots_yields_single_row(pacer) -> None:
    records = records_from_payload(
        [
            {
                "display_name": "Acme",
                "postal_code": "sw1a 1aa",
                "phone": "1234567",
                "email_1": "a@x.com",
                "email_1_first_name": "Ann",
                "email_2": "a@x.com",
                "email_2_first_name": "Duplicate",
            }
        ]
    )
    verifier = EmailVerifier(ValidFor("a@x.com"), pacer=pacer)
    for record in records:
        verifier.verify(record)

    with_email, without_email = RecordTransformer().transform(records, _context(SW1A="020"))

    assert without_email == []
    assert len(with_email) == 1
    row = with_email[0]
    assert row.email == "a@x.com"
    assert row.email_first_name == "Ann"
    assert row.is_email_valid is True
    assert row.enrich_area_code == "020"
    assert row.phone == "'1234567"
    flat = row.as_row()
    assert "email_1" not in flat
    assert "email_2_first_name" not in flat


def test_emails_are_unique_across_the_whole_batch() -> None:
    records = records_from_payload(
        [
            {"display_name": "One", "email": "shared@x.com", "email_1": "one@x.com"},
            {"display_name": "Two", "email_2": "shared@x.com", "email_3": "two@x.com"},
            {"display_name": "Three", "email": "shared@x.com"},
        ]
    )

    with_email, without_email = RecordTransformer().transform(records, _context())

    emails = [row.email for row in with_email]
    assert emails == ["shared@x.com", "one@x.com", "two@x.com"]
    assert len(set(emails)) == len(emails)
    assert [row.attributes["display_name"] for row in without_email] == ["Three"]
    assert all(row.email == "" for row in without_email)


def test_record_without_email_goes_to_no_email_partition_once() -> None:
    records = records_from_payload(
        [{"display_name": "Quiet Co", "postal_code": "zz9 9zz", "phone": "0800", "email_1_title": "CEO"}]
    )

    with_email, without_email = RecordTransformer().transform(records, _context(SW1A="020"))

    assert with_email == []
    assert len(without_email) == 1
    row = without_email[0]
    assert (row.email, row.email_title, row.email_first_name, row.email_last_name) == ("", "", "", "")
    assert row.is_email_valid is False
    assert row.enrich_area_code == ""
    assert row.phone == "'0800"
    assert "email_1_title" not in row.as_row()


def test_each_slot_keeps_its_own_validity_and_names() -> None:
    records = records_from_payload(
        [
            {
                "email": "info@x.com",
                "email_1": "boss@x.com",
                "email_1_title": "Owner",
                "email_1_last_name": "Smith",
            }
        ]
    )
    records[0].slots[0].is_valid = False
    records[0].slots[1].is_valid = True

    with_email, _ = RecordTransformer().transform(records, _context())

    assert [(row.email, row.is_email_valid) for row in with_email] == [("info@x.com", False), ("boss@x.com", True)]
    assert with_email[1].email_title == "Owner"
    assert with_email[1].email_last_name == "Smith"
