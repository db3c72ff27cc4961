"""Re-run email verification over an existing results workbook."""
from __future__ import annotations

import logging
from typing import Dict, Optional

import pandas as pd

from .ingestion.exporters import NO_EMAILS_SHEET, WITH_EMAILS_SHEET, build_workbook
from .ingestion.loaders import WorkbookSource, read_workbook_sheets
from .rate_limit import Pacer
from .verification import VerificationClient, VerificationError

LOGGER = logging.getLogger(__name__)


def reverify_workbook(
    source: WorkbookSource,
    client: VerificationClient,
    *,
    pacer: Optional[Pacer] = None,
) -> bytes:
    """Verify every address on the "With Emails" sheet and return a new workbook.

    Rows on the "No Emails" sheet are marked invalid without calling the
    provider. Other sheets are dropped.
    """

    sheets = read_workbook_sheets(source)
    with_emails = sheets.get(WITH_EMAILS_SHEET, pd.DataFrame())
    no_emails = sheets.get(NO_EMAILS_SHEET, pd.DataFrame())

    if not with_emails.empty:
        with_emails = _verify_frame(with_emails, client, pacer)
    if not no_emails.empty:
        no_emails = no_emails.copy()
        no_emails["is_email_valid"] = "FALSE"

    return build_workbook({WITH_EMAILS_SHEET: with_emails, NO_EMAILS_SHEET: no_emails})


def _verify_frame(frame: pd.DataFrame, client: VerificationClient, pacer: Optional[Pacer]) -> pd.DataFrame:
    frame = frame.copy()
    for column in ("is_email_valid", "email_result", "email_quality", "email_resultcode"):
        if column not in frame.columns:
            frame[column] = ""

    checked = 0
    for index, email in frame.get("email", pd.Series(dtype=str)).items():
        email = str(email or "").strip()
        update: Dict[str, str] = {"is_email_valid": "FALSE"}
        if email:
            try:
                result = client.verify_email(email)
            except VerificationError as exc:
                LOGGER.warning("Verification failed for %s: %s", email, exc)
            else:
                update = {
                    "is_email_valid": "TRUE" if result.is_valid else "FALSE",
                    "email_result": result.result,
                    "email_quality": result.quality,
                    "email_resultcode": "" if result.resultcode is None else str(result.resultcode),
                }
                LOGGER.debug("Verified %s -> %s (%s)", email, result.quality, update["is_email_valid"])
            finally:
                if pacer is not None:
                    pacer.wait()
            checked += 1
        for column, value in update.items():
            frame.at[index, column] = value

    LOGGER.info("Re-verified %s of %s rows", checked, len(frame))
    return frame
