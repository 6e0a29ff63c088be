"""Contact details are never exchanged or exposed before the buyer signs the NDA."""
from __future__ import annotations

from typing import Any

from app.core.config import settings
from app.core.errors import NdaRequired


def is_signed(submission: Any) -> bool:
    return submission.nda_signed_at is not None


def require_signed(submission: Any) -> None:
    if not is_signed(submission):
        raise NdaRequired("Sign the NDA for this proposal before requesting contact details")


def visible_contacts(submission: Any) -> dict | None:
    """Exchanged contact payload for read paths, or None while still gated."""
    if not is_signed(submission) or submission.contact_approved_at is None:
        return None
    return submission.exchanged_contacts or None


def nda_template() -> dict[str, str]:
    return {
        "title": "Non-Disclosure Agreement",
        "version": settings.NDA_TEMPLATE_VERSION,
        "content": NDA_TEXT.strip(),
    }


NDA_TEXT = """
This Non-Disclosure Agreement is entered into between the Disclosing Party
(the seller publishing the proposal) and the Receiving Party (the buyer
signing below) through the proposal exchange platform.

1. Confidential Information. All business plans, financial data, technical
   material, customer and market information, and operating processes
   disclosed through the platform, and any information marked confidential.

2. Obligations. The Receiving Party shall keep Confidential Information
   strictly confidential, shall not disclose it to any third party, shall use
   it only to evaluate the proposed transaction, and shall take reasonable
   measures to prevent its disclosure.

3. Exclusions. Information that is publicly available, already known to the
   Receiving Party before signing, lawfully received from a third party, or
   required to be disclosed by law.

4. Term. This agreement takes effect on signature and remains in force for
   five (5) years.

5. Remedies. A breach entitles the Disclosing Party to require the breach to
   stop and to recover resulting losses.
"""
