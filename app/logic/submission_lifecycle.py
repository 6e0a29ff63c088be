"""
Submission lifecycle: one buyer's engagement thread against one proposal.

Status moves are driven by recorded interactions rather than free choice:

    sent → viewed → (questioned) → interested → nda_signed → detail_requested
         → under_negotiation → contact_exchanged → deal_closed

deal_closed, rejected and archived are terminal; any mutation attempted
after one of them raises TerminalStateError. Every status change appends a
``status_change`` interaction, and every mutation ends by recomputing the
derived statistics (response latency, engagement score).
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from app.core.config import settings
from app.core.errors import (
    AlreadyApproved,
    AlreadyRequested,
    AlreadySigned,
    AuthorizationDenied,
    InvalidStateTransition,
    NoRequestPending,
    TerminalStateError,
    ValidationFailed,
)
from app.logic import nda_gate
from app.logic.engagement import refresh_statistics
from app.logic.identity import Identity
from app.logic.permissions import can_close_submission, can_negotiate, is_submission_buyer, is_submission_seller
from app.logic.proposal_states import PUBLISHED, legal_actions as proposal_legal_actions
from app.models.submission import Submission, SubmissionInteraction

logger = logging.getLogger(__name__)

SENT = "sent"
VIEWED = "viewed"
INTERESTED = "interested"
QUESTIONED = "questioned"
NDA_SIGNED = "nda_signed"
DETAIL_REQUESTED = "detail_requested"
UNDER_NEGOTIATION = "under_negotiation"
CONTACT_EXCHANGED = "contact_exchanged"
DEAL_CLOSED = "deal_closed"
REJECTED = "rejected"
ARCHIVED = "archived"

SUBMISSION_STATUSES = (
    SENT, VIEWED, INTERESTED, QUESTIONED, NDA_SIGNED, DETAIL_REQUESTED,
    UNDER_NEGOTIATION, CONTACT_EXCHANGED, DEAL_CLOSED, REJECTED, ARCHIVED,
)
TERMINAL_STATUSES = frozenset({DEAL_CLOSED, REJECTED, ARCHIVED})
NEGOTIABLE_STATUSES = frozenset({NDA_SIGNED, DETAIL_REQUESTED})
ACTIVE_DEAL_STATUSES = frozenset({NDA_SIGNED, DETAIL_REQUESTED, UNDER_NEGOTIATION, CONTACT_EXCHANGED})
OPEN_PIPELINE_STATUSES = frozenset({INTERESTED, QUESTIONED, NDA_SIGNED, DETAIL_REQUESTED, UNDER_NEGOTIATION})

INTEREST_LEVELS = ("very_high", "high", "medium", "low")

EVENT_VIEW = "view"
EVENT_DOWNLOAD = "download"
EVENT_QUESTION = "question"
EVENT_INTEREST = "interest"
EVENT_CONTACT_REQUEST = "contact_request"
EVENT_STATUS_CHANGE = "status_change"

QUESTION_MAX = 2000
COMMENT_MAX = 2000
CONTACT_MESSAGE_MAX = 500


# ── Internal helpers ──────────────────────────────────────────────────────────

def _ensure_open(submission: Submission, action: str) -> None:
    if submission.status in TERMINAL_STATUSES:
        raise TerminalStateError(submission.status, action)


def _require_buyer(identity: Identity, submission: Submission, action: str) -> None:
    if not is_submission_buyer(identity, submission):
        raise AuthorizationDenied(f"Only the buyer of submission {submission.id} may {action.replace('_', ' ')}")


def _require_seller(identity: Identity, submission: Submission, action: str) -> None:
    if not is_submission_seller(identity, submission):
        raise AuthorizationDenied(f"Only the seller of submission {submission.id} may {action.replace('_', ' ')}")


def _append(
    submission: Submission,
    event_type: str,
    actor_id: int | None,
    details: dict[str, Any] | None,
    now: datetime,
) -> SubmissionInteraction:
    item = SubmissionInteraction(
        event_type=event_type,
        actor_id=actor_id,
        details=details or {},
        created_at=now,
    )
    submission.interactions.append(item)
    return item


def _change_status(
    submission: Submission,
    target: str,
    identity: Identity,
    now: datetime,
    metadata: dict[str, Any] | None = None,
) -> bool:
    previous = submission.status
    if previous == target:
        return False
    _append(
        submission,
        EVENT_STATUS_CHANGE,
        identity.id,
        {"from": previous, "to": target, "actor_id": identity.id, "metadata": metadata or {}},
        now,
    )
    submission.status = target
    logger.info(
        "submission_lifecycle: submission=%s %s -> %s actor=%s",
        submission.id, previous, target, identity.id,
    )
    return True


def _finish(submission: Submission, now: datetime) -> Submission:
    submission.updated_at = now
    refresh_statistics(submission)
    return submission


def _stamp_response(submission: Submission, now: datetime) -> None:
    if submission.responded_at is None:
        submission.responded_at = now


def _amount(name: str, value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationFailed([(name, "must be a number")])
    if amount < 0:
        raise ValidationFailed([(name, "must not be negative")])
    return amount


def legal_actions(submission: Submission) -> list[str]:
    status = submission.status
    if status in TERMINAL_STATUSES:
        return []
    actions = {"record_view", "record_download", "record_question", "record_interest", "close"}
    if submission.nda_signed_at is None:
        actions.add("sign_nda")
    elif submission.contact_requested_at is None:
        actions.add("request_contact_exchange")
    elif submission.contact_approved_at is None:
        actions.add("approve_contact_exchange")
    if status in NEGOTIABLE_STATUSES:
        actions.add("start_negotiation")
    return sorted(actions)


# ── Creation ──────────────────────────────────────────────────────────────────

def open_submission(proposal: Any, buyer_id: int, now: datetime) -> Submission:
    """Start a buyer's thread on a published proposal (first contact or seller send)."""
    if proposal.status != PUBLISHED:
        raise InvalidStateTransition(
            proposal.status,
            "open_submission",
            proposal_legal_actions(proposal.status),
            message="Buyers can only engage with published proposals",
        )
    if buyer_id == proposal.seller_id:
        raise AuthorizationDenied("Sellers cannot engage with their own proposal")

    submission = Submission(
        proposal_id=proposal.id,
        buyer_id=buyer_id,
        seller_id=proposal.seller_id,
        status=SENT,
        sent_at=now,
        view_count=0,
        download_count=0,
        created_at=now,
        updated_at=now,
    )
    return _finish(submission, now)


# ── Buyer interactions ────────────────────────────────────────────────────────

def record_view(identity: Identity, submission: Submission, now: datetime) -> Submission:
    _require_buyer(identity, submission, "record_view")
    _ensure_open(submission, "record_view")

    _append(submission, EVENT_VIEW, identity.id, {}, now)
    if submission.first_viewed_at is None:
        submission.first_viewed_at = now
    submission.last_viewed_at = now
    submission.view_count = (submission.view_count or 0) + 1
    if submission.status == SENT:
        _change_status(submission, VIEWED, identity, now)
    return _finish(submission, now)


def record_download(identity: Identity, submission: Submission, now: datetime, document: str | None = None) -> Submission:
    _require_buyer(identity, submission, "record_download")
    _ensure_open(submission, "record_download")

    _append(submission, EVENT_DOWNLOAD, identity.id, {"document": document} if document else {}, now)
    submission.download_count = (submission.download_count or 0) + 1
    return _finish(submission, now)


def record_question(identity: Identity, submission: Submission, question: str, now: datetime) -> Submission:
    _require_buyer(identity, submission, "record_question")
    _ensure_open(submission, "record_question")

    question = (question or "").strip()
    if not question:
        raise ValidationFailed([("question", "is required")])
    if len(question) > QUESTION_MAX:
        raise ValidationFailed([("question", f"must be at most {QUESTION_MAX} characters")])

    _append(submission, EVENT_QUESTION, identity.id, {"question": question}, now)
    _stamp_response(submission, now)
    if submission.status == VIEWED:
        _change_status(submission, QUESTIONED, identity, now)
    return _finish(submission, now)


def record_interest(
    identity: Identity,
    submission: Submission,
    now: datetime,
    *,
    interest_level: str,
    comment: str | None = None,
    capacity_min: Any = None,
    capacity_max: Any = None,
    capacity_currency: str | None = None,
) -> Submission:
    _require_buyer(identity, submission, "record_interest")
    _ensure_open(submission, "record_interest")

    errors: list[tuple[str, str]] = []
    if interest_level not in INTEREST_LEVELS:
        errors.append(("interest_level", f"must be one of {', '.join(INTEREST_LEVELS)}"))
    comment = (comment or "").strip()
    if len(comment) > COMMENT_MAX:
        errors.append(("comment", f"must be at most {COMMENT_MAX} characters"))
    if errors:
        raise ValidationFailed(errors)
    low = _amount("capacity_min", capacity_min)
    high = _amount("capacity_max", capacity_max)
    if low is not None and high is not None and low > high:
        raise ValidationFailed([("capacity_min", "must not exceed capacity_max")])

    submission.interest_level = interest_level
    submission.feedback_comment = comment or None
    submission.capacity_min = low
    submission.capacity_max = high
    submission.capacity_currency = (capacity_currency or "").strip().upper() or None

    _append(
        submission,
        EVENT_INTEREST,
        identity.id,
        {"interest_level": interest_level, "comment": comment or None},
        now,
    )
    _stamp_response(submission, now)
    _change_status(submission, INTERESTED, identity, now, {"interest_level": interest_level})
    return _finish(submission, now)


# ── NDA and contact exchange ──────────────────────────────────────────────────

def sign_nda(
    identity: Identity,
    submission: Submission,
    now: datetime,
    *,
    signature: str,
    ip_address: str | None = None,
    user_agent: str | None = None,
    agreed: bool = True,
) -> Submission:
    _require_buyer(identity, submission, "sign_nda")
    _ensure_open(submission, "sign_nda")
    if nda_gate.is_signed(submission):
        raise AlreadySigned()

    errors: list[tuple[str, str]] = []
    if not agreed:
        errors.append(("agreed", "the NDA terms must be accepted"))
    if not (signature or "").strip():
        errors.append(("signature", "is required"))
    if errors:
        raise ValidationFailed(errors)

    submission.nda_signed_at = now
    submission.nda_ip_address = ip_address
    submission.nda_user_agent = (user_agent or "")[:512] or None
    submission.nda_signature = signature.strip()[:255]
    submission.nda_version = settings.NDA_TEMPLATE_VERSION
    _change_status(
        submission,
        NDA_SIGNED,
        identity,
        now,
        {"ip_address": ip_address, "user_agent": user_agent, "nda_version": submission.nda_version},
    )
    return _finish(submission, now)


def request_contact_exchange(
    identity: Identity,
    submission: Submission,
    now: datetime,
    message: str | None = None,
) -> Submission:
    _require_buyer(identity, submission, "request_contact_exchange")
    _ensure_open(submission, "request_contact_exchange")
    nda_gate.require_signed(submission)
    if submission.contact_requested_at is not None:
        raise AlreadyRequested("Contact exchange was already requested")

    message = (message or "").strip()
    if len(message) > CONTACT_MESSAGE_MAX:
        raise ValidationFailed([("message", f"must be at most {CONTACT_MESSAGE_MAX} characters")])

    submission.contact_requested_at = now
    submission.contact_request_message = message or None
    _append(submission, EVENT_CONTACT_REQUEST, identity.id, {"message": message or None}, now)
    _change_status(submission, DETAIL_REQUESTED, identity, now)
    return _finish(submission, now)


def approve_contact_exchange(
    identity: Identity,
    submission: Submission,
    now: datetime,
    *,
    seller_contact: dict[str, Any],
    buyer_contact: dict[str, Any],
) -> Submission:
    _require_seller(identity, submission, "approve_contact_exchange")
    _ensure_open(submission, "approve_contact_exchange")
    if submission.contact_requested_at is None:
        raise NoRequestPending("The buyer has not requested a contact exchange")
    if submission.contact_approved_at is not None:
        raise AlreadyApproved()
    nda_gate.require_signed(submission)

    errors: list[tuple[str, str]] = []
    if "@" not in str(seller_contact.get("email") or ""):
        errors.append(("seller_contact.email", "a valid email is required"))
    if not str(seller_contact.get("company") or "").strip():
        errors.append(("seller_contact.company", "is required"))
    if errors:
        raise ValidationFailed(errors)

    submission.exchanged_contacts = {
        "buyer_contact": dict(buyer_contact),
        "seller_contact": dict(seller_contact),
    }
    submission.contact_approved_at = now
    submission.contact_approved_by = identity.id
    _change_status(submission, CONTACT_EXCHANGED, identity, now, {"approved_by": identity.id})
    return _finish(submission, now)


# ── Negotiation and closing ───────────────────────────────────────────────────

def start_negotiation(identity: Identity, submission: Submission, now: datetime, note: str | None = None) -> Submission:
    if not can_negotiate(identity, submission):
        raise AuthorizationDenied("Only the buyer or seller of this submission may negotiate")
    _ensure_open(submission, "start_negotiation")
    nda_gate.require_signed(submission)
    if submission.status not in NEGOTIABLE_STATUSES:
        raise InvalidStateTransition(submission.status, "start_negotiation", legal_actions(submission))
    _change_status(submission, UNDER_NEGOTIATION, identity, now, {"note": (note or "").strip() or None})
    return _finish(submission, now)


def close_submission(
    identity: Identity,
    submission: Submission,
    target: str,
    now: datetime,
    reason: str | None = None,
) -> Submission:
    if target not in TERMINAL_STATUSES:
        raise ValidationFailed([("status", f"must be one of {', '.join(sorted(TERMINAL_STATUSES))}")])
    if not can_close_submission(identity, submission):
        raise AuthorizationDenied("Only the parties to this submission may close it")
    if identity.is_admin and target != ARCHIVED:
        raise AuthorizationDenied("Administrators may only archive submissions")
    _ensure_open(submission, "close")

    _change_status(submission, target, identity, now, {"reason": (reason or "").strip() or None})
    submission.closed_at = now
    return _finish(submission, now)
