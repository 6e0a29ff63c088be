"""
Proposal lifecycle.

    draft ──submit──▶ pending_review ──approve──▶ approved ──publish──▶ published ──archive──▶ archived
      ▲                   │
      └──update── rejected ◀──reject──┘          (rejected may also resubmit directly)

Every function takes the caller identity explicitly, checks role/ownership
first (AuthorizationDenied), then the status table (InvalidStateTransition),
then any content guard (ValidationFailed). Timestamps are stamped once at
the transition that owns them and never rewound.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable

from app.core.errors import AlreadyRequested, AuthorizationDenied, InvalidStateTransition, NoRequestPending, ValidationFailed
from app.logic.identity import Identity
from app.logic.proposal_states import (
    ACTION_APPROVE,
    ACTION_APPROVE_DELETE,
    ACTION_ARCHIVE,
    ACTION_DELETE,
    ACTION_PUBLISH,
    ACTION_REJECT,
    ACTION_REQUEST_DELETE,
    ACTION_SUBMIT,
    ACTION_UPDATE,
    DRAFT,
    PUBLISHED,
    REJECTED,
    Transition,
    actor_allowed,
    legal_actions,
    require_transition,
)
from app.logic.validation import EDITABLE_FIELDS, ValidationResult, validate_proposal_fields
from app.models.proposal import Proposal
from app.utils.clock import isoformat

logger = logging.getLogger(__name__)

DELETE_REASON_MAX = 500
REVIEW_COMMENT_MAX = 1000


# ── Internal helpers ──────────────────────────────────────────────────────────

def _authorize(identity: Identity, proposal: Proposal, action: str) -> Transition:
    if not actor_allowed(identity, proposal, action):
        raise AuthorizationDenied(
            f"{identity.role} {identity.id} may not {action.replace('_', ' ')} proposal {proposal.id}"
        )
    return require_transition(proposal, action)


def _stamp_once(proposal: Proposal, attr: str, now: datetime) -> None:
    if getattr(proposal, attr) is None:
        setattr(proposal, attr, now)


def _move(proposal: Proposal, target: str, identity: Identity, action: str, now: datetime) -> None:
    previous = proposal.status
    proposal.status = target
    proposal.updated_at = now
    logger.info(
        "proposal_lifecycle: proposal=%s action=%s %s -> %s actor=%s",
        proposal.id, action, previous, target, identity.id,
    )


def _normalize_ids(values: Iterable[Any] | None, *, exclude: int | None = None) -> list[int]:
    out: set[int] = set()
    for value in values or []:
        try:
            ident = int(value)
        except (TypeError, ValueError):
            raise ValidationFailed([("allowed_buyer_ids", f"invalid buyer id: {value!r}")])
        if ident != exclude:
            out.add(ident)
    return sorted(out)


def _coerce_amount(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        raise ValidationFailed([("investment_amount", "must be a number")])


def _apply_fields(proposal: Proposal, changes: dict[str, Any]) -> None:
    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationFailed([(name, "is not an editable field") for name in unknown])

    for name, value in changes.items():
        if name == "allowed_buyer_ids":
            value = _normalize_ids(value, exclude=proposal.seller_id)
        elif name == "investment_amount":
            value = _coerce_amount(value)
        elif name == "tags":
            value = [str(tag).strip() for tag in (value or []) if str(tag).strip()]
        elif name == "is_public":
            value = bool(value)
        elif name == "title" and value is None:
            value = ""
        elif isinstance(value, str):
            value = value.strip()
        setattr(proposal, name, value)


def _write_review(proposal: Proposal, identity: Identity, outcome: str, comment: str | None, now: datetime) -> None:
    comment = (comment or "").strip()
    if len(comment) > REVIEW_COMMENT_MAX:
        raise ValidationFailed([("comments", f"must be at most {REVIEW_COMMENT_MAX} characters")])
    proposal.reviewer_id = identity.id
    proposal.reviewed_at = now
    proposal.review_comment = comment
    proposal.review_action = outcome


# ── Construction and edits ────────────────────────────────────────────────────

def create_proposal(identity: Identity, fields: dict[str, Any], now: datetime) -> Proposal:
    if not identity.is_seller:
        raise AuthorizationDenied("Only sellers can create proposals")

    proposal = Proposal(
        seller_id=identity.id,
        status=DRAFT,
        title="",
        tags=[],
        is_public=False,
        allowed_buyer_ids=[],
        view_count=0,
        interest_count=0,
        download_count=0,
        created_at=now,
        updated_at=now,
    )
    _apply_fields(proposal, fields)
    return proposal


def update_proposal(identity: Identity, proposal: Proposal, changes: dict[str, Any], now: datetime) -> Proposal:
    """Edit a draft or rejected proposal. Editing a rejected proposal reopens it as a draft."""
    _authorize(identity, proposal, ACTION_UPDATE)
    _apply_fields(proposal, changes)
    if proposal.status == REJECTED:
        _move(proposal, DRAFT, identity, ACTION_UPDATE, now)
    proposal.updated_at = now
    return proposal


# ── Review path ───────────────────────────────────────────────────────────────

def submit_for_review(
    identity: Identity,
    proposal: Proposal,
    now: datetime,
    validate: Callable[[Any], ValidationResult] = validate_proposal_fields,
) -> Proposal:
    transition = _authorize(identity, proposal, ACTION_SUBMIT)
    result = validate(proposal)
    if not result.ok:
        raise ValidationFailed(result.errors, message="Proposal is incomplete")
    _move(proposal, transition.target, identity, ACTION_SUBMIT, now)
    _stamp_once(proposal, "submitted_at", now)
    return proposal


def approve(identity: Identity, proposal: Proposal, comments: str | None, now: datetime) -> Proposal:
    transition = _authorize(identity, proposal, ACTION_APPROVE)
    _write_review(proposal, identity, "approved", comments, now)
    _move(proposal, transition.target, identity, ACTION_APPROVE, now)
    _stamp_once(proposal, "approved_at", now)
    return proposal


def reject(identity: Identity, proposal: Proposal, reason: str | None, now: datetime) -> Proposal:
    transition = _authorize(identity, proposal, ACTION_REJECT)
    if not (reason or "").strip():
        raise ValidationFailed([("reason", "is required when rejecting")])
    _write_review(proposal, identity, "rejected", reason, now)
    _move(proposal, transition.target, identity, ACTION_REJECT, now)
    _stamp_once(proposal, "rejected_at", now)
    return proposal


# ── Publication ───────────────────────────────────────────────────────────────

def recompute_visibility(proposal: Proposal, now: datetime) -> dict[str, Any]:
    allowed = _normalize_ids(proposal.allowed_buyer_ids, exclude=proposal.seller_id)
    proposal.allowed_buyer_ids = allowed
    snapshot = {
        "is_public": bool(proposal.is_public),
        "allowed_buyer_ids": allowed,
        "computed_at": isoformat(now),
    }
    proposal.visibility_snapshot = snapshot
    return snapshot


def publish(identity: Identity, proposal: Proposal, now: datetime) -> Proposal:
    transition = _authorize(identity, proposal, ACTION_PUBLISH)
    _move(proposal, transition.target, identity, ACTION_PUBLISH, now)
    _stamp_once(proposal, "published_at", now)
    recompute_visibility(proposal, now)
    return proposal


def grant_buyers(proposal: Proposal, buyer_ids: Iterable[int], now: datetime) -> list[int]:
    """Add buyers to the allow-list of a published proposal; returns the newly added ids."""
    current = set(proposal.allowed_buyer_ids or [])
    requested = _normalize_ids(buyer_ids, exclude=proposal.seller_id)
    added = [buyer_id for buyer_id in requested if buyer_id not in current]
    if added:
        proposal.allowed_buyer_ids = sorted(current | set(added))
        recompute_visibility(proposal, now)
        proposal.updated_at = now
    return added


def archive(identity: Identity, proposal: Proposal, now: datetime) -> Proposal:
    transition = _authorize(identity, proposal, ACTION_ARCHIVE)
    _move(proposal, transition.target, identity, ACTION_ARCHIVE, now)
    _stamp_once(proposal, "archived_at", now)
    return proposal


# ── Deletion ──────────────────────────────────────────────────────────────────

def ensure_deletable(identity: Identity, proposal: Proposal) -> None:
    """Direct delete: owner only, draft only, never published."""
    _authorize(identity, proposal, ACTION_DELETE)
    if proposal.published_at is not None:
        raise AuthorizationDenied("Published proposals can only be removed through a delete request")


def request_delete(identity: Identity, proposal: Proposal, reason: str | None, now: datetime) -> Proposal:
    _authorize(identity, proposal, ACTION_REQUEST_DELETE)
    if proposal.delete_requested_at is not None:
        raise AlreadyRequested("A delete request is already pending for this proposal")
    reason = (reason or "").strip()
    if len(reason) > DELETE_REASON_MAX:
        raise ValidationFailed([("reason", f"must be at most {DELETE_REASON_MAX} characters")])
    proposal.delete_requested_at = now
    proposal.delete_reason = reason
    proposal.updated_at = now
    logger.info("proposal_lifecycle: proposal=%s delete requested by=%s", proposal.id, identity.id)
    return proposal


def approve_delete(identity: Identity, proposal: Proposal, now: datetime, active_deal_count: int = 0) -> Proposal:
    transition = _authorize(identity, proposal, ACTION_APPROVE_DELETE)
    if proposal.delete_requested_at is None:
        raise NoRequestPending("No delete request has been filed for this proposal")
    if proposal.status == PUBLISHED and active_deal_count > 0:
        raise InvalidStateTransition(
            proposal.status,
            ACTION_APPROVE_DELETE,
            legal_actions(proposal.status),
            message=f"Proposal has {active_deal_count} active deal(s) and cannot be deleted",
        )
    proposal.delete_approved_by = identity.id
    _stamp_once(proposal, "deleted_at", now)
    _move(proposal, transition.target, identity, ACTION_APPROVE_DELETE, now)
    return proposal
