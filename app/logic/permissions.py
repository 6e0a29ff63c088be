"""
Permission predicates.

Every function here is pure and answers with a bool. Callers translate
``False`` into AuthorizationDenied; nothing in this module raises.
"""
from __future__ import annotations

from typing import Any

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
    DELETED,
    PUBLISHED,
    actor_allowed,
    is_owner,
    status_allows,
)


def can_perform(identity: Identity, proposal: Any, action: str) -> bool:
    return actor_allowed(identity, proposal, action) and status_allows(proposal.status, action)


# ── Proposals ─────────────────────────────────────────────────────────────────

def can_view(identity: Identity, proposal: Any, targeted: bool = False) -> bool:
    """Admins and the owner always; buyers only once published and visible to them.

    ``targeted`` is True when the buyer already has a Submission against the
    proposal; the caller resolves that at the persistence boundary.
    """
    if proposal.status == DELETED:
        return identity.is_admin
    if identity.is_admin or is_owner(identity, proposal):
        return True
    if not identity.is_buyer or proposal.status != PUBLISHED:
        return False
    if proposal.is_public or targeted:
        return True
    return identity.id in (proposal.allowed_buyer_ids or [])


def can_edit(proposal: Any, identity: Identity) -> bool:
    """Proposal-first, unlike the other predicates here."""
    return can_perform(identity, proposal, ACTION_UPDATE)


def can_submit_for_review(identity: Identity, proposal: Any) -> bool:
    return can_perform(identity, proposal, ACTION_SUBMIT)


def can_approve(identity: Identity, proposal: Any) -> bool:
    return can_perform(identity, proposal, ACTION_APPROVE)


def can_reject(identity: Identity, proposal: Any) -> bool:
    return can_perform(identity, proposal, ACTION_REJECT)


def can_publish(identity: Identity, proposal: Any) -> bool:
    return can_perform(identity, proposal, ACTION_PUBLISH)


def can_archive(identity: Identity, proposal: Any) -> bool:
    return can_perform(identity, proposal, ACTION_ARCHIVE)


def can_delete(identity: Identity, proposal: Any) -> bool:
    # Once published, only the request/approve path may remove a proposal.
    return can_perform(identity, proposal, ACTION_DELETE) and proposal.published_at is None


def can_request_delete(identity: Identity, proposal: Any) -> bool:
    return can_perform(identity, proposal, ACTION_REQUEST_DELETE)


def can_approve_delete(identity: Identity, proposal: Any) -> bool:
    return can_perform(identity, proposal, ACTION_APPROVE_DELETE) and proposal.delete_requested_at is not None


def can_send_to_buyers(identity: Identity, proposal: Any) -> bool:
    return is_owner(identity, proposal) and proposal.status == PUBLISHED


# ── Submissions ───────────────────────────────────────────────────────────────

def is_submission_buyer(identity: Identity, submission: Any) -> bool:
    return identity.is_buyer and identity.id == submission.buyer_id


def is_submission_seller(identity: Identity, submission: Any) -> bool:
    return identity.is_seller and identity.id == submission.seller_id


def can_view_submission(identity: Identity, submission: Any) -> bool:
    return (
        identity.is_admin
        or is_submission_buyer(identity, submission)
        or is_submission_seller(identity, submission)
    )


def can_close_submission(identity: Identity, submission: Any) -> bool:
    return can_view_submission(identity, submission)


def can_negotiate(identity: Identity, submission: Any) -> bool:
    return is_submission_buyer(identity, submission) or is_submission_seller(identity, submission)


# ── Comments ──────────────────────────────────────────────────────────────────

def can_comment(identity: Identity, submission: Any) -> bool:
    return is_submission_buyer(identity, submission) or is_submission_seller(identity, submission)


def can_see_comment(identity: Identity, comment: Any) -> bool:
    """Private comments are shown to their author and to admins only."""
    return identity.is_admin or not comment.is_private or comment.author_id == identity.id
