"""
Buyer/seller engagement operations.

Buyer-side actions address the proposal; the buyer's submission is opened
lazily on first contact. Seller-side actions address the submission id.
"""
from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from app.core.errors import AuthorizationDenied
from app.logic import comments, submission_lifecycle as lifecycle
from app.logic.identity import Identity
from app.logic.permissions import can_view, can_view_submission
from app.models.comment import SubmissionComment
from app.models.submission import Submission
from app.models.user import User, contact_card
from app.repositories import comments_repo, proposals_repo, submissions_repo
from app.services.audit import record_audit
from app.services.transactions import run_transition
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

RESOURCE = "Submission"


def _audit(db: Session, identity: Identity, submission: Submission, action: str, details: dict | None = None) -> None:
    record_audit(
        db,
        actor_id=identity.id,
        action=action,
        resource_type=RESOURCE,
        resource_id=submission.id,
        details={"proposal_id": submission.proposal_id, "status": submission.status, **(details or {})},
    )


def _engage(
    db: Session,
    identity: Identity,
    proposal_id: int,
    action: str,
    mutate: Callable[[Submission], Any],
    counter: str | None = None,
) -> Submission:
    """Run a buyer action against the buyer's submission on ``proposal_id``."""
    if not identity.is_buyer:
        raise AuthorizationDenied("Only buyers can interact with proposals")

    def operation() -> Submission:
        now = utcnow()
        proposal = proposals_repo.get_proposal(db, proposal_id)
        submission = submissions_repo.find_submission(db, proposal.id, identity.id)
        if not can_view(identity, proposal, targeted=submission is not None):
            raise AuthorizationDenied(f"Proposal {proposal_id} is not visible to this user")
        if submission is None:
            submission = lifecycle.open_submission(proposal, identity.id, now)
            db.add(submission)
            logger.info("submission_workflow: opened submission proposal=%s buyer=%s", proposal.id, identity.id)
        mutate(submission)
        submissions_repo.save_submission(db, submission)
        if counter:
            proposals_repo.increment_statistic(db, proposal.id, counter, now)
        return submission

    submission = run_transition(db, operation, label=f"proposal:{proposal_id}:buyer={identity.id}:{action}")
    _audit(db, identity, submission, action)
    return submission


def _act(
    db: Session,
    identity: Identity,
    submission_id: int,
    action: str,
    mutate: Callable[[Submission], Any],
    details: dict | None = None,
) -> Submission:
    def operation() -> Submission:
        submission = submissions_repo.get_submission(db, submission_id)
        mutate(submission)
        submissions_repo.save_submission(db, submission)
        return submission

    submission = run_transition(db, operation, label=f"submission:{submission_id}:{action}")
    _audit(db, identity, submission, action, details)
    return submission


# ── Reads ─────────────────────────────────────────────────────────────────────

def get_for_identity(db: Session, identity: Identity, submission_id: int) -> Submission:
    submission = submissions_repo.get_submission(db, submission_id)
    if not can_view_submission(identity, submission):
        raise AuthorizationDenied(f"Submission {submission_id} is not visible to this user")
    return submission


def list_for_buyer(db: Session, identity: Identity, *, status: str | None, offset: int, limit: int):
    if not identity.is_buyer:
        raise AuthorizationDenied("Only buyers have a buyer inbox")
    return submissions_repo.list_for_buyer(db, identity.id, status=status, offset=offset, limit=limit)


def list_for_seller(db: Session, identity: Identity, *, status: str | None, offset: int, limit: int):
    if not identity.is_seller:
        raise AuthorizationDenied("Only sellers have a seller pipeline")
    return submissions_repo.list_for_seller(db, identity.id, status=status, offset=offset, limit=limit)


# ── Buyer interactions (addressed by proposal) ────────────────────────────────

def record_view(db: Session, identity: Identity, proposal_id: int) -> Submission:
    return _engage(
        db, identity, proposal_id, "view",
        lambda s: lifecycle.record_view(identity, s, utcnow()),
        counter="view_count",
    )


def record_download(db: Session, identity: Identity, proposal_id: int, document: str | None = None) -> Submission:
    return _engage(
        db, identity, proposal_id, "download",
        lambda s: lifecycle.record_download(identity, s, utcnow(), document),
        counter="download_count",
    )


def record_question(db: Session, identity: Identity, proposal_id: int, question: str) -> Submission:
    """Open a question comment the seller can answer; counts as a question on the submission."""
    def mutate(submission: Submission) -> None:
        db.add(comments.add_comment(
            identity, submission, utcnow(),
            content=question, comment_type="question", requires_response=True,
        ))

    return _engage(db, identity, proposal_id, "question", mutate)


def record_interest(db: Session, identity: Identity, proposal_id: int, feedback: dict[str, Any]) -> Submission:
    return _engage(
        db, identity, proposal_id, "interest",
        lambda s: lifecycle.record_interest(identity, s, utcnow(), **feedback),
        counter="interest_count",
    )


# ── NDA, contact exchange, negotiation, closing (addressed by submission) ─────

def sign_nda(
    db: Session,
    identity: Identity,
    submission_id: int,
    *,
    signature: str,
    agreed: bool,
    ip_address: str | None,
    user_agent: str | None,
) -> Submission:
    return _act(
        db, identity, submission_id, "sign_nda",
        lambda s: lifecycle.sign_nda(
            identity, s, utcnow(),
            signature=signature, ip_address=ip_address, user_agent=user_agent, agreed=agreed,
        ),
        {"ip_address": ip_address},
    )


def request_contact(db: Session, identity: Identity, submission_id: int, message: str | None) -> Submission:
    return _act(
        db, identity, submission_id, "request_contact",
        lambda s: lifecycle.request_contact_exchange(identity, s, utcnow(), message),
    )


def approve_contact(
    db: Session,
    identity: Identity,
    submission_id: int,
    seller_contact: dict[str, Any] | None = None,
) -> Submission:
    """Seller releases contacts; fields the seller leaves blank fall back to their profile."""
    def mutate(submission: Submission) -> None:
        seller_card = contact_card(db.get(User, submission.seller_id))
        overrides = {key: value for key, value in (seller_contact or {}).items() if value not in (None, "")}
        buyer_card = contact_card(db.get(User, submission.buyer_id))
        lifecycle.approve_contact_exchange(
            identity, submission, utcnow(),
            seller_contact={**seller_card, **overrides},
            buyer_contact=buyer_card,
        )

    return _act(db, identity, submission_id, "approve_contact", mutate)


def start_negotiation(db: Session, identity: Identity, submission_id: int, note: str | None) -> Submission:
    return _act(
        db, identity, submission_id, "negotiate",
        lambda s: lifecycle.start_negotiation(identity, s, utcnow(), note),
    )


def close(db: Session, identity: Identity, submission_id: int, target: str, reason: str | None) -> Submission:
    return _act(
        db, identity, submission_id, "close",
        lambda s: lifecycle.close_submission(identity, s, target, utcnow(), reason),
        {"reason": (reason or "").strip() or None},
    )


# ── Comments ──────────────────────────────────────────────────────────────────

def add_comment(
    db: Session,
    identity: Identity,
    submission_id: int,
    *,
    content: str,
    comment_type: str,
    requires_response: bool = False,
    is_private: bool = False,
) -> SubmissionComment:
    def operation() -> SubmissionComment:
        submission = submissions_repo.get_submission(db, submission_id)
        comment = comments.add_comment(
            identity, submission, utcnow(),
            content=content,
            comment_type=comment_type,
            requires_response=requires_response,
            is_private=is_private,
        )
        submissions_repo.save_submission(db, submission)
        return comments_repo.save_comment(db, comment)

    comment = run_transition(db, operation, label=f"submission:{submission_id}:comment")
    record_audit(
        db,
        actor_id=identity.id,
        action="comment",
        resource_type=RESOURCE,
        resource_id=submission_id,
        details={"comment_id": comment.id, "type": comment_type, "requires_response": bool(requires_response)},
    )
    return comment


def reply_to_comment(db: Session, identity: Identity, comment_id: int, content: str) -> SubmissionComment:
    def operation() -> SubmissionComment:
        parent = comments_repo.get_comment(db, comment_id)
        submission = submissions_repo.get_submission(db, parent.submission_id)
        return comments_repo.save_comment(db, comments.reply(identity, parent, submission, utcnow(), content))

    answer = run_transition(db, operation, label=f"comment:{comment_id}:reply")
    record_audit(
        db,
        actor_id=identity.id,
        action="reply",
        resource_type=RESOURCE,
        resource_id=answer.submission_id,
        details={"comment_id": answer.id, "parent_id": comment_id},
    )
    return answer


def list_comments(
    db: Session,
    identity: Identity,
    submission_id: int,
    *,
    offset: int,
    limit: int,
) -> tuple[list[SubmissionComment], int, int]:
    """Visible comments, newest first, with read receipts added for the caller.

    Returns (rows, total, unanswered).
    """
    get_for_identity(db, identity, submission_id)
    viewer_id = None if identity.is_admin else identity.id

    def operation() -> tuple[list[SubmissionComment], int, int]:
        rows, total = comments_repo.list_for_submission(
            db, submission_id, viewer_id=viewer_id, offset=offset, limit=limit,
        )
        now = utcnow()
        for comment in rows:
            comments.mark_read(comment, identity, now)
        db.flush()
        return rows, total, comments_repo.count_unanswered(db, submission_id, viewer_id=viewer_id)

    return run_transition(db, operation, label=f"submission:{submission_id}:comments")
