"""
Proposal operations as transactions: load, authorize, transition, commit,
then audit. Every public function takes the caller ``Identity`` explicitly.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy.orm import Session

from app.core.errors import AuthorizationDenied, ValidationFailed
from app.logic import proposal_lifecycle
from app.logic.identity import Identity
from app.logic.permissions import can_send_to_buyers, can_view
from app.logic.proposal_states import PENDING_REVIEW, PUBLISHED, is_owner
from app.logic.submission_lifecycle import ACTIVE_DEAL_STATUSES, open_submission
from app.models.proposal import Proposal
from app.models.submission import Submission
from app.models.user import User
from app.repositories import proposals_repo, submissions_repo, users_repo
from app.repositories.proposals_repo import ProposalFilters
from app.services.audit import record_audit
from app.services.transactions import run_transition
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

RESOURCE = "Proposal"


def _transition(
    db: Session,
    identity: Identity,
    proposal_id: int,
    action: str,
    mutate: Callable[[Proposal], Any],
    details: dict[str, Any] | None = None,
) -> Proposal:
    def operation() -> Proposal:
        proposal = proposals_repo.get_proposal(db, proposal_id)
        mutate(proposal)
        proposals_repo.save_proposal(db, proposal)
        return proposal

    proposal = run_transition(db, operation, label=f"proposal:{proposal_id}:{action}")
    record_audit(
        db,
        actor_id=identity.id,
        action=action,
        resource_type=RESOURCE,
        resource_id=proposal.id,
        details={"status": proposal.status, **(details or {})},
    )
    return proposal


# ── Reads ─────────────────────────────────────────────────────────────────────

def get_visible(db: Session, identity: Identity, proposal_id: int) -> Proposal:
    proposal = proposals_repo.get_proposal(db, proposal_id)
    targeted = identity.is_buyer and submissions_repo.find_submission(db, proposal.id, identity.id) is not None
    if not can_view(identity, proposal, targeted=targeted):
        raise AuthorizationDenied(f"Proposal {proposal_id} is not visible to this user")
    return proposal


def _filters(
    industry: str | None,
    keyword: str | None,
    deal_type: str | None,
    min_amount: Decimal | None,
    max_amount: Decimal | None,
) -> ProposalFilters:
    if min_amount is not None and max_amount is not None and min_amount > max_amount:
        raise ValidationFailed([("min_amount", "must not exceed max_amount")])
    return ProposalFilters(
        keyword=keyword,
        industry=industry,
        deal_type=deal_type,
        min_amount=min_amount,
        max_amount=max_amount,
    )


def list_for_identity(
    db: Session,
    identity: Identity,
    *,
    status: str | None,
    industry: str | None,
    offset: int,
    limit: int,
    keyword: str | None = None,
    deal_type: str | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
) -> tuple[list[Proposal], int]:
    """Sellers see their own, admins see everything, buyers see what is visible to them."""
    filters = _filters(industry, keyword, deal_type, min_amount, max_amount)
    if identity.is_seller:
        return proposals_repo.list_for_seller(
            db, identity.id, status=status, filters=filters, offset=offset, limit=limit,
        )
    if identity.is_admin:
        return proposals_repo.list_all(db, status=status, filters=filters, offset=offset, limit=limit)

    if status and status != PUBLISHED:
        return [], 0
    targeted = submissions_repo.targeted_proposal_ids(db, identity.id)
    visible = [
        proposal
        for proposal in proposals_repo.list_published(db, filters=filters)
        if can_view(identity, proposal, targeted=proposal.id in targeted)
    ]
    return visible[offset:offset + limit], len(visible)


def buyer_directory(
    db: Session,
    identity: Identity,
    *,
    search: str | None,
    offset: int,
    limit: int,
) -> tuple[list[User], int]:
    """Active buyers a seller can target with send_to_buyers."""
    if not identity.is_seller:
        raise AuthorizationDenied("Only sellers can browse the buyer directory")
    return users_repo.search_buyers(db, search=search, offset=offset, limit=limit)


def list_pending_review(db: Session, identity: Identity, *, offset: int, limit: int) -> tuple[list[Proposal], int]:
    if not identity.is_admin:
        raise AuthorizationDenied("Only administrators can list proposals awaiting review")
    return proposals_repo.list_by_status(db, PENDING_REVIEW, offset=offset, limit=limit)


# ── Seller operations ─────────────────────────────────────────────────────────

def create(db: Session, identity: Identity, fields: dict[str, Any]) -> Proposal:
    def operation() -> Proposal:
        proposal = proposal_lifecycle.create_proposal(identity, fields, utcnow())
        return proposals_repo.save_proposal(db, proposal)

    proposal = run_transition(db, operation, label=f"proposal:new:seller={identity.id}", retries=0)
    logger.info("proposal_workflow: created proposal=%s seller=%s", proposal.id, identity.id)
    record_audit(
        db,
        actor_id=identity.id,
        action="create",
        resource_type=RESOURCE,
        resource_id=proposal.id,
        details={"status": proposal.status},
    )
    return proposal


def update(db: Session, identity: Identity, proposal_id: int, changes: dict[str, Any]) -> Proposal:
    return _transition(
        db, identity, proposal_id, "update",
        lambda p: proposal_lifecycle.update_proposal(identity, p, changes, utcnow()),
        {"fields": sorted(changes)},
    )


def submit(db: Session, identity: Identity, proposal_id: int) -> Proposal:
    return _transition(
        db, identity, proposal_id, "submit_for_review",
        lambda p: proposal_lifecycle.submit_for_review(identity, p, utcnow()),
    )


def publish(db: Session, identity: Identity, proposal_id: int) -> Proposal:
    return _transition(
        db, identity, proposal_id, "publish",
        lambda p: proposal_lifecycle.publish(identity, p, utcnow()),
    )


def archive(db: Session, identity: Identity, proposal_id: int) -> Proposal:
    return _transition(
        db, identity, proposal_id, "archive",
        lambda p: proposal_lifecycle.archive(identity, p, utcnow()),
    )


def request_delete(db: Session, identity: Identity, proposal_id: int, reason: str | None) -> Proposal:
    return _transition(
        db, identity, proposal_id, "request_delete",
        lambda p: proposal_lifecycle.request_delete(identity, p, reason, utcnow()),
        {"reason": (reason or "").strip() or None},
    )


def delete_draft(db: Session, identity: Identity, proposal_id: int) -> int:
    """Hard-delete a never-published draft owned by the caller."""
    def operation() -> int:
        proposal = proposals_repo.get_proposal(db, proposal_id)
        proposal_lifecycle.ensure_deletable(identity, proposal)
        proposals_repo.delete_proposal(db, proposal)
        return proposal_id

    run_transition(db, operation, label=f"proposal:{proposal_id}:delete")
    logger.info("proposal_workflow: deleted draft proposal=%s seller=%s", proposal_id, identity.id)
    record_audit(db, actor_id=identity.id, action="delete", resource_type=RESOURCE, resource_id=proposal_id)
    return proposal_id


def send_to_buyers(db: Session, identity: Identity, proposal_id: int, buyer_ids: list[int]) -> list[Submission]:
    """Grant the listed buyers access and open a ``sent`` submission for each new one."""
    def operation() -> list[Submission]:
        now = utcnow()
        proposal = proposals_repo.get_proposal(db, proposal_id)
        if not can_send_to_buyers(identity, proposal):
            if not is_owner(identity, proposal):
                raise AuthorizationDenied("Only the owner can send a proposal to buyers")
            raise ValidationFailed([("status", "proposal must be published before it can be sent")])

        requested = sorted({int(value) for value in buyer_ids})
        if not requested:
            raise ValidationFailed([("buyer_ids", "at least one buyer is required")])
        found = {user.id for user in users_repo.active_buyers(db, requested)}
        missing = [buyer_id for buyer_id in requested if buyer_id not in found]
        if missing:
            raise ValidationFailed([("buyer_ids", f"unknown or inactive buyers: {missing}")])

        proposal_lifecycle.grant_buyers(proposal, requested, now)
        proposals_repo.save_proposal(db, proposal)

        already = submissions_repo.existing_buyer_ids(db, proposal.id)
        created = []
        for buyer_id in requested:
            if buyer_id in already:
                continue
            created.append(submissions_repo.save_submission(db, open_submission(proposal, buyer_id, now)))
        return created

    created = run_transition(db, operation, label=f"proposal:{proposal_id}:send_to_buyers")
    logger.info(
        "proposal_workflow: proposal=%s sent to %d buyer(s) by seller=%s",
        proposal_id, len(created), identity.id,
    )
    record_audit(
        db,
        actor_id=identity.id,
        action="send_to_buyers",
        resource_type=RESOURCE,
        resource_id=proposal_id,
        details={"buyer_ids": sorted(int(b) for b in buyer_ids), "created": len(created)},
    )
    return created


# ── Admin operations ──────────────────────────────────────────────────────────

def approve(db: Session, identity: Identity, proposal_id: int, comments: str | None) -> Proposal:
    return _transition(
        db, identity, proposal_id, "approve",
        lambda p: proposal_lifecycle.approve(identity, p, comments, utcnow()),
    )


def reject(db: Session, identity: Identity, proposal_id: int, reason: str | None) -> Proposal:
    return _transition(
        db, identity, proposal_id, "reject",
        lambda p: proposal_lifecycle.reject(identity, p, reason, utcnow()),
        {"reason": (reason or "").strip() or None},
    )


def approve_delete(db: Session, identity: Identity, proposal_id: int) -> Proposal:
    def mutate(proposal: Proposal) -> None:
        active = submissions_repo.count_in_statuses(db, proposal.id, ACTIVE_DEAL_STATUSES)
        proposal_lifecycle.approve_delete(identity, proposal, utcnow(), active_deal_count=active)

    return _transition(db, identity, proposal_id, "approve_delete", mutate)
