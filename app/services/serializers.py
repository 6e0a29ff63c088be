"""JSON shapes returned by the routers. Contact details pass through the NDA gate only."""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from app.logic import nda_gate
from app.logic.identity import Identity
from app.logic.permissions import is_owner
from app.logic.proposal_states import legal_actions as proposal_actions
from app.logic.submission_lifecycle import legal_actions as submission_actions
from app.utils.clock import isoformat


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def serialize_proposal(proposal: Any, identity: Identity) -> dict[str, Any]:
    data = {
        "id": proposal.id,
        "seller_id": proposal.seller_id,
        "title": proposal.title,
        "industry": proposal.industry,
        "company_name": proposal.company_name,
        "summary": proposal.summary,
        "description": proposal.description,
        "target_market": proposal.target_market,
        "investment_amount": _money(proposal.investment_amount),
        "deal_type": proposal.deal_type,
        "tags": list(proposal.tags or []),
        "status": proposal.status,
        "published_at": isoformat(proposal.published_at),
        "statistics": {
            "views": proposal.view_count or 0,
            "interests": proposal.interest_count or 0,
            "downloads": proposal.download_count or 0,
        },
    }
    if not (identity.is_admin or is_owner(identity, proposal)):
        return data

    data.update(
        {
            "is_public": bool(proposal.is_public),
            "allowed_buyer_ids": list(proposal.allowed_buyer_ids or []),
            "review": {
                "reviewer_id": proposal.reviewer_id,
                "reviewed_at": isoformat(proposal.reviewed_at),
                "comment": proposal.review_comment,
                "action": proposal.review_action,
            },
            "delete_request": {
                "requested_at": isoformat(proposal.delete_requested_at),
                "reason": proposal.delete_reason,
                "approved_by": proposal.delete_approved_by,
                "deleted_at": isoformat(proposal.deleted_at),
            },
            "created_at": isoformat(proposal.created_at),
            "updated_at": isoformat(proposal.updated_at),
            "submitted_at": isoformat(proposal.submitted_at),
            "approved_at": isoformat(proposal.approved_at),
            "rejected_at": isoformat(proposal.rejected_at),
            "archived_at": isoformat(proposal.archived_at),
            "legal_actions": proposal_actions(proposal.status),
            "version": proposal.version,
        }
    )
    return data


def serialize_buyer(user: Any) -> dict[str, Any]:
    return {
        "id": user.id,
        "display_name": user.display_name,
        "email": user.email,
        "company": user.company,
        "position": user.position,
    }


def serialize_interaction(item: Any) -> dict[str, Any]:
    return {
        "id": item.id,
        "event_type": item.event_type,
        "actor_id": item.actor_id,
        "details": item.details or {},
        "created_at": isoformat(item.created_at),
    }


def serialize_comment(comment: Any) -> dict[str, Any]:
    return {
        "id": comment.id,
        "submission_id": comment.submission_id,
        "author_id": comment.author_id,
        "parent_id": comment.parent_id,
        "type": comment.comment_type,
        "content": comment.content,
        "requires_response": bool(comment.requires_response),
        "is_answered": bool(comment.is_answered),
        "is_private": bool(comment.is_private),
        "read_by": [entry.get("user_id") for entry in comment.read_by or []],
        "created_at": isoformat(comment.created_at),
    }


def serialize_submission(submission: Any, *, include_interactions: bool = False) -> dict[str, Any]:
    data = {
        "id": submission.id,
        "proposal_id": submission.proposal_id,
        "buyer_id": submission.buyer_id,
        "seller_id": submission.seller_id,
        "status": submission.status,
        "feedback": {
            "interest_level": submission.interest_level,
            "comment": submission.feedback_comment,
            "capacity_min": _money(submission.capacity_min),
            "capacity_max": _money(submission.capacity_max),
            "capacity_currency": submission.capacity_currency,
        },
        "nda": {
            "signed": nda_gate.is_signed(submission),
            "signed_at": isoformat(submission.nda_signed_at),
            "version": submission.nda_version,
        },
        "contact_exchange": {
            "requested_at": isoformat(submission.contact_requested_at),
            "approved_at": isoformat(submission.contact_approved_at),
            "contacts": nda_gate.visible_contacts(submission),
        },
        "timeline": {
            "sent_at": isoformat(submission.sent_at),
            "first_viewed_at": isoformat(submission.first_viewed_at),
            "last_viewed_at": isoformat(submission.last_viewed_at),
            "responded_at": isoformat(submission.responded_at),
            "closed_at": isoformat(submission.closed_at),
        },
        "statistics": {
            "views": submission.view_count or 0,
            "downloads": submission.download_count or 0,
            "response_time_hours": submission.response_time_hours,
            "engagement_score": submission.engagement_score,
        },
        "legal_actions": submission_actions(submission),
    }
    if include_interactions:
        data["interactions"] = [serialize_interaction(item) for item in submission.interactions]
    return data


def page_envelope(items: list[dict[str, Any]], total: int, page: int, limit: int) -> dict[str, Any]:
    pages = (total + limit - 1) // limit if limit else 0
    return {
        "status": "success",
        "data": items,
        "pagination": {"page": page, "limit": limit, "total": total, "pages": pages},
    }
