"""
Proposal status table.

One table drives both the lifecycle (app.logic.proposal_lifecycle) and the
permission predicates (app.logic.permissions), so "may this caller do X"
and "is X legal from here" can never disagree.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.core.errors import InvalidStateTransition
from app.logic.identity import Identity

DRAFT = "draft"
PENDING_REVIEW = "pending_review"
APPROVED = "approved"
REJECTED = "rejected"
PUBLISHED = "published"
ARCHIVED = "archived"
DELETED = "deleted"

PROPOSAL_STATUSES = (DRAFT, PENDING_REVIEW, APPROVED, REJECTED, PUBLISHED, ARCHIVED, DELETED)
EDITABLE_STATUSES = frozenset({DRAFT, REJECTED})

ACTOR_OWNER = "owner"
ACTOR_ADMIN = "admin"

ACTION_UPDATE = "update"
ACTION_SUBMIT = "submit_for_review"
ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTION_PUBLISH = "publish"
ACTION_ARCHIVE = "archive"
ACTION_REQUEST_DELETE = "request_delete"
ACTION_APPROVE_DELETE = "approve_delete"
ACTION_DELETE = "delete"

_DELETABLE_BY_REQUEST = frozenset({PENDING_REVIEW, APPROVED, REJECTED, PUBLISHED, ARCHIVED})


@dataclass(frozen=True)
class Transition:
    action: str
    sources: frozenset[str]
    target: str | None  # None leaves the status unchanged
    actors: frozenset[str]


TRANSITIONS: dict[str, Transition] = {
    t.action: t
    for t in (
        Transition(ACTION_UPDATE, EDITABLE_STATUSES, DRAFT, frozenset({ACTOR_OWNER})),
        Transition(ACTION_SUBMIT, EDITABLE_STATUSES, PENDING_REVIEW, frozenset({ACTOR_OWNER})),
        Transition(ACTION_APPROVE, frozenset({PENDING_REVIEW}), APPROVED, frozenset({ACTOR_ADMIN})),
        Transition(ACTION_REJECT, frozenset({PENDING_REVIEW}), REJECTED, frozenset({ACTOR_ADMIN})),
        Transition(ACTION_PUBLISH, frozenset({APPROVED}), PUBLISHED, frozenset({ACTOR_OWNER, ACTOR_ADMIN})),
        Transition(ACTION_ARCHIVE, frozenset({PUBLISHED}), ARCHIVED, frozenset({ACTOR_OWNER, ACTOR_ADMIN})),
        Transition(ACTION_REQUEST_DELETE, _DELETABLE_BY_REQUEST, None, frozenset({ACTOR_OWNER})),
        Transition(ACTION_APPROVE_DELETE, _DELETABLE_BY_REQUEST, DELETED, frozenset({ACTOR_ADMIN})),
        Transition(ACTION_DELETE, frozenset({DRAFT}), None, frozenset({ACTOR_OWNER})),
    )
}


def is_owner(identity: Identity, proposal: Any) -> bool:
    return identity.is_seller and identity.id == proposal.seller_id


def status_allows(status: str, action: str) -> bool:
    transition = TRANSITIONS.get(action)
    return transition is not None and status in transition.sources


def actor_allowed(identity: Identity, proposal: Any, action: str) -> bool:
    transition = TRANSITIONS.get(action)
    if transition is None:
        return False
    if ACTOR_ADMIN in transition.actors and identity.is_admin:
        return True
    if ACTOR_OWNER in transition.actors and is_owner(identity, proposal):
        return True
    return False


def legal_actions(status: str) -> list[str]:
    return sorted(action for action, t in TRANSITIONS.items() if status in t.sources)


def require_transition(proposal: Any, action: str) -> Transition:
    """Return the transition for ``action`` or raise InvalidStateTransition."""
    status = proposal.status
    if not status_allows(status, action):
        raise InvalidStateTransition(status, action, legal_actions(status))
    return TRANSITIONS[action]
