"""
Comment threads on a submission.

Only the buyer and seller of a submission write comments; admins read
them. A private comment is visible to its author and to admins. A buyer
``question`` also counts as a question on the submission itself (status
viewed → questioned, response latency stamped). A reply from the other
party answers a comment that asked for a response.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from app.core.errors import AuthorizationDenied, TerminalStateError, ValidationFailed
from app.logic import submission_lifecycle
from app.logic.identity import Identity
from app.logic.permissions import can_comment, can_see_comment, is_submission_buyer
from app.models.comment import SubmissionComment
from app.utils.clock import isoformat

logger = logging.getLogger(__name__)

COMMENT_TYPES = ("question", "clarification", "concern", "interest", "feedback")
REPLY_TYPE = "feedback"
CONTENT_MAX = 2000


def _check_writer(identity: Identity, submission: Any, action: str) -> None:
    if not can_comment(identity, submission):
        raise AuthorizationDenied(f"Only the buyer or seller of submission {submission.id} may {action}")
    if submission.status in submission_lifecycle.TERMINAL_STATUSES:
        raise TerminalStateError(submission.status, action)


def _clean_content(content: str | None) -> str:
    content = (content or "").strip()
    if not content:
        raise ValidationFailed([("content", "is required")])
    if len(content) > CONTENT_MAX:
        raise ValidationFailed([("content", f"must be at most {CONTENT_MAX} characters")])
    return content


def _build(identity: Identity, submission: Any, now: datetime, **fields: Any) -> SubmissionComment:
    return SubmissionComment(
        submission=submission,
        author_id=identity.id,
        is_answered=False,
        read_by=[{"user_id": identity.id, "read_at": isoformat(now)}],
        created_at=now,
        updated_at=now,
        **fields,
    )


def add_comment(
    identity: Identity,
    submission: Any,
    now: datetime,
    *,
    content: str,
    comment_type: str,
    requires_response: bool = False,
    is_private: bool = False,
) -> SubmissionComment:
    _check_writer(identity, submission, "comment")
    if comment_type not in COMMENT_TYPES:
        raise ValidationFailed([("type", f"must be one of {', '.join(COMMENT_TYPES)}")])
    content = _clean_content(content)

    if comment_type == "question" and is_submission_buyer(identity, submission):
        submission_lifecycle.record_question(identity, submission, content, now)

    comment = _build(
        identity, submission, now,
        comment_type=comment_type,
        content=content,
        requires_response=bool(requires_response),
        is_private=bool(is_private),
    )
    logger.info(
        "comments: submission=%s type=%s author=%s private=%s",
        submission.id, comment_type, identity.id, comment.is_private,
    )
    return comment


def reply(identity: Identity, parent: SubmissionComment, submission: Any, now: datetime, content: str) -> SubmissionComment:
    _check_writer(identity, submission, "reply")
    if not can_see_comment(identity, parent):
        raise AuthorizationDenied(f"Comment {parent.id} is not visible to this user")
    content = _clean_content(content)

    answer = _build(
        identity, submission, now,
        comment_type=REPLY_TYPE,
        content=content,
        parent_id=parent.id,
        requires_response=False,
        is_private=bool(parent.is_private),
    )
    if parent.requires_response and parent.author_id != identity.id and not parent.is_answered:
        parent.is_answered = True
        parent.updated_at = now
        logger.info("comments: comment=%s answered by=%s", parent.id, identity.id)
    return answer


def mark_read(comment: SubmissionComment, identity: Identity, now: datetime) -> bool:
    """Add a read receipt for ``identity``; False when one already exists."""
    readers = list(comment.read_by or [])
    if any(entry.get("user_id") == identity.id for entry in readers):
        return False
    readers.append({"user_id": identity.id, "read_at": isoformat(now)})
    comment.read_by = readers
    return True
