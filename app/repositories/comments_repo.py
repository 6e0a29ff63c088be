from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from app.core.errors import NotFound
from app.models.comment import SubmissionComment


def get_comment(db: Session, comment_id: int) -> SubmissionComment:
    comment = db.get(SubmissionComment, comment_id)
    if comment is None:
        raise NotFound(f"Comment {comment_id} not found")
    return comment


def save_comment(db: Session, comment: SubmissionComment) -> SubmissionComment:
    db.add(comment)
    db.flush()
    return comment


def _visible(db: Session, submission_id: int, viewer_id: int | None) -> Query:
    # viewer_id=None (admins) sees every private comment.
    query = db.query(SubmissionComment).filter(SubmissionComment.submission_id == submission_id)
    if viewer_id is not None:
        query = query.filter(
            or_(SubmissionComment.is_private.is_(False), SubmissionComment.author_id == viewer_id)
        )
    return query


def list_for_submission(
    db: Session,
    submission_id: int,
    *,
    viewer_id: int | None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[SubmissionComment], int]:
    query = _visible(db, submission_id, viewer_id)
    total = query.count()
    rows = (
        query.order_by(SubmissionComment.created_at.desc(), SubmissionComment.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total


def count_unanswered(db: Session, submission_id: int, *, viewer_id: int | None) -> int:
    return (
        _visible(db, submission_id, viewer_id)
        .filter(SubmissionComment.requires_response.is_(True), SubmissionComment.is_answered.is_(False))
        .count()
    )
