import logging
from typing import Any, Iterable

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.models.submission import Submission

logger = logging.getLogger(__name__)


def get_submission(db: Session, submission_id: int) -> Submission:
    submission = db.get(Submission, submission_id)
    if submission is None:
        raise NotFound(f"Submission {submission_id} not found")
    return submission


def find_submission(db: Session, proposal_id: int, buyer_id: int) -> Submission | None:
    return find_one(db, proposal_id=proposal_id, buyer_id=buyer_id)


def find_one(db: Session, **criteria: Any) -> Submission | None:
    query = db.query(Submission)
    for name, value in criteria.items():
        query = query.filter(getattr(Submission, name) == value)
    return query.first()


def save_submission(db: Session, submission: Submission) -> Submission:
    db.add(submission)
    db.flush()
    return submission


def targeted_proposal_ids(db: Session, buyer_id: int) -> set[int]:
    rows = db.execute(
        text("SELECT proposal_id FROM submissions WHERE buyer_id = :buyer_id"),
        {"buyer_id": buyer_id},
    ).fetchall()
    return {int(row.proposal_id) for row in rows}


def existing_buyer_ids(db: Session, proposal_id: int) -> set[int]:
    rows = db.execute(
        text("SELECT buyer_id FROM submissions WHERE proposal_id = :proposal_id"),
        {"proposal_id": proposal_id},
    ).fetchall()
    return {int(row.buyer_id) for row in rows}


def count_in_statuses(db: Session, proposal_id: int, statuses: Iterable[str]) -> int:
    wanted = sorted(statuses)
    if not wanted:
        return 0
    return (
        db.query(Submission)
        .filter(Submission.proposal_id == proposal_id, Submission.status.in_(wanted))
        .count()
    )


def _list(
    db: Session,
    column,
    party_id: int,
    *,
    status: str | None,
    offset: int,
    limit: int,
) -> tuple[list[Submission], int]:
    query = db.query(Submission).filter(column == party_id)
    if status:
        query = query.filter(Submission.status == status)
    total = query.count()
    rows = query.order_by(Submission.sent_at.desc(), Submission.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def list_for_buyer(db: Session, buyer_id: int, *, status: str | None = None, offset: int = 0, limit: int = 10):
    return _list(db, Submission.buyer_id, buyer_id, status=status, offset=offset, limit=limit)


def list_for_seller(db: Session, seller_id: int, *, status: str | None = None, offset: int = 0, limit: int = 10):
    return _list(db, Submission.seller_id, seller_id, status=status, offset=offset, limit=limit)
