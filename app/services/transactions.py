"""
Load → check → mutate → commit, as one unit.

Proposal and Submission rows carry a version column; a stale flush means
another request committed first. The operation is replayed against fresh
rows up to TRANSITION_CONFLICT_RETRIES times, then surfaced as a conflict.
A duplicate (proposal, buyer) insert from two racing first contacts is
treated the same way, so the replay picks up the winner's row.
"""
from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# PostgreSQL names the constraint; SQLite names the columns.
DUPLICATE_MARKERS = (
    "uq_submissions_proposal_buyer",
    "submissions.proposal_id, submissions.buyer_id",
)


def _is_duplicate(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return any(marker in message for marker in DUPLICATE_MARKERS)


def run_transition(
    db: Session,
    operation: Callable[[], T],
    *,
    label: str,
    retries: int | None = None,
) -> T:
    """Run ``operation`` and commit. ``operation`` must load its rows from ``db`` each call."""
    allowed = settings.TRANSITION_CONFLICT_RETRIES if retries is None else retries
    attempt = 0
    while True:
        try:
            result = operation()
            db.commit()
            return result
        except (StaleDataError, IntegrityError) as exc:
            db.rollback()
            if isinstance(exc, IntegrityError) and not _is_duplicate(exc):
                raise
            if attempt >= allowed:
                logger.warning("transition: conflict label=%s attempts=%d: %s", label, attempt + 1, exc)
                raise ConflictError() from exc
            attempt += 1
            logger.info("transition: retrying label=%s attempt=%d", label, attempt + 1)
        except Exception:
            db.rollback()
            raise
