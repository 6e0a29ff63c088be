#!/usr/bin/env python3
"""
Recompute response time and engagement score for every submission.

Run after changing the scoring weights. Safe to run repeatedly; rows whose
values are already current are left untouched.

Usage:
    python3 app/scripts/recompute_engagement.py --dry-run
    python3 app/scripts/recompute_engagement.py --batch-size 200
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv(PROJECT_ROOT / ".env")

from sqlalchemy.orm import Session

from app.core.config import configure_logging
from app.database import SessionLocal
from app.logic.engagement import refresh_statistics
from app.models.submission import Submission
from app.services.transactions import run_transition

logger = logging.getLogger(__name__)


def _recompute_batch(db: Session, last_id: int, batch_size: int) -> tuple[int, int, int]:
    """Refresh one id-ordered batch. Returns (scanned, changed, last id)."""
    batch = (
        db.query(Submission)
        .filter(Submission.id > last_id)
        .order_by(Submission.id.asc())
        .limit(batch_size)
        .all()
    )
    changed = 0
    for submission in batch:
        before = (submission.engagement_score, submission.response_time_hours)
        refresh_statistics(submission)
        if (submission.engagement_score, submission.response_time_hours) != before:
            changed += 1
            logger.info(
                "recompute: submission=%s score %s -> %s",
                submission.id, before[0], submission.engagement_score,
            )
    db.flush()
    return len(batch), changed, batch[-1].id if batch else last_id


def recompute_all(db: Session, *, dry_run: bool = False, batch_size: int = 100) -> dict[str, int]:
    scanned = changed = 0
    last_id = 0
    while True:
        if dry_run:
            count, batch_changed, next_id = _recompute_batch(db, last_id, batch_size)
            db.rollback()
        else:
            # A request writing one of these rows mid-run replays the batch on fresh rows.
            count, batch_changed, next_id = run_transition(
                db,
                lambda: _recompute_batch(db, last_id, batch_size),
                label=f"recompute:after={last_id}",
            )
        if not count:
            break
        scanned += count
        changed += batch_changed
        last_id = next_id
    return {"scanned": scanned, "changed": changed}


def main() -> int:
    parser = argparse.ArgumentParser(description="Recompute submission engagement scores")
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing")
    parser.add_argument("--batch-size", type=int, default=100)
    args = parser.parse_args()

    configure_logging()
    with SessionLocal() as db:
        result = recompute_all(db, dry_run=args.dry_run, batch_size=max(args.batch_size, 1))

    mode = "DRY RUN" if args.dry_run else "APPLIED"
    print(f"[{mode}] scanned={result['scanned']} changed={result['changed']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
