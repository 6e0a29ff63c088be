"""
Engagement score (0-100) for a buyer's submission.

    20  any view recorded
  + 20  any download recorded
  + 15 per question, capped at 30
  + 10 per interest expression, capped at 20
  + bonus for the *current* status only (not accumulated over history)
  + 10 if the buyer responded within 24h of the send, 5 within 72h

The sum may exceed 100 and is clamped. The score is derived: it is written
only by refresh_statistics(), which every submission mutation calls last.
"""
from __future__ import annotations

from typing import Any, Iterable

from app.utils.clock import hours_between

VIEW_POINTS = 20
DOWNLOAD_POINTS = 20
QUESTION_POINTS = 15
QUESTION_CAP = 30
INTEREST_POINTS = 10
INTEREST_CAP = 20

STATUS_BONUS = {
    "viewed": 5,
    "interested": 10,
    "questioned": 15,
    "nda_signed": 20,
    "detail_requested": 25,
    "under_negotiation": 30,
    "contact_exchanged": 40,
    "deal_closed": 50,
}

FAST_RESPONSE_HOURS = 24
FAST_RESPONSE_BONUS = 10
SLOW_RESPONSE_HOURS = 72
SLOW_RESPONSE_BONUS = 5

SCORE_MIN = 0
SCORE_MAX = 100


def response_bonus(response_time_hours: float | None) -> int:
    if response_time_hours is None or response_time_hours < 0:
        return 0
    if response_time_hours <= FAST_RESPONSE_HOURS:
        return FAST_RESPONSE_BONUS
    if response_time_hours <= SLOW_RESPONSE_HOURS:
        return SLOW_RESPONSE_BONUS
    return 0


def compute_engagement_score(
    *,
    view_count: int,
    download_count: int,
    question_count: int,
    interest_count: int,
    status: str,
    response_time_hours: float | None,
) -> int:
    score = 0
    if view_count > 0:
        score += VIEW_POINTS
    if download_count > 0:
        score += DOWNLOAD_POINTS
    score += min(QUESTION_POINTS * question_count, QUESTION_CAP)
    score += min(INTEREST_POINTS * interest_count, INTEREST_CAP)
    score += STATUS_BONUS.get(status, 0)
    score += response_bonus(response_time_hours)
    return max(SCORE_MIN, min(score, SCORE_MAX))


def count_events(interactions: Iterable[Any], event_type: str) -> int:
    return sum(1 for item in interactions or [] if item.event_type == event_type)


def refresh_statistics(submission: Any) -> int:
    """Recompute response latency and the engagement score in place."""
    submission.response_time_hours = hours_between(submission.sent_at, submission.responded_at)
    score = compute_engagement_score(
        view_count=submission.view_count or 0,
        download_count=submission.download_count or 0,
        question_count=count_events(submission.interactions, "question"),
        interest_count=count_events(submission.interactions, "interest"),
        status=submission.status,
        response_time_hours=submission.response_time_hours,
    )
    submission._engagement_score = score
    return score
