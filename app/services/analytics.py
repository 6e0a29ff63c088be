"""
Seller-facing pipeline statistics over submissions.
Uses SQLAlchemy text() + Session so the aggregates run in the database.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.core.errors import AuthorizationDenied
from app.logic.identity import Identity
from app.logic.submission_lifecycle import DEAL_CLOSED, OPEN_PIPELINE_STATUSES, SUBMISSION_STATUSES

logger = logging.getLogger(__name__)


def _round(value: Any, places: int = 2) -> float:
    return round(float(value or 0), places)


def seller_analytics(db: Session, identity: Identity, proposal_id: int | None = None) -> dict[str, Any]:
    if not identity.is_seller:
        raise AuthorizationDenied("Only sellers have pipeline analytics")

    where = "seller_id = :seller_id"
    params: dict[str, Any] = {"seller_id": identity.id}
    if proposal_id is not None:
        where += " AND proposal_id = :proposal_id"
        params["proposal_id"] = proposal_id

    rows = db.execute(
        text(f"""
            SELECT status,
                   COUNT(*) AS count,
                   AVG(engagement_score) AS avg_engagement,
                   AVG(response_time_hours) AS avg_response_hours,
                   COALESCE(SUM(view_count), 0) AS views,
                   COALESCE(SUM(download_count), 0) AS downloads
            FROM submissions
            WHERE {where}
            GROUP BY status
        """),
        params,
    ).mappings().all()

    distribution = {status: 0 for status in SUBMISSION_STATUSES}
    total = views = downloads = 0
    engagement_sum = 0.0
    response_sum = 0.0
    response_weight = 0
    for row in rows:
        count = int(row["count"])
        distribution[row["status"]] = count
        total += count
        views += int(row["views"])
        downloads += int(row["downloads"])
        engagement_sum += float(row["avg_engagement"] or 0) * count
        if row["avg_response_hours"] is not None:
            response_sum += float(row["avg_response_hours"]) * count
            response_weight += count

    active = sum(distribution[status] for status in OPEN_PIPELINE_STATUSES)
    closed = distribution[DEAL_CLOSED]
    result = {
        "total_submissions": total,
        "active_submissions": active,
        "closed_deals": closed,
        "conversion_rate": _round(closed / total * 100) if total else 0.0,
        "status_distribution": distribution,
        "avg_engagement_score": _round(engagement_sum / total) if total else 0.0,
        "avg_response_time_hours": _round(response_sum / response_weight) if response_weight else None,
        "total_views": views,
        "total_downloads": downloads,
    }
    logger.debug("analytics: seller=%s proposal=%s total=%d", identity.id, proposal_id, total)
    return result
