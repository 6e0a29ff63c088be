import logging
from typing import Any

from sqlalchemy.orm import Session

from app.models.audit import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    db: Session,
    *,
    actor_id: int,
    action: str,
    resource_type: str,
    resource_id: int | None,
    details: dict[str, Any] | None = None,
) -> bool:
    """Insert an audit_logs row after the state change has committed.

    Audit is best-effort: a failure here is logged and rolled back, and the
    already-committed transition stands. Returns True if the row was written.
    """
    try:
        db.add(
            AuditLog(
                actor_id=actor_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                details=details or {},
            )
        )
        db.commit()
        return True
    except Exception as exc:
        logger.warning(
            "record_audit failed: action=%s resource=%s/%s: %s",
            action, resource_type, resource_id, exc,
        )
        db.rollback()
        return False
