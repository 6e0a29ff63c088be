from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.user import User


def active_buyers(db: Session, user_ids: list[int]) -> list[User]:
    if not user_ids:
        return []
    return (
        db.query(User)
        .filter(User.id.in_(user_ids), User.role == "buyer", User.is_active.is_(True))
        .all()
    )


def search_buyers(
    db: Session,
    *,
    search: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[User], int]:
    query = db.query(User).filter(User.role == "buyer", User.is_active.is_(True))
    term = (search or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(User.email.ilike(pattern), User.display_name.ilike(pattern), User.company.ilike(pattern))
        )
    total = query.count()
    rows = query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
    return rows, total
