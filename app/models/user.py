from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from app.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(20), nullable=False, index=True)  # buyer|seller|admin
    display_name = Column(String(255), nullable=False)
    company = Column(String(255), nullable=True)
    position = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


def contact_card(user: User | None) -> dict:
    """Contact fields shared with the counterparty once an exchange is approved."""
    if user is None:
        return {}
    return {
        "email": user.email,
        "phone": user.phone,
        "company": user.company,
        "position": user.position,
    }
