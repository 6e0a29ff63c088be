from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from app.database import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


class Proposal(Base):
    __tablename__ = "proposals"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)

    title = Column(String(100), nullable=False, default="")
    industry = Column(String(50), nullable=True, index=True)
    company_name = Column(String(100), nullable=True)
    summary = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    target_market = Column(Text, nullable=True)
    investment_amount = Column(Numeric(18, 2), nullable=True)
    deal_type = Column(String(30), nullable=True)  # acquisition|investment|partnership|joint_venture
    tags = Column(JSONType, nullable=True)

    status = Column(String(20), nullable=False, default="draft", index=True)

    # Review record, overwritten on re-review
    reviewer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_comment = Column(Text, nullable=True)
    review_action = Column(String(20), nullable=True)  # approved|rejected

    # Visibility
    is_public = Column(Boolean, nullable=False, default=False)
    allowed_buyer_ids = Column(JSONType, nullable=True)
    visibility_snapshot = Column(JSONType, nullable=True)

    # Statistics (never decrease)
    view_count = Column(Integer, nullable=False, default=0)
    interest_count = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)

    # Delete-request protocol
    delete_requested_at = Column(DateTime(timezone=True), nullable=True)
    delete_reason = Column(String(500), nullable=True)
    delete_approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
