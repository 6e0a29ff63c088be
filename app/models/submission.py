from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.database import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        UniqueConstraint("proposal_id", "buyer_id", name="uq_submissions_proposal_buyer"),
    )

    id = Column(Integer, primary_key=True, index=True)
    proposal_id = Column(Integer, ForeignKey("proposals.id", ondelete="RESTRICT"), nullable=False, index=True)
    buyer_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    seller_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    status = Column(String(30), nullable=False, default="sent", index=True)

    # Buyer feedback
    interest_level = Column(String(20), nullable=True)
    feedback_comment = Column(Text, nullable=True)
    capacity_min = Column(Numeric(18, 2), nullable=True)
    capacity_max = Column(Numeric(18, 2), nullable=True)
    capacity_currency = Column(String(10), nullable=True)

    # NDA, set at most once
    nda_signed_at = Column(DateTime(timezone=True), nullable=True)
    nda_ip_address = Column(String(64), nullable=True)
    nda_user_agent = Column(String(512), nullable=True)
    nda_signature = Column(String(255), nullable=True)
    nda_version = Column(String(20), nullable=True)

    # Contact exchange
    contact_requested_at = Column(DateTime(timezone=True), nullable=True)
    contact_request_message = Column(String(500), nullable=True)
    contact_approved_at = Column(DateTime(timezone=True), nullable=True)
    contact_approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    exchanged_contacts = Column(JSONType, nullable=True)

    sent_at = Column(DateTime(timezone=True), nullable=False)
    first_viewed_at = Column(DateTime(timezone=True), nullable=True)
    last_viewed_at = Column(DateTime(timezone=True), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    view_count = Column(Integer, nullable=False, default=0)
    download_count = Column(Integer, nullable=False, default=0)
    response_time_hours = Column(Float, nullable=True)
    # Derived; written only by app.logic.engagement.refresh_statistics
    _engagement_score = Column("engagement_score", Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False)

    interactions = relationship(
        "SubmissionInteraction",
        order_by="SubmissionInteraction.id",
        cascade="save-update, merge",
        passive_deletes="all",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def engagement_score(self) -> int:
        return int(self._engagement_score or 0)


class SubmissionInteraction(Base):
    __tablename__ = "submission_interactions"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="RESTRICT"), nullable=False, index=True)
    event_type = Column(String(30), nullable=False, index=True)
    actor_id = Column(Integer, nullable=True)
    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
