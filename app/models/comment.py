from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.submission import JSONType


class SubmissionComment(Base):
    __tablename__ = "submission_comments"

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    parent_id = Column(Integer, ForeignKey("submission_comments.id", ondelete="CASCADE"), nullable=True, index=True)
    comment_type = Column(String(20), nullable=False)  # question|clarification|concern|interest|feedback
    content = Column(Text, nullable=False)

    requires_response = Column(Boolean, nullable=False, default=False)
    is_answered = Column(Boolean, nullable=False, default=False)
    is_private = Column(Boolean, nullable=False, default=False)
    # [{"user_id": int, "read_at": iso8601}]
    read_by = Column(JSONType, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    submission = relationship("Submission")
