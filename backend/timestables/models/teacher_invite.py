"""
TeacherInvite model - one-time set-password links sent to teachers.

Only the SHA-256 digest of the token is stored; the raw token exists in
the link handed to the admin.
"""

import uuid
from sqlalchemy import Column, Text, DateTime, ForeignKey, String, Index
from sqlalchemy.orm import relationship
from timestables.database import Base
from timestables.timeutil import utc_now


class TeacherInvite(Base):
    __tablename__ = "teacher_invites"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    teacher_id = Column(String(36), ForeignKey("teachers.id"), nullable=False)
    token_hash = Column(Text, nullable=False,
                        doc="hex SHA-256 of the emailed token")
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now)

    teacher = relationship("Teacher", back_populates="invites")

    __table_args__ = (
        Index("ix_teacher_invites_token_hash", "token_hash"),
    )

    def __repr__(self):
        return f"<TeacherInvite(id={self.id}, teacher={self.teacher_id}, used={self.used_at is not None})>"
