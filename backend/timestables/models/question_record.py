"""
QuestionRecord model - one question within an attempt.

Records are written once. The only update is the one-at-a-time answer
flow filling in a pending record (given_answer NULL, answered_at NULL).
"""

import uuid
from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from timestables.database import Base
from timestables.timeutil import utc_now


class QuestionRecord(Base):
    __tablename__ = "question_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    attempt_id = Column(String(36), ForeignKey("attempts.id"), nullable=False)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False,
                        doc="Denormalised for heatmap queries")
    q_index = Column(Integer, nullable=False,
                     doc="1-based position within the attempt")
    a = Column(Integer, nullable=False)
    b = Column(Integer, nullable=False)
    table_num = Column(Integer, nullable=False,
                       doc="The times table being practised (same as b)")
    correct_answer = Column(Integer, nullable=False)
    given_answer = Column(Integer, nullable=True,
                          doc="NULL for no answer")
    is_correct = Column(Boolean, nullable=False, default=False)
    timed_out = Column(Boolean, nullable=False, default=False)
    response_time_ms = Column(Integer, nullable=True)
    served_at = Column(DateTime, nullable=True,
                       doc="When the question was shown (one-at-a-time flow)")
    answered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    attempt = relationship("Attempt", back_populates="question_records")

    __table_args__ = (
        Index("ix_question_records_attempt_id", "attempt_id"),
        Index("ix_question_records_student_created", "student_id", "created_at"),
    )

    def as_row(self) -> dict:
        return {
            "student_id": self.student_id,
            "table_num": self.table_num,
            "is_correct": self.is_correct,
            "created_at": self.created_at,
        }

    def __repr__(self):
        return f"<QuestionRecord(attempt={self.attempt_id}, q={self.q_index}, {self.a}x{self.b})>"
