"""
Attempt model - one quiz session by a pupil.

An attempt is either submitted in one go (all question records written
with it) or started server-side and answered one question at a time, in
which case it stays incomplete until its last question is answered.
"""

import uuid
from sqlalchemy import Column, Integer, Float, Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from timestables.database import Base
from timestables.timeutil import utc_now


class Attempt(Base):
    """
    SQLAlchemy model for the attempts table.

    Once completed, score equals the number of the attempt's question
    records with is_correct set, and percent = 100 * score / max_score.
    """
    __tablename__ = "attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique attempt identifier")
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False,
                        doc="Pupil who took the quiz")
    class_id = Column(String(36), ForeignKey("classes.id"), nullable=True,
                      doc="Class the pupil belonged to at the time")
    class_label = Column(String(16), nullable=True)
    started_at = Column(DateTime, nullable=False, default=utc_now,
                        doc="When the pupil started the quiz")
    finished_at = Column(DateTime, nullable=True,
                         doc="When the quiz was finalised (NULL while in progress)")
    score = Column(Integer, nullable=True,
                   doc="Number of correct answers")
    max_score = Column(Integer, nullable=True,
                       doc="Number of questions")
    percent = Column(Float, nullable=True,
                     doc="100 * score / max_score, two decimals")
    avg_response_time_ms = Column(Integer, nullable=True)
    seconds_per_question = Column(Integer, nullable=True,
                                  doc="Time limit the quiz was taken with")
    completed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    student = relationship("Student", back_populates="attempts")
    question_records = relationship("QuestionRecord", back_populates="attempt",
                                    cascade="all, delete-orphan",
                                    order_by="QuestionRecord.q_index")

    __table_args__ = (
        Index("ix_attempts_student_id", "student_id"),
        Index("ix_attempts_class_id", "class_id"),
        Index("ix_attempts_created_at", "created_at"),
    )

    def as_row(self) -> dict:
        """Plain dict view used by the attainment aggregations."""
        return {
            "id": self.id,
            "student_id": self.student_id,
            "class_id": self.class_id,
            "created_at": self.created_at,
            "percent": self.percent,
            "correct": self.score,
            "total": self.max_score,
            "seconds_per_question": self.seconds_per_question,
        }

    def __repr__(self):
        return f"<Attempt(id={self.id}, student={self.student_id}, score={self.score}/{self.max_score})>"
