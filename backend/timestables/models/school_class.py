"""
SchoolClass model - a class of pupils plus its quiz settings.

class_label is the human-readable code ("M4", "B3"); its trailing digit
is the year group. The quiz settings (tables, question count, seconds per
question) drive both quiz generation and the timeout rule.
"""

import re
import uuid
from sqlalchemy import Column, Integer, Date, DateTime, String
from sqlalchemy.orm import relationship
from timestables.database import Base
from timestables.timeutil import utc_now
from timestables.config import (
    MIN_TABLE, DEFAULT_QUESTION_COUNT, DEFAULT_SECONDS_PER_QUESTION
)


def year_from_label(class_label: str):
    """'M4' -> 4, 'B10' -> 10, anything without trailing digits -> None."""
    match = re.search(r"(\d+)$", (class_label or "").strip())
    return int(match.group(1)) if match else None


def normalise_class_label(value) -> str:
    return re.sub(r"\s+", "", str(value or "")).upper()


class SchoolClass(Base):
    """SQLAlchemy model for the classes table."""
    __tablename__ = "classes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique class identifier")
    class_label = Column(String(16), nullable=False, unique=True,
                         doc="Class code, e.g. 'M4'")
    year_group = Column(Integer, nullable=True,
                        doc="Year group, derived from the label when not given")
    test_start_date = Column(Date, nullable=True,
                             doc="First day pupils may take tests")
    min_table = Column(Integer, nullable=False, default=MIN_TABLE,
                       doc="Smallest times table used in quizzes")
    max_table = Column(Integer, nullable=False, default=12,
                       doc="Largest times table used in quizzes")
    question_count = Column(Integer, nullable=False, default=DEFAULT_QUESTION_COUNT,
                            doc="Questions per quiz (10..60)")
    seconds_per_question = Column(Integer, nullable=False, default=DEFAULT_SECONDS_PER_QUESTION,
                                  doc="Answer time limit: 3, 6, 9 or 12 seconds")
    created_at = Column(DateTime, default=utc_now)

    students = relationship("Student", back_populates="school_class")
    teacher_links = relationship("TeacherClass", back_populates="school_class",
                                 cascade="all, delete-orphan")

    def settings_dict(self) -> dict:
        return {
            "class_label": self.class_label,
            "min_table": self.min_table,
            "max_table": self.max_table,
            "test_start_date": self.test_start_date.isoformat() if self.test_start_date else None,
            "question_count": self.question_count,
            "seconds_per_question": self.seconds_per_question,
        }

    def __repr__(self):
        return f"<SchoolClass(id={self.id}, label='{self.class_label}', year={self.year_group})>"
