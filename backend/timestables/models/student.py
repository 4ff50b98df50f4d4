"""
Student model - pupils taking times-tables quizzes.

Pupils are created by admins with a generated unique username and a
4-digit PIN. Both the PIN and any temporary password are stored hashed.
"""

import uuid
from sqlalchemy import Column, Text, DateTime, String, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from timestables.database import Base
from timestables.timeutil import utc_now


class Student(Base):
    """
    SQLAlchemy model for the students table.

    class_label is a denormalised copy of the class's label so attempt
    rows and roster listings can be produced without a join.
    """
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique student identifier")
    first_name = Column(Text, nullable=False,
                        doc="Pupil's first name")
    last_name = Column(Text, nullable=False, default="",
                       doc="Pupil's last name")
    username = Column(String(32), nullable=False,
                      doc="Login name, unique across the school")
    pin_hash = Column(Text, nullable=True,
                      doc="argon2 hash of the 4-digit PIN")
    password_hash = Column(Text, nullable=True,
                           doc="argon2 hash of a temporary password issued by an admin")
    class_id = Column(String(36), ForeignKey("classes.id"), nullable=True)
    class_label = Column(String(16), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utc_now,
                        doc="Timestamp when student record was created")

    school_class = relationship("SchoolClass", back_populates="students")
    # Deleting a pupil deletes their attempts (and, through them, question records)
    attempts = relationship("Attempt", back_populates="student",
                            cascade="all, delete-orphan")

    __table_args__ = (
        Index("uq_students_username", "username", unique=True),
        Index("ix_students_class_id", "class_id"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def __repr__(self):
        return f"<Student(id={self.id}, username='{self.username}', class='{self.class_label}')>"
