"""
Teacher model - staff accounts that log in to the dashboards.

Admins manage classes, pupils and other teachers; teachers see the
classes they are linked to through the teacher_classes table.
"""

import uuid
from sqlalchemy import Column, Text, DateTime, String, Index
from sqlalchemy.orm import relationship
from timestables.database import Base
from timestables.timeutil import utc_now

ROLES = ("teacher", "admin")


class Teacher(Base):
    """SQLAlchemy model for the teachers table."""
    __tablename__ = "teachers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique teacher identifier")
    email = Column(Text, nullable=False,
                   doc="Login email, stored lower-cased")
    full_name = Column(Text, nullable=False, default="",
                       doc="Display name")
    role = Column(String(16), nullable=False, default="teacher",
                  doc="teacher | admin")
    password_hash = Column(Text, nullable=True,
                           doc="argon2 hash (NULL until the teacher sets a password)")
    created_at = Column(DateTime, default=utc_now,
                        doc="Timestamp when the account was created")

    class_links = relationship("TeacherClass", back_populates="teacher",
                               cascade="all, delete-orphan")
    invites = relationship("TeacherInvite", back_populates="teacher",
                           cascade="all, delete-orphan")

    __table_args__ = (
        Index("uq_teachers_email", "email", unique=True),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self):
        return f"<Teacher(id={self.id}, email='{self.email}', role='{self.role}')>"
