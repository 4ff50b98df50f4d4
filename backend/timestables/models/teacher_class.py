"""
TeacherClass model - links a teacher to the classes they may see.

A non-admin's access to any class or pupil resource is decided by the
presence of a row here.
"""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
from timestables.database import Base
from timestables.timeutil import utc_now


class TeacherClass(Base):
    __tablename__ = "teacher_classes"

    teacher_id = Column(String(36), ForeignKey("teachers.id"), primary_key=True)
    class_id = Column(String(36), ForeignKey("classes.id"), primary_key=True)
    created_at = Column(DateTime, default=utc_now)

    teacher = relationship("Teacher", back_populates="class_links")
    school_class = relationship("SchoolClass", back_populates="teacher_links")

    def __repr__(self):
        return f"<TeacherClass(teacher={self.teacher_id}, class={self.class_id})>"
