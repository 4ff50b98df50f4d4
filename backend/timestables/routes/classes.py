"""
Class routes - the public class list and admin class creation.
"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from timestables.config import (
    MIN_TABLE, MAX_TABLE, DEFAULT_QUESTION_COUNT, DEFAULT_SECONDS_PER_QUESTION,
    MIN_QUESTION_COUNT, MAX_QUESTION_COUNT, ALLOWED_SECONDS_PER_QUESTION
)
from timestables.database import get_db
from timestables.errors import Conflict, ValidationFailed
from timestables.logging_config import get_logger, log_with_context
from timestables.models.school_class import SchoolClass, normalise_class_label, year_from_label
from timestables.services import roster
from timestables.sessions import TeacherSession, require_admin

router = APIRouter()
logger = get_logger("http")


class CreateClassRequest(BaseModel):
    class_label: str
    year_group: Optional[int] = None
    test_start_date: Optional[date] = None
    min_table: int = Field(MIN_TABLE, ge=MIN_TABLE, le=MAX_TABLE)
    max_table: int = Field(12, ge=MIN_TABLE, le=MAX_TABLE)
    question_count: int = Field(DEFAULT_QUESTION_COUNT, ge=MIN_QUESTION_COUNT, le=MAX_QUESTION_COUNT)
    seconds_per_question: int = DEFAULT_SECONDS_PER_QUESTION


@router.get("/api/classes")
def list_classes(db: Session = Depends(get_db)):
    """Every class, by year group then M before B. No login needed."""
    classes = roster.sort_classes(db.query(SchoolClass).all())
    return {"ok": True, "classes": [roster.serialize_class(c) for c in classes]}


@router.post("/api/admin/classes/create")
def create_class(request: CreateClassRequest,
                 session: TeacherSession = Depends(require_admin),
                 db: Session = Depends(get_db)):
    label = normalise_class_label(request.class_label)
    if not label:
        raise ValidationFailed("Missing class_label")
    if request.min_table > request.max_table:
        raise ValidationFailed("min_table must not exceed max_table")
    if request.seconds_per_question not in ALLOWED_SECONDS_PER_QUESTION:
        raise ValidationFailed("seconds_per_question must be one of 3, 6, 9, 12")
    if roster.find_class(db, class_label=label) is not None:
        raise Conflict("Class already exists: {}".format(label))

    klass = SchoolClass(
        class_label=label,
        year_group=request.year_group if request.year_group is not None else year_from_label(label),
        test_start_date=request.test_start_date,
        min_table=request.min_table,
        max_table=request.max_table,
        question_count=request.question_count,
        seconds_per_question=request.seconds_per_question
    )
    db.add(klass)
    db.commit()
    db.refresh(klass)

    log_with_context(logger, "INFO", "Class created: {}".format(label),
        context={"teacher_id": session.teacher_id, "class_id": str(klass.id)})
    return {"ok": True, "class": {**roster.serialize_class(klass), "settings": klass.settings_dict()}}
