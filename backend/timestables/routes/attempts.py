"""
Attempts API routes - teacher-facing listing and detail of quiz attempts.

Provides endpoints for:
- Listing attempts with filters and pagination
- Viewing an attempt with its question records

Non-admins only see attempts from classes they are linked to.
"""

import time
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from timestables.database import get_db
from timestables.errors import NotFound
from timestables.logging_config import get_logger, log_with_context
from timestables.models.attempt import Attempt
from timestables.models.question_record import QuestionRecord
from timestables.models.student import Student
from timestables.sessions import (
    TeacherSession, current_teacher, ensure_class_access, linked_class_ids
)
from timestables.timeutil import iso

router = APIRouter()
logger = get_logger("http")


def serialize_question(record: QuestionRecord, reveal: bool = True) -> dict:
    """
    Serialize a QuestionRecord.

    With reveal=False (a pending question shown to a pupil) the correct
    answer and grading fields are left out.
    """
    data = {
        "id": str(record.id),
        "q_index": record.q_index,
        "a": record.a,
        "b": record.b,
        "table_num": record.table_num,
        "served_at": iso(record.served_at),
    }
    if reveal:
        data.update({
            "correct_answer": record.correct_answer,
            "given_answer": record.given_answer,
            "is_correct": bool(record.is_correct),
            "timed_out": bool(record.timed_out),
            "response_time_ms": record.response_time_ms,
            "answered_at": iso(record.answered_at),
        })
    return data


def serialize_attempt(attempt: Attempt) -> dict:
    """Serialize an Attempt ORM object to a dict for API response."""
    return {
        "id": str(attempt.id),
        "student_id": str(attempt.student_id),
        "class_id": attempt.class_id,
        "class_label": attempt.class_label,
        "started_at": iso(attempt.started_at),
        "finished_at": iso(attempt.finished_at),
        "score": attempt.score,
        "max_score": attempt.max_score,
        "percent": attempt.percent,
        "avg_response_time_ms": attempt.avg_response_time_ms,
        "seconds_per_question": attempt.seconds_per_question,
        "completed": bool(attempt.completed),
        "created_at": iso(attempt.created_at),
    }


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


@router.get("/api/attempts")
def list_attempts(
    class_id: Optional[str] = Query(None, description="Filter by class ID"),
    student_id: Optional[str] = Query(None, description="Filter by student ID"),
    completed: Optional[bool] = Query(None, description="Filter by completion"),
    date_from: Optional[str] = Query(None, description="Filter by start date"),
    date_to: Optional[str] = Query(None, description="Filter by end date"),
    search: Optional[str] = Query(None, description="Search pupil name/username"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(20, ge=1, le=100, description="Results per page"),
    session: TeacherSession = Depends(current_teacher),
    db: Session = Depends(get_db)
):
    """List attempts with filtering, search, and pagination."""
    start_time = time.time()

    query = db.query(Attempt).options(joinedload(Attempt.student))

    if class_id:
        ensure_class_access(db, session, class_id)
        query = query.filter(Attempt.class_id == class_id)
    elif not session.is_admin:
        query = query.filter(Attempt.class_id.in_(linked_class_ids(db, session)))

    if student_id:
        query = query.filter(Attempt.student_id == student_id)
    if completed is not None:
        query = query.filter(Attempt.completed == completed)
    from_date = _parse_date(date_from)
    if from_date:
        query = query.filter(Attempt.started_at >= from_date)
    to_date = _parse_date(date_to)
    if to_date:
        query = query.filter(Attempt.started_at <= to_date)
    if search:
        pattern = "%{}%".format(search)
        query = query.join(Student).filter(
            (Student.first_name.ilike(pattern)) |
            (Student.last_name.ilike(pattern)) |
            (Student.username.ilike(pattern))
        )

    total_count = query.count()

    offset = (page - 1) * per_page
    attempts = query.order_by(Attempt.started_at.desc()).offset(offset).limit(per_page).all()

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Listed {} attempts (page {}, total {})".format(len(attempts), page, total_count),
        context={"teacher_id": session.teacher_id},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "ok": True,
        "data": [
            {**serialize_attempt(a),
             "student_name": a.student.full_name if a.student else None}
            for a in attempts
        ],
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total_count,
            "total_pages": (total_count + per_page - 1) // per_page
        }
    }


@router.get("/api/attempts/{attempt_id}")
def get_attempt(attempt_id: str,
                session: TeacherSession = Depends(current_teacher),
                db: Session = Depends(get_db)):
    """Get an attempt with every question record, in question order."""
    attempt = db.query(Attempt).options(
        joinedload(Attempt.student),
        joinedload(Attempt.question_records)
    ).filter(Attempt.id == attempt_id).first()

    if not attempt:
        raise NotFound("Attempt not found")

    ensure_class_access(db, session, attempt.class_id)

    result = serialize_attempt(attempt)
    result["student"] = {
        "id": str(attempt.student.id),
        "full_name": attempt.student.full_name,
        "username": attempt.student.username,
    } if attempt.student else None
    result["questions"] = [serialize_question(q) for q in attempt.question_records]
    return {"ok": True, "attempt": result}
