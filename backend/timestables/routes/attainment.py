"""
Attainment API routes - dashboards over attempts and question records.

Provides endpoints for:
- Monthly trends for a class or a year group
- A pupil's attempt-by-attempt series
- The six-month class overview grid
- Top improvers and concerns for a year group
- Per-times-table heatmaps and the per-pupil breakdown of one table

Routes load rows and check permissions; the arithmetic lives in
services/attainment.py.
"""

import time
from datetime import timedelta
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from timestables.config import DEFAULT_HEATMAP_DAYS, DEFAULT_WINDOW_DAYS, MIN_TABLE, MAX_TABLE
from timestables.database import get_db
from timestables.errors import AuthorizationDenied, NotFound, ValidationFailed
from timestables.logging_config import get_logger, log_with_context
from timestables.models.attempt import Attempt
from timestables.models.question_record import QuestionRecord
from timestables.models.student import Student
from timestables.services import attainment, roster
from timestables.sessions import (
    TeacherSession, current_teacher, ensure_class_access, ensure_student_access,
    ensure_year_access
)
from timestables.timeutil import utc_now

router = APIRouter()
logger = get_logger("attainment")

SCOPES = ("class", "year", "school", "student")
DEFAULT_SERIES_LIMIT = 60
MAX_SERIES_LIMIT = 200
MAX_HEATMAP_DAYS = 365


def _attempt_rows(db: Session, student_ids: List[str], since=None) -> List[dict]:
    if not student_ids:
        return []
    query = db.query(Attempt).filter(
        Attempt.student_id.in_(student_ids),
        Attempt.completed.is_(True)
    )
    if since is not None:
        query = query.filter(Attempt.created_at >= since)
    return [a.as_row() for a in query.order_by(Attempt.created_at).all()]


def _record_rows(db: Session, student_ids: Optional[List[str]], since) -> List[dict]:
    """Answered question records since a date; None means every pupil."""
    query = db.query(QuestionRecord).filter(
        QuestionRecord.created_at >= since,
        QuestionRecord.answered_at.isnot(None)
    )
    if student_ids is not None:
        if not student_ids:
            return []
        query = query.filter(QuestionRecord.student_id.in_(student_ids))
    return [r.as_row() for r in query.all()]


def _load_class(db: Session, session: TeacherSession, class_id: Optional[str]):
    if not class_id:
        raise ValidationFailed("Missing class_id")
    klass = roster.find_class(db, class_id=class_id)
    if klass is None:
        ensure_class_access(db, session, class_id)
        raise NotFound("Class not found")
    ensure_class_access(db, session, klass.id)
    return klass


def _check_year(year: Optional[int]) -> int:
    if not year:
        raise ValidationFailed("Missing/invalid year")
    return year


@router.get("/api/teacher/attainment/class")
def class_attainment(class_id: Optional[str] = Query(None),
                     session: TeacherSession = Depends(current_teacher),
                     db: Session = Depends(get_db)):
    """Monthly mean percent for one class."""
    klass = _load_class(db, session, class_id)
    students = roster.pupils_in_classes(db, [klass.id])
    rows = _attempt_rows(db, [s.id for s in students])
    return {
        "ok": True,
        "class": roster.serialize_class(klass),
        "series": attainment.monthly_series(rows),
    }


@router.get("/api/teacher/attainment/year")
def year_attainment(year: Optional[int] = Query(None),
                    session: TeacherSession = Depends(current_teacher),
                    db: Session = Depends(get_db)):
    """Monthly mean percent for the year group and for each of its classes."""
    year = _check_year(year)
    ensure_year_access(db, session, year)

    classes = roster.classes_in_year(db, year)
    students = roster.pupils_in_classes(db, [c.id for c in classes])
    rows = _attempt_rows(db, [s.id for s in students])
    return {
        "ok": True,
        "year": year,
        "series": attainment.monthly_series(rows),
        "classes": attainment.class_year_series(
            [roster.serialize_class(c) for c in classes],
            [roster.pupil_dict(s) for s in students],
            rows
        ),
    }


@router.get("/api/teacher/attainment/student")
def student_attainment(student_id: Optional[str] = Query(None),
                       limit: int = Query(DEFAULT_SERIES_LIMIT, ge=1),
                       session: TeacherSession = Depends(current_teacher),
                       db: Session = Depends(get_db)):
    """A pupil's attempts over time, oldest first."""
    if not student_id:
        raise ValidationFailed("Missing student_id")
    student = db.get(Student, student_id)
    if student is None:
        raise NotFound("Student not found")
    ensure_student_access(db, session, student)

    attempts = db.query(Attempt).filter(
        Attempt.student_id == student.id,
        Attempt.completed.is_(True)
    ).order_by(Attempt.created_at).limit(min(limit, MAX_SERIES_LIMIT)).all()

    return {
        "ok": True,
        "student": roster.pupil_dict(student),
        "series": attainment.pupil_series([a.as_row() for a in attempts]),
    }


@router.get("/api/teacher/attainment/class-overview")
def class_overview(class_id: Optional[str] = Query(None),
                   session: TeacherSession = Depends(current_teacher),
                   db: Session = Depends(get_db)):
    """Pupils x last six months grid for one class."""
    klass = _load_class(db, session, class_id)
    students = roster.pupils_in_classes(db, [klass.id])
    rows = _attempt_rows(db, [s.id for s in students])
    grid = attainment.class_overview([roster.pupil_dict(s) for s in students], rows, utc_now())
    return {"ok": True, "class": roster.serialize_class(klass), **grid}


@router.get("/api/teacher/attainment/insights")
def insights(year: Optional[int] = Query(None),
             window: Optional[str] = Query(None),
             session: TeacherSession = Depends(current_teacher),
             db: Session = Depends(get_db)):
    """Top improvers and concerns across a year group."""
    start_time = time.time()
    year = _check_year(year)
    ensure_year_access(db, session, year)

    window_days = attainment.clamp_window(window if window else DEFAULT_WINDOW_DAYS)
    now = utc_now()
    classes = roster.classes_in_year(db, year)
    students = roster.pupils_in_classes(db, [c.id for c in classes])
    rows = _attempt_rows(db, [s.id for s in students],
                         since=now - timedelta(days=window_days * 2))

    result = attainment.improvers_and_concerns(
        [roster.pupil_dict(s) for s in students], rows, window_days, now
    )

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Insights for year {}: {} improvers, {} concerns".format(
            year, len(result["topImprovers"]), len(result["concerns"])),
        context={"teacher_id": session.teacher_id},
        extra_data={"window_days": window_days, "attempts": len(rows),
                    "duration_ms": round(duration_ms, 2)})
    return {"ok": True, "year": year, **result}


def _scope_students(db: Session, session: TeacherSession, scope: str,
                    class_label: Optional[str], year: Optional[int],
                    student_id: Optional[str]) -> Optional[List[Student]]:
    """
    Pupils covered by a heatmap scope, after permission checks.

    Returns None for the school scope (every pupil, admins only).
    """
    if scope not in SCOPES:
        raise ValidationFailed("Invalid scope")

    if scope == "class":
        if not class_label:
            raise ValidationFailed("Missing class_label")
        klass = roster.find_class(db, class_label=class_label)
        if klass is None:
            raise NotFound("Class not found")
        ensure_class_access(db, session, klass.id)
        return roster.pupils_in_classes(db, [klass.id])

    if scope == "year":
        year = _check_year(year)
        ensure_year_access(db, session, year)
        return roster.pupils_in_classes(db, [c.id for c in roster.classes_in_year(db, year)])

    if scope == "student":
        if not student_id:
            raise ValidationFailed("Missing student_id")
        student = db.get(Student, student_id)
        if student is None:
            raise NotFound("Student not found")
        ensure_student_access(db, session, student)
        return [student]

    if not session.is_admin:
        raise AuthorizationDenied("Admins only")
    return None


def _since(days: int):
    days = max(1, min(MAX_HEATMAP_DAYS, days))
    return days, utc_now() - timedelta(days=days)


@router.get("/api/teacher/heatmap")
def heatmap(scope: str = Query("class"),
            class_label: Optional[str] = Query(None),
            year: Optional[int] = Query(None),
            student_id: Optional[str] = Query(None),
            days: int = Query(DEFAULT_HEATMAP_DAYS),
            session: TeacherSession = Depends(current_teacher),
            db: Session = Depends(get_db)):
    """Accuracy per times table over the last `days` days."""
    students = _scope_students(db, session, scope, class_label, year, student_id)
    days, since = _since(days)

    if students is None:
        students = db.query(Student).all()
        records = _record_rows(db, None, since)
    else:
        records = _record_rows(db, [s.id for s in students], since)

    return {
        "ok": True,
        "scope": scope,
        "class_label": class_label,
        "year": year,
        "student_id": student_id,
        "days": days,
        "students": [roster.pupil_dict(s) for s in students],
        "tableHeat": attainment.table_heatmap(records),
    }


@router.get("/api/teacher/table_breakdown")
def table_breakdown(table_num: Optional[int] = Query(None),
                    scope: str = Query("class"),
                    class_label: Optional[str] = Query(None),
                    year: Optional[int] = Query(None),
                    student_id: Optional[str] = Query(None),
                    days: int = Query(DEFAULT_HEATMAP_DAYS),
                    session: TeacherSession = Depends(current_teacher),
                    db: Session = Depends(get_db)):
    """Per-pupil accuracy on one times table within a heatmap scope."""
    if table_num is None or not MIN_TABLE <= table_num <= MAX_TABLE:
        raise ValidationFailed("Missing/invalid table_num (1..19)")

    students = _scope_students(db, session, scope, class_label, year, student_id)
    days, since = _since(days)

    if students is None:
        students = db.query(Student).all()
        records = _record_rows(db, None, since)
    else:
        records = _record_rows(db, [s.id for s in students], since)

    result = attainment.table_breakdown([roster.pupil_dict(s) for s in students],
                                        records, table_num)
    return {
        "ok": True,
        "scope": scope,
        "class_label": class_label,
        "year": year,
        "student_id": student_id,
        "days": days,
        "table_num": table_num,
        **result,
    }
