"""
Session cookies and permission checks.

Both cookies hold a signed HS256 token whose claims are the session:

    bmtt_teacher: {"teacher_id", "role", "email", "full_name"}
    bmtt_student: {"student_id", "class_id", "class_label", "username", "role": "student"}

resolve_session() is the one place a cookie value is turned into a
session. The FastAPI dependencies below build on it:

    current_teacher  -> 401 when there is no valid teacher cookie or the
                        teacher row is gone; role is read from the row
    require_admin    -> 403 unless role == "admin"
    current_student  -> 401 when there is no valid pupil cookie

ensure_class_access / ensure_student_access implement the class linkage
rule: a non-admin may read a class (or a pupil in it) only when
teacher_classes has a row for that teacher and class.
"""

from dataclasses import dataclass
from typing import List, Optional

from fastapi import Cookie, Depends, Response
from jose import jwt, JWTError
from sqlalchemy.orm import Session

from timestables.config import (
    SESSION_SECRET, SESSION_ALGORITHM, COOKIE_SECURE,
    TEACHER_COOKIE, STUDENT_COOKIE, TEACHER_COOKIE_MAX_AGE, STUDENT_COOKIE_MAX_AGE
)
from timestables.database import get_db
from timestables.errors import AuthenticationMissing, AuthorizationDenied
from timestables.logging_config import get_logger, log_with_context
from timestables.models.school_class import SchoolClass
from timestables.models.student import Student
from timestables.models.teacher import Teacher
from timestables.models.teacher_class import TeacherClass

logger = get_logger("auth")


@dataclass
class TeacherSession:
    teacher_id: str
    role: str = "teacher"
    email: Optional[str] = None
    full_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class StudentSession:
    student_id: str
    class_id: Optional[str] = None
    class_label: Optional[str] = None
    username: Optional[str] = None


def encode_session(claims: dict) -> str:
    return jwt.encode(claims, SESSION_SECRET, algorithm=SESSION_ALGORITHM)


def resolve_session(token: Optional[str]) -> Optional[dict]:
    """Verify a cookie value and return its claims, or None."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, SESSION_SECRET, algorithms=[SESSION_ALGORITHM])
    except JWTError as e:
        log_with_context(logger, "WARNING", "Rejected session cookie",
            extra_data={"error": str(e)})
        return None
    return claims if isinstance(claims, dict) else None


def teacher_session_from(token: Optional[str]) -> Optional[TeacherSession]:
    claims = resolve_session(token)
    if not claims:
        return None
    teacher_id = claims.get("teacher_id") or claims.get("teacherId")
    if not teacher_id:
        return None
    return TeacherSession(
        teacher_id=str(teacher_id),
        role=claims.get("role") or "teacher",
        email=claims.get("email"),
        full_name=claims.get("full_name")
    )


def student_session_from(token: Optional[str]) -> Optional[StudentSession]:
    claims = resolve_session(token)
    if not claims:
        return None
    student_id = claims.get("student_id") or claims.get("studentId")
    if not student_id:
        return None
    return StudentSession(
        student_id=str(student_id),
        class_id=claims.get("class_id"),
        class_label=claims.get("class_label"),
        username=claims.get("username")
    )


def _set_cookie(response: Response, name: str, value: str, max_age: int):
    response.set_cookie(
        name, value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax"
    )


def set_teacher_cookie(response: Response, teacher) -> None:
    token = encode_session({
        "teacher_id": teacher.id,
        "role": teacher.role,
        "email": teacher.email,
        "full_name": teacher.full_name,
    })
    _set_cookie(response, TEACHER_COOKIE, token, TEACHER_COOKIE_MAX_AGE)


def set_student_cookie(response: Response, student) -> None:
    token = encode_session({
        "student_id": student.id,
        "class_id": student.class_id,
        "class_label": student.class_label,
        "username": student.username,
        "role": "student",
    })
    _set_cookie(response, STUDENT_COOKIE, token, STUDENT_COOKIE_MAX_AGE)


def clear_cookie(response: Response, name: str) -> None:
    response.delete_cookie(name, path="/")


# ── FastAPI dependencies ─────────────────────────────────────

def _live_teacher_session(db: Session, token: Optional[str]) -> Optional[TeacherSession]:
    """
    Resolve the cookie, then re-read the teachers row so that role changes
    and deletions take effect on sessions that are already issued.
    """
    session = teacher_session_from(token)
    if session is None:
        return None
    teacher = db.get(Teacher, session.teacher_id)
    if teacher is None:
        log_with_context(logger, "WARNING", "Session for deleted teacher",
            context={"teacher_id": session.teacher_id})
        return None
    return TeacherSession(
        teacher_id=str(teacher.id),
        role=teacher.role,
        email=teacher.email,
        full_name=teacher.full_name
    )


def current_teacher(bmtt_teacher: Optional[str] = Cookie(None),
                    db: Session = Depends(get_db)) -> TeacherSession:
    session = _live_teacher_session(db, bmtt_teacher)
    if session is None:
        raise AuthenticationMissing()
    return session


def optional_teacher(bmtt_teacher: Optional[str] = Cookie(None),
                     db: Session = Depends(get_db)) -> Optional[TeacherSession]:
    return _live_teacher_session(db, bmtt_teacher)


def require_admin(session: TeacherSession = Depends(current_teacher)) -> TeacherSession:
    if not session.is_admin:
        raise AuthorizationDenied("Admins only")
    return session


def current_student(bmtt_student: Optional[str] = Cookie(None)) -> StudentSession:
    session = student_session_from(bmtt_student)
    if session is None:
        raise AuthenticationMissing()
    return session


def optional_student(bmtt_student: Optional[str] = Cookie(None)) -> Optional[StudentSession]:
    return student_session_from(bmtt_student)


# ── Class linkage checks ─────────────────────────────────────

def linked_class_ids(db: Session, session: TeacherSession) -> List[str]:
    rows = db.query(TeacherClass.class_id).filter(
        TeacherClass.teacher_id == session.teacher_id
    ).all()
    return [r.class_id for r in rows]


def ensure_class_access(db: Session, session: TeacherSession, class_id: Optional[str]) -> None:
    """Raise 403 unless the caller is an admin or linked to the class."""
    if session.is_admin:
        return
    link = None
    if class_id:
        link = db.query(TeacherClass).filter(
            TeacherClass.teacher_id == session.teacher_id,
            TeacherClass.class_id == class_id
        ).first()
    if link is None:
        log_with_context(logger, "WARNING", "Class access denied",
            context={"teacher_id": session.teacher_id, "class_id": class_id})
        raise AuthorizationDenied()


def ensure_student_access(db: Session, session: TeacherSession, student: Student) -> None:
    class_id = student.class_id
    if not class_id and student.class_label:
        klass = db.query(SchoolClass).filter(SchoolClass.class_label == student.class_label).first()
        class_id = klass.id if klass else None
    ensure_class_access(db, session, class_id)


def ensure_year_access(db: Session, session: TeacherSession, year: int) -> None:
    """Non-admins may read a year group only if one of their classes is in it."""
    if session.is_admin:
        return
    class_ids = linked_class_ids(db, session)
    if class_ids:
        years = {
            c.year_group for c in
            db.query(SchoolClass.year_group).filter(SchoolClass.id.in_(class_ids)).all()
        }
        if year in years:
            return
    raise AuthorizationDenied()
