"""
Pupil API routes - login, session and quiz settings.

Pupils log in with their username and either their 4-digit PIN or a
temporary password issued by an admin. A successful login sets the
bmtt_student cookie.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from timestables.config import STUDENT_COOKIE
from timestables.database import get_db
from timestables.errors import AuthenticationMissing, ValidationFailed, NotFound
from timestables.logging_config import get_logger, log_with_context
from timestables.models.school_class import SchoolClass
from timestables.models.student import Student
from timestables.services.credentials import verify_password
from timestables.sessions import (
    StudentSession, current_student, optional_student, set_student_cookie, clear_cookie
)

router = APIRouter()
logger = get_logger("auth")


class StudentLoginRequest(BaseModel):
    username: str
    pin: Optional[str] = None
    password: Optional[str] = None


def serialize_pupil(student: Student) -> dict:
    return {
        "id": str(student.id),
        "username": student.username,
        "first_name": student.first_name,
        "last_name": student.last_name,
        "full_name": student.full_name,
        "class_id": student.class_id,
        "class_label": student.class_label,
    }


def _check_secret(db: Session, student: Student, secret: str) -> bool:
    """Try the PIN first, then a temporary password; upgrade legacy hashes."""
    for column in ("pin_hash", "password_hash"):
        ok, new_hash = verify_password(secret, getattr(student, column))
        if ok:
            if new_hash:
                setattr(student, column, new_hash)
                db.commit()
                log_with_context(logger, "INFO", "Re-hashed legacy pupil credential",
                    context={"student_id": str(student.id)}, extra_data={"column": column})
            return True
    return False


@router.post("/api/student/login")
def student_login(request: StudentLoginRequest, response: Response, db: Session = Depends(get_db)):
    """Verify username + PIN (or temporary password) and set the pupil cookie."""
    username = request.username.strip().lower()
    secret = (request.pin or request.password or "").strip()
    if not username or not secret:
        raise ValidationFailed("Missing username or pin")

    student = db.query(Student).filter(Student.username == username).first()
    if not student or not student.active or not _check_secret(db, student, secret):
        log_with_context(logger, "WARNING", "Pupil login failed",
            extra_data={"username": username})
        raise AuthenticationMissing("Invalid login")

    set_student_cookie(response, student)
    log_with_context(logger, "INFO", "Pupil logged in",
        context={"student_id": str(student.id)})
    return {"ok": True, "pupil": serialize_pupil(student)}


@router.post("/api/student/logout")
def student_logout(response: Response):
    clear_cookie(response, STUDENT_COOKIE)
    return {"ok": True}


@router.get("/api/student/me")
def student_me(session: Optional[StudentSession] = Depends(optional_student),
               db: Session = Depends(get_db)):
    """Who is logged in; signedIn is false rather than an error when nobody is."""
    if session is None:
        return {"ok": True, "signedIn": False}
    student = db.get(Student, session.student_id)
    if student is None or not student.active:
        return {"ok": True, "signedIn": False}
    return {"ok": True, "signedIn": True, "student": serialize_pupil(student)}


@router.get("/api/student/settings")
def student_settings(session: StudentSession = Depends(current_student),
                     db: Session = Depends(get_db)):
    """Quiz settings of the logged-in pupil's class."""
    student = db.get(Student, session.student_id)
    if student is None:
        raise NotFound("Pupil not found")
    klass = db.get(SchoolClass, student.class_id) if student.class_id else None
    if klass is None:
        raise NotFound("Class not found")
    return {
        "ok": True,
        "class_label": klass.class_label,
        "year_group": klass.year_group,
        "settings": klass.settings_dict(),
    }
