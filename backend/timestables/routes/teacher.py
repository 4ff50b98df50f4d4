"""
Teacher API routes - login, session, rosters and class quiz settings.

Provides endpoints for:
- Password login / logout and the current session
- Setting a password from an invite link
- Listing visible pupils and year groups
- Reading and updating the quiz settings of a class
"""

import math
from typing import Any, Optional
from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from timestables.config import (
    TEACHER_COOKIE, ALLOWED_SECONDS_PER_QUESTION, DEFAULT_SECONDS_PER_QUESTION,
    DEFAULT_QUESTION_COUNT, MIN_QUESTION_COUNT, MAX_QUESTION_COUNT
)
from timestables.database import get_db
from timestables.errors import AuthenticationMissing, AuthorizationDenied, NotFound, ValidationFailed
from timestables.logging_config import get_logger, log_with_context
from timestables.models.school_class import SchoolClass
from timestables.models.teacher import Teacher
from timestables.models.teacher_invite import TeacherInvite
from timestables.services import roster
from timestables.services.credentials import hash_password, hash_token, verify_password
from timestables.sessions import (
    TeacherSession, current_teacher, optional_teacher, set_teacher_cookie, clear_cookie,
    ensure_class_access
)
from timestables.timeutil import utc_now

router = APIRouter()
logger = get_logger("auth")

MIN_TOKEN_LENGTH = 20
MIN_PASSWORD_LENGTH = 6


# ── Pydantic schemas ─────────────────────────────────────────

class TeacherLoginRequest(BaseModel):
    email: str
    password: str


class SetPasswordRequest(BaseModel):
    token: str = ""
    password: str = ""


class ClassSettingsRequest(BaseModel):
    class_label: Optional[str] = None
    question_count: Any = None
    seconds_per_question: Any = None


def serialize_teacher(teacher: Teacher) -> dict:
    return {
        "id": str(teacher.id),
        "email": teacher.email,
        "full_name": teacher.full_name,
        "role": teacher.role,
    }


def clamp_int(value, low: int, high: int, fallback: int) -> int:
    """Truncate to an int within [low, high]; non-numbers give the fallback."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(n):
        return fallback
    return max(low, min(high, int(n)))


def normalise_seconds(value) -> int:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SECONDS_PER_QUESTION
    return int(n) if n in ALLOWED_SECONDS_PER_QUESTION else DEFAULT_SECONDS_PER_QUESTION


@router.post("/api/teacher/login")
def teacher_login(request: TeacherLoginRequest, response: Response, db: Session = Depends(get_db)):
    """Verify email + password and set the teacher cookie."""
    email = request.email.strip().lower()
    if not email or not request.password:
        raise ValidationFailed("Missing email or password")

    teacher = db.query(Teacher).filter(Teacher.email == email).first()
    ok, new_hash = verify_password(request.password, teacher.password_hash if teacher else None)
    if not ok:
        log_with_context(logger, "WARNING", "Teacher login failed",
            extra_data={"email": email})
        raise AuthenticationMissing("Invalid login")

    if new_hash:
        teacher.password_hash = new_hash
        db.commit()
        log_with_context(logger, "INFO", "Re-hashed legacy teacher password",
            context={"teacher_id": str(teacher.id)})

    set_teacher_cookie(response, teacher)
    log_with_context(logger, "INFO", "Teacher logged in",
        context={"teacher_id": str(teacher.id)}, extra_data={"role": teacher.role})
    return {"ok": True, "teacher": serialize_teacher(teacher)}


@router.post("/api/teacher/logout")
def teacher_logout(response: Response):
    clear_cookie(response, TEACHER_COOKIE)
    return {"ok": True}


@router.get("/api/teacher/me")
def teacher_me(session: Optional[TeacherSession] = Depends(optional_teacher),
               db: Session = Depends(get_db)):
    if session is None:
        return {"ok": True, "signedIn": False}
    teacher = db.get(Teacher, session.teacher_id)
    if teacher is None:
        return {"ok": True, "signedIn": False}
    return {
        "ok": True,
        "signedIn": True,
        "teacher": serialize_teacher(teacher),
        "classes": [roster.serialize_class(c) for c in roster.visible_classes(db, session)],
    }


@router.post("/api/teacher/set_password")
def set_password(request: SetPasswordRequest, db: Session = Depends(get_db)):
    """
    Set a teacher's password from a one-time invite token.

    The token must exist, be unused and unexpired. Setting the password
    and marking the token used happen in one commit.
    """
    token = request.token.strip()
    if len(token) < MIN_TOKEN_LENGTH:
        raise ValidationFailed("Missing/invalid token")
    if len(request.password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed("Password too short (min 6 characters)")

    invite = db.query(TeacherInvite).filter(TeacherInvite.token_hash == hash_token(token)).first()
    if invite is None:
        raise ValidationFailed("Invalid or expired token")
    if invite.used_at is not None:
        raise ValidationFailed("Token already used")
    now = utc_now()
    if invite.expires_at < now:
        raise ValidationFailed("Token expired")

    teacher = db.get(Teacher, invite.teacher_id)
    if teacher is None:
        raise NotFound("Teacher not found")

    teacher.password_hash = hash_password(request.password)
    invite.used_at = now
    db.commit()

    log_with_context(logger, "INFO", "Teacher password set from invite",
        context={"teacher_id": str(teacher.id), "invite_id": str(invite.id)})
    return {"ok": True, "message": "Password set"}


@router.get("/api/teacher/students")
def teacher_students(class_label: Optional[str] = Query(None),
                     session: TeacherSession = Depends(current_teacher),
                     db: Session = Depends(get_db)):
    """Pupils in the caller's visible classes, optionally one class only."""
    if class_label:
        klass = roster.find_class(db, class_label=class_label)
        if klass is None:
            raise NotFound("Class not found")
        ensure_class_access(db, session, klass.id)
        class_ids = [klass.id]
    else:
        class_ids = [c.id for c in roster.visible_classes(db, session)]

    students = roster.pupils_in_classes(db, class_ids)
    return {"ok": True, "students": [roster.pupil_dict(s) for s in students]}


@router.get("/api/teacher/year-groups")
def teacher_year_groups(session: TeacherSession = Depends(current_teacher),
                        db: Session = Depends(get_db)):
    years = sorted({
        c.year_group for c in roster.visible_classes(db, session)
        if c.year_group is not None
    })
    return {"ok": True, "years": years}


def _settings_class(db: Session, session: TeacherSession, class_label: Optional[str]) -> SchoolClass:
    """
    Admins must name the class. Teachers may name one of their classes or
    default to their first linked class.
    """
    if session.is_admin and not class_label:
        raise ValidationFailed("Missing class_label")

    if class_label:
        klass = roster.find_class(db, class_label=class_label)
        if klass is None:
            raise NotFound("Class not found")
        ensure_class_access(db, session, klass.id)
        return klass

    classes = roster.visible_classes(db, session)
    if not classes:
        raise AuthorizationDenied("No class assigned to this teacher")
    return classes[0]


@router.get("/api/teacher/class_settings")
def get_class_settings(class_label: Optional[str] = Query(None),
                       session: TeacherSession = Depends(current_teacher),
                       db: Session = Depends(get_db)):
    klass = _settings_class(db, session, class_label)
    return {"ok": True, "class_label": klass.class_label, "settings": klass.settings_dict()}


@router.post("/api/teacher/class_settings")
def update_class_settings(request: ClassSettingsRequest,
                          session: TeacherSession = Depends(current_teacher),
                          db: Session = Depends(get_db)):
    """Question count is clamped to 10..60; seconds must be 3, 6, 9 or 12 (else 6)."""
    klass = _settings_class(db, session, request.class_label)

    klass.question_count = clamp_int(request.question_count, MIN_QUESTION_COUNT,
                                     MAX_QUESTION_COUNT, DEFAULT_QUESTION_COUNT)
    klass.seconds_per_question = normalise_seconds(request.seconds_per_question)
    db.commit()
    db.refresh(klass)

    log_with_context(logger, "INFO", "Class settings updated",
        context={"teacher_id": session.teacher_id, "class_id": str(klass.id)},
        extra_data={"question_count": klass.question_count,
                    "seconds_per_question": klass.seconds_per_question})
    return {
        "ok": True,
        "message": "Saved",
        "class_label": klass.class_label,
        "settings": klass.settings_dict(),
    }
