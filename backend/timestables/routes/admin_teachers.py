"""
Admin teacher routes - staff accounts and their class assignments.

Provides endpoints for:
- Listing teachers with their classes
- Creating a teacher (optionally assigned to a class)
- Changing role or class assignment
- Resetting a password or issuing a set-password invite link
- Deleting a teacher

All endpoints require an admin session.
"""

from datetime import timedelta
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session, selectinload

from timestables.config import APP_URL, INVITE_TTL_HOURS
from timestables.database import get_db
from timestables.errors import Conflict, NotFound, ValidationFailed
from timestables.logging_config import get_logger, log_with_context
from timestables.models.teacher import ROLES, Teacher
from timestables.models.teacher_class import TeacherClass
from timestables.models.teacher_invite import TeacherInvite
from timestables.services import roster
from timestables.services.credentials import (
    generate_invite_token, generate_temp_password, hash_password, hash_token
)
from timestables.sessions import TeacherSession, require_admin
from timestables.timeutil import iso, utc_now

router = APIRouter()
logger = get_logger("auth")


# ── Pydantic schemas ─────────────────────────────────────────

class CreateTeacherRequest(BaseModel):
    full_name: str = ""
    email: str = ""
    role: str = "teacher"
    class_label: Optional[str] = None


class TeacherRequest(BaseModel):
    teacher_id: str = ""


class SetRoleRequest(BaseModel):
    teacher_id: str = ""
    role: str = ""


class SetClassRequest(BaseModel):
    teacher_id: str = ""
    class_label: Optional[str] = None


def serialize_admin_teacher(teacher: Teacher) -> dict:
    classes = roster.sort_classes(link.school_class for link in teacher.class_links)
    return {
        "id": str(teacher.id),
        "email": teacher.email,
        "full_name": teacher.full_name,
        "role": teacher.role,
        "has_password": teacher.password_hash is not None,
        "classes": [roster.serialize_class(c) for c in classes],
        "created_at": iso(teacher.created_at),
    }


def _load_teacher(db: Session, teacher_id: str) -> Teacher:
    if not teacher_id:
        raise ValidationFailed("Missing teacher_id")
    teacher = db.get(Teacher, teacher_id)
    if teacher is None:
        raise NotFound("Teacher not found")
    return teacher


def _check_role(role: str) -> str:
    role = (role or "").strip().lower()
    if role not in ROLES:
        raise ValidationFailed("Invalid role")
    return role


def _assign_class(db: Session, teacher: Teacher, class_label: Optional[str]):
    """Replace the teacher's class links with a single class, or none."""
    klass = None
    if class_label and class_label.strip():
        klass = roster.find_class(db, class_label=class_label)
        if klass is None:
            raise NotFound("Class not found: {}".format(class_label))

    db.query(TeacherClass).filter(TeacherClass.teacher_id == teacher.id).delete()
    if klass is not None:
        db.add(TeacherClass(teacher_id=teacher.id, class_id=klass.id))
    return klass


@router.get("/api/admin/teachers/list")
def list_teachers(session: TeacherSession = Depends(require_admin),
                  db: Session = Depends(get_db)):
    teachers = db.query(Teacher).options(
        selectinload(Teacher.class_links).selectinload(TeacherClass.school_class)
    ).order_by(Teacher.full_name, Teacher.email).all()
    return {"ok": True, "teachers": [serialize_admin_teacher(t) for t in teachers]}


@router.post("/api/admin/teachers/create")
def create_teacher(request: CreateTeacherRequest,
                   session: TeacherSession = Depends(require_admin),
                   db: Session = Depends(get_db)):
    """Create a teacher with a temporary password, returned once."""
    full_name = request.full_name.strip()
    email = request.email.strip().lower()
    if not full_name or not email:
        raise ValidationFailed("Missing full_name or email")
    role = _check_role(request.role)

    if db.query(Teacher.id).filter(Teacher.email == email).first() is not None:
        raise Conflict("A teacher with that email already exists")

    temp_password = generate_temp_password()
    teacher = Teacher(
        email=email,
        full_name=full_name,
        role=role,
        password_hash=hash_password(temp_password)
    )
    db.add(teacher)
    db.flush()
    klass = _assign_class(db, teacher, request.class_label)
    db.commit()
    db.refresh(teacher)

    log_with_context(logger, "INFO", "Teacher created",
        context={"teacher_id": session.teacher_id, "new_teacher_id": str(teacher.id)},
        extra_data={"role": role, "class_label": klass.class_label if klass else None})
    return {
        "ok": True,
        "teacher": serialize_admin_teacher(teacher),
        "tempPassword": temp_password,
    }


@router.post("/api/admin/teachers/set_role")
def set_role(request: SetRoleRequest,
             session: TeacherSession = Depends(require_admin),
             db: Session = Depends(get_db)):
    teacher = _load_teacher(db, request.teacher_id)
    role = _check_role(request.role)
    teacher.role = role
    db.commit()

    log_with_context(logger, "INFO", "Teacher role changed",
        context={"teacher_id": session.teacher_id, "target_teacher_id": str(teacher.id)},
        extra_data={"role": role})
    return {"ok": True, "teacher_id": str(teacher.id), "role": role}


@router.post("/api/admin/teachers/set_class")
def set_class(request: SetClassRequest,
              session: TeacherSession = Depends(require_admin),
              db: Session = Depends(get_db)):
    """Assign a teacher to one class; a blank class_label unassigns them."""
    teacher = _load_teacher(db, request.teacher_id)
    klass = _assign_class(db, teacher, request.class_label)
    db.commit()

    log_with_context(logger, "INFO", "Teacher class assignment changed",
        context={"teacher_id": session.teacher_id, "target_teacher_id": str(teacher.id)},
        extra_data={"class_label": klass.class_label if klass else None})
    return {
        "ok": True,
        "teacher_id": str(teacher.id),
        "class_label": klass.class_label if klass else None,
    }


@router.post("/api/admin/teachers/reset_password")
def reset_password(request: TeacherRequest,
                   session: TeacherSession = Depends(require_admin),
                   db: Session = Depends(get_db)):
    teacher = _load_teacher(db, request.teacher_id)
    temp_password = generate_temp_password()
    teacher.password_hash = hash_password(temp_password)
    db.commit()

    log_with_context(logger, "INFO", "Teacher password reset",
        context={"teacher_id": session.teacher_id, "target_teacher_id": str(teacher.id)})
    return {"ok": True, "teacher_id": str(teacher.id), "tempPassword": temp_password}


@router.post("/api/admin/teachers/send_invite")
def send_invite(request: TeacherRequest,
                session: TeacherSession = Depends(require_admin),
                db: Session = Depends(get_db)):
    """
    Create a single-use set-password link valid for 24 hours.

    The link is returned to the admin to pass on; only the token's
    digest is stored.
    """
    teacher = _load_teacher(db, request.teacher_id)
    token = generate_invite_token()
    invite = TeacherInvite(
        teacher_id=teacher.id,
        token_hash=hash_token(token),
        expires_at=utc_now() + timedelta(hours=INVITE_TTL_HOURS)
    )
    db.add(invite)
    db.commit()

    link = "{}/teacher/set-password?token={}".format(APP_URL.rstrip("/"), token)
    log_with_context(logger, "INFO", "Teacher invite created",
        context={"teacher_id": session.teacher_id, "target_teacher_id": str(teacher.id),
                 "invite_id": str(invite.id)})
    return {
        "ok": True,
        "sent_to": teacher.email,
        "link": link,
        "expires_at": iso(invite.expires_at),
    }


@router.post("/api/admin/teachers/delete")
def delete_teacher(request: TeacherRequest,
                   session: TeacherSession = Depends(require_admin),
                   db: Session = Depends(get_db)):
    teacher = _load_teacher(db, request.teacher_id)
    if teacher.id == session.teacher_id:
        raise ValidationFailed("You cannot delete your own account")
    db.delete(teacher)
    db.commit()

    log_with_context(logger, "INFO", "Teacher deleted",
        context={"teacher_id": session.teacher_id, "target_teacher_id": request.teacher_id})
    return {"ok": True}
