"""
Admin pupil routes - creating, importing, listing and removing pupils.

Provides endpoints for:
- Creating one pupil (username + PIN generated and returned once)
- Bulk import from CSV text with headers class_label,first_name,last_name
- Listing pupils, optionally per class
- Deleting one pupil or every pupil in a class (attempts and question
  records go with them)
- Resetting a PIN or issuing a temporary password
- Renaming a pupil's username

All endpoints require an admin session.
"""

import csv
import io
import time
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from timestables.database import get_db
from timestables.errors import Conflict, NotFound, ValidationFailed
from timestables.logging_config import get_logger, log_with_context
from timestables.models.school_class import SchoolClass
from timestables.models.student import Student
from timestables.services import roster
from timestables.services.credentials import (
    clean_username, generate_pin, generate_temp_password, generate_username, hash_password
)
from timestables.sessions import TeacherSession, require_admin

router = APIRouter()
logger = get_logger("auth")

CSV_HEADERS = ("class_label", "first_name", "last_name")
MIN_USERNAME_LENGTH = 3


# ── Pydantic schemas ─────────────────────────────────────────

class CreatePupilRequest(BaseModel):
    first_name: str = ""
    last_name: str = ""
    class_id: Optional[str] = None
    class_label: Optional[str] = None


class BulkImportRequest(BaseModel):
    csvText: str = ""


class StudentRequest(BaseModel):
    student_id: str = ""


class DeleteClassRequest(BaseModel):
    class_label: str = ""


class ChangeUsernameRequest(BaseModel):
    student_id: str = ""
    username: str = ""


def serialize_admin_pupil(student: Student) -> dict:
    return {
        "id": str(student.id),
        "first_name": student.first_name,
        "last_name": student.last_name,
        "username": student.username,
        "class_id": student.class_id,
        "class_label": student.class_label,
        "active": bool(student.active),
        "has_temp_password": student.password_hash is not None,
        "created_at": student.created_at.isoformat() if student.created_at else None,
    }


def username_taken(db: Session, username: str) -> bool:
    return db.query(Student.id).filter(Student.username == username).first() is not None


def create_pupil(db: Session, klass: SchoolClass, first_name: str, last_name: str):
    """
    Insert a pupil with a fresh username, PIN and temporary password.

    Returns (student, pin, temp_password). The secrets are only ever
    available here; the database keeps their hashes.
    """
    username = generate_username(first_name, last_name, lambda u: username_taken(db, u))
    pin = generate_pin()
    temp_password = generate_temp_password()
    student = Student(
        first_name=first_name,
        last_name=last_name,
        username=username,
        pin_hash=hash_password(pin),
        password_hash=hash_password(temp_password),
        class_id=klass.id,
        class_label=klass.class_label,
        active=True
    )
    db.add(student)
    db.commit()
    db.refresh(student)
    return student, pin, temp_password


def _load_student(db: Session, student_id: str) -> Student:
    if not student_id:
        raise ValidationFailed("Missing student_id")
    student = db.get(Student, student_id)
    if student is None:
        raise NotFound("Student not found")
    return student


@router.post("/api/admin/pupils/create")
def create(request: CreatePupilRequest,
           session: TeacherSession = Depends(require_admin),
           db: Session = Depends(get_db)):
    first_name = request.first_name.strip()
    last_name = request.last_name.strip()
    if not request.class_id and not request.class_label:
        raise ValidationFailed("Missing class_label")
    if not first_name:
        raise ValidationFailed("Missing first_name")
    if not last_name:
        raise ValidationFailed("Missing last_name")

    klass = roster.find_class(db, class_id=request.class_id, class_label=request.class_label)
    if klass is None:
        raise ValidationFailed("Class not found")

    try:
        student, pin, temp_password = create_pupil(db, klass, first_name, last_name)
    except IntegrityError:
        db.rollback()
        raise Conflict("Username already taken, try again")

    log_with_context(logger, "INFO", "Pupil created",
        context={"teacher_id": session.teacher_id, "student_id": str(student.id)},
        extra_data={"class_label": klass.class_label, "username": student.username})
    return {
        "ok": True,
        "pupil": serialize_admin_pupil(student),
        "credentials": {"username": student.username, "pin": pin,
                        "tempPassword": temp_password},
    }


@router.post("/api/admin/pupils/bulk_import")
def bulk_import(request: BulkImportRequest,
                session: TeacherSession = Depends(require_admin),
                db: Session = Depends(get_db)):
    """
    Import pupils from CSV text.

    Rows with a blank field or an unknown class are skipped and reported
    with their row number (the header is row 1); the other rows are
    still imported. Blank lines are dropped before numbering.
    """
    start_time = time.time()
    lines = [line for line in request.csvText.splitlines() if line.strip()]
    reader = csv.reader(io.StringIO("\n".join(lines)))
    rows = list(reader)
    if not rows:
        raise ValidationFailed("Empty CSV")

    header_key = [h.strip().lower() for h in rows[0]]
    if not all(h in header_key for h in CSV_HEADERS):
        raise ValidationFailed("CSV must have headers: {}".format(",".join(CSV_HEADERS)))
    idx = {h: header_key.index(h) for h in CSV_HEADERS}

    created = []
    skipped = []
    class_cache = {}

    for line_no, row in enumerate(rows[1:], 2):
        values = {
            h: (row[idx[h]].strip() if idx[h] < len(row) else "")
            for h in CSV_HEADERS
        }
        if not all(values.values()):
            skipped.append({"row": line_no,
                            "reason": "Missing class_label / first_name / last_name",
                            "values": values})
            continue

        label = values["class_label"]
        if label not in class_cache:
            class_cache[label] = roster.find_class(db, class_label=label)
        klass = class_cache[label]
        if klass is None:
            skipped.append({"row": line_no, "reason": "Class not found: {}".format(label),
                            "values": values})
            continue

        try:
            student, pin, temp_password = create_pupil(
                db, klass, values["first_name"], values["last_name"])
        except IntegrityError as e:
            db.rollback()
            log_with_context(logger, "WARNING", "Bulk import row failed",
                context={"teacher_id": session.teacher_id},
                extra_data={"row": line_no, "error": str(e.orig)})
            skipped.append({"row": line_no, "reason": "Insert failed", "values": values})
            continue

        created.append({
            "id": str(student.id),
            "first_name": student.first_name,
            "last_name": student.last_name,
            "class_label": student.class_label,
            "username": student.username,
            "pin": pin,
            "tempPassword": temp_password,
        })

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Bulk import: {} created, {} skipped".format(len(created), len(skipped)),
        context={"teacher_id": session.teacher_id},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "ok": True,
        "created_count": len(created),
        "skipped_count": len(skipped),
        "created": created,
        "skipped": skipped,
    }


@router.get("/api/admin/pupils/list")
def list_pupils(class_label: Optional[str] = Query(None),
                session: TeacherSession = Depends(require_admin),
                db: Session = Depends(get_db)):
    query = db.query(Student)
    if class_label:
        klass = roster.find_class(db, class_label=class_label)
        if klass is None:
            raise ValidationFailed("Class not found")
        query = query.filter(Student.class_id == klass.id)
    students = query.order_by(Student.class_label, Student.last_name, Student.first_name).all()
    return {
        "ok": True,
        "class_label": class_label,
        "pupils": [serialize_admin_pupil(s) for s in students],
    }


@router.post("/api/admin/pupils/delete")
def delete(request: StudentRequest,
           session: TeacherSession = Depends(require_admin),
           db: Session = Depends(get_db)):
    """Delete a pupil with their attempts and question records, in one commit."""
    student = _load_student(db, request.student_id)
    attempts = len(student.attempts)
    db.delete(student)
    db.commit()

    log_with_context(logger, "INFO", "Pupil deleted",
        context={"teacher_id": session.teacher_id, "student_id": request.student_id},
        extra_data={"attempts_deleted": attempts})
    return {"ok": True}


@router.post("/api/admin/pupils/delete_class")
def delete_class(request: DeleteClassRequest,
                 session: TeacherSession = Depends(require_admin),
                 db: Session = Depends(get_db)):
    """Delete every pupil in a class. The class itself is kept."""
    if not request.class_label.strip():
        raise ValidationFailed("Missing class_label")
    klass = roster.find_class(db, class_label=request.class_label)
    if klass is None:
        raise ValidationFailed("Class not found")

    students = db.query(Student).filter(Student.class_id == klass.id).all()
    for student in students:
        db.delete(student)
    db.commit()

    log_with_context(logger, "INFO", "Class pupils deleted",
        context={"teacher_id": session.teacher_id, "class_id": str(klass.id)},
        extra_data={"pupils_deleted": len(students)})
    return {"ok": True, "deleted_class": klass.class_label, "deleted_count": len(students)}


@router.post("/api/admin/pupils/reset_pin")
def reset_pin(request: StudentRequest,
              session: TeacherSession = Depends(require_admin),
              db: Session = Depends(get_db)):
    student = _load_student(db, request.student_id)
    pin = generate_pin()
    student.pin_hash = hash_password(pin)
    db.commit()

    log_with_context(logger, "INFO", "Pupil PIN reset",
        context={"teacher_id": session.teacher_id, "student_id": str(student.id)})
    return {
        "ok": True,
        "student_id": str(student.id),
        "credentials": {"username": student.username, "pin": pin},
    }


@router.post("/api/admin/pupils/reset_password")
def reset_password(request: StudentRequest,
                   session: TeacherSession = Depends(require_admin),
                   db: Session = Depends(get_db)):
    """Issue an 8-character temporary password the pupil can log in with."""
    student = _load_student(db, request.student_id)
    temp_password = generate_temp_password()
    student.password_hash = hash_password(temp_password)
    db.commit()

    log_with_context(logger, "INFO", "Pupil temporary password issued",
        context={"teacher_id": session.teacher_id, "student_id": str(student.id)})
    return {
        "ok": True,
        "student_id": str(student.id),
        "credentials": {"username": student.username, "tempPassword": temp_password},
    }


@router.post("/api/admin/pupils/change_username")
def change_username(request: ChangeUsernameRequest,
                    session: TeacherSession = Depends(require_admin),
                    db: Session = Depends(get_db)):
    student = _load_student(db, request.student_id)
    username = clean_username(request.username)
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValidationFailed("Username must be at least 3 letters or digits")

    if username != student.username:
        if username_taken(db, username):
            raise Conflict("Username already taken")
        old = student.username
        student.username = username
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise Conflict("Username already taken")
        log_with_context(logger, "INFO", "Pupil username changed",
            context={"teacher_id": session.teacher_id, "student_id": str(student.id)},
            extra_data={"from": old, "to": username})

    return {"ok": True, "student_id": str(student.id), "username": username}
