import os

# Configuration is read at import time, so it has to be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from timestables.database import SessionLocal, create_tables, drop_tables
from timestables.main import app
from timestables.models import Attempt, SchoolClass, Student, Teacher, TeacherClass
from timestables.services.credentials import hash_password
from timestables.timeutil import utc_now

ADMIN_EMAIL = "admin@school.test"
ADMIN_PASSWORD = "admin-pass"
TEACHER_EMAIL = "teacher@school.test"
TEACHER_PASSWORD = "teacher-pass"
OTHER_TEACHER_EMAIL = "other@school.test"
OTHER_TEACHER_PASSWORD = "other-pass"
SAM_PIN = "1234"
EMMA_PIN = "5678"


@pytest.fixture(autouse=True)
def fresh_schema():
    drop_tables()
    create_tables()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def school(db):
    """
    Classes M3, M4 and B4; an admin; a teacher linked to M4; another
    teacher linked to B4; pupil Sam in M4 and pupil Emma in B4.
    """
    m3 = SchoolClass(class_label="M3", year_group=3)
    m4 = SchoolClass(class_label="M4", year_group=4, question_count=10)
    b4 = SchoolClass(class_label="B4", year_group=4)
    admin = Teacher(email=ADMIN_EMAIL, full_name="Ada Admin", role="admin",
                    password_hash=hash_password(ADMIN_PASSWORD))
    teacher = Teacher(email=TEACHER_EMAIL, full_name="Tom Teacher", role="teacher",
                      password_hash=hash_password(TEACHER_PASSWORD))
    other = Teacher(email=OTHER_TEACHER_EMAIL, full_name="Olive Other", role="teacher",
                    password_hash=hash_password(OTHER_TEACHER_PASSWORD))
    db.add_all([m3, m4, b4, admin, teacher, other])
    db.flush()

    db.add_all([
        TeacherClass(teacher_id=teacher.id, class_id=m4.id),
        TeacherClass(teacher_id=other.id, class_id=b4.id),
    ])
    sam = Student(first_name="Sam", last_name="Allen", username="sama1",
                  pin_hash=hash_password(SAM_PIN), class_id=m4.id, class_label="M4")
    emma = Student(first_name="Emma", last_name="Azim", username="emmaa1",
                   pin_hash=hash_password(EMMA_PIN), class_id=b4.id, class_label="B4")
    db.add_all([sam, emma])
    db.commit()

    return SimpleNamespace(
        m3_id=m3.id, m4_id=m4.id, b4_id=b4.id,
        admin_id=admin.id, teacher_id=teacher.id, other_id=other.id,
        sam_id=sam.id, emma_id=emma.id,
    )


def add_attempt(db, student_id, percent, days_ago=0, class_id=None, seconds=6):
    """Insert a completed attempt directly, `days_ago` days in the past."""
    when = utc_now() - timedelta(days=days_ago)
    attempt = Attempt(
        student_id=student_id,
        class_id=class_id,
        started_at=when,
        finished_at=when,
        score=None,
        max_score=None,
        percent=percent,
        seconds_per_question=seconds,
        completed=True,
        created_at=when
    )
    db.add(attempt)
    db.commit()
    return attempt.id


def _login(path: str, payload: dict) -> TestClient:
    client = TestClient(app)
    response = client.post(path, json=payload)
    assert response.status_code == 200, response.text
    return client


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def admin_client(school):
    return _login("/api/teacher/login", {"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})


@pytest.fixture
def teacher_client(school):
    return _login("/api/teacher/login", {"email": TEACHER_EMAIL, "password": TEACHER_PASSWORD})


@pytest.fixture
def other_teacher_client(school):
    return _login("/api/teacher/login",
                  {"email": OTHER_TEACHER_EMAIL, "password": OTHER_TEACHER_PASSWORD})


@pytest.fixture
def sam_client(school):
    return _login("/api/student/login", {"username": "sama1", "pin": SAM_PIN})


@pytest.fixture
def emma_client(school):
    return _login("/api/student/login", {"username": "emmaa1", "pin": EMMA_PIN})
