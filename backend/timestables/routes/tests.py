"""
Quiz API routes - the pupil side of taking a test.

Provides endpoints for:
- Submitting a finished quiz in one request
- Starting a server-generated quiz
- Fetching and answering its questions one at a time
"""

from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from timestables.config import MAX_TABLE
from timestables.database import get_db
from timestables.errors import AuthenticationMissing, AuthorizationDenied, NotFound, ValidationFailed
from timestables.logging_config import get_logger, log_with_context
from timestables.models.attempt import Attempt
from timestables.models.school_class import SchoolClass
from timestables.models.student import Student
from timestables.routes.attempts import serialize_attempt, serialize_question
from timestables.services import scoring
from timestables.sessions import StudentSession, current_student
from timestables.timeutil import parse_timestamp, utc_now

router = APIRouter()
logger = get_logger("scoring")


# ── Pydantic schemas ─────────────────────────────────────────

class AnswerEntry(BaseModel):
    """One answered question; b is the times table."""
    a: int = Field(..., ge=0, le=100)
    b: int = Field(..., ge=1, le=MAX_TABLE)
    given_answer: Optional[int] = None
    response_time_ms: Optional[int] = Field(None, ge=0)


class SubmitRequest(BaseModel):
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    answers: List[AnswerEntry] = []


class AnswerRequest(BaseModel):
    answer: Optional[int] = None

    @field_validator("answer", mode="before")
    @classmethod
    def blank_is_no_answer(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


def _load_student(db: Session, session: StudentSession) -> Student:
    student = db.get(Student, session.student_id)
    if student is None or not student.active:
        raise AuthenticationMissing()
    return student


def _load_own_attempt(db: Session, session: StudentSession, attempt_id: str) -> Attempt:
    attempt = db.get(Attempt, attempt_id)
    if attempt is None:
        raise NotFound("Attempt not found")
    if attempt.student_id != session.student_id:
        raise AuthorizationDenied()
    return attempt


@router.post("/api/tests/submit")
def submit_test(request: SubmitRequest,
                session: StudentSession = Depends(current_student),
                db: Session = Depends(get_db)):
    """
    Record a finished quiz.

    Correctness is recomputed here from the operands; the client only
    supplies what the pupil typed and how long it took.
    """
    student = _load_student(db, session)
    if not request.answers:
        raise ValidationFailed("No answers submitted")

    result = scoring.submit_attempt(
        db, student,
        [a.model_dump() for a in request.answers],
        started_at=parse_timestamp(request.started_at),
        finished_at=parse_timestamp(request.finished_at)
    )
    return {
        "ok": True,
        "attempt": serialize_attempt(result["attempt"]),
        "inserted_questions": result["inserted_questions"],
    }


@router.post("/api/tests/start")
def start_test(session: StudentSession = Depends(current_student),
               db: Session = Depends(get_db)):
    """Generate a quiz from the pupil's class settings."""
    student = _load_student(db, session)
    klass = db.get(SchoolClass, student.class_id) if student.class_id else None

    if klass is not None and klass.test_start_date and utc_now().date() < klass.test_start_date:
        log_with_context(logger, "INFO", "Quiz start refused before class start date",
            context={"student_id": str(student.id), "class_id": klass.id})
        raise ValidationFailed("Tests for this class open on {}".format(
            klass.test_start_date.isoformat()))

    attempt = scoring.start_attempt(db, student, klass)
    return {
        "ok": True,
        "attempt": serialize_attempt(attempt),
        "questions": [serialize_question(q, reveal=False) for q in attempt.question_records],
    }


@router.get("/api/attempts/{attempt_id}/next")
def next_question(attempt_id: str,
                  session: StudentSession = Depends(current_student),
                  db: Session = Depends(get_db)):
    """Serve the next unanswered question, or report that the quiz is done."""
    attempt = _load_own_attempt(db, session, attempt_id)
    record = scoring.next_question(db, attempt)
    if record is None:
        return {"ok": True, "finished": True, "question": None,
                "attempt": serialize_attempt(attempt)}
    return {"ok": True, "finished": False, "question": serialize_question(record, reveal=False)}


@router.post("/api/attempts/{attempt_id}/answer")
def answer_question(attempt_id: str, request: AnswerRequest,
                    session: StudentSession = Depends(current_student),
                    db: Session = Depends(get_db)):
    """Answer the first unanswered question of the pupil's attempt."""
    attempt = _load_own_attempt(db, session, attempt_id)
    result = scoring.answer_next(db, attempt, request.answer)

    response = {
        "ok": True,
        "finished": result["finished"],
        "question": serialize_question(result["question"]),
    }
    if result["finished"]:
        response["attempt"] = serialize_attempt(attempt)
    return response
