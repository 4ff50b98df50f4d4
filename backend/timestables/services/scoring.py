"""
Scoring Service - records quiz attempts and computes their scores.

Two submission flows share the same rules:
1. Bulk submit: the client runs the quiz and posts every answer at the end.
   The attempt and all of its question records are written in one
   transaction; if any insert fails nothing is kept.
2. One at a time: the server generates the questions up front, serves them
   one by one and records each answer against the time it was served. The
   attempt is finalised when its last pending question is answered.

Scoring formula:
    score   = count(is_correct)
    max     = number of questions
    percent = 100 * score / max   (0 when there are no questions)

Timeout rule (both flows): a question is timed out when its response time
exceeds the class's seconds_per_question. A timed-out answer is never
correct.
"""

import random
import time
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timestables.config import DEFAULT_SECONDS_PER_QUESTION
from timestables.errors import NotFound, ValidationFailed
from timestables.logging_config import get_logger, log_with_context
from timestables.models.attempt import Attempt
from timestables.models.question_record import QuestionRecord
from timestables.models.school_class import SchoolClass
from timestables.models.student import Student
from timestables.timeutil import utc_now

logger = get_logger("scoring")

MAX_MULTIPLICAND = 12


def _get(entry, name, default=None):
    if isinstance(entry, dict):
        return entry.get(name, default)
    return getattr(entry, name, default)


def is_timed_out(response_time_ms: Optional[int], seconds_per_question: Optional[int]) -> bool:
    """True when the answer took longer than the class's time limit."""
    if response_time_ms is None:
        return False
    limit_s = seconds_per_question or DEFAULT_SECONDS_PER_QUESTION
    return response_time_ms > limit_s * 1000


def grade_answer(a: int, b: int, given_answer: Optional[int],
                 response_time_ms: Optional[int], seconds_per_question: Optional[int]) -> dict:
    """Grade a single a x b question."""
    correct_answer = a * b
    timed_out = is_timed_out(response_time_ms, seconds_per_question)
    is_correct = given_answer is not None and given_answer == correct_answer and not timed_out
    return {
        "correct_answer": correct_answer,
        "is_correct": is_correct,
        "timed_out": timed_out,
    }


def score_answers(answers: Iterable) -> dict:
    """
    Summarise graded answers.

    Args:
        answers: dicts or objects exposing is_correct and, optionally,
                 response_time_ms

    Returns:
        dict with score, max_score, percent (two decimals) and
        avg_response_time_ms (None when no times were recorded)
    """
    answers = list(answers)
    score = sum(1 for a in answers if _get(a, "is_correct"))
    max_score = len(answers)
    percent = round(score / max_score * 100, 2) if max_score else 0.0
    percent = max(0.0, min(100.0, percent))

    times = [_get(a, "response_time_ms") for a in answers]
    times = [t for t in times if t is not None]
    avg = round(sum(times) / len(times)) if times else None

    return {
        "score": score,
        "max_score": max_score,
        "percent": percent,
        "avg_response_time_ms": avg,
    }


def submit_attempt(db: Session, student: Student, answers: List[dict],
                   started_at: Optional[datetime] = None,
                   finished_at: Optional[datetime] = None) -> dict:
    """
    Record a completed quiz in one transaction.

    Args:
        db: Database session
        student: The pupil who took the quiz
        answers: Ordered entries with a, b, given_answer, response_time_ms
        started_at / finished_at: Client timestamps (default: now)

    Returns:
        {"attempt": Attempt, "inserted_questions": int}
    """
    start_time = time.time()

    if not answers:
        raise ValidationFailed("No answers submitted")

    klass = db.get(SchoolClass, student.class_id) if student.class_id else None
    seconds = klass.seconds_per_question if klass else DEFAULT_SECONDS_PER_QUESTION
    now = utc_now()

    graded = []
    for entry in answers:
        a = int(_get(entry, "a"))
        b = int(_get(entry, "b"))
        given = _get(entry, "given_answer")
        rt = _get(entry, "response_time_ms")
        result = grade_answer(a, b, given, rt, seconds)
        graded.append({"a": a, "b": b, "given_answer": given, "response_time_ms": rt, **result})

    summary = score_answers(graded)

    attempt = Attempt(
        student_id=student.id,
        class_id=student.class_id,
        class_label=student.class_label,
        started_at=started_at or now,
        finished_at=finished_at or now,
        seconds_per_question=seconds,
        completed=True,
        created_at=now,
        **summary
    )
    try:
        db.add(attempt)
        db.flush()
        for index, g in enumerate(graded, 1):
            db.add(QuestionRecord(
                attempt_id=attempt.id,
                student_id=student.id,
                q_index=index,
                a=g["a"],
                b=g["b"],
                table_num=g["b"],
                correct_answer=g["correct_answer"],
                given_answer=g["given_answer"],
                is_correct=g["is_correct"],
                timed_out=g["timed_out"],
                response_time_ms=g["response_time_ms"],
                answered_at=now,
                created_at=now
            ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        log_with_context(logger, "ERROR", "Attempt submission rolled back",
            context={"student_id": str(student.id)},
            extra_data={"questions": len(graded)})
        raise

    db.refresh(attempt)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Attempt recorded: {}/{} ({:.2f}%)".format(
            summary["score"], summary["max_score"], summary["percent"]),
        context={"attempt_id": str(attempt.id), "student_id": str(student.id)},
        extra_data={"duration_ms": round(duration_ms, 2), "questions": len(graded)})

    return {"attempt": attempt, "inserted_questions": len(graded)}


def start_attempt(db: Session, student: Student, klass: Optional[SchoolClass],
                  rng: random.Random = None) -> Attempt:
    """
    Create an in-progress attempt with pending questions drawn from the
    class's table range.
    """
    rng = rng or random.Random()
    if klass is not None:
        low, high = klass.min_table, klass.max_table
        count = klass.question_count
        seconds = klass.seconds_per_question
    else:
        low, high = 1, MAX_MULTIPLICAND
        count = 25
        seconds = DEFAULT_SECONDS_PER_QUESTION
    if low > high:
        low, high = high, low

    now = utc_now()
    attempt = Attempt(
        student_id=student.id,
        class_id=student.class_id,
        class_label=student.class_label,
        started_at=now,
        seconds_per_question=seconds,
        completed=False,
        created_at=now
    )
    try:
        db.add(attempt)
        db.flush()
        for index in range(1, count + 1):
            a = rng.randint(1, MAX_MULTIPLICAND)
            b = rng.randint(low, high)
            db.add(QuestionRecord(
                attempt_id=attempt.id,
                student_id=student.id,
                q_index=index,
                a=a,
                b=b,
                table_num=b,
                correct_answer=a * b,
                created_at=now
            ))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(attempt)
    log_with_context(logger, "INFO", "Attempt started with {} questions".format(count),
        context={"attempt_id": str(attempt.id), "student_id": str(student.id)},
        extra_data={"tables": [low, high], "seconds_per_question": seconds})
    return attempt


def _first_pending(db: Session, attempt: Attempt) -> Optional[QuestionRecord]:
    return db.query(QuestionRecord).filter(
        QuestionRecord.attempt_id == attempt.id,
        QuestionRecord.answered_at.is_(None)
    ).order_by(QuestionRecord.q_index).first()


def next_question(db: Session, attempt: Attempt) -> Optional[QuestionRecord]:
    """Return the next pending question and stamp when it was served."""
    record = _first_pending(db, attempt)
    if record is None:
        return None
    if record.served_at is None:
        record.served_at = utc_now()
        db.commit()
        db.refresh(record)
    return record


def answer_next(db: Session, attempt: Attempt, answer: Optional[int],
                now: Optional[datetime] = None) -> dict:
    """
    Answer the first pending question of an attempt.

    Elapsed time is measured from served_at (zero if the question was
    never served). When no pending question remains afterwards the
    attempt is finalised.

    Returns:
        {"question": QuestionRecord, "finished": bool}
    """
    if attempt.completed:
        raise ValidationFailed("Attempt already completed")

    record = _first_pending(db, attempt)
    if record is None:
        raise NotFound("No question waiting for an answer")

    now = now or utc_now()
    served = record.served_at or now
    rt = max(0, int((now - served).total_seconds() * 1000))
    result = grade_answer(record.a, record.b, answer, rt, attempt.seconds_per_question)

    record.given_answer = answer
    record.response_time_ms = rt
    record.is_correct = result["is_correct"]
    record.timed_out = result["timed_out"]
    record.answered_at = now
    db.flush()

    finished = _first_pending(db, attempt) is None
    if finished:
        finalize_attempt(db, attempt, now=now)
    else:
        db.commit()

    db.refresh(record)
    return {"question": record, "finished": finished}


def finalize_attempt(db: Session, attempt: Attempt, now: Optional[datetime] = None) -> Attempt:
    """Recompute an attempt's summary from its question records and close it."""
    records = db.query(QuestionRecord).filter(
        QuestionRecord.attempt_id == attempt.id
    ).all()
    summary = score_answers(records)

    attempt.score = summary["score"]
    attempt.max_score = summary["max_score"]
    attempt.percent = summary["percent"]
    attempt.avg_response_time_ms = summary["avg_response_time_ms"]
    attempt.finished_at = now or utc_now()
    attempt.completed = True
    db.commit()
    db.refresh(attempt)

    log_with_context(logger, "INFO",
        "Attempt finalised: {}/{} ({:.2f}%)".format(
            attempt.score, attempt.max_score, attempt.percent),
        context={"attempt_id": str(attempt.id), "student_id": str(attempt.student_id)})
    return attempt
