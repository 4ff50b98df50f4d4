from datetime import date, timedelta

import pytest

from timestables.database import SessionLocal
from timestables.models import Attempt, QuestionRecord, SchoolClass, Student
from timestables.timeutil import utc_now

from conftest import SAM_PIN


def test_pupil_login_sets_cookie_and_me(client, school):
    response = client.post("/api/student/login", json={"username": "SamA1 ", "pin": SAM_PIN})
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["pupil"]["username"] == "sama1"
    assert "bmtt_student" in response.cookies

    me = client.get("/api/student/me").json()
    assert me["signedIn"] is True
    assert me["student"]["class_label"] == "M4"


def test_pupil_login_failures(client, school):
    assert client.post("/api/student/login",
                       json={"username": "sama1", "pin": "0000"}).status_code == 401
    assert client.post("/api/student/login",
                       json={"username": "nobody", "pin": SAM_PIN}).status_code == 401
    response = client.post("/api/student/login", json={"username": "sama1"})
    assert response.status_code == 400
    assert response.json()["ok"] is False


def test_inactive_pupil_cannot_log_in(client, db, school):
    db.get(Student, school.sam_id).active = False
    db.commit()
    assert client.post("/api/student/login",
                       json={"username": "sama1", "pin": SAM_PIN}).status_code == 401


def test_legacy_plaintext_pin_is_rehashed_on_login(client, db, school):
    db.get(Student, school.sam_id).pin_hash = "4321"
    db.commit()

    response = client.post("/api/student/login", json={"username": "sama1", "pin": "4321"})
    assert response.status_code == 200

    with SessionLocal() as fresh:
        assert fresh.get(Student, school.sam_id).pin_hash.startswith("$argon2")


def test_settings_come_from_the_class(sam_client):
    body = sam_client.get("/api/student/settings").json()
    assert body["class_label"] == "M4"
    assert body["settings"]["question_count"] == 10
    assert body["settings"]["seconds_per_question"] == 6


def test_submit_scores_on_the_server(sam_client, school):
    response = sam_client.post("/api/tests/submit", json={
        "started_at": "2026-03-01T09:00:00Z",
        "finished_at": "2026-03-01T09:02:00Z",
        "answers": [
            {"a": 3, "b": 7, "given_answer": 21, "response_time_ms": 1200},
            {"a": 4, "b": 7, "given_answer": 27, "response_time_ms": 1500},
            {"a": 6, "b": 9, "given_answer": 54, "response_time_ms": 9000},
            {"a": 2, "b": 5, "given_answer": 10, "response_time_ms": 800},
        ],
    })
    assert response.status_code == 200
    body = response.json()
    assert body["inserted_questions"] == 4
    assert body["attempt"]["score"] == 2
    assert body["attempt"]["max_score"] == 4
    assert body["attempt"]["percent"] == pytest.approx(50.0)
    assert body["attempt"]["started_at"].startswith("2026-03-01T09:00:00")

    with SessionLocal() as fresh:
        records = fresh.query(QuestionRecord).filter(
            QuestionRecord.attempt_id == body["attempt"]["id"]).all()
        assert len(records) == 4
        assert sum(1 for r in records if r.timed_out) == 1


def test_submit_needs_answers_and_a_login(client, sam_client, school):
    assert sam_client.post("/api/tests/submit", json={"answers": []}).status_code == 400
    bad = sam_client.post("/api/tests/submit", json={"answers": [{"a": 2, "b": 40}]})
    assert bad.status_code == 400
    assert client.post("/api/tests/submit", json={"answers": [{"a": 2, "b": 2}]}).status_code == 401


def test_one_question_at_a_time(sam_client):
    start = sam_client.post("/api/tests/start")
    assert start.status_code == 200
    body = start.json()
    attempt_id = body["attempt"]["id"]
    assert len(body["questions"]) == 10
    assert "correct_answer" not in body["questions"][0]

    finished = False
    answered = 0
    while not finished:
        nxt = sam_client.get(f"/api/attempts/{attempt_id}/next").json()
        assert nxt["finished"] is False
        q = nxt["question"]
        result = sam_client.post(f"/api/attempts/{attempt_id}/answer",
                                 json={"answer": q["a"] * q["b"]}).json()
        answered += 1
        assert result["question"]["is_correct"] is True
        finished = result["finished"]

    assert answered == 10
    assert result["attempt"]["completed"] is True
    assert result["attempt"]["score"] == 10
    assert result["attempt"]["percent"] == pytest.approx(100.0)

    done = sam_client.get(f"/api/attempts/{attempt_id}/next").json()
    assert done["finished"] is True
    assert sam_client.post(f"/api/attempts/{attempt_id}/answer",
                           json={"answer": 1}).status_code == 400


def test_blank_answer_counts_as_no_answer(sam_client):
    attempt_id = sam_client.post("/api/tests/start").json()["attempt"]["id"]
    sam_client.get(f"/api/attempts/{attempt_id}/next")

    response = sam_client.post(f"/api/attempts/{attempt_id}/answer", json={"answer": ""})
    assert response.status_code == 200
    question = response.json()["question"]
    assert question["given_answer"] is None
    assert question["is_correct"] is False
    assert question["answered_at"] is not None

    assert sam_client.post(f"/api/attempts/{attempt_id}/answer",
                           json={"answer": "seven"}).status_code == 400


def test_pupils_cannot_answer_each_others_attempts(sam_client, emma_client):
    attempt_id = sam_client.post("/api/tests/start").json()["attempt"]["id"]
    response = emma_client.post(f"/api/attempts/{attempt_id}/answer", json={"answer": 4})
    assert response.status_code == 403
    assert emma_client.get(f"/api/attempts/{attempt_id}/next").status_code == 403
    assert emma_client.get("/api/attempts/not-an-attempt/next").status_code == 404


def test_quiz_cannot_start_before_the_class_start_date(sam_client, db, school):
    db.get(SchoolClass, school.m4_id).test_start_date = date.today() + timedelta(days=30)
    db.commit()
    response = sam_client.post("/api/tests/start")
    assert response.status_code == 400
    assert "open on" in response.json()["error"]


def test_teacher_attempt_list_and_detail(sam_client, emma_client, teacher_client, school):
    sam_client.post("/api/tests/submit", json={"answers": [
        {"a": 3, "b": 3, "given_answer": 9, "response_time_ms": 1000},
    ]})
    emma_client.post("/api/tests/submit", json={"answers": [
        {"a": 3, "b": 4, "given_answer": 12, "response_time_ms": 1000},
    ]})

    listing = teacher_client.get("/api/attempts").json()
    assert listing["pagination"]["total"] == 1
    attempt = listing["data"][0]
    assert attempt["student_name"] == "Sam Allen"

    detail = teacher_client.get(f"/api/attempts/{attempt['id']}").json()["attempt"]
    assert detail["questions"][0]["correct_answer"] == 9
    assert detail["student"]["username"] == "sama1"

    assert teacher_client.get("/api/attempts",
                              params={"class_id": school.b4_id}).status_code == 403


def test_in_progress_attempts_are_not_in_trends(sam_client, teacher_client, school):
    sam_client.post("/api/tests/start")
    series = teacher_client.get("/api/teacher/attainment/student",
                                params={"student_id": school.sam_id}).json()["series"]
    assert series == []

    with SessionLocal() as fresh:
        assert fresh.query(Attempt).filter(Attempt.completed.is_(False)).count() == 1
        assert fresh.query(Attempt).first().created_at <= utc_now()
