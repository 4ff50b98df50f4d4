import base64
import json

from fastapi.testclient import TestClient

from timestables.main import app
from timestables.sessions import (
    encode_session, resolve_session, student_session_from, teacher_session_from
)


def test_session_round_trip():
    token = encode_session({"teacher_id": "t1", "role": "admin", "email": "a@b.c"})
    session = teacher_session_from(token)
    assert session.teacher_id == "t1"
    assert session.is_admin is True


def test_camel_case_ids_are_accepted():
    assert teacher_session_from(encode_session({"teacherId": "t9"})).teacher_id == "t9"
    assert student_session_from(encode_session({"studentId": "s9"})).student_id == "s9"


def test_unsigned_and_tampered_cookies_are_rejected():
    legacy = json.dumps({"teacher_id": "t1", "role": "admin"})
    assert resolve_session(legacy) is None
    assert resolve_session(base64.urlsafe_b64encode(legacy.encode()).decode()) is None

    token = encode_session({"teacher_id": "t1", "role": "teacher"})
    header, payload, signature = token.split(".")
    forged = base64.urlsafe_b64encode(
        json.dumps({"teacher_id": "t1", "role": "admin"}).encode()
    ).decode().rstrip("=")
    assert resolve_session(".".join([header, forged, signature])) is None


def test_pupil_token_is_not_a_teacher_session():
    token = encode_session({"student_id": "s1", "role": "student"})
    assert teacher_session_from(token) is None
    assert resolve_session(None) is None


def test_missing_cookie_is_401(client, school):
    response = client.get("/api/teacher/attainment/class", params={"class_id": school.m4_id})
    assert response.status_code == 401
    assert response.json() == {"ok": False, "error": "Not logged in"}


def test_forged_cookie_is_401(school):
    client = TestClient(app, cookies={"bmtt_teacher": json.dumps({"teacher_id": school.admin_id,
                                                                  "role": "admin"})})
    response = client.get("/api/admin/teachers/list")
    assert response.status_code == 401


def test_unlinked_teacher_is_forbidden_linked_teacher_and_admin_are_not(
        teacher_client, other_teacher_client, admin_client, school):
    params = {"class_id": school.m4_id}

    response = other_teacher_client.get("/api/teacher/attainment/class", params=params)
    assert response.status_code == 403
    assert response.json()["error"] == "Not allowed"

    assert teacher_client.get("/api/teacher/attainment/class", params=params).status_code == 200
    assert admin_client.get("/api/teacher/attainment/class", params=params).status_code == 200


def test_pupil_access_follows_class_links(teacher_client, other_teacher_client, school):
    params = {"student_id": school.sam_id}
    assert teacher_client.get("/api/teacher/attainment/student", params=params).status_code == 200
    assert other_teacher_client.get("/api/teacher/attainment/student",
                                    params=params).status_code == 403


def test_year_access_needs_a_class_in_that_year(teacher_client, admin_client):
    assert teacher_client.get("/api/teacher/attainment/year", params={"year": 4}).status_code == 200
    assert teacher_client.get("/api/teacher/attainment/year", params={"year": 3}).status_code == 403
    assert admin_client.get("/api/teacher/attainment/year", params={"year": 3}).status_code == 200


def test_admin_endpoints_need_admin_role(teacher_client):
    response = teacher_client.get("/api/admin/teachers/list")
    assert response.status_code == 403
    assert response.json()["error"] == "Admins only"


def test_school_heatmap_is_admin_only(teacher_client, admin_client):
    params = {"scope": "school"}
    assert teacher_client.get("/api/teacher/heatmap", params=params).status_code == 403
    assert admin_client.get("/api/teacher/heatmap", params=params).status_code == 200


def test_pupil_cookie_does_not_open_teacher_routes(sam_client):
    assert sam_client.get("/api/teacher/students").status_code == 401


def test_logout_clears_cookie(teacher_client):
    assert teacher_client.post("/api/teacher/logout").status_code == 200
    assert teacher_client.get("/api/teacher/me").json() == {"ok": True, "signedIn": False}


def test_role_changes_and_deletion_apply_to_live_sessions(admin_client):
    created = admin_client.post("/api/admin/teachers/create", json={
        "full_name": "Second Admin", "email": "second@school.test", "role": "admin"
    }).json()
    second_id = created["teacher"]["id"]

    second = TestClient(app)
    assert second.post("/api/teacher/login", json={
        "email": "second@school.test", "password": created["tempPassword"]
    }).status_code == 200
    assert second.get("/api/admin/pupils/list").status_code == 200

    admin_client.post("/api/admin/teachers/set_role",
                      json={"teacher_id": second_id, "role": "teacher"})
    demoted = second.get("/api/admin/pupils/list")
    assert demoted.status_code == 403
    assert demoted.json()["error"] == "Admins only"
    assert second.get("/api/teacher/me").json()["teacher"]["role"] == "teacher"

    admin_client.post("/api/admin/teachers/delete", json={"teacher_id": second_id})
    assert second.get("/api/admin/pupils/list").status_code == 401
    assert second.get("/api/teacher/year-groups").status_code == 401
    assert second.get("/api/teacher/me").json()["signedIn"] is False
