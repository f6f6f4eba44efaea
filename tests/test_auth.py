"""Bearer token tests."""
from lara.auth import Identity, issue_token, student_token, teacher_token, verify_token


def test_teacher_token_round_trip():
    identity = verify_token(teacher_token("teacher-1"))
    assert identity == Identity("teacher", "teacher-1")
    assert identity.is_teacher is True


def test_student_token_carries_session():
    identity = verify_token(student_token("student-1", "session-1"))
    assert identity.role == "student"
    assert identity.session_id == "session-1"


def test_tampered_token_rejected():
    token = teacher_token("teacher-1")
    tampered = ("f" if token[0] != "f" else "g") + token[1:]
    assert verify_token(tampered) is None


def test_token_from_other_secret_rejected():
    token = issue_token(Identity("teacher", "teacher-1"), secret_key="another-secret")
    assert verify_token(token) is None


def test_student_token_without_session_rejected():
    assert verify_token(issue_token(Identity("student", "student-1"))) is None


def test_empty_token():
    assert verify_token("") is None
    assert verify_token("not-a-token") is None


def test_missing_token_is_401(client):
    response = client.get("/api/sessions/usage")
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required."


def test_student_cannot_use_teacher_routes(client, student_headers):
    response = client.get("/api/sessions/usage", headers=student_headers("student-1", "session-1"))
    assert response.status_code == 403
