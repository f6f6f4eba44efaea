"""Route integration tests."""
from conftest import TASK_CODE
from lara.auth import teacher_token
from lara.db import Teacher


def join(client, name="Ada"):
    response = client.post("/api/session/join", json={"task_code": TASK_CODE, "student_name": name})
    assert response.status_code == 200
    payload = response.json()
    return payload, {"Authorization": f"Bearer {payload['token']}"}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_validate_code(client):
    response = client.post("/api/session/validate-code", json={"task_code": "abc 123"})
    assert response.json() == {"valid": True, "task_title": "Persuasive paragraph"}

    missing = client.post("/api/session/validate-code", json={"task_code": "NOPE00"})
    assert missing.status_code == 404
    assert missing.json()["error"] == "NotFound"


def test_join_returns_token_and_task(client):
    payload, _ = join(client)
    assert payload["student"]["status"] == "active"
    assert payload["task"]["title"] == "Persuasive paragraph"
    assert "teacher_id" not in payload["task"]


def test_restore_issues_working_token(client):
    payload, _ = join(client)
    session_id = payload["session_id"]
    student_id = payload["student"]["id"]

    restored = client.get(f"/api/session/restore/{student_id}", params={"session_id": session_id})
    assert restored.status_code == 200
    body = restored.json()
    assert body["status"] == "active"
    assert body["submission"] is None

    poll = client.get(
        f"/api/sessions/{session_id}/feedback/{student_id}", headers={"Authorization": f"Bearer {body['token']}"}
    )
    assert poll.status_code == 200

    missing = client.get("/api/session/restore/nobody", params={"session_id": session_id})
    assert missing.status_code == 404
    assert client.get(f"/api/session/restore/{student_id}").status_code == 422


def test_join_inactive_task_forbidden(client):
    response = client.post("/api/session/join", json={"task_code": "OLD999", "student_name": "Ada"})
    assert response.status_code == 403


def test_join_requires_name(client):
    response = client.post("/api/session/join", json={"task_code": TASK_CODE, "student_name": ""})
    assert response.status_code == 422


def test_full_feedback_cycle(client, teacher_headers):
    payload, student = join(client)
    session_id = payload["session_id"]
    student_id = payload["student"]["id"]

    submitted = client.post(f"/api/sessions/{session_id}/submit", json={"content": "Dogs are loyal."}, headers=student)
    assert submitted.status_code == 200
    assert submitted.json()["revision_count"] == 0

    board = client.get(f"/api/sessions/{session_id}/dashboard", headers=teacher_headers).json()
    assert board["stats"]["ready_for_feedback"] == 1

    generated = client.post(f"/api/sessions/{session_id}/generate-feedback", json={}, headers=teacher_headers)
    assert generated.status_code == 200
    assert generated.json()["generated"] == 1

    poll = client.get(f"/api/sessions/{session_id}/feedback/{student_id}", headers=student).json()
    assert poll["feedback_ready"] is False

    edited = client.patch(
        f"/api/sessions/{session_id}/feedback/{student_id}/edit",
        json={"feedback": {"goal": "Back every reason with evidence"}},
        headers=teacher_headers,
    )
    assert edited.json()["feedback"]["goal"] == "Back every reason with evidence"

    approved = client.patch(
        f"/api/sessions/{session_id}/feedback/{student_id}/approve",
        json={"is_mastered": False},
        headers=teacher_headers,
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "feedback_ready"

    poll = client.get(f"/api/sessions/{session_id}/feedback/{student_id}", headers=student).json()
    assert poll["feedback_ready"] is True
    assert poll["feedback"]["goal"] == "Back every reason with evidence"

    revision = client.post(
        f"/api/sessions/{session_id}/submit",
        json={"content": "Dogs are loyal. A quoted example of evidence from the source.", "selected_next_step_id": "next-0"},
        headers=student,
    ).json()
    assert revision["revision_count"] == 1
    assert revision["detection_result"] == "aligned"


def test_generate_without_body_uses_ready_students(client, teacher_headers):
    payload, student = join(client)
    session_id = payload["session_id"]
    client.post(f"/api/sessions/{session_id}/submit", json={"content": "text"}, headers=student)
    response = client.post(f"/api/sessions/{session_id}/generate-feedback", headers=teacher_headers)
    assert response.json()["generated"] == 1


def test_insufficient_quota_is_403(client, teacher_headers, update_row):
    payload, student = join(client)
    session_id = payload["session_id"]
    client.post(f"/api/sessions/{session_id}/submit", json={"content": "text"}, headers=student)
    update_row(Teacher, "teacher-1", ai_calls_used=200)

    response = client.post(f"/api/sessions/{session_id}/generate-feedback", headers=teacher_headers)

    assert response.status_code == 403
    assert response.json()["error"] == "InsufficientQuota"
    assert response.json()["remaining"] == 0


def test_submit_to_other_session_forbidden(client, student_headers):
    payload, _ = join(client)
    response = client.post(
        f"/api/sessions/{payload['session_id']}/submit",
        json={"content": "text"},
        headers=student_headers(payload["student"]["id"], "another-session"),
    )
    assert response.status_code == 403


def test_poll_other_students_feedback_forbidden(client):
    ada, ada_headers = join(client, "Ada")
    ben, _ = join(client, "Ben")
    response = client.get(
        f"/api/sessions/{ada['session_id']}/feedback/{ben['student']['id']}", headers=ada_headers
    )
    assert response.status_code == 403


def test_approve_and_remove_errors(client, teacher_headers):
    payload, _ = join(client)
    response = client.patch(
        f"/api/sessions/{payload['session_id']}/feedback/{payload['student']['id']}/approve",
        json={"is_mastered": True},
        headers=teacher_headers,
    )
    assert response.status_code == 404

    client.delete(
        f"/api/sessions/{payload['session_id']}/students/{payload['student']['id']}", headers=teacher_headers
    )
    again = client.delete(
        f"/api/sessions/{payload['session_id']}/students/{payload['student']['id']}", headers=teacher_headers
    )
    assert again.status_code == 409
    assert again.json()["current"] == "removed"


def test_persist_route(client, teacher_headers):
    payload, student = join(client)
    session_id = payload["session_id"]
    client.post(f"/api/sessions/{session_id}/submit", json={"content": "text"}, headers=student)

    first = client.post(f"/api/sessions/{session_id}/persist", headers=teacher_headers)
    second = client.post(f"/api/sessions/{session_id}/persist", headers=teacher_headers)

    assert first.json()["students"] == 1
    assert second.status_code == 200
    assert second.json()["already_persisted"] is True


def test_other_teacher_sees_404(client):
    payload, _ = join(client)
    headers = {"Authorization": f"Bearer {teacher_token('teacher-2')}"}
    response = client.get(f"/api/sessions/{payload['session_id']}/dashboard", headers=headers)
    assert response.status_code == 404


def test_usage(client, teacher_headers):
    response = client.get("/api/sessions/usage", headers=teacher_headers)
    assert response.status_code == 200
    assert response.json()["limit"] == 200
    assert response.json()["reset_date"]


def test_realtime_teacher_follows_session(client):
    first, _ = join(client, "Ada")
    token = teacher_token("teacher-1")

    with client.websocket_connect(f"/ws?token={token}") as ws:
        assert ws.receive_json()["rooms"] == ["teacher:teacher-1"]
        ws.send_json({"type": "join-session", "session_id": first["session_id"]})
        assert ws.receive_json()["room"] == f"session:{first['session_id']}:teacher"

        join(client, "Ben")

        events = [ws.receive_json(), ws.receive_json()]
        assert {event["room"] for event in events} == {
            f"session:{first['session_id']}:teacher",
            "teacher:teacher-1",
        }
        assert all(event["event"] == "student-joined" for event in events)


def test_realtime_rejects_foreign_session(client):
    first, _ = join(client)
    with client.websocket_connect(f"/ws?token={teacher_token('teacher-2')}") as ws:
        ws.receive_json()
        ws.send_json({"type": "join-session", "session_id": first["session_id"]})
        assert ws.receive_json()["type"] == "error"


def test_realtime_student_receives_release(client, teacher_headers):
    payload, student = join(client)
    session_id, student_id = payload["session_id"], payload["student"]["id"]
    client.post(f"/api/sessions/{session_id}/submit", json={"content": "text"}, headers=student)
    client.post(f"/api/sessions/{session_id}/generate-feedback", headers=teacher_headers)

    with client.websocket_connect(f"/ws?token={payload['token']}") as ws:
        assert ws.receive_json()["role"] == "student"
        client.patch(
            f"/api/sessions/{session_id}/feedback/{student_id}/approve",
            json={"is_mastered": True},
            headers=teacher_headers,
        )
        message = ws.receive_json()
        assert message["event"] == "feedback-released"
        assert message["data"]["status"] == "completed"
