from models import db
from models.security_question import SecurityQuestion


def _admin_headers(make_user, login):
    return login(make_user("admin@example.com", "Admin", "Landry", role="ADMIN"))


def test_members_cannot_manage_questions(client, make_user, login):
    headers = login(make_user("anne@example.com"))
    assert client.get("/api/admin/security-questions").status_code == 403
    assert client.post("/api/admin/security-questions", json={"question": "q", "answer": "a"}, headers=headers).status_code == 403


def test_create_normalizes_answer_and_appends(client, make_user, login, questions):
    headers = _admin_headers(make_user, login)

    resp = client.post("/api/admin/security-questions", json={
        "question": "  First pet?  ",
        "answer": "  Rex ",
    }, headers=headers)

    assert resp.status_code == 201
    created = resp.get_json()["question"]
    assert created["question"] == "First pet?"
    assert created["answer"] == "rex"
    assert created["order"] == 3
    assert created["isActive"] is True


def test_cannot_drop_below_minimum_active(client, make_user, login, questions):
    headers = _admin_headers(make_user, login)
    qid = questions[0].id

    resp = client.put(f"/api/admin/security-questions/{qid}", json={"isActive": False}, headers=headers)
    assert resp.status_code == 400
    assert client.delete(f"/api/admin/security-questions/{qid}", headers=headers).status_code == 400

    client.post("/api/admin/security-questions", json={"question": "Pet?", "answer": "rex"}, headers=headers)
    resp = client.put(f"/api/admin/security-questions/{qid}", json={"isActive": False}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["question"]["isActive"] is False


def test_update_answer_is_normalized(client, make_user, login, questions):
    headers = _admin_headers(make_user, login)
    qid = questions[1].id

    resp = client.put(f"/api/admin/security-questions/{qid}", json={"answer": " Québec "}, headers=headers)

    assert resp.get_json()["question"]["answer"] == "québec"
    assert client.put(f"/api/admin/security-questions/{qid}", json={}, headers=headers).status_code == 400


def test_reorder(client, make_user, login, questions):
    headers = _admin_headers(make_user, login)
    new_order = [questions[2].id, questions[0].id, questions[1].id]

    resp = client.put("/api/admin/security-questions/reorder", json={"order": new_order}, headers=headers)

    assert [q["id"] for q in resp.get_json()["questions"]] == new_order
    db.session.expire_all()
    assert [q.order for q in SecurityQuestion.query.order_by(SecurityQuestion.id)] == [1, 2, 0]


def test_reorder_rejects_unknown_ids(client, make_user, login, questions):
    headers = _admin_headers(make_user, login)

    resp = client.put("/api/admin/security-questions/reorder", json={"order": [questions[0].id, 999]}, headers=headers)

    assert resp.status_code == 400
    db.session.expire_all()
    assert [q.order for q in SecurityQuestion.query.order_by(SecurityQuestion.id)] == [0, 1, 2]


def test_audit_log_viewer(client, make_user, login, questions):
    client.post("/api/security/verify", json={"answers": {str(questions[0].id): "wrong"}})
    _admin_headers(make_user, login)

    resp = client.get("/api/admin/audit-logs?action=SECURITY_VERIFY_FAIL")
    logs = resp.get_json()["logs"]
    assert resp.status_code == 200
    assert [log["action"] for log in logs] == ["SECURITY_VERIFY_FAIL"]
    assert logs[0]["metadata"] == {"attempts_left": 2, "blocked": False}

    resp = client.get("/api/admin/audit-logs?limit=1")
    assert len(resp.get_json()["logs"]) == 1
