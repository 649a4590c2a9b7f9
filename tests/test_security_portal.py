from datetime import datetime, timedelta

from sqlalchemy.exc import OperationalError

from models import db
from models.security_attempt import SecurityAttempt

ATTACKER = {"X-Forwarded-For": "9.9.9.9"}


def _attempts(ip="9.9.9.9"):
    db.session.expire_all()
    row = SecurityAttempt.query.filter_by(ip_address=ip, action="security").first()
    return row.attempts if row else 0


def _verify(client, answers, headers=ATTACKER):
    return client.post("/api/security/verify", json={"answers": answers}, headers=headers)


def test_question_endpoint_serves_exactly_one_active_question(client, questions):
    questions[2].is_active = False
    db.session.commit()
    active_ids = {questions[0].id, questions[1].id}

    seen = set()
    for _ in range(20):
        data = client.get("/api/security/questions", headers=ATTACKER).get_json()
        assert len(data["questions"]) == 1
        assert set(data["questions"][0]) == {"id", "question"}
        assert data["attemptsLeft"] == 3
        seen.add(data["questions"][0]["id"])

    assert seen <= active_ids


def test_question_endpoint_without_active_questions(client):
    resp = client.get("/api/security/questions")
    assert resp.status_code == 503


def test_answers_are_case_and_whitespace_insensitive(client, questions):
    marie = questions[0]
    for answer in (" Marie ", "MARIE", "marie"):
        resp = _verify(client, {str(marie.id): answer})
        assert resp.get_json() == {"success": True}
        assert "security_verified" in resp.headers.get("Set-Cookie", "")


def test_success_clears_previous_failures(client, questions):
    _verify(client, {str(questions[0].id): "wrong"})
    assert _attempts() == 1

    _verify(client, {str(questions[0].id): "marie"})

    assert _attempts() == 0
    data = client.get("/api/security/questions", headers=ATTACKER).get_json()
    assert data["attemptsLeft"] == 3


def test_one_wrong_answer_fails_the_whole_submission_once(client, questions):
    answers = {
        str(questions[0].id): "marie",
        str(questions[1].id): "montreal",
        str(questions[2].id): "pizza",
    }

    data = _verify(client, answers).get_json()

    assert data == {"success": False, "attemptsLeft": 2}
    assert _attempts() == 1


def test_aliased_question_ids_are_all_checked(client, questions):
    qid = questions[0].id
    answers = {f"0{qid}": "wrong", str(qid): "marie"}

    data = _verify(client, answers).get_json()

    assert data == {"success": False, "attemptsLeft": 2}
    assert _attempts() == 1
    assert client.get_cookie("security_verified") is None


def test_unknown_question_id_counts_as_failure(client, questions):
    data = _verify(client, {str(questions[0].id): "marie", "9999": "marie"}).get_json()
    assert data["success"] is False
    assert _attempts() == 1

    data = _verify(client, {"not-an-id": "marie"}).get_json()
    assert data["success"] is False
    assert _attempts() == 2


def test_malformed_submission_is_rejected_without_counting(client, questions):
    for body in ({}, {"answers": {}}, {"answers": ["marie"]}, {"answers": "marie"}):
        resp = client.post("/api/security/verify", json=body, headers=ATTACKER)
        assert resp.status_code == 400
    assert _attempts() == 0


def test_three_wrong_answers_block_the_ip(client, questions):
    qid = str(questions[0].id)

    first = _verify(client, {qid: "nope"}).get_json()
    second = _verify(client, {qid: "nope"}).get_json()
    third = _verify(client, {qid: "nope"}).get_json()

    assert first == {"success": False, "attemptsLeft": 2}
    assert second == {"success": False, "attemptsLeft": 1}
    assert third["success"] is False
    assert third["blocked"] is True
    blocked_until = datetime.fromisoformat(third["blockedUntil"].rstrip("Z"))
    expected = datetime.utcnow() + timedelta(minutes=15)
    assert abs((blocked_until - expected).total_seconds()) < 60

    # even the right answer is refused while blocked, and nothing is counted
    fourth = _verify(client, {qid: "marie"}).get_json()
    assert fourth["blocked"] is True
    assert fourth["blockedUntil"] == third["blockedUntil"]
    assert _attempts() == 3

    data = client.get("/api/security/questions", headers=ATTACKER).get_json()
    assert data["blocked"] is True
    assert "questions" not in data


def test_block_is_per_ip(client, questions):
    qid = str(questions[0].id)
    for _ in range(3):
        _verify(client, {qid: "nope"})

    resp = _verify(client, {qid: "marie"}, headers={"X-Forwarded-For": "10.0.0.2, 9.9.9.9"})
    assert resp.get_json() == {"success": True}


def test_storage_outage_fails_closed(client, questions, monkeypatch):
    def _down(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is down"))

    monkeypatch.setattr("routes.security.check_attempts", _down)

    resp = _verify(client, {str(questions[0].id): "marie"})

    assert resp.status_code == 500
    assert "security_verified" not in resp.headers.get("Set-Cookie", "")


def test_login_requires_the_portal(client, make_user):
    user = make_user("anne@example.com")
    resp = client.post("/auth/login", json={"email": user.email, "password": "whatever"})
    assert resp.status_code == 403
