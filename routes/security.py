import secrets

from flask import Blueprint, request, jsonify, current_app

from models.security_question import SecurityQuestion
from security.bruteforce import check_attempts, client_ip, record_failed_attempt, reset_attempts
from security.portal import set_portal_cookie
from utils.audit import log_event

security_bp = Blueprint("security", __name__, url_prefix="/api/security")

ACTION = "security"


def _max_attempts() -> int:
    return current_app.config.get("SECURITY_MAX_ATTEMPTS", 3)


def _blocked_payload(status, **extra):
    return jsonify(blocked=True, blockedUntil=status.to_dict()["blockedUntil"], **extra)


@security_bp.get("/questions")
def get_question():
    ip = client_ip()
    status = check_attempts(ip, ACTION, _max_attempts())
    if status.blocked:
        return _blocked_payload(status), 200

    active = SecurityQuestion.query.filter_by(is_active=True).order_by(SecurityQuestion.order).all()
    if not active:
        current_app.logger.error("[gate] no active security question configured")
        return jsonify(error="Security portal is not configured"), 503

    # one question per request, picked uniformly from the active set
    question = secrets.choice(active)
    return jsonify(
        questions=[{"id": question.id, "question": question.question}],
        attemptsLeft=status.attempts_left,
    ), 200


def _parse_answers(data):
    answers = data.get("answers")
    if not isinstance(answers, dict) or not answers:
        return None
    # pairs, not a dict: "1" and "01" name the same question and both get checked
    parsed = []
    for key, value in answers.items():
        try:
            parsed.append((int(key), value))
        except (TypeError, ValueError):
            # an id that cannot exist still counts as a wrong answer
            parsed.append((key, value))
    return parsed


@security_bp.post("/verify")
def verify():
    ip = client_ip()
    max_attempts = _max_attempts()
    block_minutes = current_app.config.get("SECURITY_BLOCK_MINUTES", 15)

    status = check_attempts(ip, ACTION, max_attempts)
    if status.blocked:
        return _blocked_payload(status, success=False), 200

    answers = _parse_answers(request.get_json(silent=True) or {})
    if answers is None:
        return jsonify(error="answers must be a non-empty object keyed by question id"), 400

    ids = {k for k, _ in answers if isinstance(k, int)}
    questions = {q.id: q for q in SecurityQuestion.query.filter(SecurityQuestion.id.in_(ids)).all()} if ids else {}

    all_correct = all(
        key in questions and questions[key].matches(value)
        for key, value in answers
    )

    if all_correct:
        reset_attempts(ip, ACTION)
        log_event("SECURITY_VERIFY_SUCCESS")
        return set_portal_cookie(jsonify(success=True)), 200

    status = record_failed_attempt(ip, ACTION, max_attempts, block_minutes)
    log_event("SECURITY_VERIFY_FAIL", metadata={"attempts_left": status.attempts_left, "blocked": status.blocked})

    if status.blocked:
        current_app.logger.warning("[gate] %s blocked until %s", ip, status.blocked_until)
        log_event("SECURITY_BLOCKED", metadata={"blocked_until": status.blocked_until})
        return _blocked_payload(status, success=False), 200

    return jsonify(success=False, attemptsLeft=status.attempts_left), 200
