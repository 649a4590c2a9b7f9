import json

from flask import Blueprint, jsonify, g, request, current_app
from sqlalchemy import func

from models import db
from models.audit_log import AuditLog
from models.security_question import SecurityQuestion, normalize_answer
from security.rbac import require_roles
from utils.audit import log_event

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _min_active() -> int:
    return current_app.config.get("MIN_ACTIVE_QUESTIONS", 3)


def _active_count(excluding_id=None) -> int:
    q = SecurityQuestion.query.filter_by(is_active=True)
    if excluding_id is not None:
        q = q.filter(SecurityQuestion.id != excluding_id)
    return q.count()


def _ordered():
    return SecurityQuestion.query.order_by(SecurityQuestion.order, SecurityQuestion.id).all()


@admin_bp.get("/security-questions")
@require_roles("ADMIN")
def list_questions():
    return jsonify(questions=[q.to_admin_dict() for q in _ordered()]), 200


@admin_bp.post("/security-questions")
@require_roles("ADMIN")
def create_question():
    data = request.get_json(silent=True) or {}
    question = data.get("question")
    answer = data.get("answer")

    if not isinstance(question, str) or not question.strip():
        return jsonify(error="question is required"), 400
    if not isinstance(answer, str) or not answer.strip():
        return jsonify(error="answer is required"), 400

    max_order = db.session.query(func.max(SecurityQuestion.order)).scalar()
    row = SecurityQuestion(
        question=question.strip(),
        answer=normalize_answer(answer),
        is_active=data.get("isActive") is not False,
        order=(max_order if max_order is not None else -1) + 1,
    )
    db.session.add(row)
    db.session.commit()

    log_event("SECURITY_QUESTION_CREATE", user_id=g.user.id, entity="security_question", entity_id=row.id)
    return jsonify(question=row.to_admin_dict()), 201


@admin_bp.put("/security-questions/<int:question_id>")
@require_roles("ADMIN")
def update_question(question_id):
    row = db.session.get(SecurityQuestion, question_id)
    if not row:
        return jsonify(error="Question not found"), 404

    data = request.get_json(silent=True) or {}
    changed = False

    question = data.get("question")
    if isinstance(question, str) and question.strip():
        row.question = question.strip()
        changed = True

    answer = data.get("answer")
    if isinstance(answer, str) and answer.strip():
        row.answer = normalize_answer(answer)
        changed = True

    is_active = data.get("isActive")
    if isinstance(is_active, bool):
        if not is_active and row.is_active and _active_count(excluding_id=row.id) < _min_active():
            db.session.rollback()
            return jsonify(error=f"At least {_min_active()} active questions are required"), 400
        row.is_active = is_active
        changed = True

    if not changed:
        return jsonify(error="No valid field to update"), 400

    db.session.commit()
    log_event("SECURITY_QUESTION_UPDATE", user_id=g.user.id, entity="security_question", entity_id=row.id)
    return jsonify(question=row.to_admin_dict()), 200


@admin_bp.delete("/security-questions/<int:question_id>")
@require_roles("ADMIN")
def delete_question(question_id):
    row = db.session.get(SecurityQuestion, question_id)
    if not row:
        return jsonify(error="Question not found"), 404

    if row.is_active and _active_count(excluding_id=row.id) < _min_active():
        return jsonify(error=f"At least {_min_active()} active questions are required"), 400

    db.session.delete(row)
    db.session.commit()
    log_event("SECURITY_QUESTION_DELETE", user_id=g.user.id, entity="security_question", entity_id=question_id)
    return jsonify(success=True), 200


@admin_bp.put("/security-questions/reorder")
@require_roles("ADMIN")
def reorder_questions():
    data = request.get_json(silent=True) or {}
    order = data.get("order")
    if not isinstance(order, list) or not all(isinstance(i, int) for i in order):
        return jsonify(error="order must be a list of question ids"), 400
    if len(set(order)) != len(order):
        return jsonify(error="order contains duplicate ids"), 400

    rows = {q.id: q for q in SecurityQuestion.query.filter(SecurityQuestion.id.in_(order)).all()}
    missing = [i for i in order if i not in rows]
    if missing:
        return jsonify(error="Unknown question id", ids=missing), 400

    # all positions change in one commit; readers never see a partial order
    for index, question_id in enumerate(order):
        rows[question_id].order = index
    db.session.commit()

    log_event("SECURITY_QUESTION_REORDER", user_id=g.user.id, metadata={"order": order})
    return jsonify(questions=[q.to_admin_dict() for q in _ordered()]), 200


def _decode_metadata(raw):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


@admin_bp.get("/audit-logs")
@require_roles("ADMIN")
def list_audit_logs():
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    q = AuditLog.query
    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action == action)
    user_id = request.args.get("userId", type=int)
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)

    rows = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify(logs=[
        {
            "id": r.id,
            "createdAt": r.created_at.isoformat(),
            "userId": r.user_id,
            "action": r.action,
            "entity": r.entity,
            "entityId": r.entity_id,
            "ip": r.ip,
            "userAgent": r.user_agent,
            "metadata": _decode_metadata(r.metadata_json),
        }
        for r in rows
    ]), 200
