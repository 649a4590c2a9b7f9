from flask import Blueprint, request, jsonify, g

from models import db
from models.notification import Notification
from utils.auth_context import login_required

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")

MAX_LIMIT = 100


@notifications_bp.get("")
@login_required
def list_notifications():
    try:
        limit = int(request.args.get("limit", 20))
    except ValueError:
        return jsonify(error="limit must be an integer"), 400
    limit = min(max(limit, 1), MAX_LIMIT)
    unread_only = request.args.get("unreadOnly") == "true"

    q = Notification.query.filter_by(user_id=g.user.id)
    if unread_only:
        q = q.filter_by(is_read=False)
    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    unread = Notification.query.filter_by(user_id=g.user.id, is_read=False).count()

    return jsonify(notifications=[n.to_dict() for n in rows], unreadCount=unread), 200


@notifications_bp.put("/<int:notification_id>/read")
@login_required
def mark_read(notification_id):
    row = db.session.get(Notification, notification_id)
    if not row:
        return jsonify(error="Notification not found"), 404
    if row.user_id != g.user.id:
        return jsonify(error="Forbidden"), 403

    row.is_read = True
    db.session.commit()
    return jsonify(success=True), 200


@notifications_bp.put("/read-all")
@login_required
def mark_all_read():
    count = (
        Notification.query
        .filter_by(user_id=g.user.id, is_read=False)
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return jsonify(success=True, updated=count), 200
