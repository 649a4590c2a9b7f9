from flask import Blueprint, request, jsonify, g, current_app

from models import db
from models.notification import NotificationPreference, NotificationType
from models.push_subscription import PushSubscription
from utils.auth_context import login_required

push_bp = Blueprint("push", __name__, url_prefix="/api/push")


@push_bp.get("/vapid-public-key")
def vapid_public_key():
    key = current_app.config.get("VAPID_PUBLIC_KEY")
    if not key:
        return jsonify(error="Push notifications are not configured"), 404
    return jsonify(publicKey=key), 200


@push_bp.post("/subscribe")
@login_required
def subscribe():
    data = request.get_json(silent=True) or {}
    endpoint = data.get("endpoint")
    keys = data.get("keys") or {}
    if not isinstance(endpoint, str) or not endpoint or not isinstance(keys, dict):
        return jsonify(error="Invalid subscription"), 400
    p256dh, auth = keys.get("p256dh"), keys.get("auth")
    if not p256dh or not auth:
        return jsonify(error="Invalid subscription"), 400

    # upsert by endpoint: a browser that changes account follows the new user
    row = PushSubscription.query.filter_by(endpoint=endpoint).first()
    if row:
        row.user_id = g.user.id
        row.p256dh = p256dh
        row.auth = auth
    else:
        db.session.add(PushSubscription(user_id=g.user.id, endpoint=endpoint, p256dh=p256dh, auth=auth))
    db.session.commit()
    return jsonify(success=True), 201


@push_bp.delete("/subscribe")
@login_required
def unsubscribe():
    data = request.get_json(silent=True) or {}
    endpoint = data.get("endpoint")
    if not isinstance(endpoint, str) or not endpoint:
        return jsonify(error="endpoint is required"), 400

    PushSubscription.query.filter_by(endpoint=endpoint, user_id=g.user.id).delete(synchronize_session=False)
    db.session.commit()
    return jsonify(success=True), 200


@push_bp.get("/preferences")
@login_required
def get_preferences():
    rows = {p.type: p for p in NotificationPreference.query.filter_by(user_id=g.user.id).all()}
    return jsonify(preferences=[
        {
            "type": ntype.value,
            "pushEnabled": bool(rows[ntype].push_enabled) if ntype in rows else False,
            "emailEnabled": bool(rows[ntype].email_enabled) if ntype in rows else False,
        }
        for ntype in NotificationType
    ]), 200


@push_bp.put("/preferences")
@login_required
def update_preferences():
    data = request.get_json(silent=True) or {}
    items = data.get("preferences")
    if not isinstance(items, list):
        return jsonify(error="preferences must be a list"), 400

    existing = {p.type: p for p in NotificationPreference.query.filter_by(user_id=g.user.id).all()}
    updated = 0
    for item in items:
        if not isinstance(item, dict):
            continue
        ntype = NotificationType.parse(item.get("type"))
        push_enabled = item.get("pushEnabled")
        email_enabled = item.get("emailEnabled")
        if ntype is None or not (isinstance(push_enabled, bool) or isinstance(email_enabled, bool)):
            continue

        row = existing.get(ntype)
        if row is None:
            row = NotificationPreference(user_id=g.user.id, type=ntype, push_enabled=False, email_enabled=False)
            db.session.add(row)
            existing[ntype] = row
        if isinstance(push_enabled, bool):
            row.push_enabled = push_enabled
        if isinstance(email_enabled, bool):
            row.email_enabled = email_enabled
        updated += 1

    # single commit so a partial update is never visible
    db.session.commit()
    return jsonify(success=True, updated=updated), 200
