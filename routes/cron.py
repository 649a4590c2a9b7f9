import secrets

from flask import Blueprint, request, jsonify, current_app

from utils.digest import send_daily_digest
from utils.fanout import get_fanout

cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


def _authorized() -> bool:
    secret = current_app.config.get("CRON_SECRET")
    header = request.headers.get("Authorization") or ""
    # an unset secret disables the endpoint instead of opening it
    return bool(secret) and secrets.compare_digest(header, f"Bearer {secret}")


@cron_bp.get("/email-digest")
def email_digest():
    if not _authorized():
        return jsonify(error="Unauthorized"), 401

    result = send_daily_digest(get_fanout().mailer)
    return jsonify(result.to_dict()), 200
