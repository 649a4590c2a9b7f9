"""Signed marker proving the visitor answered the security portal."""
from functools import wraps

from flask import current_app, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

_SALT = "security-portal"
_MARKER = "verified"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=_SALT)


def set_portal_cookie(resp):
    max_age = current_app.config.get("SECURITY_VERIFIED_SECONDS", 30 * 60)
    resp.set_cookie(
        current_app.config.get("SECURITY_VERIFIED_COOKIE", "security_verified"),
        _serializer().dumps(_MARKER),
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite="Lax",
        max_age=max_age,
        path="/",
    )
    return resp


def is_portal_verified() -> bool:
    token = request.cookies.get(current_app.config.get("SECURITY_VERIFIED_COOKIE", "security_verified"))
    if not token:
        return False
    max_age = current_app.config.get("SECURITY_VERIFIED_SECONDS", 30 * 60)
    try:
        return _serializer().loads(token, max_age=max_age) == _MARKER
    except (SignatureExpired, BadSignature):
        return False


def portal_verified_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not is_portal_verified():
            return jsonify(error="Security verification required"), 403
        return fn(*args, **kwargs)
    return wrapper
