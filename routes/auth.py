from datetime import datetime

from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.user import User
from security.bruteforce import check_attempts, client_ip, record_failed_attempt, reset_attempts
from security.csrf import issue_csrf_token
from security.password import MIN_PASSWORD_LENGTH, hash_password, verify_password
from security.portal import portal_verified_required
from security.session import create_session, revoke_session, revoke_all_sessions
from utils.audit import log_event
from utils.auth_context import login_required


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

ACTION = "login"


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _clean_name(value, limit=80):
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value if 0 < len(value) <= limit else None


def _user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "role": user.role,
    }


@auth_bp.post("/register")
@portal_verified_required
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    first_name = _clean_name(data.get("firstName"))
    last_name = _clean_name(data.get("lastName"))

    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400
    if not first_name or not last_name:
        return jsonify(error="firstName and lastName are required"), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify(error=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"), 400

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(error="Email already registered"), 409

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role="MEMBER",
    )
    db.session.add(user)
    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id)

    return jsonify(message="Registered successfully"), 201


@auth_bp.post("/login")
@portal_verified_required
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    ip = client_ip()
    max_attempts = current_app.config.get("MAX_LOGIN_ATTEMPTS", 5)
    block_minutes = current_app.config.get("SECURITY_BLOCK_MINUTES", 15)

    status = check_attempts(ip, ACTION, max_attempts)
    if status.blocked:
        log_event("LOGIN_LOCKED", metadata={"email": email, "blocked_until": status.blocked_until})
        return jsonify(error="Too many login attempts. Try again later.", **status.to_dict()), 429

    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        status = record_failed_attempt(ip, ACTION, max_attempts, block_minutes)
        log_event(
            "LOGIN_FAIL",
            user_id=user.id if user else None,
            metadata={"email": email, "attempts_left": status.attempts_left, "blocked": status.blocked},
        )
        if status.blocked:
            return jsonify(error="Too many failed attempts. Login blocked.", **status.to_dict()), 429
        return jsonify(error="Invalid credentials", attemptsLeft=status.attempts_left), 401

    reset_attempts(ip, ACTION)

    # Rotate: revoke any existing sessions for this user
    revoked_count = revoke_all_sessions(user.id)
    raw_token = create_session(user.id)

    user.last_login_at = datetime.utcnow()
    db.session.commit()

    resp = jsonify(message="Login OK", user=_user_dict(user))
    resp.set_cookie(
        current_app.config.get("AUTH_COOKIE_NAME", "familyportal_session"),
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
        path="/",
    )
    resp = issue_csrf_token(resp)

    log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"revoked_sessions": revoked_count})
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(_user_dict(g.user)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "familyportal_session")
    revoke_session(request.cookies.get(cookie_name))
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200


@auth_bp.post("/change_password")
@login_required
def change_password():
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password") or ""
    new_password = data.get("new_password") or ""

    if not verify_password(current_password, g.user.password_hash):
        return jsonify(error="Invalid current password"), 401
    if len(new_password) < MIN_PASSWORD_LENGTH:
        return jsonify(error=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"), 400

    g.user.password_hash = hash_password(new_password)
    db.session.commit()
    log_event("PASSWORD_CHANGED", user_id=g.user.id)
    return jsonify(message="Password updated"), 200
