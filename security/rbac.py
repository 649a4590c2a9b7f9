from functools import wraps
from flask import g, jsonify

from models.user import ROLES


def _role_guard(allowed):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401
            if not allowed(user.role):
                return jsonify(error="Forbidden"), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    unknown = set(role_names) - set(ROLES)
    if unknown:
        raise ValueError(f"Unknown roles: {sorted(unknown)}")
    return _role_guard(lambda role: role in role_names)


def forbid_roles(*role_names: str):
    """
    Usage: @forbid_roles("CHILD")
    """
    return _role_guard(lambda role: role not in role_names)
