from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import request
from sqlalchemy import case, or_, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.security_attempt import SecurityAttempt

# Action names that own an attempt budget
ACTIONS = ("login", "security")


@dataclass
class GateStatus:
    allowed: bool
    attempts_left: int
    blocked_until: Optional[datetime] = None

    @property
    def blocked(self) -> bool:
        return self.blocked_until is not None and not self.allowed

    def to_dict(self) -> dict:
        data = {"allowed": self.allowed, "attemptsLeft": self.attempts_left}
        if self.blocked:
            data["blocked"] = True
            data["blockedUntil"] = self.blocked_until.isoformat() + "Z"
        return data


def client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.remote_addr or "127.0.0.1"


def _validate(ip: str, action: str, *thresholds: int) -> None:
    if not isinstance(ip, str) or not ip:
        raise ValueError("ip must be a non-empty string")
    if action not in ACTIONS:
        raise ValueError(f"Unknown action: {action!r}")
    for value in thresholds:
        if not isinstance(value, int) or value <= 0:
            raise ValueError("Attempt thresholds must be positive integers")


def _key(ip: str, action: str):
    return (SecurityAttempt.ip_address == ip, SecurityAttempt.action == action)


def _get(ip: str, action: str):
    return SecurityAttempt.query.filter_by(ip_address=ip, action=action).first()


def _status(row, max_attempts: int, now: datetime) -> GateStatus:
    if row is None:
        return GateStatus(allowed=True, attempts_left=max_attempts)

    if row.blocked_until and row.blocked_until > now:
        return GateStatus(allowed=False, attempts_left=0, blocked_until=row.blocked_until)

    # An expired block no longer counts against the budget
    attempts = 0 if row.blocked_until else row.attempts
    return GateStatus(allowed=True, attempts_left=max(0, max_attempts - attempts))


def check_attempts(ip: str, action: str, max_attempts: int) -> GateStatus:
    """
    Read-only view of the attempt budget for (ip, action).
    """
    _validate(ip, action, max_attempts)
    return _status(_get(ip, action), max_attempts, datetime.utcnow())


def _increment(ip: str, action: str, now: datetime) -> int:
    # Single statement so concurrent failures cannot lose an increment.
    # A live block freezes the counter; an expired one restarts it at 1.
    stmt = (
        update(SecurityAttempt)
        .where(*_key(ip, action))
        .where(or_(SecurityAttempt.blocked_until.is_(None), SecurityAttempt.blocked_until <= now))
        .values(
            attempts=case(
                (SecurityAttempt.blocked_until.is_(None), SecurityAttempt.attempts + 1),
                else_=1,
            ),
            blocked_until=None,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount


def record_failed_attempt(ip: str, action: str, max_attempts: int, block_minutes: int) -> GateStatus:
    """
    Counts one failure for (ip, action) and starts a block once the budget
    is spent. The counter is only cleared by reset_attempts.
    """
    _validate(ip, action, max_attempts, block_minutes)
    now = datetime.utcnow()

    if not _increment(ip, action, now) and _get(ip, action) is None:
        db.session.add(SecurityAttempt(ip_address=ip, action=action, attempts=1, updated_at=now))
        try:
            db.session.flush()
        except IntegrityError:
            # Another request created the row first; nothing else is pending
            db.session.rollback()
            _increment(ip, action, now)

    db.session.execute(
        update(SecurityAttempt)
        .where(*_key(ip, action))
        .where(SecurityAttempt.attempts >= max_attempts)
        .where(SecurityAttempt.blocked_until.is_(None))
        .values(blocked_until=now + timedelta(minutes=block_minutes))
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    return _status(_get(ip, action), max_attempts, now)


def reset_attempts(ip: str, action: str) -> None:
    """
    Clears the counter after a successful verification.
    """
    _validate(ip, action)
    SecurityAttempt.query.filter_by(ip_address=ip, action=action).delete(synchronize_session=False)
    db.session.commit()
