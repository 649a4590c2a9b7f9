from datetime import datetime
from models.db import db

class SecurityAttempt(db.Model):
    __tablename__ = "security_attempts"
    __table_args__ = (
        db.UniqueConstraint("ip_address", "action", name="uq_security_attempts_ip_action"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Keyed by client IP, so a shared home network shares one budget
    ip_address = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(32), nullable=False)

    attempts = db.Column(db.Integer, default=0, nullable=False)
    blocked_until = db.Column(db.DateTime, nullable=True)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
