import enum
from datetime import datetime
from models.db import db


class NotificationType(str, enum.Enum):
    NEW_EVENT = "NEW_EVENT"
    MENTION = "MENTION"
    QUOTE = "QUOTE"
    TOPIC_REPLY = "TOPIC_REPLY"

    @classmethod
    def parse(cls, value):
        """Return the member named by ``value`` or None."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type = db.Column(db.Enum(NotificationType, native_enum=False, length=32), nullable=False)

    message = db.Column(db.String(500), nullable=False)
    link = db.Column(db.String(500), nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    created_by = db.relationship("User", foreign_keys=[created_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "message": self.message,
            "link": self.link,
            "isRead": self.is_read,
            "createdAt": self.created_at.isoformat(),
            "createdBy": (
                {
                    "id": self.created_by.id,
                    "firstName": self.created_by.first_name,
                    "lastName": self.created_by.last_name,
                }
                if self.created_by else None
            ),
        }


class NotificationPreference(db.Model):
    __tablename__ = "notification_preferences"
    __table_args__ = (
        db.UniqueConstraint("user_id", "type", name="uq_notification_preferences_user_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type = db.Column(db.Enum(NotificationType, native_enum=False, length=32), nullable=False)

    # A missing row means both channels are off
    email_enabled = db.Column(db.Boolean, default=False, nullable=False)
    push_enabled = db.Column(db.Boolean, default=False, nullable=False)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
