from flask import current_app

from models import db
from models.notification import Notification, NotificationType
from utils.fanout import NotificationPayload, get_fanout


def create_notifications(user_ids, notification_type, message: str, link: str, created_by=None):
    """
    Stores one in-app notification per recipient (never the actor) and
    hands the same event to the fan-out without waiting for delivery.
    """
    ntype = NotificationType.parse(notification_type)
    if ntype is None:
        raise ValueError(f"Unknown notification type: {notification_type!r}")

    actor_id = created_by.id if created_by is not None else None
    recipients = sorted({uid for uid in user_ids if uid is not None and uid != actor_id})
    if not recipients:
        return []

    rows = [
        Notification(user_id=uid, type=ntype, message=message, link=link, created_by_id=actor_id)
        for uid in recipients
    ]
    db.session.add_all(rows)
    db.session.commit()

    payload = NotificationPayload(
        title=current_app.config.get("SITE_NAME", "Family Portal"),
        body=message,
        url=link,
        icon="/icon-192.png",
        tag=f"{ntype.value.lower()}-{link}",
    )
    get_fanout().dispatch(recipients, ntype, payload)
    return rows
