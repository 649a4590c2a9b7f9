"""
Daily email digest. Run by the cron endpoint or `flask send-digest`.

Every notification from the trailing window is included, even ones that
were already delivered live by the fan-out.
"""
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, render_template

from models.notification import Notification, NotificationPreference, NotificationType
from models.user import User
from utils.fanout import absolute_url

TYPE_SECTIONS = {
    NotificationType.NEW_EVENT: ("\U0001F4C5", "New events"),
    NotificationType.MENTION: ("\U0001F4AC", "Mentions"),
    NotificationType.QUOTE: ("\U0001F4AC", "Quotes"),
    NotificationType.TOPIC_REPLY: ("\U0001F4AC", "Replies to your topics"),
}


@dataclass
class DigestResult:
    sent: int
    total: int

    def to_dict(self) -> dict:
        return {"sent": self.sent, "total": self.total}


def _local_zone():
    name = current_app.config.get("DIGEST_TIMEZONE", "UTC")
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        current_app.logger.warning("[digest] unknown timezone %s, using UTC", name)
        return timezone.utc


def collect_digests(now=None):
    """
    Returns [(user, [Notification, ...])] for every active user with at
    least one qualifying notification, items newest first.
    """
    now = now or datetime.utcnow()
    hours = current_app.config.get("DIGEST_WINDOW_HOURS", 24)
    since = now - timedelta(hours=hours)

    rows = (
        Notification.query
        .filter(Notification.created_at >= since, Notification.created_at <= now)
        .order_by(Notification.created_at.desc())
        .all()
    )
    if not rows:
        return []

    by_user = defaultdict(list)
    for row in rows:
        by_user[row.user_id].append(row)

    enabled = defaultdict(set)
    prefs = (
        NotificationPreference.query
        .filter(NotificationPreference.user_id.in_(list(by_user)), NotificationPreference.email_enabled.is_(True))
        .all()
    )
    for pref in prefs:
        enabled[pref.user_id].add(pref.type)
    if not enabled:
        return []

    users = User.query.filter(User.id.in_(list(enabled)), User.is_active.is_(True)).all()

    digests = []
    for user in sorted(users, key=lambda u: u.id):
        items = [n for n in by_user[user.id] if n.type in enabled[user.id]]
        if items:
            digests.append((user, items))
    return digests


def render_digest(user, items) -> str:
    zone = _local_zone()
    grouped = defaultdict(list)
    for n in items:
        grouped[n.type].append({
            "message": n.message,
            "url": absolute_url(n.link),
            "time": n.created_at.replace(tzinfo=timezone.utc).astimezone(zone).strftime("%H:%M"),
        })

    sections = []
    for ntype in NotificationType:
        if ntype in grouped:
            emoji, label = TYPE_SECTIONS.get(ntype, ("\U0001F514", ntype.value))
            sections.append({"emoji": emoji, "label": label, "items": grouped[ntype]})

    return render_template(
        "email/digest.html",
        site_name=current_app.config.get("SITE_NAME", "Family Portal"),
        first_name=user.first_name,
        window_hours=current_app.config.get("DIGEST_WINDOW_HOURS", 24),
        sections=sections,
        preferences_url=absolute_url("/profil"),
    )


def send_daily_digest(mailer, now=None, max_workers=None) -> DigestResult:
    digests = collect_digests(now)
    if not digests:
        current_app.logger.info("[digest] nothing to send")
        return DigestResult(sent=0, total=0)

    site_name = current_app.config.get("SITE_NAME", "Family Portal")
    subject = f"Your daily summary - {site_name}"
    messages = [
        (user.id, user.email, render_digest(user, items), len(items))
        for user, items in digests
    ]

    def _send(to_email, html):
        try:
            return mailer.send(to_email, subject, html)
        except Exception as exc:
            return False, repr(exc)

    sent = 0
    workers = max_workers or current_app.config.get("NOTIFY_MAX_WORKERS", 8)
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        futures = {pool.submit(_send, email, html): (user_id, count) for user_id, email, html, count in messages}
        for future in as_completed(futures):
            user_id, count = futures[future]
            ok, error = future.result()
            if ok:
                sent += 1
            else:
                current_app.logger.warning("[digest] user=%s (%d items) failed: %s", user_id, count, error)

    current_app.logger.info("[digest] sent %d/%d", sent, len(messages))
    return DigestResult(sent=sent, total=len(messages))
