"""
Notification fan-out: turns one event into push and email deliveries for
the users who opted in to that notification type.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from threading import Thread
from typing import Iterable, List, Optional

from flask import current_app, render_template
from pywebpush import WebPushException

from models import db
from models.notification import NotificationPreference, NotificationType
from models.push_subscription import PushSubscription
from models.user import User
from utils.emailer import SmtpMailer
from utils.webpush import WebPushClient, is_gone, push_status


@dataclass
class NotificationPayload:
    title: str
    body: str
    url: str
    icon: Optional[str] = None
    tag: Optional[str] = None

    def to_json(self) -> dict:
        data = {"title": self.title, "body": self.body, "url": self.url}
        if self.icon:
            data["icon"] = self.icon
        if self.tag:
            data["tag"] = self.tag
        return data


@dataclass
class FanoutReport:
    push_sent: int = 0
    push_failed: int = 0
    push_pruned: int = 0
    email_sent: int = 0
    email_failed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class _EmailJob:
    user_id: int
    to_email: str
    subject: str
    html: str
    text: str


def _dedupe(user_ids: Iterable) -> List[int]:
    return sorted({int(u) for u in (user_ids or []) if u is not None})


def absolute_url(path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    return current_app.config.get("SITE_URL", "").rstrip("/") + "/" + path.lstrip("/")


class NotificationFanout:
    """
    Owns the delivery clients. One instance is built in create_app and kept
    in app.extensions["fanout"].
    """

    def __init__(self, push_client: WebPushClient, mailer: SmtpMailer, max_workers: int = 8):
        self.push_client = push_client
        self.mailer = mailer
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_config(cls, config) -> "NotificationFanout":
        return cls(
            push_client=WebPushClient.from_config(config),
            mailer=SmtpMailer.from_config(config),
            max_workers=config.get("NOTIFY_MAX_WORKERS", 8),
        )

    def dispatch(self, user_ids, notification_type, payload: NotificationPayload) -> Optional[Thread]:
        """
        Fire-and-forget entry point for request handlers. The thread keeps
        its own app context, so it finishes after the response is sent.
        """
        ntype = NotificationType.parse(notification_type)
        try:
            ids = _dedupe(user_ids)
        except (TypeError, ValueError):
            ids = None
        if ntype is None or ids is None:
            current_app.logger.error("[fanout] dropped %r notification for %r", notification_type, user_ids)
            return None
        if not ids:
            return None

        app = current_app._get_current_object()
        if not app.config.get("NOTIFY_IN_BACKGROUND", True):
            self.notify(ids, ntype, payload)
            return None

        def _run():
            with app.app_context():
                self.notify(ids, ntype, payload)

        thread = Thread(target=_run, name=f"fanout-{ntype.value.lower()}")
        thread.start()
        return thread

    def notify(self, user_ids, notification_type, payload: NotificationPayload) -> FanoutReport:
        """Deliver one notification. Never raises; failures end up in the log."""
        try:
            return self._notify(user_ids, notification_type, payload)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("[fanout] %s notification aborted", notification_type)
            return FanoutReport(errors=["aborted"])

    def _notify(self, user_ids, notification_type, payload: NotificationPayload) -> FanoutReport:
        report = FanoutReport()
        ids = _dedupe(user_ids)
        if not ids:
            return report

        ntype = NotificationType.parse(notification_type)
        if ntype is None:
            raise ValueError(f"Unknown notification type: {notification_type!r}")

        prefs = (
            NotificationPreference.query
            .filter(NotificationPreference.user_id.in_(ids), NotificationPreference.type == ntype)
            .all()
        )
        push_ids = sorted({p.user_id for p in prefs if p.push_enabled})
        email_ids = sorted({p.user_id for p in prefs if p.email_enabled})

        subscriptions = self._load_subscriptions(push_ids)
        email_jobs = self._build_email_jobs(email_ids, ntype, payload)
        if not subscriptions and not email_jobs:
            return report

        gone_ids = []
        push_data = payload.to_json()
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {}
            for sub_id, info in subscriptions:
                futures[pool.submit(self._push_one, info, push_data)] = ("push", sub_id)
            for job in email_jobs:
                futures[pool.submit(self._email_one, job)] = ("email", job.user_id)

            for future in as_completed(futures):
                channel, key = futures[future]
                if channel == "push":
                    outcome, detail = future.result()
                    if outcome == "sent":
                        report.push_sent += 1
                    elif outcome == "gone":
                        gone_ids.append(key)
                    else:
                        report.push_failed += 1
                        report.errors.append(f"push:{key}:{detail}")
                        current_app.logger.warning("[push] subscription=%s failed: %s", key, detail)
                else:
                    ok, error = future.result()
                    if ok:
                        report.email_sent += 1
                    else:
                        report.email_failed += 1
                        report.errors.append(f"email:{key}:{error}")
                        current_app.logger.warning("[email] user=%s failed: %s", key, error)

        if gone_ids:
            report.push_pruned = (
                PushSubscription.query
                .filter(PushSubscription.id.in_(gone_ids))
                .delete(synchronize_session=False)
            )
            db.session.commit()
            current_app.logger.info("[push] pruned %d expired subscription(s)", report.push_pruned)

        current_app.logger.info(
            "[fanout] %s users=%d push=%d/%d email=%d/%d",
            ntype.value, len(ids),
            report.push_sent, len(subscriptions),
            report.email_sent, len(email_jobs),
        )
        return report

    def _load_subscriptions(self, user_ids: List[int]):
        if not user_ids:
            return []
        if not self.push_client.configured:
            current_app.logger.info("[push] VAPID keys not configured; skipping %d user(s)", len(user_ids))
            return []
        rows = PushSubscription.query.filter(PushSubscription.user_id.in_(user_ids)).all()
        # plain data only; worker threads never touch the session
        return [(row.id, row.subscription_info()) for row in rows]

    def _build_email_jobs(self, user_ids: List[int], ntype: NotificationType, payload: NotificationPayload):
        if not user_ids:
            return []
        users = User.query.filter(User.id.in_(user_ids), User.is_active.is_(True)).all()
        link = absolute_url(payload.url)
        site_name = current_app.config.get("SITE_NAME", "Family Portal")
        jobs = []
        for user in users:
            html = render_template(
                "email/notification.html",
                site_name=site_name,
                first_name=user.first_name,
                title=payload.title,
                body=payload.body,
                link=link,
                preferences_url=absolute_url("/profil"),
                notification_type=ntype.value,
            )
            text = f"{payload.body}\n\n{link}"
            jobs.append(_EmailJob(user.id, user.email, f"{payload.title} - {site_name}", html, text))
        return jobs

    def _push_one(self, subscription_info: dict, data: dict):
        try:
            self.push_client.send(subscription_info, data)
            return "sent", None
        except WebPushException as exc:
            if is_gone(exc):
                return "gone", push_status(exc)
            return "failed", push_status(exc) or str(exc)
        except Exception as exc:
            return "failed", repr(exc)

    def _email_one(self, job: _EmailJob):
        try:
            return self.mailer.send(job.to_email, job.subject, job.html, job.text)
        except Exception as exc:
            return False, repr(exc)


def get_fanout() -> NotificationFanout:
    return current_app.extensions["fanout"]
