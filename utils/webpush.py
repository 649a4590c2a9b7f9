import json
from typing import Optional

from pywebpush import WebPushException, webpush

# Push services answer 404/410 once a subscription is expired or revoked
GONE_STATUSES = (404, 410)


def push_status(exc: WebPushException) -> Optional[int]:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None) if response is not None else None


def is_gone(exc: WebPushException) -> bool:
    return push_status(exc) in GONE_STATUSES


class WebPushClient:
    """
    VAPID-signed Web Push sender, built once at startup and reused.
    """

    def __init__(self, private_key: Optional[str], public_key: Optional[str] = None,
                 subject: str = "mailto:admin@example.com", ttl: int = 86400):
        self.private_key = private_key
        self.public_key = public_key
        self.subject = subject
        self.ttl = ttl

    @classmethod
    def from_config(cls, config) -> "WebPushClient":
        return cls(
            private_key=config.get("VAPID_PRIVATE_KEY"),
            public_key=config.get("VAPID_PUBLIC_KEY"),
            subject=config.get("VAPID_SUBJECT", "mailto:admin@example.com"),
            ttl=config.get("PUSH_TTL_SECONDS", 86400),
        )

    @property
    def configured(self) -> bool:
        return bool(self.private_key)

    def send(self, subscription_info: dict, payload: dict) -> None:
        """Raises WebPushException on any non-2xx answer from the push service."""
        webpush(
            subscription_info=subscription_info,
            data=json.dumps(payload),
            vapid_private_key=self.private_key,
            vapid_claims={"sub": self.subject},
            ttl=self.ttl,
        )
