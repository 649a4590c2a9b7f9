import smtplib
from email.message import EmailMessage
from typing import Optional, Tuple


class SmtpMailer:
    """
    SMTP transport. Built once at startup from app config and shared by
    every request and background thread; it holds credentials only.
    """

    def __init__(self, host: Optional[str], port: int = 587, username: Optional[str] = None,
                 password: Optional[str] = None, from_email: Optional[str] = None,
                 use_tls: bool = True, from_name: Optional[str] = None, timeout: int = 10):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email or username
        self.from_name = from_name
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "SmtpMailer":
        return cls(
            host=config.get("SMTP_HOST"),
            port=config.get("SMTP_PORT", 587),
            username=config.get("SMTP_USERNAME"),
            password=config.get("SMTP_PASSWORD"),
            from_email=config.get("SMTP_FROM_EMAIL"),
            use_tls=config.get("SMTP_USE_TLS", True),
            from_name=config.get("SITE_NAME"),
        )

    @property
    def configured(self) -> bool:
        return bool(self.host and self.from_email)

    def send(self, to_email: str, subject: str, html: str, text: Optional[str] = None) -> Tuple[bool, Optional[str]]:
        if not self.configured:
            return False, "Email not configured"

        msg = EmailMessage()
        msg["From"] = f"{self.from_name} <{self.from_email}>" if self.from_name else self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.set_content(text or "Open this message in an HTML capable mail client.")
        msg.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
            return True, None
        except (smtplib.SMTPException, OSError) as exc:
            return False, str(exc)
