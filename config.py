import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as familyportal.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "familyportal.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "familyportal_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 60 minutes
    IDLE_TIMEOUT_SECONDS = 60 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Security portal (questions asked before the login page)
    SECURITY_MAX_ATTEMPTS = 3
    SECURITY_BLOCK_MINUTES = 15
    SECURITY_VERIFIED_COOKIE = "security_verified"
    SECURITY_VERIFIED_SECONDS = 30 * 60
    MIN_ACTIVE_QUESTIONS = 3

    # Brute-force protection on login (shares the portal block duration)
    MAX_LOGIN_ATTEMPTS = 5

    # Public base URL used for links in emails and push payloads
    SITE_URL = os.getenv("SITE_URL", "http://localhost:5002")
    SITE_NAME = os.getenv("SITE_NAME", "Family Portal")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Web Push (VAPID)
    VAPID_PRIVATE_KEY = os.getenv("VAPID_PRIVATE_KEY")
    VAPID_PUBLIC_KEY = os.getenv("VAPID_PUBLIC_KEY")
    VAPID_SUBJECT = os.getenv("VAPID_SUBJECT", "mailto:admin@example.com")
    PUSH_TTL_SECONDS = int(os.getenv("PUSH_TTL_SECONDS", "86400"))

    # Notification fan-out
    NOTIFY_IN_BACKGROUND = True
    NOTIFY_MAX_WORKERS = int(os.getenv("NOTIFY_MAX_WORKERS", "8"))

    # Daily digest
    CRON_SECRET = os.getenv("CRON_SECRET")
    DIGEST_WINDOW_HOURS = 24
    DIGEST_TIMEZONE = os.getenv("DIGEST_TIMEZONE", "America/Toronto")

    # Basic app settings
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    DEBUG = False
