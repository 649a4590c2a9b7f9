from .health import health_bp
from .auth import auth_bp
from .security import security_bp
from .admin import admin_bp
from .push import push_bp
from .notifications import notifications_bp
from .forum import forum_bp
from .cron import cron_bp

ALL_BLUEPRINTS = (
    health_bp,
    auth_bp,
    security_bp,
    admin_bp,
    push_bp,
    notifications_bp,
    forum_bp,
    cron_bp,
)
