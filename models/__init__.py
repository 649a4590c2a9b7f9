from .db import db
from .user import User
from .audit_log import AuditLog
from .session import Session
from .security_attempt import SecurityAttempt
from .security_question import SecurityQuestion
from .notification import Notification, NotificationPreference, NotificationType
from .push_subscription import PushSubscription
from .forum import Topic, Reply
