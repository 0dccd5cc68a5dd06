"""
Notifications: persisted in the platform partition and delivered through a Notifier.

Delivery is best effort. A failing notifier is logged and never breaks the
operation that triggered it.
"""
import logging
from typing import Any, Dict, List, Optional

from salonhub.exceptions import NotFoundError, ValidationError
from salonhub.models import Notification, NotificationPriority, NotificationType, User
from salonhub.utils.formatters import utcnow
from salonhub.utils.pagination import page_meta

logger = logging.getLogger(__name__)


class Notifier:
    """Delivery channel for notifications."""

    def send(self, notification: Notification, recipient: Any) -> bool:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Writes notifications to the application log."""

    def send(self, notification, recipient):
        address = getattr(recipient, 'email', None) or '-'
        logger.info(f"[NOTIFY] {notification.type} to {address}: {notification.title}")
        return True


class EmailNotifier(Notifier):
    """Sends notifications by email through Flask-Mail."""

    def send(self, notification, recipient):
        from salonhub.services.email_service import send_email

        email = getattr(recipient, 'email', None)
        if not email:
            logger.warning(f"[NOTIFY] Recipient without email, '{notification.title}' not sent")
            return False
        return send_email(email, notification.title, notification.message)


class RecordingNotifier(Notifier):
    """Keeps sent notifications in memory."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    def send(self, notification, recipient):
        if self.fail:
            raise RuntimeError('Notifier unavailable')
        self.sent.append((notification, recipient))
        return True


def build_notifier(name: str) -> Notifier:
    """Notifier for a NOTIFIER config value."""
    if name == 'email':
        return EmailNotifier()
    if name == 'log':
        return LogNotifier()
    raise ValueError(f"Unknown notifier: {name}")


def deliver(notifier: Optional[Notifier], notification: Notification, recipient: Any) -> bool:
    """Send through the notifier, logging instead of raising on failure."""
    if notifier is None:
        return False
    try:
        return bool(notifier.send(notification, recipient))
    except Exception as e:
        logger.warning(f"[NOTIFY] Delivery of '{notification.title}' failed: {e}")
        return False


class NotificationService:
    """Create, list and acknowledge user notifications."""

    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier

    def create_notification(
        self,
        session,
        user_id: int,
        type: str,
        title: str,
        message: str,
        priority: str = NotificationPriority.MEDIUM.value,
        salon_id: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
        action_url: Optional[str] = None,
        expires_at=None,
        recipient: Any = None
    ) -> Notification:
        """Persist a notification, then deliver it."""
        if type not in {t.value for t in NotificationType}:
            raise ValidationError(f"Invalid notification type: {type}")
        if priority not in {p.value for p in NotificationPriority}:
            raise ValidationError(f"Invalid notification priority: {priority}")
        if not title or len(title) > 200:
            raise ValidationError('Title is required and limited to 200 characters')
        if not message or len(message) > 1000:
            raise ValidationError('Message is required and limited to 1000 characters')

        notification = Notification(
            user_id=user_id,
            salon_id=salon_id,
            type=type,
            title=title,
            message=message,
            priority=priority,
            data=data or {},
            action_url=action_url,
            expires_at=expires_at,
        )
        session.add(notification)
        session.commit()

        if recipient is None:
            recipient = session.get(User, user_id)
        deliver(self.notifier, notification, recipient)

        logger.info(f"[NOTIFY] Notification {notification.id} created for user {user_id}")
        return notification

    def _user_query(self, session, user_id: int):
        now = utcnow()
        return session.query(Notification).filter(
            Notification.user_id == user_id,
            (Notification.expires_at.is_(None)) | (Notification.expires_at > now)
        )

    def get_user_notifications(
        self,
        session,
        user_id: int,
        page: int = 1,
        per_page: int = 20,
        unread_only: bool = False,
        type: Optional[str] = None
    ) -> Dict[str, Any]:
        query = self._user_query(session, user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        if type:
            query = query.filter(Notification.type == type)

        total = query.count()
        items: List[Notification] = query.order_by(
            Notification.created_at.desc(), Notification.id.desc()
        ).offset((page - 1) * per_page).limit(per_page).all()

        return {
            'items': items,
            'meta': page_meta(page, per_page, total),
            'unread_count': self.unread_count(session, user_id),
        }

    def mark_as_read(self, session, user_id: int, notification_id: int) -> Notification:
        notification = session.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            session.commit()
        return notification

    def mark_all_as_read(self, session, user_id: int) -> int:
        count = session.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).update({'is_read': True, 'read_at': utcnow()}, synchronize_session=False)
        session.commit()
        return count

    def unread_count(self, session, user_id: int) -> int:
        return self._user_query(session, user_id).filter(Notification.is_read.is_(False)).count()
