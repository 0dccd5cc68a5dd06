"""Notification model - in-app notifications for platform users."""
import enum

from sqlalchemy import Column, String, Boolean, DateTime, JSON, CheckConstraint, Index
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class NotificationType(str, enum.Enum):
    APPOINTMENT = 'appointment'
    BOOKING = 'booking'
    PAYMENT = 'payment'
    STAFF = 'staff'
    INVENTORY = 'inventory'
    SUBSCRIPTION = 'subscription'
    SYSTEM = 'system'
    PROMOTION = 'promotion'


class NotificationPriority(str, enum.Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    URGENT = 'urgent'


class Notification(model_base(EntityKind.NOTIFICATION)):
    """Notification addressed to a user, optionally scoped to a salon."""

    __tablename__ = 'notifications'

    id = Column(IdType, primary_key=True, autoincrement=True)
    user_id = Column(IdType, nullable=False, index=True)
    salon_id = Column(IdType, nullable=True, index=True)
    type = Column(String(20), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)
    priority = Column(String(10), nullable=False, default=NotificationPriority.MEDIUM.value)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    action_url = Column(String(500), nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "type IN ('appointment', 'booking', 'payment', 'staff', 'inventory', "
            "'subscription', 'system', 'promotion')",
            name='check_notification_type'
        ),
        CheckConstraint("priority IN ('low', 'medium', 'high', 'urgent')", name='check_notification_priority'),
        Index('ix_notifications_user_read', 'user_id', 'is_read'),
    )

    @property
    def is_urgent_unread(self):
        return self.priority == NotificationPriority.URGENT.value and not self.is_read

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'salon_id': self.salon_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'priority': self.priority,
            'is_read': self.is_read,
            'read_at': self.read_at.isoformat() if self.read_at else None,
            'data': self.data or {},
            'action_url': self.action_url,
        }

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type='{self.type}')>"
