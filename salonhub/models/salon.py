"""Salon model - the tenant. Each salon owns all tenant-partition data."""
import enum
from datetime import time

from sqlalchemy import Column, String, Boolean, DateTime, Numeric, Time, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class SalonStatus(str, enum.Enum):
    """Tenant lifecycle status. Salons are never hard-deleted."""
    PENDING = 'pending'
    ACTIVE = 'active'
    SUSPENDED = 'suspended'
    INACTIVE = 'inactive'


class Salon(model_base(EntityKind.SALON)):
    """Salon (tenant)."""

    __tablename__ = 'salon'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(120), nullable=False, unique=True)  # URL-safe identifier
    owner_user_id = Column(IdType, nullable=True)  # User id in the platform partition
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    city = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    timezone = Column(String(50), nullable=False, default='UTC')
    currency = Column(String(3), nullable=False, default='INR')
    tax_rate = Column(Numeric(5, 4), nullable=False, default=0)  # 0.18 == 18%

    # Business day window used for slot generation
    opens_at = Column(Time, nullable=False, default=time(9, 0))
    closes_at = Column(Time, nullable=False, default=time(18, 0))

    status = Column(String(20), nullable=False, default=SalonStatus.PENDING.value)
    subscription_status = Column(String(20), nullable=False, default='trial')
    status_reason = Column(String(500), nullable=True)
    onboarding_completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    staff = relationship('Staff', back_populates='salon')

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'active', 'suspended', 'inactive')", name='check_salon_status'),
        CheckConstraint(
            "subscription_status IN ('trial', 'active', 'past_due', 'cancelled', 'expired')",
            name='check_salon_subscription_status'
        ),
    )

    def is_operational(self):
        """A salon accepts bookings when active, subscribed and onboarded."""
        return (
            self.status == SalonStatus.ACTIVE.value
            and self.subscription_status in ('trial', 'active')
            and bool(self.onboarding_completed)
        )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'owner_user_id': self.owner_user_id,
            'email': self.email,
            'phone': self.phone,
            'city': self.city,
            'status': self.status,
            'subscription_status': self.subscription_status,
            'onboarding_completed': self.onboarding_completed,
            'opens_at': self.opens_at.strftime('%H:%M') if self.opens_at else None,
            'closes_at': self.closes_at.strftime('%H:%M') if self.closes_at else None,
        }

    def __repr__(self):
        return f"<Salon(id={self.id}, slug='{self.slug}', status='{self.status}')>"
