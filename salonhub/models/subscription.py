"""
Subscription model for tenant monetization.
"""
import enum

from sqlalchemy import Column, String, Numeric, DateTime, Boolean, CheckConstraint
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class SubscriptionStatus(str, enum.Enum):
    """Subscription lifecycle status (mirrored on Salon.subscription_status)."""
    TRIAL = 'trial'
    ACTIVE = 'active'
    PAST_DUE = 'past_due'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'


PLAN_PRICES = {
    'free': 0,
    'basic': 999,
    'pro': 2499,
}


class Subscription(model_base(EntityKind.SUBSCRIPTION)):
    """
    Salon subscription plan and billing status.

    Stored in the platform partition; tenant_id references a Salon by value.
    """
    __tablename__ = 'subscriptions'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, nullable=False, index=True)

    # Plan and Status
    plan = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=SubscriptionStatus.TRIAL.value)

    # Pricing
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default='INR')

    # Dates
    started_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    auto_renew = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Table constraints
    __table_args__ = (
        CheckConstraint("plan IN ('free', 'basic', 'pro')", name='check_plan'),
        CheckConstraint(
            "status IN ('trial', 'active', 'past_due', 'cancelled', 'expired')",
            name='check_subscription_status'
        ),
    )

    def __repr__(self):
        return f'<Subscription tenant_id={self.tenant_id} plan={self.plan} status={self.status}>'

    @property
    def is_trial(self):
        """Check if subscription is in trial period."""
        return self.status == SubscriptionStatus.TRIAL.value

    @property
    def is_active(self):
        """Check if subscription is active (trial or paid)."""
        return self.status in (SubscriptionStatus.TRIAL.value, SubscriptionStatus.ACTIVE.value)

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'plan': self.plan,
            'status': self.status,
            'amount': float(self.amount or 0),
            'currency': self.currency,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'auto_renew': self.auto_renew,
        }
