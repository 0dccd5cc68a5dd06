"""
Super-admin service.

Tenant onboarding, tenant lifecycle and subscription management. Salons live
in the tenant partition while users and subscriptions live in the platform
partition, so cross-partition data is combined in Python rather than joined.
Salon.subscription_status always mirrors the tenant's current subscription.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from salonhub.exceptions import BusinessLogicError, InvalidTransitionError, NotFoundError, ValidationError
from salonhub.models import (
    Appointment, Customer, Invoice, InvoiceStatus, PLAN_PRICES, Salon, SalonStatus,
    Staff, Subscription, SubscriptionStatus, User, UserRole
)
from salonhub.utils.formatters import money, slugify, utcnow
from salonhub.utils.pagination import clamp_page, page_meta

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_DAYS = 14
BILLING_PERIOD_DAYS = 30

TENANT_TRANSITIONS = {
    SalonStatus.PENDING.value: {SalonStatus.ACTIVE.value, SalonStatus.INACTIVE.value},
    SalonStatus.ACTIVE.value: {SalonStatus.SUSPENDED.value, SalonStatus.INACTIVE.value},
    SalonStatus.SUSPENDED.value: {SalonStatus.ACTIVE.value, SalonStatus.INACTIVE.value},
    SalonStatus.INACTIVE.value: {SalonStatus.ACTIVE.value},
}

RUNNING_STATUSES = (SubscriptionStatus.TRIAL.value, SubscriptionStatus.ACTIVE.value)


def get_salon(session, tenant_id: int) -> Salon:
    salon = session.get(Salon, tenant_id)
    if salon is None:
        raise NotFoundError(f"Tenant {tenant_id} not found")
    return salon


def get_current_subscription(session, tenant_id: int) -> Optional[Subscription]:
    return session.query(Subscription).filter(
        Subscription.tenant_id == tenant_id
    ).order_by(Subscription.id.desc()).first()


def _require_subscription(session, tenant_id: int) -> Subscription:
    subscription = get_current_subscription(session, tenant_id)
    if subscription is None:
        raise NotFoundError(f"Tenant {tenant_id} has no subscription")
    return subscription


def _mirror_subscription(session, subscription: Subscription) -> None:
    salon = session.get(Salon, subscription.tenant_id)
    if salon is not None:
        salon.subscription_status = subscription.status


def _unique_slug(session, name: str) -> str:
    base = slugify(name) or 'salon'
    slug = base
    suffix = 2
    while session.query(Salon.id).filter(Salon.slug == slug).first() is not None:
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def create_tenant(session, data: Dict[str, Any], trial_days: int = DEFAULT_TRIAL_DAYS,
                  now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Onboard a salon: the salon itself, its owner account (salon_admin)
    and a trial subscription.

    data keys: name, owner_email, owner_name, owner_password, plan,
    email, phone, city, timezone, tax_rate.
    """
    name = (data.get('name') or '').strip()
    owner_email = (data.get('owner_email') or '').strip().lower()
    owner_password = data.get('owner_password') or ''
    plan = data.get('plan') or 'basic'

    if not name:
        raise ValidationError('Salon name is required')
    if not owner_email or '@' not in owner_email:
        raise ValidationError('A valid owner email is required')
    if len(owner_password) < 8:
        raise ValidationError('Owner password must be at least 8 characters')
    if plan not in PLAN_PRICES:
        raise ValidationError(f"Unknown plan: {plan}")

    if session.query(User.id).filter(func.lower(User.email) == owner_email).first() is not None:
        raise BusinessLogicError(f"A user with email {owner_email} already exists")

    now = now or utcnow()
    try:
        salon = Salon(
            name=name,
            slug=_unique_slug(session, name),
            email=data.get('email') or owner_email,
            phone=data.get('phone'),
            city=data.get('city'),
            timezone=data.get('timezone') or 'UTC',
            tax_rate=data.get('tax_rate') or Decimal('0'),
            status=SalonStatus.PENDING.value,
            subscription_status=SubscriptionStatus.TRIAL.value,
            onboarding_completed=False,
        )
        session.add(salon)
        session.flush()

        owner = User(
            email=owner_email,
            name=(data.get('owner_name') or name).strip(),
            phone=data.get('phone'),
            role=UserRole.SALON_ADMIN.value,
            tenant_id=salon.id,
            active=True,
        )
        owner.set_password(owner_password)
        session.add(owner)
        session.flush()
        salon.owner_user_id = owner.id

        subscription = Subscription(
            tenant_id=salon.id,
            plan=plan,
            status=SubscriptionStatus.TRIAL.value,
            amount=Decimal(PLAN_PRICES[plan]),
            started_at=now,
            expires_at=now + timedelta(days=trial_days),
            auto_renew=True,
        )
        session.add(subscription)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(f"[ADMIN] Tenant {salon.id} '{salon.slug}' created, trial until {subscription.expires_at}")
    return {'salon': salon, 'owner': owner, 'subscription': subscription}


def get_tenants_with_subscriptions(session, status: Optional[str] = None, search: Optional[str] = None,
                                   page: int = 1, per_page: int = 20) -> Dict[str, Any]:
    page, per_page = clamp_page(page, per_page)
    query = session.query(Salon)
    if status:
        query = query.filter(Salon.status == status)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(Salon.name.ilike(term) | Salon.slug.ilike(term) | Salon.email.ilike(term))

    total = query.count()
    salons = query.order_by(Salon.created_at.desc(), Salon.id.desc()).offset(
        (page - 1) * per_page
    ).limit(per_page).all()

    # Subscriptions sit in the other partition: fetch in one query, newest wins
    subscriptions: Dict[int, Subscription] = {}
    if salons:
        rows = session.query(Subscription).filter(
            Subscription.tenant_id.in_([s.id for s in salons])
        ).order_by(Subscription.id).all()
        for subscription in rows:
            subscriptions[subscription.tenant_id] = subscription

    items = [{'salon': salon, 'subscription': subscriptions.get(salon.id)} for salon in salons]
    return {'items': items, 'meta': page_meta(page, per_page, total)}


def get_tenant_details(session, tenant_id: int) -> Dict[str, Any]:
    salon = get_salon(session, tenant_id)
    owner = session.get(User, salon.owner_user_id) if salon.owner_user_id else None

    revenue = session.query(func.sum(Invoice.total_amount)).filter(
        Invoice.tenant_id == tenant_id,
        Invoice.status == InvoiceStatus.PAID.value
    ).scalar()

    stats = {
        'staff': session.query(func.count(Staff.id)).filter(Staff.tenant_id == tenant_id).scalar() or 0,
        'customers': session.query(func.count(Customer.id)).filter(Customer.tenant_id == tenant_id).scalar() or 0,
        'appointments': session.query(func.count(Appointment.id)).filter(
            Appointment.tenant_id == tenant_id
        ).scalar() or 0,
        'revenue': money(revenue or 0),
    }
    return {
        'salon': salon,
        'owner': owner,
        'subscription': get_current_subscription(session, tenant_id),
        'stats': stats,
    }


def update_tenant_status(session, tenant_id: int, status: str, reason: Optional[str] = None) -> Salon:
    """Apply a validated tenant status transition."""
    if status not in TENANT_TRANSITIONS:
        raise ValidationError(f"Invalid tenant status: {status}")

    salon = get_salon(session, tenant_id)
    current = salon.status
    if status not in TENANT_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError('tenant', current, status)

    salon.status = status
    salon.status_reason = reason
    session.commit()
    logger.info(f"[ADMIN] Tenant {tenant_id}: {current} -> {status} ({reason or '-'})")
    return salon


def suspend_tenant(session, tenant_id: int, reason: str) -> Salon:
    if not reason:
        raise ValidationError('A reason is required to suspend a tenant')
    return update_tenant_status(session, tenant_id, SalonStatus.SUSPENDED.value, reason)


def activate_tenant(session, tenant_id: int) -> Salon:
    return update_tenant_status(session, tenant_id, SalonStatus.ACTIVE.value)


def complete_onboarding(session, tenant_id: int) -> Salon:
    """
    Mark a salon's setup as finished so it can take bookings once active.

    Requires business hours and at least one active staff member.
    """
    salon = get_salon(session, tenant_id)
    if salon.onboarding_completed:
        return salon

    if salon.opens_at is None or salon.closes_at is None or salon.opens_at >= salon.closes_at:
        raise BusinessLogicError('Business hours must be set before completing onboarding')
    staff_count = session.query(func.count(Staff.id)).filter(
        Staff.tenant_id == tenant_id,
        Staff.active.is_(True)
    ).scalar() or 0
    if not staff_count:
        raise BusinessLogicError('Add at least one active staff member before completing onboarding')

    salon.onboarding_completed = True
    session.commit()
    logger.info(f"[ADMIN] Tenant {tenant_id} onboarding completed")
    return salon


def expiring_soon(session, days: int = 7, now: Optional[datetime] = None) -> List[Subscription]:
    """Running subscriptions whose period ends within the next `days` days."""
    now = now or utcnow()
    return session.query(Subscription).filter(
        Subscription.status.in_(RUNNING_STATUSES),
        Subscription.expires_at.isnot(None),
        Subscription.expires_at >= now,
        Subscription.expires_at < now + timedelta(days=days)
    ).order_by(Subscription.expires_at).all()


def upgrade_subscription(session, tenant_id: int, plan: str, months: int = 1,
                         now: Optional[datetime] = None) -> Subscription:
    """Move the tenant to a paid plan for `months` billing periods."""
    if plan not in PLAN_PRICES:
        raise ValidationError(f"Unknown plan: {plan}")
    if months < 1:
        raise ValidationError('months must be at least 1')

    get_salon(session, tenant_id)
    subscription = _require_subscription(session, tenant_id)
    now = now or utcnow()

    previous = subscription.plan
    subscription.plan = plan
    subscription.amount = Decimal(PLAN_PRICES[plan])
    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.started_at = now
    subscription.expires_at = now + timedelta(days=BILLING_PERIOD_DAYS * months)
    subscription.cancelled_at = None
    subscription.auto_renew = True
    _mirror_subscription(session, subscription)
    session.commit()

    logger.info(f"[ADMIN] Tenant {tenant_id} subscription {previous} -> {plan} until {subscription.expires_at}")
    return subscription


def cancel_subscription(session, tenant_id: int, now: Optional[datetime] = None) -> Subscription:
    subscription = _require_subscription(session, tenant_id)
    if subscription.status in (SubscriptionStatus.CANCELLED.value, SubscriptionStatus.EXPIRED.value):
        raise BusinessLogicError(f"Subscription is already {subscription.status}")

    subscription.status = SubscriptionStatus.CANCELLED.value
    subscription.cancelled_at = now or utcnow()
    subscription.auto_renew = False
    _mirror_subscription(session, subscription)
    session.commit()

    logger.info(f"[ADMIN] Tenant {tenant_id} subscription cancelled")
    return subscription


def expire_overdue_subscriptions(session, now: Optional[datetime] = None) -> int:
    """Mark running subscriptions past their end date as expired. Returns the count."""
    now = now or utcnow()
    overdue = session.query(Subscription).filter(
        Subscription.status.in_(RUNNING_STATUSES),
        Subscription.expires_at.isnot(None),
        Subscription.expires_at < now
    ).all()

    try:
        for subscription in overdue:
            subscription.status = SubscriptionStatus.EXPIRED.value
            _mirror_subscription(session, subscription)
            logger.info(f"[ADMIN] Subscription of tenant {subscription.tenant_id} expired ({subscription.expires_at})")
        session.commit()
    except Exception:
        session.rollback()
        raise
    return len(overdue)


def get_platform_analytics(session) -> Dict[str, Any]:
    tenants = dict(session.query(Salon.status, func.count(Salon.id)).group_by(Salon.status).all())
    subscriptions = dict(
        session.query(Subscription.status, func.count(Subscription.id)).group_by(Subscription.status).all()
    )
    plans = dict(
        session.query(Subscription.plan, func.count(Subscription.id)).filter(
            Subscription.status == SubscriptionStatus.ACTIVE.value
        ).group_by(Subscription.plan).all()
    )
    mrr = session.query(func.sum(Subscription.amount)).filter(
        Subscription.status == SubscriptionStatus.ACTIVE.value
    ).scalar()
    users = dict(session.query(User.role, func.count(User.id)).group_by(User.role).all())

    return {
        'tenants': {'total': sum(tenants.values()), 'by_status': tenants},
        'subscriptions': {'by_status': subscriptions, 'active_by_plan': plans},
        'monthly_recurring_revenue': money(mrr or 0),
        'users': users,
    }
