"""
Customer service - Multi-Tenant.
Customer records, prepaid wallet and loyalty program.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func, or_

from salonhub.exceptions import BusinessLogicError, NotFoundError, ValidationError
from salonhub.models import Customer, Loyalty, WalletTransaction, WalletTransactionType
from salonhub.utils.formatters import money, to_decimal, utcnow
from salonhub.utils.pagination import paginate

logger = logging.getLogger(__name__)

# 1 point for every 10 currency units spent
POINTS_PER_AMOUNT = Decimal('10')
# Wallet credit granted per redeemed point
POINT_VALUE = Decimal('1')

TIER_THRESHOLDS = (
    (Decimal('1000'), 'Gold'),
    (Decimal('500'), 'Silver'),
    (Decimal('0'), 'Bronze'),
)

EDITABLE_FIELDS = ('name', 'email', 'phone', 'notes', 'preferences')


def get_customer(session, tenant_id: int, customer_id: int, lock: bool = False) -> Customer:
    query = session.query(Customer).filter(
        Customer.id == customer_id,
        Customer.tenant_id == tenant_id
    )
    if lock:
        query = query.with_for_update()
    customer = query.first()
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def list_customers(session, tenant_id: int, search: Optional[str] = None, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
    """Customers of a salon, optionally filtered by name, email or phone."""
    query = session.query(Customer).filter(Customer.tenant_id == tenant_id)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(term),
            Customer.email.ilike(term),
            Customer.phone.ilike(term)
        ))
    return paginate(query.order_by(Customer.name, Customer.id), page, per_page)


def _check_duplicate(session, tenant_id: int, email: Optional[str], phone: Optional[str], exclude_id: Optional[int] = None):
    conditions = []
    if email:
        conditions.append(func.lower(Customer.email) == email.lower())
    if phone:
        conditions.append(Customer.phone == phone)
    if not conditions:
        return
    query = session.query(Customer.id).filter(Customer.tenant_id == tenant_id, or_(*conditions))
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first() is not None:
        raise BusinessLogicError('A customer with this email or phone already exists')


def create_customer(session, tenant_id: int, data: Dict[str, Any]) -> Customer:
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Customer name is required')

    email = (data.get('email') or '').strip().lower() or None
    phone = (data.get('phone') or '').strip() or None
    _check_duplicate(session, tenant_id, email, phone)

    customer = Customer(
        tenant_id=tenant_id,
        user_id=data.get('user_id'),
        name=name,
        email=email,
        phone=phone,
        notes=data.get('notes'),
        preferences=data.get('preferences') or {},
        wallet_balance=Decimal('0.00'),
        loyalty_points=0,
        loyalty_tier='Bronze',
        total_visits=0,
        total_spent=Decimal('0.00'),
    )
    session.add(customer)
    session.commit()
    logger.info(f"Created customer {customer.id} for tenant {tenant_id}")
    return customer


def update_customer(session, tenant_id: int, customer_id: int, data: Dict[str, Any]) -> Customer:
    customer = get_customer(session, tenant_id, customer_id)

    email = data.get('email', customer.email)
    phone = data.get('phone', customer.phone)
    if email:
        email = email.strip().lower()
    _check_duplicate(session, tenant_id, email, phone, exclude_id=customer.id)

    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(customer, field, data[field])
    customer.email = email or None
    if not (customer.name or '').strip():
        raise ValidationError('Customer name is required')

    session.commit()
    return customer


def delete_customer(session, tenant_id: int, customer_id: int) -> None:
    """Delete a customer that has no appointment history."""
    customer = get_customer(session, tenant_id, customer_id)
    if customer.appointments:
        raise BusinessLogicError('Customers with appointment history cannot be deleted')
    session.delete(customer)
    session.commit()
    logger.info(f"Deleted customer {customer_id} of tenant {tenant_id}")


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------

def _add_wallet_transaction(session, customer: Customer, tx_type: str, amount: Decimal, description: Optional[str]):
    tx = WalletTransaction(
        tenant_id=customer.tenant_id,
        customer_id=customer.id,
        type=tx_type,
        amount=amount,
        balance_after=customer.wallet_balance,
        description=description,
    )
    session.add(tx)
    return tx


def _positive_amount(amount) -> Decimal:
    value = to_decimal(amount)
    if value is None or value <= 0:
        raise ValidationError('Amount must be greater than zero')
    return money(value)


def credit_wallet(session, tenant_id: int, customer_id: int, amount, description: Optional[str] = None, commit: bool = True) -> WalletTransaction:
    amount = _positive_amount(amount)
    customer = get_customer(session, tenant_id, customer_id, lock=True)
    customer.wallet_balance = money(customer.wallet_balance) + amount
    tx = _add_wallet_transaction(session, customer, WalletTransactionType.CREDIT.value, amount, description)
    if commit:
        session.commit()
    logger.info(f"Wallet credit {amount} for customer {customer_id}, balance {customer.wallet_balance}")
    return tx


def debit_wallet(session, tenant_id: int, customer_id: int, amount, description: Optional[str] = None, commit: bool = True) -> WalletTransaction:
    amount = _positive_amount(amount)
    customer = get_customer(session, tenant_id, customer_id, lock=True)
    balance = money(customer.wallet_balance)
    if balance < amount:
        raise BusinessLogicError(f"Insufficient wallet balance: available {balance}, requested {amount}")
    customer.wallet_balance = balance - amount
    tx = _add_wallet_transaction(session, customer, WalletTransactionType.DEBIT.value, amount, description)
    if commit:
        session.commit()
    logger.info(f"Wallet debit {amount} for customer {customer_id}, balance {customer.wallet_balance}")
    return tx


def get_wallet_history(session, tenant_id: int, customer_id: int, tx_type: Optional[str] = None, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
    get_customer(session, tenant_id, customer_id)
    query = session.query(WalletTransaction).filter(
        WalletTransaction.tenant_id == tenant_id,
        WalletTransaction.customer_id == customer_id
    )
    if tx_type:
        query = query.filter(WalletTransaction.type == tx_type)
    return paginate(query.order_by(WalletTransaction.id.desc()), page, per_page)


# ---------------------------------------------------------------------------
# Loyalty
# ---------------------------------------------------------------------------

def tier_for_spend(total_spent) -> str:
    """
    Loyalty tier for a lifetime spend.

    Examples:
        tier_for_spend(499.99) -> 'Bronze'
        tier_for_spend(500) -> 'Silver'
        tier_for_spend(1000) -> 'Gold'
    """
    spent = to_decimal(total_spent, Decimal('0'))
    for threshold, tier in TIER_THRESHOLDS:
        if spent >= threshold:
            return tier
    return 'Bronze'


def points_for_amount(amount) -> int:
    """Whole points earned for a purchase amount."""
    value = to_decimal(amount, Decimal('0'))
    if value <= 0:
        return 0
    return int(value // POINTS_PER_AMOUNT)


def update_loyalty_tier(session, customer: Customer) -> str:
    new_tier = tier_for_spend(customer.total_spent)
    if new_tier != customer.loyalty_tier:
        logger.info(f"Customer {customer.id} moved from {customer.loyalty_tier} to {new_tier}")
        session.add(Loyalty(
            tenant_id=customer.tenant_id,
            customer_id=customer.id,
            points=0,
            tier=new_tier,
            milestone=f"Reached {new_tier} tier",
        ))
        customer.loyalty_tier = new_tier
    return new_tier


def award_loyalty_points(session, customer: Customer, purchase_amount, reason: Optional[str] = None) -> int:
    """Add points for a purchase. Does not commit."""
    points = points_for_amount(purchase_amount)
    if points:
        customer.loyalty_points = (customer.loyalty_points or 0) + points
        session.add(Loyalty(
            tenant_id=customer.tenant_id,
            customer_id=customer.id,
            points=points,
            tier=customer.loyalty_tier,
            milestone=reason,
        ))
    return points


def record_visit(session, customer: Customer, amount_spent, visited_at=None) -> Customer:
    """Count a completed visit: visits, spend and tier. Does not commit."""
    amount = money(amount_spent)
    customer.total_visits = (customer.total_visits or 0) + 1
    customer.total_spent = money(customer.total_spent) + amount
    customer.last_visited_at = visited_at or utcnow()
    update_loyalty_tier(session, customer)
    return customer


def redeem_loyalty_points(session, tenant_id: int, customer_id: int, points: int, reward_type: str = 'wallet') -> Dict[str, Any]:
    """Convert points into wallet credit."""
    try:
        points = int(points)
    except (TypeError, ValueError):
        raise ValidationError('Points must be a whole number')
    if points <= 0:
        raise ValidationError('Points must be greater than zero')

    customer = get_customer(session, tenant_id, customer_id, lock=True)
    if (customer.loyalty_points or 0) < points:
        raise BusinessLogicError(f"Insufficient points: available {customer.loyalty_points}, requested {points}")

    value = money(Decimal(points) * POINT_VALUE)
    customer.loyalty_points -= points
    customer.wallet_balance = money(customer.wallet_balance) + value
    _add_wallet_transaction(
        session, customer, WalletTransactionType.LOYALTY_REDEMPTION.value, value,
        f"Redeemed {points} points for {reward_type}"
    )
    session.add(Loyalty(
        tenant_id=tenant_id,
        customer_id=customer.id,
        points=-points,
        tier=customer.loyalty_tier,
        milestone=f"Redeemed for {reward_type}",
    ))
    session.commit()
    logger.info(f"Customer {customer_id} redeemed {points} points ({value})")
    return {'redeemed_points': points, 'credited': value, 'reward_type': reward_type}


def get_loyalty_status(session, tenant_id: int, customer_id: int) -> Dict[str, Any]:
    customer = get_customer(session, tenant_id, customer_id)
    next_tier = None
    for threshold, tier in reversed(TIER_THRESHOLDS):
        if money(customer.total_spent) < threshold:
            next_tier = {'tier': tier, 'spend_needed': threshold - money(customer.total_spent)}
            break
    return {
        'tier': customer.loyalty_tier,
        'points': customer.loyalty_points,
        'total_spent': money(customer.total_spent),
        'next_tier': next_tier,
    }


def get_customer_analytics(session, tenant_id: int) -> Dict[str, Any]:
    """Averages across customers and tier distribution."""
    summary = session.query(
        func.count(Customer.id),
        func.avg(Customer.total_spent),
        func.avg(Customer.total_visits),
        func.avg(Customer.loyalty_points)
    ).filter(Customer.tenant_id == tenant_id).one()

    tiers = session.query(Customer.loyalty_tier, func.count(Customer.id)).filter(
        Customer.tenant_id == tenant_id
    ).group_by(Customer.loyalty_tier).all()

    return {
        'total_customers': summary[0] or 0,
        'avg_total_spent': money(summary[1] or 0),
        'avg_visits': float(summary[2] or 0),
        'avg_loyalty_points': float(summary[3] or 0),
        'tier_distribution': {tier: count for tier, count in tiers},
    }
