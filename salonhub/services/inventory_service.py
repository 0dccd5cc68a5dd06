"""
Inventory service - Multi-Tenant.
Stock items, stock movements and valuation.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from salonhub.exceptions import BusinessLogicError, NotFoundError, ValidationError
from salonhub.models import Inventory
from salonhub.utils.formatters import money, to_decimal
from salonhub.utils.pagination import paginate

logger = logging.getLogger(__name__)

MOVEMENTS = ('in', 'out', 'adjust')
EDITABLE_FIELDS = ('name', 'sku', 'price', 'minimum_stock')


def get_item(session, tenant_id: int, item_id: int, lock: bool = False) -> Inventory:
    query = session.query(Inventory).filter(
        Inventory.id == item_id,
        Inventory.tenant_id == tenant_id
    )
    if lock:
        query = query.with_for_update()
    item = query.first()
    if item is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def list_items(session, tenant_id: int, search: Optional[str] = None, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
    query = session.query(Inventory).filter(Inventory.tenant_id == tenant_id)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(Inventory.name.ilike(term) | Inventory.sku.ilike(term))
    return paginate(query.order_by(Inventory.name, Inventory.id), page, per_page)


def _check_sku(session, tenant_id: int, sku: Optional[str], exclude_id: Optional[int] = None):
    if not sku:
        return
    query = session.query(Inventory.id).filter(Inventory.tenant_id == tenant_id, Inventory.sku == sku)
    if exclude_id is not None:
        query = query.filter(Inventory.id != exclude_id)
    if query.first() is not None:
        raise BusinessLogicError(f"SKU '{sku}' already exists")


def _non_negative_int(value, field: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a whole number")
    if number < 0:
        raise ValidationError(f"{field} cannot be negative")
    return number


def create_item(session, tenant_id: int, data: Dict[str, Any]) -> Inventory:
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Item name is required')
    sku = (data.get('sku') or '').strip() or None
    _check_sku(session, tenant_id, sku)

    price = to_decimal(data.get('price'), Decimal('0'))
    if price < 0:
        raise ValidationError('Price cannot be negative')

    item = Inventory(
        tenant_id=tenant_id,
        name=name,
        sku=sku,
        quantity=_non_negative_int(data.get('quantity', 0), 'quantity'),
        price=money(price),
        minimum_stock=_non_negative_int(data.get('minimum_stock', 0), 'minimum_stock'),
    )
    session.add(item)
    session.commit()
    logger.info(f"Created inventory item {item.id} ({sku}) for tenant {tenant_id}")
    return item


def update_item(session, tenant_id: int, item_id: int, data: Dict[str, Any]) -> Inventory:
    item = get_item(session, tenant_id, item_id)
    if 'sku' in data:
        _check_sku(session, tenant_id, data['sku'], exclude_id=item.id)
    for field in EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == 'price':
            value = money(value)
        elif field == 'minimum_stock':
            value = _non_negative_int(value, field)
        setattr(item, field, value)
    session.commit()
    return item


def delete_item(session, tenant_id: int, item_id: int) -> None:
    item = get_item(session, tenant_id, item_id)
    session.delete(item)
    session.commit()


def update_stock(session, tenant_id: int, item_id: int, quantity: int, movement: str, reason: Optional[str] = None) -> Inventory:
    """
    Apply a stock movement.

    'in' adds, 'out' removes and 'adjust' sets the counted quantity.
    A movement that would leave negative stock is rejected.
    """
    if movement not in MOVEMENTS:
        raise ValidationError(f"Invalid stock movement: {movement}")
    quantity = _non_negative_int(quantity, 'quantity')

    item = get_item(session, tenant_id, item_id, lock=True)
    before = item.quantity
    if movement == 'in':
        after = before + quantity
    elif movement == 'out':
        after = before - quantity
    else:
        after = quantity

    if after < 0:
        raise BusinessLogicError(f"Insufficient stock for '{item.name}': available {before}, requested {quantity}")

    item.quantity = after
    session.commit()
    logger.info(f"[STOCK] {item.sku or item.id} {movement} {quantity}: {before} -> {after} ({reason or '-'})")
    if item.is_low_stock:
        logger.warning(f"[STOCK] Low stock for '{item.name}' (tenant {tenant_id}): {after} <= {item.minimum_stock}")
    return item


def get_low_stock_items(session, tenant_id: int) -> List[Inventory]:
    return session.query(Inventory).filter(
        Inventory.tenant_id == tenant_id,
        Inventory.minimum_stock > 0,
        Inventory.quantity <= Inventory.minimum_stock
    ).order_by(Inventory.quantity, Inventory.name).all()


def get_inventory_valuation(session, tenant_id: int) -> Dict[str, Any]:
    """Total units and stock value (quantity x price)."""
    items, units, value = session.query(
        func.count(Inventory.id),
        func.sum(Inventory.quantity),
        func.sum(Inventory.quantity * Inventory.price)
    ).filter(Inventory.tenant_id == tenant_id).one()
    return {
        'items': items or 0,
        'units': int(units or 0),
        'value': money(value or 0),
    }
