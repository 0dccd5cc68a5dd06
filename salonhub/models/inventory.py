"""Inventory model - retail and back-bar products kept by a salon."""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class Inventory(model_base(EntityKind.INVENTORY)):
    """Stock item."""

    __tablename__ = 'inventory'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('salon.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    sku = Column(String(64), nullable=True)
    quantity = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    minimum_stock = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_id', 'sku', name='uq_inventory_sku_per_tenant'),
    )

    @property
    def is_low_stock(self):
        return self.minimum_stock > 0 and self.quantity <= self.minimum_stock

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'sku': self.sku,
            'quantity': self.quantity,
            'price': float(self.price or 0),
            'minimum_stock': self.minimum_stock,
            'is_low_stock': self.is_low_stock,
        }

    def __repr__(self):
        return f"<Inventory(id={self.id}, sku='{self.sku}', qty={self.quantity})>"
