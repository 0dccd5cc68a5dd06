"""Loyalty ledger model."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class Loyalty(model_base(EntityKind.LOYALTY)):
    """One loyalty event (points earned or redeemed) for a customer."""

    __tablename__ = 'loyalty'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('salon.id'), nullable=False, index=True)
    customer_id = Column(IdType, ForeignKey('customer.id'), nullable=False, index=True)
    points = Column(Integer, nullable=False)  # Negative for redemptions
    tier = Column(String(20), nullable=False)
    milestone = Column(String(200), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
