"""Service model - treatments offered by a salon (haircut, facial...)."""
from sqlalchemy import Column, String, Text, Boolean, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class Service(model_base(EntityKind.SERVICE)):
    """Bookable salon service."""

    __tablename__ = 'service'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('salon.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    duration_minutes = Column(Integer, nullable=False, default=60)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'price': float(self.price or 0),
            'duration_minutes': self.duration_minutes,
            'active': self.active,
        }

    def __repr__(self):
        return f"<Service(id={self.id}, name='{self.name}', duration={self.duration_minutes})>"
