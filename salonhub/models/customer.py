"""Customer model."""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Integer, Numeric, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class Customer(model_base(EntityKind.CUSTOMER)):
    """Salon customer with wallet and loyalty balances."""

    __tablename__ = 'customer'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('salon.id'), nullable=False, index=True)
    user_id = Column(IdType, nullable=True)  # Optional platform account
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    preferences = Column(JSON, nullable=False, default=dict)

    wallet_balance = Column(Numeric(10, 2), nullable=False, default=0)
    loyalty_points = Column(Integer, nullable=False, default=0)
    loyalty_tier = Column(String(20), nullable=False, default='Bronze')
    total_visits = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(12, 2), nullable=False, default=0)
    last_visited_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    appointments = relationship('Appointment', back_populates='customer')
    wallet_transactions = relationship('WalletTransaction', back_populates='customer')

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'wallet_balance': float(self.wallet_balance or 0),
            'loyalty_points': self.loyalty_points,
            'loyalty_tier': self.loyalty_tier,
            'total_visits': self.total_visits,
            'total_spent': float(self.total_spent or 0),
            'last_visited_at': self.last_visited_at.isoformat() if self.last_visited_at else None,
        }

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}')>"
