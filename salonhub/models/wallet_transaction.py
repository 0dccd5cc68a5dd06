"""Wallet transaction model."""
import enum

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class WalletTransactionType(str, enum.Enum):
    CREDIT = 'credit'
    DEBIT = 'debit'
    LOYALTY_REDEMPTION = 'loyalty_redemption'


class WalletTransaction(model_base(EntityKind.WALLET_TRANSACTION)):
    """Movement on a customer's prepaid wallet."""

    __tablename__ = 'wallet_transaction'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('salon.id'), nullable=False)
    customer_id = Column(IdType, ForeignKey('customer.id'), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    balance_after = Column(Numeric(10, 2), nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    customer = relationship('Customer', back_populates='wallet_transactions')

    __table_args__ = (
        CheckConstraint("type IN ('credit', 'debit', 'loyalty_redemption')", name='check_wallet_type'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'amount': float(self.amount or 0),
            'balance_after': float(self.balance_after or 0),
            'description': self.description,
        }
