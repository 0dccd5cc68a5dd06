"""Review model."""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class Review(model_base(EntityKind.REVIEW)):
    """Customer rating of a salon, optionally for one service."""

    __tablename__ = 'review'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('salon.id'), nullable=False, index=True)
    customer_id = Column(IdType, ForeignKey('customer.id'), nullable=False)
    service_id = Column(IdType, ForeignKey('service.id'), nullable=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint('rating BETWEEN 1 AND 5', name='check_review_rating'),
    )
