"""Staff model."""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class Staff(model_base(EntityKind.STAFF)):
    """Staff member of a salon."""

    __tablename__ = 'staff'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('salon.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    role = Column(String(50), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    # Bumped on every booking that touches this staff member; concurrent
    # bookings for the same staff fail their flush with StaleDataError.
    booking_version = Column(Integer, nullable=False, default=0)
    last_booked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    salon = relationship('Salon', back_populates='staff')
    appointments = relationship('Appointment', back_populates='staff')

    __mapper_args__ = {
        'version_id_col': booking_version,
    }

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'role': self.role,
            'phone': self.phone,
            'email': self.email,
            'active': self.active,
        }

    def __repr__(self):
        return f"<Staff(id={self.id}, name='{self.name}', active={self.active})>"
