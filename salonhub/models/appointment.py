"""Appointment model."""
import enum
from datetime import timedelta

from sqlalchemy import Column, String, Text, Integer, Numeric, DateTime, ForeignKey, Table, CheckConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salonhub.database import IdType, TenantBase, model_base
from salonhub.routing import EntityKind


class AppointmentStatus(str, enum.Enum):
    """Appointment status enum."""
    BOOKED = 'booked'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    NO_SHOW = 'no_show'
    RESCHEDULED = 'rescheduled'


# Only these statuses occupy the staff member's calendar
ACTIVE_STATUSES = (AppointmentStatus.BOOKED.value, AppointmentStatus.IN_PROGRESS.value)

# Allowed status changes; completed, cancelled and no_show are terminal
STATUS_TRANSITIONS = {
    AppointmentStatus.BOOKED.value: {
        AppointmentStatus.IN_PROGRESS.value,
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.CANCELLED.value,
        AppointmentStatus.NO_SHOW.value,
        AppointmentStatus.RESCHEDULED.value,
    },
    AppointmentStatus.IN_PROGRESS.value: {
        AppointmentStatus.COMPLETED.value,
        AppointmentStatus.CANCELLED.value,
    },
    AppointmentStatus.RESCHEDULED.value: {
        AppointmentStatus.BOOKED.value,
        AppointmentStatus.CANCELLED.value,
    },
    AppointmentStatus.COMPLETED.value: set(),
    AppointmentStatus.CANCELLED.value: set(),
    AppointmentStatus.NO_SHOW.value: set(),
}


appointment_services = Table(
    'appointment_service',
    TenantBase.metadata,
    Column('appointment_id', IdType, ForeignKey('appointment.id', ondelete='CASCADE'), primary_key=True),
    Column('service_id', IdType, ForeignKey('service.id'), primary_key=True),
)


class Appointment(model_base(EntityKind.APPOINTMENT)):
    """Booking of one customer with one staff member for one or more services."""

    __tablename__ = 'appointment'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('salon.id'), nullable=False)
    customer_id = Column(IdType, ForeignKey('customer.id'), nullable=True)
    staff_id = Column(IdType, ForeignKey('staff.id'), nullable=False)

    scheduled_at = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    ends_at = Column(DateTime, nullable=False)

    status = Column(String(20), nullable=False, default=AppointmentStatus.BOOKED.value)
    total_price = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    previous_scheduled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship('Customer', back_populates='appointments')
    staff = relationship('Staff', back_populates='appointments')
    services = relationship('Service', secondary=appointment_services, order_by='Service.id')

    __table_args__ = (
        CheckConstraint(
            "status IN ('booked', 'in_progress', 'completed', 'cancelled', 'no_show', 'rescheduled')",
            name='check_appointment_status'
        ),
        CheckConstraint('duration_minutes > 0', name='check_appointment_duration'),
        Index('ix_appointment_tenant_scheduled', 'tenant_id', 'scheduled_at'),
        Index('ix_appointment_staff_window', 'staff_id', 'scheduled_at', 'ends_at'),
    )

    def set_window(self, start, duration_minutes):
        """Set start, duration and the derived end of the booking."""
        self.scheduled_at = start
        self.duration_minutes = duration_minutes
        self.ends_at = start + timedelta(minutes=duration_minutes)

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES

    def can_transition_to(self, status):
        return status in STATUS_TRANSITIONS.get(self.status, set())

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'customer_id': self.customer_id,
            'staff_id': self.staff_id,
            'service_ids': [s.id for s in self.services],
            'scheduled_at': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'ends_at': self.ends_at.isoformat() if self.ends_at else None,
            'duration_minutes': self.duration_minutes,
            'status': self.status,
            'total_price': float(self.total_price or 0),
            'notes': self.notes,
            'cancellation_reason': self.cancellation_reason,
        }

    def __repr__(self):
        return f"<Appointment(id={self.id}, staff_id={self.staff_id}, at={self.scheduled_at}, status='{self.status}')>"
