"""
Staff service - Multi-Tenant.
Staff records, availability lookups and performance figures.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, or_

from salonhub.exceptions import BusinessLogicError, NotFoundError, ValidationError
from salonhub.models import Appointment, AppointmentStatus, ACTIVE_STATUSES, Staff
from salonhub.utils.formatters import money, utcnow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('name', 'role', 'phone', 'email')


def get_staff(session, tenant_id: int, staff_id: int) -> Staff:
    staff = session.query(Staff).filter(
        Staff.id == staff_id,
        Staff.tenant_id == tenant_id
    ).first()
    if staff is None:
        raise NotFoundError(f"Staff member {staff_id} not found")
    return staff


def list_staff(session, tenant_id: int, include_inactive: bool = False) -> List[Staff]:
    query = session.query(Staff).filter(Staff.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(Staff.active.is_(True))
    return query.order_by(Staff.name, Staff.id).all()


def _check_duplicate(session, tenant_id: int, email: Optional[str], phone: Optional[str], exclude_id: Optional[int] = None):
    conditions = []
    if email:
        conditions.append(func.lower(Staff.email) == email.lower())
    if phone:
        conditions.append(Staff.phone == phone)
    if not conditions:
        return
    query = session.query(Staff.id).filter(Staff.tenant_id == tenant_id, or_(*conditions))
    if exclude_id is not None:
        query = query.filter(Staff.id != exclude_id)
    if query.first() is not None:
        raise BusinessLogicError('A staff member with this email or phone already exists')


def create_staff(session, tenant_id: int, data: Dict[str, Any]) -> Staff:
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Staff name is required')

    email = (data.get('email') or '').strip().lower() or None
    phone = (data.get('phone') or '').strip() or None
    _check_duplicate(session, tenant_id, email, phone)

    staff = Staff(
        tenant_id=tenant_id,
        name=name,
        role=data.get('role'),
        email=email,
        phone=phone,
        active=True,
    )
    session.add(staff)
    session.commit()
    logger.info(f"Created staff {staff.id} for tenant {tenant_id}")
    return staff


def update_staff(session, tenant_id: int, staff_id: int, data: Dict[str, Any]) -> Staff:
    staff = get_staff(session, tenant_id, staff_id)
    _check_duplicate(
        session, tenant_id,
        data.get('email', staff.email),
        data.get('phone', staff.phone),
        exclude_id=staff.id
    )
    for field in EDITABLE_FIELDS:
        if field in data:
            setattr(staff, field, data[field])
    if not (staff.name or '').strip():
        raise ValidationError('Staff name is required')
    session.commit()
    return staff


def deactivate_staff(session, tenant_id: int, staff_id: int, force: bool = False, now: Optional[datetime] = None) -> Staff:
    """
    Mark a staff member inactive.

    Refuses while the staff member still has upcoming active bookings,
    unless force is set.
    """
    staff = get_staff(session, tenant_id, staff_id)
    now = now or utcnow()

    upcoming = session.query(func.count(Appointment.id)).filter(
        Appointment.staff_id == staff.id,
        Appointment.status.in_(ACTIVE_STATUSES),
        Appointment.ends_at > now
    ).scalar()
    if upcoming and not force:
        raise BusinessLogicError(
            f"Staff member has {upcoming} upcoming appointment(s); reassign or cancel them first"
        )

    staff.active = False
    session.commit()
    logger.info(f"Deactivated staff {staff_id} (tenant {tenant_id}, upcoming={upcoming})")
    return staff


def get_available_staff(session, tenant_id: int, start: datetime, duration_minutes: Optional[int], checker) -> List[Staff]:
    """Active staff members free for the whole window."""
    return [
        staff for staff in list_staff(session, tenant_id)
        if checker.is_available(session, staff.id, start, duration_minutes)
    ]


def get_staff_performance(session, tenant_id: int, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    """Completed, cancelled and no-show counts plus revenue per staff member."""
    completed = AppointmentStatus.COMPLETED.value
    rows = session.query(
        Staff.id,
        Staff.name,
        func.count(Appointment.id),
        func.sum(case((Appointment.status == completed, 1), else_=0)),
        func.sum(case((Appointment.status == AppointmentStatus.CANCELLED.value, 1), else_=0)),
        func.sum(case((Appointment.status == AppointmentStatus.NO_SHOW.value, 1), else_=0)),
        func.sum(case((Appointment.status == completed, Appointment.total_price), else_=0)),
    ).outerjoin(
        Appointment,
        (Appointment.staff_id == Staff.id)
        & (Appointment.scheduled_at >= start)
        & (Appointment.scheduled_at < end)
    ).filter(
        Staff.tenant_id == tenant_id
    ).group_by(Staff.id, Staff.name).order_by(Staff.name).all()

    return [
        {
            'staff_id': staff_id,
            'name': name,
            'appointments': total or 0,
            'completed': int(done or 0),
            'cancelled': int(cancelled or 0),
            'no_show': int(no_show or 0),
            'revenue': money(revenue or 0),
        }
        for staff_id, name, total, done, cancelled, no_show, revenue in rows
    ]
