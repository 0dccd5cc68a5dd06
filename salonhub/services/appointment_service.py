"""
Appointment service - Multi-Tenant.

Booking, rescheduling and status changes. Every write that occupies a staff
member's calendar goes through the conflict checker while holding the staff
row; a concurrent booking for the same staff member makes the flush fail with
StaleDataError, and the write is retried against fresh data.
"""
import logging
from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm.exc import StaleDataError

from salonhub.exceptions import (
    BusinessLogicError, ConflictError, InvalidTransitionError, NotFoundError, ValidationError
)
from salonhub.models import (
    ACTIVE_STATUSES, Appointment, AppointmentStatus, Customer, Notification,
    NotificationType, Salon, Service, Staff
)
from salonhub.services import customer_service
from salonhub.services.availability import windows_overlap
from salonhub.services.notification_service import deliver
from salonhub.utils.formatters import money, parse_date, parse_datetime, utcnow
from salonhub.utils.pagination import paginate

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_SLOT_MINUTES = 30


def _parse_id(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


class AppointmentService:
    """Appointment operations for one application."""

    def __init__(self, checker, notifier=None, max_retries: int = DEFAULT_MAX_RETRIES,
                 slot_minutes: int = DEFAULT_SLOT_MINUTES):
        self.checker = checker
        self.notifier = notifier
        self.max_retries = max(1, max_retries)
        self.slot_minutes = slot_minutes

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_appointment(self, session, tenant_id: int, appointment_id: int) -> Appointment:
        appointment = session.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.tenant_id == tenant_id
        ).first()
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    def list_appointments(self, session, tenant_id: int, filters: Optional[Dict[str, Any]] = None,
                          page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        """
        Paginated appointments ordered by start time.

        Filters: status, staff_id, customer_id, date_from, date_to (inclusive dates).
        """
        filters = filters or {}
        query = session.query(Appointment).filter(Appointment.tenant_id == tenant_id)

        if filters.get('status'):
            query = query.filter(Appointment.status == filters['status'])
        if filters.get('staff_id'):
            query = query.filter(Appointment.staff_id == _parse_id(filters['staff_id'], 'staff_id'))
        if filters.get('customer_id'):
            query = query.filter(Appointment.customer_id == _parse_id(filters['customer_id'], 'customer_id'))

        date_from = parse_date(filters.get('date_from'))
        if date_from:
            query = query.filter(Appointment.scheduled_at >= datetime.combine(date_from, datetime.min.time()))
        date_to = parse_date(filters.get('date_to'))
        if date_to:
            query = query.filter(
                Appointment.scheduled_at < datetime.combine(date_to + timedelta(days=1), datetime.min.time())
            )

        return paginate(query.order_by(Appointment.scheduled_at, Appointment.id), page, per_page)

    def _in_range(self, session, tenant_id: int, start: datetime, end: datetime):
        return session.query(Appointment).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.scheduled_at >= start,
            Appointment.scheduled_at < end
        )

    def get_appointments_by_date_range(self, session, tenant_id: int, start: datetime,
                                       end: datetime) -> Dict[str, List[Appointment]]:
        """Appointments starting in [start, end), grouped by ISO date."""
        grouped: Dict[str, List[Appointment]] = OrderedDict()
        rows = self._in_range(session, tenant_id, start, end).order_by(
            Appointment.scheduled_at, Appointment.id
        ).all()
        for appointment in rows:
            grouped.setdefault(appointment.scheduled_at.date().isoformat(), []).append(appointment)
        return grouped

    def get_todays_appointments(self, session, tenant_id: int, staff_id: Optional[int] = None,
                                today: Optional[date] = None) -> List[Appointment]:
        today = today or utcnow().date()
        start = datetime.combine(today, datetime.min.time())
        query = self._in_range(session, tenant_id, start, start + timedelta(days=1))
        if staff_id:
            query = query.filter(Appointment.staff_id == staff_id)
        return query.order_by(Appointment.scheduled_at).all()

    def get_staff_schedule(self, session, tenant_id: int, staff_id: int, start: datetime,
                           end: datetime) -> Dict[str, Any]:
        """Non-cancelled appointments of a staff member and the minutes they occupy."""
        staff = self._get_staff(session, tenant_id, staff_id)
        appointments = self._in_range(session, tenant_id, start, end).filter(
            Appointment.staff_id == staff.id,
            Appointment.status != AppointmentStatus.CANCELLED.value
        ).order_by(Appointment.scheduled_at).all()

        booked_minutes = sum(a.duration_minutes for a in appointments if a.is_active)
        return {
            'staff': staff,
            'appointments': appointments,
            'booked_minutes': booked_minutes,
        }

    def get_customer_history(self, session, tenant_id: int, customer_id: int) -> Dict[str, Any]:
        customer = customer_service.get_customer(session, tenant_id, customer_id)
        appointments = session.query(Appointment).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.customer_id == customer.id
        ).order_by(Appointment.scheduled_at.desc()).all()

        by_status: Dict[str, int] = {}
        spent = Decimal('0.00')
        for appointment in appointments:
            by_status[appointment.status] = by_status.get(appointment.status, 0) + 1
            if appointment.status == AppointmentStatus.COMPLETED.value:
                spent += money(appointment.total_price)

        return {
            'customer': customer,
            'appointments': appointments,
            'by_status': by_status,
            'completed_spend': spent,
        }

    # ------------------------------------------------------------------
    # Pricing and lookups
    # ------------------------------------------------------------------

    @staticmethod
    def calculate_pricing(services: Iterable[Service]) -> Dict[str, Any]:
        """Total price and duration of a set of services."""
        total_price = Decimal('0.00')
        total_duration = 0
        for service in services:
            total_price += money(service.price)
            total_duration += service.duration_minutes or 0
        return {'total_price': money(total_price), 'total_duration': total_duration}

    def _get_salon(self, session, tenant_id: int) -> Salon:
        salon = session.get(Salon, tenant_id)
        if salon is None:
            raise NotFoundError(f"Salon {tenant_id} not found")
        return salon

    def _get_staff(self, session, tenant_id: int, staff_id: int, lock: bool = False) -> Staff:
        query = session.query(Staff).filter(Staff.id == staff_id, Staff.tenant_id == tenant_id)
        if lock:
            query = query.with_for_update().populate_existing()
        staff = query.first()
        if staff is None or not staff.active:
            raise NotFoundError(f"Staff member {staff_id} not found or inactive")
        return staff

    def _load_services(self, session, tenant_id: int, service_ids) -> List[Service]:
        if not service_ids:
            return []
        try:
            ids = sorted({int(sid) for sid in service_ids})
        except (TypeError, ValueError):
            raise ValidationError('service_ids must be a list of integers')

        services = session.query(Service).filter(
            Service.id.in_(ids),
            Service.tenant_id == tenant_id,
            Service.active.is_(True)
        ).order_by(Service.id).all()
        if len(services) != len(ids):
            missing = sorted(set(ids) - {s.id for s in services})
            raise NotFoundError(f"Service(s) not found or inactive: {missing}")
        return services

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _run_booking(self, session, staff_id: int, write: Callable[[], Appointment]) -> Appointment:
        """
        Run a calendar write and commit it, retrying when a concurrent
        booking for the same staff member wins the race.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                result = write()
                session.commit()
                return result
            except StaleDataError:
                session.rollback()
                if attempt >= self.max_retries:
                    logger.warning(f"[BOOKING] Staff {staff_id} still contended after {attempt} attempts")
                    raise ConflictError()
                logger.info(f"[BOOKING] Concurrent booking for staff {staff_id}, retrying ({attempt}/{self.max_retries})")
            except Exception:
                session.rollback()
                raise

    def book_appointment(self, session, tenant_id: int, data: Dict[str, Any]) -> Appointment:
        """
        Book an appointment.

        data keys: staff_id, customer_id, scheduled_at, service_ids,
        duration_minutes (defaults to the services' total, then 60), notes.
        """
        start = parse_datetime(data.get('scheduled_at'))
        if start is None:
            raise ValidationError('scheduled_at is required (ISO-8601)')
        if not data.get('staff_id'):
            raise ValidationError('staff_id is required')
        if not data.get('customer_id'):
            raise ValidationError('customer_id is required')
        staff_id = _parse_id(data['staff_id'], 'staff_id')

        salon = self._get_salon(session, tenant_id)
        if not salon.is_operational():
            raise BusinessLogicError(f"Salon '{salon.name}' is not accepting bookings")

        customer = customer_service.get_customer(
            session, tenant_id, _parse_id(data['customer_id'], 'customer_id')
        )
        services = self._load_services(session, tenant_id, data.get('service_ids'))
        pricing = self.calculate_pricing(services)

        duration = data.get('duration_minutes')
        if duration is None and pricing['total_duration']:
            duration = pricing['total_duration']
        duration = self.checker.resolve_duration(duration)
        customer_id = customer.id

        def write():
            staff = self._get_staff(session, tenant_id, staff_id, lock=True)
            self.checker.ensure_available(session, staff.id, start, duration)

            appointment = Appointment(
                tenant_id=tenant_id,
                customer_id=customer_id,
                staff_id=staff.id,
                status=AppointmentStatus.BOOKED.value,
                total_price=pricing['total_price'],
                notes=data.get('notes'),
            )
            appointment.set_window(start, duration)
            appointment.services = list(services)
            staff.last_booked_at = utcnow()
            session.add(appointment)
            session.flush()
            return appointment

        appointment = self._run_booking(session, staff_id, write)
        logger.info(
            f"[BOOKING] Appointment {appointment.id} booked: tenant {tenant_id}, staff {staff_id}, "
            f"{start.isoformat()} ({duration} min)"
        )
        self._notify(customer, appointment, NotificationType.BOOKING.value, 'Appointment confirmed',
                     f"Your appointment at {salon.name} is booked for {start:%Y-%m-%d %H:%M}.")
        return appointment

    def reschedule_appointment(self, session, tenant_id: int, appointment_id: int, new_start,
                               staff_id: Optional[int] = None) -> Appointment:
        """Move a booking to a new start time (and optionally another staff member)."""
        new_start = parse_datetime(new_start)
        if new_start is None:
            raise ValidationError('A new start time is required')

        appointment = self.get_appointment(session, tenant_id, appointment_id)
        if appointment.status not in (AppointmentStatus.BOOKED.value, AppointmentStatus.RESCHEDULED.value):
            raise InvalidTransitionError('appointment', appointment.status, AppointmentStatus.BOOKED.value)

        target_staff_id = _parse_id(staff_id, 'staff_id') if staff_id else appointment.staff_id

        def write():
            staff = self._get_staff(session, tenant_id, target_staff_id, lock=True)
            self.checker.ensure_available(
                session, staff.id, new_start, appointment.duration_minutes,
                exclude_appointment_id=appointment.id
            )
            appointment.previous_scheduled_at = appointment.scheduled_at
            appointment.staff_id = staff.id
            appointment.status = AppointmentStatus.BOOKED.value
            appointment.set_window(new_start, appointment.duration_minutes)
            staff.last_booked_at = utcnow()
            session.flush()
            return appointment

        self._run_booking(session, target_staff_id, write)
        logger.info(
            f"[BOOKING] Appointment {appointment.id} moved from "
            f"{appointment.previous_scheduled_at.isoformat()} to {new_start.isoformat()}"
        )
        if appointment.customer is not None:
            self._notify(appointment.customer, appointment, NotificationType.APPOINTMENT.value,
                         'Appointment rescheduled',
                         f"Your appointment now starts at {new_start:%Y-%m-%d %H:%M}.")
        return appointment

    def update_status(self, session, tenant_id: int, appointment_id: int, status: str,
                      reason: Optional[str] = None) -> Appointment:
        """Apply a validated status transition."""
        if status not in {s.value for s in AppointmentStatus}:
            raise ValidationError(f"Invalid appointment status: {status}")

        appointment = self.get_appointment(session, tenant_id, appointment_id)
        current = appointment.status
        if not appointment.can_transition_to(status):
            raise InvalidTransitionError('appointment', current, status)

        if status in ACTIVE_STATUSES and current not in ACTIVE_STATUSES:
            # Back on the calendar: the slot may have been taken meanwhile
            def write():
                staff = self._get_staff(session, tenant_id, appointment.staff_id, lock=True)
                self.checker.ensure_available(
                    session, staff.id, appointment.scheduled_at, appointment.duration_minutes,
                    exclude_appointment_id=appointment.id
                )
                appointment.status = status
                staff.last_booked_at = utcnow()
                session.flush()
                return appointment

            self._run_booking(session, appointment.staff_id, write)
        else:
            try:
                appointment.status = status
                if status == AppointmentStatus.CANCELLED.value:
                    appointment.cancellation_reason = reason
                if status == AppointmentStatus.COMPLETED.value and appointment.customer is not None:
                    customer_service.record_visit(session, appointment.customer, appointment.total_price)
                session.commit()
            except Exception:
                session.rollback()
                raise

        logger.info(f"[BOOKING] Appointment {appointment.id}: {current} -> {status}")
        if status == AppointmentStatus.CANCELLED.value and appointment.customer is not None:
            self._notify(appointment.customer, appointment, NotificationType.APPOINTMENT.value,
                         'Appointment cancelled',
                         f"Your appointment on {appointment.scheduled_at:%Y-%m-%d %H:%M} was cancelled.")
        return appointment

    def cancel_appointment(self, session, tenant_id: int, appointment_id: int,
                           reason: Optional[str] = None) -> Appointment:
        return self.update_status(session, tenant_id, appointment_id, AppointmentStatus.CANCELLED.value, reason)

    def mark_no_show(self, session, tenant_id: int, appointment_id: int) -> Appointment:
        return self.update_status(session, tenant_id, appointment_id, AppointmentStatus.NO_SHOW.value)

    def delete_appointment(self, session, tenant_id: int, appointment_id: int) -> None:
        """Hard delete. Admin only; normal flows cancel instead."""
        appointment = self.get_appointment(session, tenant_id, appointment_id)
        session.delete(appointment)
        session.commit()
        logger.warning(f"[BOOKING] Appointment {appointment_id} of tenant {tenant_id} deleted")

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def get_available_time_slots(self, session, tenant_id: int, day, service_ids=None,
                                 staff_id: Optional[int] = None, slot_minutes: Optional[int] = None,
                                 now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """
        Bookable start times within the salon's business day.

        Each slot lists the staff members free for the whole service
        duration. Slots starting before `now` are left out when given.
        """
        day = parse_date(day)
        if day is None:
            raise ValidationError('A valid date is required')
        step = slot_minutes or self.slot_minutes
        if step <= 0:
            raise ValidationError('Slot interval must be positive')

        salon = self._get_salon(session, tenant_id)
        services = self._load_services(session, tenant_id, service_ids)
        duration = self.calculate_pricing(services)['total_duration'] or self.checker.default_duration

        if staff_id:
            staff_members = [self._get_staff(session, tenant_id, _parse_id(staff_id, 'staff_id'))]
        else:
            staff_members = session.query(Staff).filter(
                Staff.tenant_id == tenant_id, Staff.active.is_(True)
            ).order_by(Staff.name, Staff.id).all()

        opens = datetime.combine(day, salon.opens_at)
        closes = datetime.combine(day, salon.closes_at)

        busy: Dict[int, List[Appointment]] = {s.id: [] for s in staff_members}
        if staff_members:
            rows = session.query(Appointment).filter(
                Appointment.staff_id.in_(list(busy)),
                Appointment.status.in_(ACTIVE_STATUSES),
                Appointment.scheduled_at < closes,
                Appointment.ends_at > opens
            ).all()
            for appointment in rows:
                busy[appointment.staff_id].append(appointment)

        slots = []
        length = timedelta(minutes=duration)
        start = opens
        while start + length <= closes:
            end = start + length
            if now is None or start >= now:
                free = [
                    {'id': s.id, 'name': s.name}
                    for s in staff_members
                    if not any(windows_overlap(start, end, a.scheduled_at, a.ends_at) for a in busy[s.id])
                ]
                slots.append({
                    'start': start.isoformat(),
                    'end': end.isoformat(),
                    'available': bool(free),
                    'available_staff': free,
                })
            start += timedelta(minutes=step)
        return slots

    # ------------------------------------------------------------------

    def _notify(self, customer: Customer, appointment: Appointment, ntype: str, title: str, message: str):
        notification = Notification(
            user_id=customer.user_id,
            salon_id=appointment.tenant_id,
            type=ntype,
            title=title,
            message=message,
            data={'appointment_id': appointment.id},
        )
        deliver(self.notifier, notification, customer)
