"""
Appointment conflict checker.

A staff member is available for [start, start + duration) when no active
appointment (booked or in progress) of that staff member overlaps the window.
Two windows overlap when each one starts before the other ends.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from salonhub.exceptions import ConflictError, NotFoundError, ValidationError
from salonhub.models import Appointment, Staff, ACTIVE_STATUSES

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60


class ConflictChecker:
    """Read-only overlap queries over a staff member's calendar."""

    def __init__(self, default_duration: int = DEFAULT_DURATION_MINUTES):
        if default_duration <= 0:
            raise ValueError('default_duration must be positive')
        self.default_duration = default_duration

    def resolve_duration(self, duration_minutes: Optional[int]) -> int:
        """Default for None; reject zero and negative durations."""
        if duration_minutes is None:
            return self.default_duration
        try:
            duration = int(duration_minutes)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid duration: {duration_minutes!r}")
        if duration <= 0:
            raise ValidationError('Duration must be greater than zero minutes')
        return duration

    def _window(self, start_time: datetime, duration_minutes: Optional[int]):
        if start_time is None:
            raise ValidationError('Start time is required')
        duration = self.resolve_duration(duration_minutes)
        return start_time, start_time + timedelta(minutes=duration)

    def _get_staff(self, session, staff_id: int) -> Staff:
        staff = session.query(Staff).filter(Staff.id == staff_id).first()
        if staff is None or not staff.active:
            raise NotFoundError(f"Staff member {staff_id} not found or inactive")
        return staff

    def find_conflicts(
        self,
        session,
        staff_id: int,
        start_time: datetime,
        duration_minutes: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None
    ) -> List[Appointment]:
        """Active appointments of the staff member overlapping the window."""
        start, end = self._window(start_time, duration_minutes)
        self._get_staff(session, staff_id)

        query = session.query(Appointment).filter(
            Appointment.staff_id == staff_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.scheduled_at < end,
            Appointment.ends_at > start
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        return query.order_by(Appointment.scheduled_at).all()

    def is_available(
        self,
        session,
        staff_id: int,
        start_time: datetime,
        duration_minutes: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None
    ) -> bool:
        """
        True when the staff member has no active appointment overlapping
        [start_time, start_time + duration).

        Raises:
            ValidationError: missing start time or non-positive duration
            NotFoundError: unknown or inactive staff member
        """
        conflicts = self.find_conflicts(
            session, staff_id, start_time, duration_minutes, exclude_appointment_id
        )
        return not conflicts

    def ensure_available(
        self,
        session,
        staff_id: int,
        start_time: datetime,
        duration_minutes: Optional[int] = None,
        exclude_appointment_id: Optional[int] = None
    ) -> None:
        """Raise ConflictError when the window is taken."""
        conflicts = self.find_conflicts(
            session, staff_id, start_time, duration_minutes, exclude_appointment_id
        )
        if conflicts:
            ids = [a.id for a in conflicts]
            logger.info(f"[BOOKING] Staff {staff_id} busy at {start_time.isoformat()} (conflicts: {ids})")
            raise ConflictError(conflicting_ids=ids)


def windows_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open windows [start, end) overlap when each starts before the other ends."""
    return start_a < end_b and end_a > start_b
