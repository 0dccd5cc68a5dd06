"""Appointments JSON API - tenant-scoped through the X-Tenant-ID header."""
import logging

from flask import Blueprint, g, jsonify, request

from salonhub.container import get_services
from salonhub.database import get_session
from salonhub.exceptions import ConflictError, ValidationError
from salonhub.blueprints.metrics import booking_outcomes_total
from salonhub.middleware import require_tenant
from salonhub.services.staff_service import get_staff
from salonhub.utils.formatters import parse_datetime
from salonhub.utils.pagination import clamp_page

logger = logging.getLogger(__name__)

appointments_bp = Blueprint('appointments', __name__, url_prefix='/api/appointments')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('A JSON object body is required')
    return data


def _int_arg(name, required=False):
    raw = request.args.get(name)
    if raw in (None, ''):
        if required:
            raise ValidationError(f"Query parameter '{name}' is required")
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Query parameter '{name}' must be an integer")


@appointments_bp.route('', methods=['GET'])
@require_tenant
def list_appointments():
    """List appointments (filters: status, staff_id, customer_id, date_from, date_to)."""
    page, per_page = clamp_page(request.args.get('page'), request.args.get('per_page'))
    filters = {key: request.args.get(key) for key in ('status', 'staff_id', 'customer_id', 'date_from', 'date_to')}
    result = get_services().appointments.list_appointments(get_session(), g.tenant_id, filters, page, per_page)
    return jsonify({
        'status': 'success',
        'data': [a.to_dict() for a in result['items']],
        'meta': result['meta'],
    })


@appointments_bp.route('', methods=['POST'])
@require_tenant
def book_appointment():
    try:
        appointment = get_services().appointments.book_appointment(get_session(), g.tenant_id, _json_body())
    except ConflictError:
        booking_outcomes_total.labels(outcome='conflict').inc()
        raise
    booking_outcomes_total.labels(outcome='booked').inc()
    return jsonify({'status': 'success', 'data': appointment.to_dict()}), 201


@appointments_bp.route('/<int:appointment_id>', methods=['GET'])
@require_tenant
def get_appointment(appointment_id):
    appointment = get_services().appointments.get_appointment(get_session(), g.tenant_id, appointment_id)
    return jsonify({'status': 'success', 'data': appointment.to_dict()})


@appointments_bp.route('/<int:appointment_id>/reschedule', methods=['POST'])
@require_tenant
def reschedule_appointment(appointment_id):
    data = _json_body()
    appointment = get_services().appointments.reschedule_appointment(
        get_session(), g.tenant_id, appointment_id, data.get('scheduled_at'), data.get('staff_id')
    )
    return jsonify({'status': 'success', 'data': appointment.to_dict()})


@appointments_bp.route('/<int:appointment_id>/status', methods=['PATCH'])
@require_tenant
def update_status(appointment_id):
    data = _json_body()
    if not data.get('status'):
        raise ValidationError('status is required')
    appointment = get_services().appointments.update_status(
        get_session(), g.tenant_id, appointment_id, data['status'], data.get('reason')
    )
    return jsonify({'status': 'success', 'data': appointment.to_dict()})


@appointments_bp.route('/<int:appointment_id>', methods=['DELETE'])
@require_tenant
def delete_appointment(appointment_id):
    get_services().appointments.delete_appointment(get_session(), g.tenant_id, appointment_id)
    return jsonify({'status': 'success', 'message': f'Appointment {appointment_id} deleted'})


@appointments_bp.route('/availability', methods=['GET'])
@require_tenant
def check_availability():
    """Is a staff member free at ?start= for ?duration= minutes."""
    staff_id = _int_arg('staff_id', required=True)
    start = parse_datetime(request.args.get('start'))
    if start is None:
        raise ValidationError("Query parameter 'start' must be an ISO-8601 datetime")
    duration = _int_arg('duration')
    exclude_id = _int_arg('exclude_id')

    # Staff of other tenants are reported as unknown
    session = get_session()
    get_staff(session, g.tenant_id, staff_id)

    available = get_services().checker.is_available(session, staff_id, start, duration, exclude_id)
    return jsonify({
        'status': 'success',
        'data': {'staff_id': staff_id, 'start': start.isoformat(), 'available': available},
    })


@appointments_bp.route('/slots', methods=['GET'])
@require_tenant
def available_slots():
    """Bookable slots for ?date= (optional ?service_ids=1,2 and ?staff_id=)."""
    raw_ids = request.args.get('service_ids') or ''
    try:
        service_ids = [int(part) for part in raw_ids.split(',') if part.strip()]
    except ValueError:
        raise ValidationError('service_ids must be a comma-separated list of integers')

    slots = get_services().appointments.get_available_time_slots(
        get_session(), g.tenant_id, request.args.get('date'),
        service_ids=service_ids, staff_id=_int_arg('staff_id'), slot_minutes=_int_arg('interval')
    )
    return jsonify({'status': 'success', 'data': slots})
