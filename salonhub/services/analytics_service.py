"""
Dashboard and report analytics for a salon.
Dashboard results are memoized per tenant in the cache service when it is available.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from salonhub.models import Appointment, AppointmentStatus, Customer, Invoice, InvoiceStatus, Service, appointment_services
from salonhub.services.cache_service import get_cache
from salonhub.utils.formatters import money

logger = logging.getLogger(__name__)

CACHE_MODULE = 'dashboard'
CACHE_TTL = 300
TOP_SERVICES_LIMIT = 5


def _compute_dashboard(session, tenant_id: int, start: datetime, end: datetime) -> Dict[str, Any]:
    paid_invoices = session.query(Invoice).filter(
        Invoice.tenant_id == tenant_id,
        Invoice.status == InvoiceStatus.PAID.value,
        Invoice.paid_at >= start,
        Invoice.paid_at < end
    ).all()

    daily: Dict[str, Any] = {}
    day = datetime.combine(start.date(), datetime.min.time())
    while day < end:
        daily[day.date().isoformat()] = money(0)
        day += timedelta(days=1)
    for invoice in paid_invoices:
        key = invoice.paid_at.date().isoformat()
        daily[key] = daily.get(key, money(0)) + money(invoice.total_amount)

    by_status = dict(
        session.query(Appointment.status, func.count(Appointment.id)).filter(
            Appointment.tenant_id == tenant_id,
            Appointment.scheduled_at >= start,
            Appointment.scheduled_at < end
        ).group_by(Appointment.status).all()
    )

    top_services = session.query(
        Service.id, Service.name, func.count(appointment_services.c.appointment_id)
    ).join(
        appointment_services, appointment_services.c.service_id == Service.id
    ).join(
        Appointment, Appointment.id == appointment_services.c.appointment_id
    ).filter(
        Appointment.tenant_id == tenant_id,
        Appointment.status == AppointmentStatus.COMPLETED.value,
        Appointment.scheduled_at >= start,
        Appointment.scheduled_at < end
    ).group_by(Service.id, Service.name).order_by(
        func.count(appointment_services.c.appointment_id).desc(), Service.name
    ).limit(TOP_SERVICES_LIMIT).all()

    new_customers = session.query(func.count(Customer.id)).filter(
        Customer.tenant_id == tenant_id,
        Customer.created_at >= start,
        Customer.created_at < end
    ).scalar() or 0

    return {
        'period': {'start': start.isoformat(), 'end': end.isoformat()},
        'revenue': money(sum((money(inv.total_amount) for inv in paid_invoices), money(0))),
        'paid_invoices': len(paid_invoices),
        'daily_revenue': [{'date': d, 'revenue': v} for d, v in sorted(daily.items())],
        'appointments': {'total': sum(by_status.values()), 'by_status': by_status},
        'top_services': [{'id': sid, 'name': name, 'bookings': count} for sid, name, count in top_services],
        'new_customers': new_customers,
    }


def get_dashboard(session, tenant_id: int, start: datetime, end: datetime, cache=None) -> Dict[str, Any]:
    """Revenue, appointment and customer figures for [start, end)."""
    if cache is None:
        return _compute_dashboard(session, tenant_id, start, end)

    key = f"{start.isoformat()}_{end.isoformat()}"
    return cache.memoize(
        tenant_id, CACHE_MODULE, key,
        lambda: _compute_dashboard(session, tenant_id, start, end),
        ttl=CACHE_TTL
    )


def invalidate_dashboard(tenant_id: int, cache=None) -> int:
    """Drop cached dashboards of a tenant after revenue changes."""
    cache = cache or get_cache()
    if cache is None:
        return 0
    return cache.invalidate_module(tenant_id, CACHE_MODULE)


def _percent(part: int, whole: int) -> Decimal:
    if not whole:
        return money(0)
    return money(Decimal(part) * 100 / whole)


def _appointments_between(session, tenant_id: int, start: Optional[datetime], end: Optional[datetime]):
    query = session.query(Appointment).filter(Appointment.tenant_id == tenant_id)
    if start is not None:
        query = query.filter(Appointment.scheduled_at >= start)
    if end is not None:
        query = query.filter(Appointment.scheduled_at < end)
    return query


def get_revenue_by_service(session, tenant_id: int, start: Optional[datetime] = None,
                           end: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """
    Revenue of completed appointments per service, highest first.

    An appointment's price is split across its services in proportion to
    their list prices, so multi-service bookings are not counted twice.
    """
    appointments = _appointments_between(session, tenant_id, start, end).filter(
        Appointment.status == AppointmentStatus.COMPLETED.value
    ).all()

    totals: Dict[int, Dict[str, Any]] = {}
    for appointment in appointments:
        services = list(appointment.services)
        if not services:
            continue
        list_total = sum((money(s.price) for s in services), Decimal('0'))
        for service in services:
            if list_total > 0:
                share = money(appointment.total_price) * money(service.price) / list_total
            else:
                share = money(appointment.total_price) / len(services)
            entry = totals.setdefault(service.id, {'id': service.id, 'name': service.name,
                                                   'bookings': 0, 'revenue': Decimal('0')})
            entry['bookings'] += 1
            entry['revenue'] += share

    rows = []
    for entry in totals.values():
        revenue = money(entry['revenue'])
        rows.append(dict(entry, revenue=revenue, average_revenue=money(revenue / entry['bookings'])))
    return sorted(rows, key=lambda row: (-row['revenue'], row['name']))


def get_appointment_trends(session, tenant_id: int, start: Optional[datetime] = None,
                           end: Optional[datetime] = None) -> Dict[str, Any]:
    """Status counts, completion and cancellation rates, and per-day counts."""
    completed = AppointmentStatus.COMPLETED.value
    cancelled = AppointmentStatus.CANCELLED.value
    no_show = AppointmentStatus.NO_SHOW.value

    rows = _appointments_between(session, tenant_id, start, end).with_entities(
        Appointment.scheduled_at, Appointment.status
    ).all()

    daily: Dict[str, Dict[str, int]] = {}
    counts = {completed: 0, cancelled: 0, no_show: 0}
    for scheduled_at, status in rows:
        day = daily.setdefault(scheduled_at.date().isoformat(),
                               {'total': 0, completed: 0, cancelled: 0, no_show: 0})
        day['total'] += 1
        if status in counts:
            counts[status] += 1
            day[status] += 1

    total = len(rows)
    return {
        'total_appointments': total,
        'completed': counts[completed],
        'cancelled': counts[cancelled],
        'no_show': counts[no_show],
        'completion_rate': _percent(counts[completed], total),
        'cancellation_rate': _percent(counts[cancelled], total),
        'daily_trends': [dict(values, date=d) for d, values in sorted(daily.items())],
    }


def _completed_visits(session, tenant_id: int):
    return session.query(
        Appointment.customer_id,
        func.count(Appointment.id).label('visits'),
        func.sum(Appointment.total_price).label('spent')
    ).filter(
        Appointment.tenant_id == tenant_id,
        Appointment.status == AppointmentStatus.COMPLETED.value,
        Appointment.customer_id.isnot(None)
    ).group_by(Appointment.customer_id)


def get_customer_retention_metrics(session, tenant_id: int) -> Dict[str, Any]:
    """Customers who came back after their first completed visit."""
    total_customers = session.query(func.count(Customer.id)).filter(
        Customer.tenant_id == tenant_id
    ).scalar() or 0
    visits = [count for _, count, _ in _completed_visits(session, tenant_id).all()]

    visited = len(visits)
    returning = len([count for count in visits if count > 1])
    return {
        'total_customers': total_customers,
        'visited_customers': visited,
        'returning_customers': returning,
        'one_time_customers': visited - returning,
        'retention_rate': _percent(returning, visited),
    }


def get_customer_visit_frequency(session, tenant_id: int, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """Completed visits and spend per customer, most frequent first."""
    rows = _completed_visits(session, tenant_id).subquery()
    query = session.query(Customer.id, Customer.name, rows.c.visits, rows.c.spent).join(
        rows, rows.c.customer_id == Customer.id
    ).filter(Customer.tenant_id == tenant_id).order_by(rows.c.visits.desc(), rows.c.spent.desc(), Customer.name)
    if limit:
        query = query.limit(limit)

    return [
        {
            'customer_id': customer_id,
            'name': name,
            'visits': visits,
            'total_spent': money(spent or 0),
            'average_spent': money(money(spent or 0) / visits),
        }
        for customer_id, name, visits, spent in query.all()
    ]
