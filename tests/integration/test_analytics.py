"""Integration tests for the salon dashboard and its cache."""

from datetime import timedelta
from decimal import Decimal

import pytest
from redis.exceptions import RedisError

from conftest import DAY, at
from salonhub.models import Customer
from salonhub.services import analytics_service
from salonhub.services.cache_service import CacheService
from salonhub.utils.formatters import utcnow


@pytest.fixture
def redis_cache(mocker):
    """Cache service on a mocked Redis client."""
    cache = CacheService()
    cache.client = mocker.MagicMock()
    cache._enabled = True
    return cache


def test_appointments_and_top_services(services, session, salon, book, haircut, coloring):
    first = book(at(9, 0), service_ids=[haircut.id], duration=None)
    second = book(at(10, 0), service_ids=[haircut.id, coloring.id], duration=None)
    book(at(13, 0))
    for appointment in (first, second):
        services.appointments.update_status(session, salon.id, appointment.id, 'completed')

    dashboard = analytics_service.get_dashboard(session, salon.id, at(0, 0), at(0, 0) + timedelta(days=1))

    assert dashboard['appointments'] == {'total': 3, 'by_status': {'completed': 2, 'booked': 1}}
    assert dashboard['top_services'][0] == {'id': haircut.id, 'name': 'Haircut', 'bookings': 2}
    assert [d['date'] for d in dashboard['daily_revenue']] == [DAY.isoformat()]


def test_revenue_from_paid_invoices(services, session, salon, customer):
    billing = services.billing
    paid = billing.create_invoice(session, salon.id, {
        'customer_id': customer.id, 'line_items': [{'name': 'Facial', 'price': 1000}], 'tax_rate': 0,
    })
    billing.process_payment(session, salon.id, paid.id, 1000)
    billing.create_invoice(session, salon.id, {'line_items': [{'name': 'Wash', 'price': 100}]})

    now = utcnow()
    dashboard = analytics_service.get_dashboard(session, salon.id, now - timedelta(days=1), now + timedelta(days=1))

    assert dashboard['revenue'] == Decimal('1000.00')
    assert dashboard['paid_invoices'] == 1
    assert sum(d['revenue'] for d in dashboard['daily_revenue']) == Decimal('1000.00')
    assert dashboard['new_customers'] == 1


def test_dashboard_is_memoized(session, salon, redis_cache, mocker):
    compute = mocker.spy(analytics_service, '_compute_dashboard')
    redis_cache.client.get.return_value = None

    analytics_service.get_dashboard(session, salon.id, at(0, 0), at(23, 0), cache=redis_cache)

    assert compute.call_count == 1
    key, ttl, payload = redis_cache.client.setex.call_args[0]
    assert key.startswith(f'salonhub:tenant:{salon.id}:dashboard:')
    assert ttl == analytics_service.CACHE_TTL

    redis_cache.client.get.return_value = payload
    cached = analytics_service.get_dashboard(session, salon.id, at(0, 0), at(23, 0), cache=redis_cache)

    assert compute.call_count == 1
    assert cached['revenue'] == Decimal('0.00')


def test_cache_errors_fall_back_to_loader(redis_cache):
    redis_cache.client.get.side_effect = RedisError('down')
    redis_cache.client.setex.side_effect = RedisError('down')

    assert redis_cache.memoize(1, 'dashboard', 'k', lambda: {'value': 1}) == {'value': 1}


def test_invalidate_dashboard(redis_cache):
    redis_cache.client.scan_iter.return_value = ['a', 'b']
    redis_cache.client.delete.return_value = 1

    assert analytics_service.invalidate_dashboard(7, cache=redis_cache) == 2
    redis_cache.client.scan_iter.assert_called_once_with(match='salonhub:tenant:7:dashboard:*', count=100)


def test_disabled_cache_is_a_no_op(app):
    cache = CacheService(app)

    assert cache.enabled is False
    assert cache.get(1, 'dashboard', 'k') is None
    assert cache.set(1, 'dashboard', 'k', 1) is False
    assert cache.invalidate_module(1, 'dashboard') == 0


def make_customer(session, salon, name, phone):
    customer = Customer(tenant_id=salon.id, name=name, phone=phone,
                        wallet_balance=Decimal('0.00'), total_spent=Decimal('0.00'))
    session.add(customer)
    session.commit()
    return customer


class TestReports:

    @pytest.fixture
    def second(self, session, salon):
        return make_customer(session, salon, 'Arjun', '9811100000')

    @pytest.fixture
    def history(self, services, session, salon, book, second, haircut, coloring):
        """Two completed visits by `customer`, one by `second`, one cancellation."""
        make_customer(session, salon, 'Never Came', '9811100001')
        done = [
            book(at(9, 0), service_ids=[haircut.id], duration=None),
            book(at(10, 0), service_ids=[haircut.id, coloring.id], duration=None),
            book(at(13, 0), service_ids=[haircut.id], duration=None, customer_id=second.id),
        ]
        for appointment in done:
            services.appointments.update_status(session, salon.id, appointment.id, 'completed')
        dropped = book(at(15, 0))
        services.appointments.cancel_appointment(session, salon.id, dropped.id)

    def test_revenue_by_service(self, session, salon, history, haircut, coloring):
        rows = analytics_service.get_revenue_by_service(session, salon.id)

        assert rows == [
            {'id': haircut.id, 'name': 'Haircut', 'bookings': 3,
             'revenue': Decimal('1500.00'), 'average_revenue': Decimal('500.00')},
            {'id': coloring.id, 'name': 'Coloring', 'bookings': 1,
             'revenue': Decimal('1200.00'), 'average_revenue': Decimal('1200.00')},
        ]

    def test_revenue_by_service_respects_range(self, session, salon, history):
        next_day = at(0, 0) + timedelta(days=1)

        assert analytics_service.get_revenue_by_service(session, salon.id, next_day, next_day + timedelta(days=1)) == []

    def test_appointment_trends(self, session, salon, history):
        trends = analytics_service.get_appointment_trends(session, salon.id, at(0, 0), at(0, 0) + timedelta(days=1))

        assert trends['total_appointments'] == 4
        assert trends['completed'] == 3
        assert trends['cancelled'] == 1
        assert trends['no_show'] == 0
        assert trends['completion_rate'] == Decimal('75.00')
        assert trends['cancellation_rate'] == Decimal('25.00')
        assert trends['daily_trends'] == [
            {'date': DAY.isoformat(), 'total': 4, 'completed': 3, 'cancelled': 1, 'no_show': 0},
        ]

    def test_trends_without_appointments(self, session, salon):
        trends = analytics_service.get_appointment_trends(session, salon.id)

        assert trends['completion_rate'] == Decimal('0.00')
        assert trends['daily_trends'] == []

    def test_customer_retention(self, session, salon, history):
        metrics = analytics_service.get_customer_retention_metrics(session, salon.id)

        assert metrics == {
            'total_customers': 3,
            'visited_customers': 2,
            'returning_customers': 1,
            'one_time_customers': 1,
            'retention_rate': Decimal('50.00'),
        }

    def test_visit_frequency(self, session, salon, customer, second, history):
        rows = analytics_service.get_customer_visit_frequency(session, salon.id)

        assert rows == [
            {'customer_id': customer.id, 'name': customer.name, 'visits': 2,
             'total_spent': Decimal('2200.00'), 'average_spent': Decimal('1100.00')},
            {'customer_id': second.id, 'name': 'Arjun', 'visits': 1,
             'total_spent': Decimal('500.00'), 'average_spent': Decimal('500.00')},
        ]
        assert len(analytics_service.get_customer_visit_frequency(session, salon.id, limit=1)) == 1

    def test_reports_are_tenant_scoped(self, session, other_salon, history):
        assert analytics_service.get_revenue_by_service(session, other_salon.id) == []
        assert analytics_service.get_customer_visit_frequency(session, other_salon.id) == []
        assert analytics_service.get_customer_retention_metrics(session, other_salon.id)['visited_customers'] == 0
