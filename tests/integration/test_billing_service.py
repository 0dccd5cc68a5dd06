"""Integration tests for invoices, payments and refunds."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from conftest import at
from salonhub import database
from salonhub.exceptions import BusinessLogicError, NotFoundError, ValidationError
from salonhub.services import customer_service
from salonhub.services.billing_service import BillingService
from salonhub.services.payment_service import PaymentProcessor, PaymentResult


@pytest.fixture
def billing(services):
    return services.billing


@pytest.fixture
def invoice(billing, session, salon, customer):
    """Unpaid invoice of 1180.00 (1000 + 18% tax)."""
    return billing.create_invoice(session, salon.id, {
        'customer_id': customer.id,
        'line_items': [{'name': 'Facial', 'price': 1000, 'quantity': 1}],
        'tax_rate': '0.18',
    })


class DecliningProcessor(PaymentProcessor):
    def charge(self, amount, method, reference=None):
        return PaymentResult(success=False, reference=None, amount=amount, method=method, message='Card declined')

    def refund(self, reference, amount):
        return PaymentResult(success=False, reference=reference, amount=amount, method='refund', message='No')


class TestInvoices:

    def test_create_invoice(self, invoice):
        assert invoice.invoice_number.startswith('INV-')
        assert invoice.subtotal == Decimal('1000.00')
        assert invoice.tax_amount == Decimal('180.00')
        assert invoice.total_amount == Decimal('1180.00')
        assert invoice.status == 'unpaid'
        assert invoice.due_date - invoice.issued_at == timedelta(days=30)

    def test_invoice_numbers_are_sequential_per_month(self, billing, session, salon):
        issued = datetime(2030, 3, 5, 12, 0)
        numbers = [
            billing.create_invoice(session, salon.id, {
                'line_items': [{'name': 'Wash', 'price': 100}], 'issued_at': issued,
            }).invoice_number
            for _ in range(2)
        ]

        assert numbers == ['INV-203003-0001', 'INV-203003-0002']

    def test_numbers_restart_per_tenant(self, billing, session, salon, other_salon):
        issued = datetime(2030, 3, 5, 12, 0)
        billing.create_invoice(session, salon.id, {'line_items': [{'name': 'Wash', 'price': 100}], 'issued_at': issued})
        other = billing.create_invoice(session, other_salon.id, {
            'line_items': [{'name': 'Wash', 'price': 100}], 'issued_at': issued,
        })

        assert other.invoice_number == 'INV-203003-0001'

    def test_line_items_required(self, billing, session, salon):
        with pytest.raises(ValidationError):
            billing.create_invoice(session, salon.id, {'line_items': []})

    def test_customer_of_other_tenant_rejected(self, billing, session, other_salon, customer):
        with pytest.raises(NotFoundError):
            billing.create_invoice(session, other_salon.id, {
                'customer_id': customer.id, 'line_items': [{'name': 'Wash', 'price': 100}],
            })

    def test_from_appointment_uses_salon_tax(self, billing, session, salon, book, haircut, coloring):
        appointment = book(at(10, 0), service_ids=[haircut.id, coloring.id], duration=None)

        invoice = billing.create_invoice_from_appointment(session, salon.id, appointment.id)

        assert [item['name'] for item in invoice.line_items] == ['Haircut', 'Coloring']
        assert invoice.subtotal == Decimal('1700.00')
        assert invoice.tax_amount == Decimal('306.00')
        assert invoice.total_amount == Decimal('2006.00')
        assert invoice.appointment_id == appointment.id

    def test_from_appointment_only_once(self, billing, session, salon, book):
        appointment = book(at(10, 0))
        billing.create_invoice_from_appointment(session, salon.id, appointment.id)

        with pytest.raises(BusinessLogicError):
            billing.create_invoice_from_appointment(session, salon.id, appointment.id)

    def test_cancelled_appointment_not_invoiced(self, services, billing, session, salon, book):
        appointment = book(at(10, 0))
        services.appointments.cancel_appointment(session, salon.id, appointment.id)

        with pytest.raises(BusinessLogicError):
            billing.create_invoice_from_appointment(session, salon.id, appointment.id)

    def test_void(self, billing, session, salon, invoice):
        voided = billing.void_invoice(session, salon.id, invoice.id, 'Duplicate')

        assert voided.status == 'void'
        assert voided.void_reason == 'Duplicate'

    def test_void_requires_reason(self, billing, session, salon, invoice):
        with pytest.raises(ValidationError):
            billing.void_invoice(session, salon.id, invoice.id, '')

    def test_cannot_void_paid_amounts(self, billing, session, salon, invoice):
        billing.process_payment(session, salon.id, invoice.id, 100)

        with pytest.raises(BusinessLogicError):
            billing.void_invoice(session, salon.id, invoice.id, 'Mistake')

    def test_list_filters(self, billing, session, salon, invoice):
        billing.create_invoice(session, salon.id, {'line_items': [{'name': 'Wash', 'price': 100}]})

        result = billing.list_invoices(session, salon.id, {'customer_id': invoice.customer_id})

        assert [inv.id for inv in result['items']] == [invoice.id]


class TestPayments:

    def test_partial_then_full_payment(self, billing, session, salon, customer, invoice):
        first = billing.process_payment(session, salon.id, invoice.id, 500, 'card')
        assert invoice.status == 'partial'
        assert first.reference.startswith('MAN-')

        billing.process_payment(session, salon.id, invoice.id, '680.00', 'upi')

        assert invoice.status == 'paid'
        assert invoice.paid_at is not None
        assert invoice.amount_due == Decimal('0.00')
        # 1 point per 10 spent on the settled total
        assert customer.loyalty_points == 118

    def test_overpayment_rejected(self, billing, session, salon, invoice):
        with pytest.raises(BusinessLogicError):
            billing.process_payment(session, salon.id, invoice.id, 2000)

        assert invoice.payments == []

    def test_unknown_method_rejected(self, billing, session, salon, invoice):
        with pytest.raises(ValidationError):
            billing.process_payment(session, salon.id, invoice.id, 100, 'cheque')

    def test_paid_invoice_takes_no_more_payments(self, billing, session, salon, invoice):
        billing.process_payment(session, salon.id, invoice.id, 1180)

        with pytest.raises(BusinessLogicError):
            billing.process_payment(session, salon.id, invoice.id, 1)

    def test_wallet_payment_debits_wallet(self, billing, session, salon, customer, invoice):
        customer_service.credit_wallet(session, salon.id, customer.id, 2000)

        billing.process_payment(session, salon.id, invoice.id, 1180, 'wallet')

        assert customer.wallet_balance == Decimal('820.00')

    def test_wallet_payment_needs_balance(self, billing, session, salon, customer, invoice):
        with pytest.raises(BusinessLogicError):
            billing.process_payment(session, salon.id, invoice.id, 100, 'wallet')

        session.refresh(invoice)
        assert invoice.paid_amount == Decimal('0.00')

    def test_declined_payment_leaves_invoice_unpaid(self, session, salon, invoice):
        billing = BillingService(DecliningProcessor())

        with pytest.raises(BusinessLogicError, match='Card declined'):
            billing.process_payment(session, salon.id, invoice.id, 100)

        session.refresh(invoice)
        assert invoice.status == 'unpaid'


class TestRefunds:

    def test_partial_refund(self, billing, session, salon, invoice):
        payment = billing.process_payment(session, salon.id, invoice.id, 1180)

        refunded = billing.refund_payment(session, salon.id, payment.id, 180, reason='Goodwill')

        assert refunded.status == 'partially_refunded'
        assert invoice.status == 'partial'
        assert invoice.paid_amount == Decimal('1000.00')

    def test_full_refund_credits_wallet(self, billing, session, salon, customer, invoice):
        customer_service.credit_wallet(session, salon.id, customer.id, 1180)
        payment = billing.process_payment(session, salon.id, invoice.id, 1180, 'wallet')

        refunded = billing.refund_payment(session, salon.id, payment.id)

        assert refunded.status == 'refunded'
        assert invoice.status == 'unpaid'
        assert customer.wallet_balance == Decimal('1180.00')

    def test_refund_more_than_paid(self, billing, session, salon, invoice):
        payment = billing.process_payment(session, salon.id, invoice.id, 100)

        with pytest.raises(BusinessLogicError):
            billing.refund_payment(session, salon.id, payment.id, 150)

    def test_refund_sees_refunds_from_other_sessions(self, billing, session, salon, invoice):
        payment = billing.process_payment(session, salon.id, invoice.id, 1180)
        competitor = database.new_session()
        try:
            billing.refund_payment(competitor, salon.id, payment.id)
        finally:
            competitor.close()

        # Our session still holds the payment as it was before the other refund
        with pytest.raises(BusinessLogicError):
            billing.refund_payment(session, salon.id, payment.id, 500)

        assert payment.refunded_amount == Decimal('1180.00')
        assert invoice.paid_amount == Decimal('0.00')
        assert invoice.status == 'unpaid'

    def test_refund_other_tenant_payment(self, billing, session, salon, other_salon, invoice):
        payment = billing.process_payment(session, salon.id, invoice.id, 100)

        with pytest.raises(NotFoundError):
            billing.refund_payment(session, other_salon.id, payment.id)


class TestReporting:

    def test_outstanding_and_overdue(self, billing, session, salon, invoice):
        billing.process_payment(session, salon.id, invoice.id, 180)

        report = billing.get_outstanding_invoices(session, salon.id, now=invoice.issued_at + timedelta(days=31))

        assert [inv.id for inv in report['invoices']] == [invoice.id]
        assert [inv.id for inv in report['overdue']] == [invoice.id]
        assert report['total_due'] == Decimal('1000.00')

    def test_billing_analytics(self, billing, session, salon, invoice):
        billing.process_payment(session, salon.id, invoice.id, 1180)
        second = billing.create_invoice(session, salon.id, {'line_items': [{'name': 'Wash', 'price': 100}]})
        billing.void_invoice(session, salon.id, second.id, 'Test')

        analytics = billing.get_billing_analytics(session, salon.id)

        assert analytics['total_invoices'] == 1
        assert analytics['total_collected'] == Decimal('1180.00')
        assert analytics['outstanding'] == Decimal('0.00')
        assert analytics['by_status'] == {'paid': 1}


class TestSalesReports:

    @pytest.fixture
    def march_invoices(self, billing, session, salon, other_salon):
        def issue(tenant_id, day, hour, price):
            return billing.create_invoice(session, tenant_id, {
                'line_items': [{'name': 'Wash', 'price': price}], 'tax_rate': 0,
                'issued_at': datetime(2030, 3, day, hour, 0),
            })
        return {
            'morning': issue(salon.id, 5, 10, 100),
            'evening': issue(salon.id, 5, 18, 250),
            'later': issue(salon.id, 20, 12, 400),
            'voided': issue(salon.id, 20, 15, 999),
            'april': billing.create_invoice(session, salon.id, {
                'line_items': [{'name': 'Wash', 'price': 50}], 'tax_rate': 0,
                'issued_at': datetime(2030, 4, 1, 9, 0),
            }),
            'other_tenant': issue(other_salon.id, 5, 11, 700),
        }

    def test_daily_sales(self, billing, session, salon, march_invoices):
        billing.process_payment(session, salon.id, march_invoices['morning'].id, 100)

        report = billing.get_daily_sales_report(session, salon.id, date(2030, 3, 5))

        assert [inv.id for inv in report['invoices']] == [march_invoices['evening'].id, march_invoices['morning'].id]
        assert report['invoice_count'] == 2
        assert report['total_invoiced'] == Decimal('350.00')
        assert report['total_collected'] == Decimal('100.00')

    def test_monthly_sales_skip_void(self, billing, session, salon, march_invoices):
        billing.void_invoice(session, salon.id, march_invoices['voided'].id, 'Duplicate')

        report = billing.get_monthly_sales_report(session, salon.id, 2030, 3)

        assert report['days'] == [
            {'day': 5, 'revenue': Decimal('350.00'), 'invoice_count': 2},
            {'day': 20, 'revenue': Decimal('400.00'), 'invoice_count': 1},
        ]
        assert report['invoice_count'] == 3
        assert report['total_revenue'] == Decimal('750.00')

    def test_december_report(self, billing, session, salon):
        billing.create_invoice(session, salon.id, {
            'line_items': [{'name': 'Wash', 'price': 80}], 'tax_rate': 0,
            'issued_at': datetime(2030, 12, 31, 20, 0),
        })

        report = billing.get_monthly_sales_report(session, salon.id, 2030, 12)

        assert report['days'] == [{'day': 31, 'revenue': Decimal('80.00'), 'invoice_count': 1}]

    def test_invalid_month(self, billing, session, salon):
        with pytest.raises(ValidationError):
            billing.get_monthly_sales_report(session, salon.id, 2030, 13)

    def test_payment_history(self, billing, session, salon, invoice):
        first = billing.process_payment(session, salon.id, invoice.id, 500, 'card')
        second = billing.process_payment(session, salon.id, invoice.id, 680, 'upi')

        history = billing.get_payment_history(session, salon.id, invoice.id)

        assert [p.id for p in history] == [second.id, first.id]

    def test_payment_history_of_other_tenant(self, billing, session, other_salon, invoice):
        with pytest.raises(NotFoundError):
            billing.get_payment_history(session, other_salon.id, invoice.id)
