"""
Billing service - Multi-Tenant.
Invoices, payments and refunds.
"""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func

from salonhub.exceptions import BusinessLogicError, NotFoundError, ValidationError
from salonhub.models import (
    Appointment, AppointmentStatus, Customer, Invoice, InvoicePayment, InvoiceStatus, Salon
)
from salonhub.services import customer_service
from salonhub.services.analytics_service import invalidate_dashboard
from salonhub.utils.formatters import money, to_decimal, utcnow
from salonhub.utils.pagination import paginate

logger = logging.getLogger(__name__)

PAYMENT_TERM_DAYS = 30


def _month_bounds(moment: datetime):
    start = datetime(moment.year, moment.month, 1)
    if moment.month == 12:
        end = datetime(moment.year + 1, 1, 1)
    else:
        end = datetime(moment.year, moment.month + 1, 1)
    return start, end


def _quantity(item: Dict[str, Any]) -> int:
    """Line item quantity; only a missing value counts as one."""
    value = item.get('quantity')
    if value is None or value == '':
        return 1
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError('Line item quantity must be a whole number')


class BillingService:
    """Invoice lifecycle on top of a payment processor."""

    def __init__(self, payment_processor, default_tax_rate=Decimal('0')):
        self.payment_processor = payment_processor
        self.default_tax_rate = to_decimal(default_tax_rate, Decimal('0'))

    # ------------------------------------------------------------------
    # Calculations
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_line_items(line_items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Validate line items and return them in stored form."""
        items = []
        for raw in line_items or []:
            name = (raw.get('name') or '').strip()
            price = to_decimal(raw.get('price'))
            quantity = _quantity(raw)
            if not name:
                raise ValidationError('Line item name is required')
            if price is None or price < 0:
                raise ValidationError(f"Invalid price for line item '{name}'")
            if quantity < 1:
                raise ValidationError(f"Invalid quantity for line item '{name}'")
            items.append({
                'name': name,
                'price': str(money(price)),
                'quantity': quantity,
                'service_id': raw.get('service_id'),
            })
        if not items:
            raise ValidationError('An invoice needs at least one line item')
        return items

    @staticmethod
    def calculate_invoice_totals(line_items, tax_rate=0, discounts=None) -> Dict[str, Decimal]:
        """
        Subtotal, discount, tax and total rounded to 2 decimals.

        Tax applies to max(0, subtotal - discount).

        Example:
            items 500 x1 + 300 x2, discount 100, tax 0.18
            -> subtotal 1100.00, discount 100.00, tax 180.00, total 1180.00
        """
        subtotal = sum(
            (to_decimal(item.get('price'), Decimal('0')) * _quantity(item) for item in line_items),
            Decimal('0')
        )
        discount = Decimal('0')
        for entry in discounts or []:
            amount = entry.get('amount') if isinstance(entry, dict) else entry
            discount += to_decimal(amount, Decimal('0'))

        rate = to_decimal(tax_rate, Decimal('0'))
        if rate < 0:
            raise ValidationError('Tax rate cannot be negative')

        taxable = max(Decimal('0'), subtotal - discount)
        tax = money(taxable * rate)
        return {
            'subtotal': money(subtotal),
            'discount_amount': money(discount),
            'tax_amount': tax,
            'total_amount': money(taxable) + tax,
        }

    @staticmethod
    def generate_invoice_number(session, tenant_id: int, now: Optional[datetime] = None) -> str:
        """Next INV-YYYYMM-NNNN number of the tenant for the current month."""
        now = now or utcnow()
        start, end = _month_bounds(now)
        count = session.query(func.count(Invoice.id)).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.issued_at >= start,
            Invoice.issued_at < end
        ).scalar() or 0

        prefix = f"INV-{now:%Y%m}-"
        sequence = count + 1
        while session.query(Invoice.id).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.invoice_number == f"{prefix}{sequence:04d}"
        ).first() is not None:
            sequence += 1
        return f"{prefix}{sequence:04d}"

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def get_invoice(self, session, tenant_id: int, invoice_id: int, lock: bool = False) -> Invoice:
        query = session.query(Invoice).filter(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id)
        if lock:
            query = query.with_for_update().populate_existing()
        invoice = query.first()
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def list_invoices(self, session, tenant_id: int, filters: Optional[Dict[str, Any]] = None,
                      page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        filters = filters or {}
        query = session.query(Invoice).filter(Invoice.tenant_id == tenant_id)
        if filters.get('status'):
            query = query.filter(Invoice.status == filters['status'])
        if filters.get('customer_id'):
            query = query.filter(Invoice.customer_id == int(filters['customer_id']))
        if filters.get('search'):
            query = query.outerjoin(Customer, Invoice.customer_id == Customer.id).filter(
                Invoice.invoice_number.ilike(f"%{filters['search']}%")
                | Customer.name.ilike(f"%{filters['search']}%")
            )
        return paginate(query.order_by(Invoice.issued_at.desc(), Invoice.id.desc()), page, per_page)

    def create_invoice(self, session, tenant_id: int, data: Dict[str, Any], commit: bool = True) -> Invoice:
        """
        Create an unpaid invoice.

        data keys: line_items, customer_id, appointment_id, tax_rate, discounts.
        """
        now = data.get('issued_at') or utcnow()
        line_items = self.normalize_line_items(data.get('line_items'))
        tax_rate = data.get('tax_rate')
        if tax_rate is None:
            tax_rate = self.default_tax_rate
        totals = self.calculate_invoice_totals(line_items, tax_rate, data.get('discounts'))

        customer_id = data.get('customer_id')
        if customer_id:
            customer_service.get_customer(session, tenant_id, int(customer_id))

        invoice = Invoice(
            tenant_id=tenant_id,
            invoice_number=self.generate_invoice_number(session, tenant_id, now),
            customer_id=customer_id,
            appointment_id=data.get('appointment_id'),
            line_items=line_items,
            tax_rate=to_decimal(tax_rate, Decimal('0')),
            paid_amount=Decimal('0.00'),
            status=InvoiceStatus.UNPAID.value,
            issued_at=now,
            due_date=now + timedelta(days=PAYMENT_TERM_DAYS),
            **totals
        )
        session.add(invoice)
        if commit:
            session.commit()
        else:
            session.flush()
        logger.info(f"[BILLING] Invoice {invoice.invoice_number} created for tenant {tenant_id}: {invoice.total_amount}")
        return invoice

    def create_invoice_from_appointment(self, session, tenant_id: int, appointment_id: int,
                                        discounts=None) -> Invoice:
        """Invoice with one line per booked service at the salon's tax rate."""
        appointment = session.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.tenant_id == tenant_id
        ).first()
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        if appointment.status in (AppointmentStatus.CANCELLED.value, AppointmentStatus.NO_SHOW.value):
            raise BusinessLogicError(f"Cannot invoice a {appointment.status} appointment")

        existing = session.query(Invoice.id).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.appointment_id == appointment.id,
            Invoice.status != InvoiceStatus.VOID.value
        ).first()
        if existing is not None:
            raise BusinessLogicError(f"Appointment {appointment_id} is already invoiced")

        if appointment.services:
            line_items = [
                {'name': s.name, 'price': s.price, 'quantity': 1, 'service_id': s.id}
                for s in appointment.services
            ]
        else:
            line_items = [{'name': 'Appointment', 'price': appointment.total_price, 'quantity': 1}]

        salon = session.get(Salon, tenant_id)
        return self.create_invoice(session, tenant_id, {
            'line_items': line_items,
            'customer_id': appointment.customer_id,
            'appointment_id': appointment.id,
            'tax_rate': salon.tax_rate if salon is not None else None,
            'discounts': discounts,
        })

    def void_invoice(self, session, tenant_id: int, invoice_id: int, reason: str) -> Invoice:
        if not reason:
            raise ValidationError('A reason is required to void an invoice')
        invoice = self.get_invoice(session, tenant_id, invoice_id, lock=True)
        if invoice.status == InvoiceStatus.VOID.value:
            raise BusinessLogicError('Invoice is already void')
        if money(invoice.paid_amount) > 0:
            raise BusinessLogicError('Refund the payments before voiding this invoice')

        invoice.status = InvoiceStatus.VOID.value
        invoice.void_reason = reason
        session.commit()
        logger.info(f"[BILLING] Invoice {invoice.invoice_number} voided: {reason}")
        return invoice

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    @staticmethod
    def _refresh_status(invoice: Invoice, now: datetime):
        paid = money(invoice.paid_amount)
        if paid <= 0:
            invoice.status = InvoiceStatus.UNPAID.value
            invoice.paid_at = None
        elif paid >= money(invoice.total_amount):
            invoice.status = InvoiceStatus.PAID.value
            invoice.paid_at = now
        else:
            invoice.status = InvoiceStatus.PARTIAL.value
            invoice.paid_at = None

    def process_payment(self, session, tenant_id: int, invoice_id: int, amount, method: str = 'cash',
                        reference: Optional[str] = None) -> InvoicePayment:
        """
        Apply a payment. Payments beyond the amount due are rejected.
        Wallet payments debit the customer's wallet; settling an invoice
        awards loyalty points on its total.
        """
        amount = to_decimal(amount)
        if amount is None or amount <= 0:
            raise ValidationError('Payment amount must be greater than zero')
        amount = money(amount)

        try:
            invoice = self.get_invoice(session, tenant_id, invoice_id, lock=True)
            if invoice.status in (InvoiceStatus.VOID.value, InvoiceStatus.PAID.value):
                raise BusinessLogicError(f"Invoice {invoice.invoice_number} is {invoice.status}")

            due = money(invoice.total_amount) - money(invoice.paid_amount)
            if amount > due:
                raise BusinessLogicError(f"Payment of {amount} exceeds amount due {due}")

            if method == 'wallet':
                if not invoice.customer_id:
                    raise BusinessLogicError('Wallet payments need an invoice customer')
                customer_service.debit_wallet(
                    session, tenant_id, invoice.customer_id, amount,
                    f"Payment for {invoice.invoice_number}", commit=False
                )

            result = self.payment_processor.charge(amount, method, reference)
            if not result.success:
                raise BusinessLogicError(result.message or 'Payment was declined')

            now = utcnow()
            payment = InvoicePayment(
                invoice=invoice,
                amount=amount,
                method=method,
                reference=result.reference,
                status='completed',
                refunded_amount=Decimal('0.00'),
                processed_at=now,
            )
            session.add(payment)
            invoice.paid_amount = money(invoice.paid_amount) + amount
            self._refresh_status(invoice, now)

            if invoice.status == InvoiceStatus.PAID.value and invoice.customer is not None:
                customer_service.award_loyalty_points(
                    session, invoice.customer, invoice.total_amount, f"Invoice {invoice.invoice_number}"
                )

            session.commit()
        except Exception:
            session.rollback()
            raise

        invalidate_dashboard(tenant_id)
        logger.info(f"[BILLING] Payment {payment.reference} of {amount} on {invoice.invoice_number} -> {invoice.status}")
        return payment

    def refund_payment(self, session, tenant_id: int, payment_id: int, amount=None,
                       reason: Optional[str] = None) -> InvoicePayment:
        """
        Refund a payment in full or in part; the invoice status follows.

        The invoice and the payment rows are locked and reloaded before the
        refundable amount is computed.
        """
        invoice_id = session.query(InvoicePayment.invoice_id).join(Invoice).filter(
            InvoicePayment.id == payment_id,
            Invoice.tenant_id == tenant_id
        ).scalar()
        if invoice_id is None:
            raise NotFoundError(f"Payment {payment_id} not found")

        try:
            invoice = self.get_invoice(session, tenant_id, invoice_id, lock=True)
            payment = session.query(InvoicePayment).filter(
                InvoicePayment.id == payment_id
            ).with_for_update().populate_existing().one()

            refundable = money(payment.amount) - money(payment.refunded_amount)
            amount = refundable if amount is None else money(amount)
            if amount <= 0:
                raise ValidationError('Refund amount must be greater than zero')
            if amount > refundable:
                raise BusinessLogicError(f"Refund of {amount} exceeds refundable {refundable}")

            result = self.payment_processor.refund(payment.reference, amount)
            if not result.success:
                raise BusinessLogicError(result.message or 'Refund was declined')

            payment.refunded_amount = money(payment.refunded_amount) + amount
            payment.status = 'refunded' if payment.refunded_amount >= money(payment.amount) else 'partially_refunded'
            invoice.paid_amount = money(invoice.paid_amount) - amount
            self._refresh_status(invoice, utcnow())

            if payment.method == 'wallet' and invoice.customer_id:
                customer_service.credit_wallet(
                    session, tenant_id, invoice.customer_id, amount,
                    f"Refund for {invoice.invoice_number}", commit=False
                )
            session.commit()
        except Exception:
            session.rollback()
            raise

        invalidate_dashboard(tenant_id)
        logger.info(f"[BILLING] Refunded {amount} of payment {payment.reference} ({reason or '-'})")
        return payment

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_outstanding_invoices(self, session, tenant_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Unpaid and partially paid invoices, with the overdue ones flagged."""
        now = now or utcnow()
        invoices = session.query(Invoice).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.status.in_([InvoiceStatus.UNPAID.value, InvoiceStatus.PARTIAL.value])
        ).order_by(Invoice.due_date, Invoice.id).all()

        overdue = [inv for inv in invoices if inv.due_date is not None and inv.due_date < now]
        return {
            'invoices': invoices,
            'overdue': overdue,
            'total_due': money(sum((inv.amount_due for inv in invoices), Decimal('0'))),
        }

    def get_billing_analytics(self, session, tenant_id: int, start: Optional[datetime] = None,
                              end: Optional[datetime] = None) -> Dict[str, Any]:
        query = session.query(Invoice).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.status != InvoiceStatus.VOID.value
        )
        if start is not None:
            query = query.filter(Invoice.issued_at >= start)
        if end is not None:
            query = query.filter(Invoice.issued_at < end)

        count, invoiced, collected = query.with_entities(
            func.count(Invoice.id),
            func.sum(Invoice.total_amount),
            func.sum(Invoice.paid_amount)
        ).one()

        by_status = dict(
            query.with_entities(Invoice.status, func.count(Invoice.id)).group_by(Invoice.status).all()
        )

        invoiced = money(invoiced or 0)
        collected = money(collected or 0)
        return {
            'total_invoices': count or 0,
            'total_invoiced': invoiced,
            'total_collected': collected,
            'outstanding': invoiced - collected,
            'average_invoice': money(invoiced / count) if count else Decimal('0.00'),
            'by_status': by_status,
        }

    def get_daily_sales_report(self, session, tenant_id: int, day: date) -> Dict[str, Any]:
        """Invoices issued on one day, newest first, with the day's totals."""
        start = datetime.combine(day, datetime.min.time())
        invoices = session.query(Invoice).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.issued_at >= start,
            Invoice.issued_at < start + timedelta(days=1)
        ).order_by(Invoice.issued_at.desc(), Invoice.id.desc()).all()

        billable = [inv for inv in invoices if inv.status != InvoiceStatus.VOID.value]
        return {
            'date': day.isoformat(),
            'invoices': invoices,
            'invoice_count': len(billable),
            'total_invoiced': money(sum((money(inv.total_amount) for inv in billable), Decimal('0'))),
            'total_collected': money(sum((money(inv.paid_amount) for inv in billable), Decimal('0'))),
        }

    def get_monthly_sales_report(self, session, tenant_id: int, year: int, month: int) -> Dict[str, Any]:
        """Invoiced totals per day of month. Void invoices are left out."""
        if not 1 <= int(month) <= 12:
            raise ValidationError(f"Invalid month: {month}")
        start, end = _month_bounds(datetime(int(year), int(month), 1))

        rows = session.query(Invoice.issued_at, Invoice.total_amount).filter(
            Invoice.tenant_id == tenant_id,
            Invoice.status != InvoiceStatus.VOID.value,
            Invoice.issued_at >= start,
            Invoice.issued_at < end
        ).all()

        days: Dict[int, Dict[str, Any]] = {}
        for issued_at, total in rows:
            entry = days.setdefault(issued_at.day, {'day': issued_at.day, 'revenue': Decimal('0.00'),
                                                    'invoice_count': 0})
            entry['revenue'] = money(entry['revenue'] + money(total))
            entry['invoice_count'] += 1

        return {
            'year': start.year,
            'month': start.month,
            'days': [days[d] for d in sorted(days)],
            'invoice_count': len(rows),
            'total_revenue': money(sum((money(total) for _, total in rows), Decimal('0'))),
        }

    def get_payment_history(self, session, tenant_id: int, invoice_id: int) -> List[InvoicePayment]:
        """Payments of an invoice, newest first."""
        invoice = self.get_invoice(session, tenant_id, invoice_id)
        return session.query(InvoicePayment).filter(
            InvoicePayment.invoice_id == invoice.id
        ).order_by(InvoicePayment.processed_at.desc(), InvoicePayment.id.desc()).all()
