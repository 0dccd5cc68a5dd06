"""Invoice and invoice payment models."""
import enum

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, JSON, CheckConstraint, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from salonhub.database import IdType, model_base
from salonhub.routing import EntityKind


class InvoiceStatus(str, enum.Enum):
    UNPAID = 'unpaid'
    PARTIAL = 'partial'
    PAID = 'paid'
    VOID = 'void'


class Invoice(model_base(EntityKind.INVOICE)):
    """Customer invoice, usually generated from a completed appointment."""

    __tablename__ = 'invoice'

    id = Column(IdType, primary_key=True, autoincrement=True)
    tenant_id = Column(IdType, ForeignKey('salon.id'), nullable=False)
    invoice_number = Column(String(30), nullable=False)
    appointment_id = Column(IdType, ForeignKey('appointment.id'), nullable=True)
    customer_id = Column(IdType, ForeignKey('customer.id'), nullable=True)

    # [{'name', 'price', 'quantity', 'service_id'}]
    line_items = Column(JSON, nullable=False, default=list)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 4), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(String(10), nullable=False, default=InvoiceStatus.UNPAID.value)
    issued_at = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    void_reason = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    # Relationships
    customer = relationship('Customer')
    appointment = relationship('Appointment')
    payments = relationship(
        'InvoicePayment',
        back_populates='invoice',
        cascade='all, delete-orphan',
        order_by='InvoicePayment.id'
    )

    __table_args__ = (
        CheckConstraint("status IN ('unpaid', 'partial', 'paid', 'void')", name='check_invoice_status'),
        UniqueConstraint('tenant_id', 'invoice_number', name='uq_invoice_number_per_tenant'),
        Index('ix_invoice_tenant_issued', 'tenant_id', 'issued_at'),
    )

    @property
    def amount_due(self):
        """Amount still owed: total - paid."""
        return (self.total_amount or 0) - (self.paid_amount or 0)

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'appointment_id': self.appointment_id,
            'customer_id': self.customer_id,
            'line_items': self.line_items or [],
            'subtotal': float(self.subtotal or 0),
            'discount_amount': float(self.discount_amount or 0),
            'tax_amount': float(self.tax_amount or 0),
            'total_amount': float(self.total_amount or 0),
            'paid_amount': float(self.paid_amount or 0),
            'status': self.status,
            'issued_at': self.issued_at.isoformat() if self.issued_at else None,
            'due_date': self.due_date.isoformat() if self.due_date else None,
        }

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', status='{self.status}')>"


class InvoicePayment(model_base(EntityKind.INVOICE)):
    """Payment applied to an invoice. Part of the Invoice aggregate."""

    __tablename__ = 'invoice_payment'
    __entity_kind__ = EntityKind.INVOICE

    id = Column(IdType, primary_key=True, autoincrement=True)
    invoice_id = Column(IdType, ForeignKey('invoice.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(20), nullable=False, default='cash')
    reference = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default='completed')
    refunded_amount = Column(Numeric(12, 2), nullable=False, default=0)
    processed_at = Column(DateTime, nullable=False)

    invoice = relationship('Invoice', back_populates='payments')

    __table_args__ = (
        CheckConstraint("status IN ('completed', 'refunded', 'partially_refunded')", name='check_payment_status'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'amount': float(self.amount or 0),
            'method': self.method,
            'reference': self.reference,
            'status': self.status,
            'refunded_amount': float(self.refunded_amount or 0),
        }
