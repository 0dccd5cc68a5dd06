"""Service objects shared by the whole application."""
from typing import NamedTuple

from flask import current_app

from salonhub.services.appointment_service import AppointmentService
from salonhub.services.availability import ConflictChecker
from salonhub.services.billing_service import BillingService
from salonhub.services.notification_service import NotificationService, Notifier, build_notifier
from salonhub.services.payment_service import ManualPaymentProcessor, PaymentProcessor
from salonhub.utils.formatters import to_decimal


class Services(NamedTuple):
    checker: ConflictChecker
    appointments: AppointmentService
    billing: BillingService
    notifications: NotificationService
    notifier: Notifier
    payments: PaymentProcessor


def build_services(config, notifier=None, payment_processor=None) -> Services:
    """Wire the services from app config. Collaborators can be swapped in tests."""
    notifier = notifier or build_notifier(config.get('NOTIFIER', 'log'))
    payment_processor = payment_processor or ManualPaymentProcessor()

    checker = ConflictChecker(default_duration=config.get('DEFAULT_APPOINTMENT_DURATION', 60))
    return Services(
        checker=checker,
        appointments=AppointmentService(
            checker,
            notifier=notifier,
            max_retries=config.get('BOOKING_MAX_RETRIES', 3),
            slot_minutes=config.get('SLOT_INTERVAL_MINUTES', 30),
        ),
        billing=BillingService(payment_processor, default_tax_rate=to_decimal(config.get('DEFAULT_TAX_RATE'))),
        notifications=NotificationService(notifier),
        notifier=notifier,
        payments=payment_processor,
    )


def get_services() -> Services:
    """Services of the running app."""
    return current_app.extensions['salonhub']
