"""Models package - exports all SQLAlchemy models of both partitions."""
# Platform partition
from salonhub.models.user import User, UserRole, ROLE_PERMISSIONS
from salonhub.models.subscription import Subscription, SubscriptionStatus, PLAN_PRICES
from salonhub.models.notification import Notification, NotificationType, NotificationPriority

# Tenant partition
from salonhub.models.salon import Salon, SalonStatus
from salonhub.models.staff import Staff
from salonhub.models.customer import Customer
from salonhub.models.service import Service
from salonhub.models.appointment import (
    Appointment, AppointmentStatus, ACTIVE_STATUSES, STATUS_TRANSITIONS, appointment_services
)
from salonhub.models.invoice import Invoice, InvoicePayment, InvoiceStatus
from salonhub.models.inventory import Inventory
from salonhub.models.review import Review
from salonhub.models.loyalty import Loyalty
from salonhub.models.wallet_transaction import WalletTransaction, WalletTransactionType

__all__ = [
    # Platform
    'User', 'UserRole', 'ROLE_PERMISSIONS',
    'Subscription', 'SubscriptionStatus', 'PLAN_PRICES',
    'Notification', 'NotificationType', 'NotificationPriority',
    # Tenant
    'Salon', 'SalonStatus', 'Staff', 'Customer', 'Service',
    'Appointment', 'AppointmentStatus', 'ACTIVE_STATUSES', 'STATUS_TRANSITIONS', 'appointment_services',
    'Invoice', 'InvoicePayment', 'InvoiceStatus',
    'Inventory', 'Review', 'Loyalty',
    'WalletTransaction', 'WalletTransactionType',
]
