"""
Payment processors.

Services charge and refund through a PaymentProcessor. The manual processor
records in-salon payments (cash, card terminal, UPI, wallet) and always
succeeds once the input is valid.
"""
import logging
import uuid
from decimal import Decimal
from typing import NamedTuple, Optional

from salonhub.exceptions import ValidationError
from salonhub.utils.formatters import money

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ('cash', 'card', 'upi', 'wallet', 'bank_transfer')


class PaymentResult(NamedTuple):
    success: bool
    reference: Optional[str]
    amount: Decimal
    method: str
    message: Optional[str] = None


class PaymentProcessor:
    """Interface for charging and refunding payments."""

    def charge(self, amount: Decimal, method: str, reference: Optional[str] = None) -> PaymentResult:
        raise NotImplementedError

    def refund(self, reference: str, amount: Decimal) -> PaymentResult:
        raise NotImplementedError


class ManualPaymentProcessor(PaymentProcessor):
    """Payments collected at the front desk."""

    def charge(self, amount, method, reference=None):
        amount = money(amount)
        if amount <= 0:
            raise ValidationError('Payment amount must be greater than zero')
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"Unsupported payment method: {method}")

        reference = reference or f"MAN-{uuid.uuid4().hex[:12].upper()}"
        logger.info(f"[PAYMENT] Manual {method} payment {reference} for {amount}")
        return PaymentResult(success=True, reference=reference, amount=amount, method=method)

    def refund(self, reference, amount):
        amount = money(amount)
        if amount <= 0:
            raise ValidationError('Refund amount must be greater than zero')
        logger.info(f"[PAYMENT] Manual refund of {amount} for {reference}")
        return PaymentResult(success=True, reference=reference, amount=amount, method='refund')
