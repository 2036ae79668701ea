"""
Payment gateway collaborator.

The coordinator hands every confirmed booking to a gateway inside the same
transaction that allocates the seat. A gateway that reports failure leaves
the booking confirmed with a FAILED payment; a gateway that raises aborts
the whole booking.
"""
from collections import namedtuple

from django.utils.module_loading import import_string

from utils.transactions import get_engine_setting

PaymentOutcome = namedtuple('PaymentOutcome', ['success', 'reference', 'message'])


class PaymentGateway:

    def charge(self, booking, amount):
        """Return a PaymentOutcome for charging amount against booking."""
        raise NotImplementedError


class RecordingPaymentGateway(PaymentGateway):
    """Settles every charge immediately; used until a real gateway is wired in."""

    def charge(self, booking, amount):
        return PaymentOutcome(True, f"PAY-{booking.pnr}", "Payment recorded")


def get_payment_gateway():
    return import_string(get_engine_setting('PAYMENT_GATEWAY'))()
