"""
Interfaces for the external systems the booking engine consults.

Payments, user profiles and ancillary services live outside the
reservation core. The engine only needs the narrow questions below
answered; the null implementations are used when nothing is wired in.
"""

from decimal import Decimal
from typing import Protocol, runtime_checkable


@runtime_checkable
class PaymentGateway(Protocol):
    def has_completed_payment(self, booking_id: int) -> bool:
        """Return True when the booking has a completed payment."""
        ...


@runtime_checkable
class UserDirectory(Protocol):
    def user_exists(self, user_id: str) -> bool:
        ...


@runtime_checkable
class AncillaryAggregator(Protocol):
    def booking_extras_total(self, booking_id: int) -> Decimal:
        """Sum of baggage, in-flight service and insurance charges for a booking."""
        ...


class NullPaymentGateway:
    """Reports no completed payment, so manual confirmations log a warning."""

    def has_completed_payment(self, booking_id: int) -> bool:
        return False


class NullUserDirectory:
    """Accepts every user reference."""

    def user_exists(self, user_id: str) -> bool:
        return True


class NullAncillaryAggregator:
    def booking_extras_total(self, booking_id: int) -> Decimal:
        return Decimal("0.00")
