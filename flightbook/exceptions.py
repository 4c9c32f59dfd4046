"""
Error taxonomy for the reservation core.

Every public operation raises one of three families, mirroring what the
surrounding API layer surfaces to users:

- NotFoundError: a referenced flight, booking, passenger, fare or promo code is absent
- BadRequestError: the request is well-formed but violates a business rule
- ConflictError: a uniqueness guarantee could not be satisfied
"""

from typing import Any, Dict, Optional


class FlightbookError(Exception):
    """Base class for all reservation core errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(FlightbookError):
    """Raised when a referenced entity does not exist."""
    pass


class BadRequestError(FlightbookError):
    """Raised when a request breaks a business rule."""
    pass


class ConflictError(FlightbookError):
    """Raised when a uniqueness constraint cannot be satisfied."""
    pass


class InsufficientInventoryError(BadRequestError):
    """Raised by the inventory ledger when a reservation cannot be covered."""

    def __init__(self, message: str, requested: int, available: int):
        super().__init__(message, {"requested": requested, "available": available})
        self.requested = requested
        self.available = available


class InvalidPromoCodeError(BadRequestError):
    """Raised when a promotional code fails validation during a quote."""

    def __init__(self, code: str, reason: str):
        super().__init__(reason, {"code": code})
        self.code = code
        self.reason = reason


class IdentifierExhaustedError(ConflictError):
    """Raised when no unique PNR or ticket number could be allocated."""
    pass


__all__ = [
    "FlightbookError",
    "NotFoundError",
    "BadRequestError",
    "ConflictError",
    "InsufficientInventoryError",
    "InvalidPromoCodeError",
    "IdentifierExhaustedError",
]
