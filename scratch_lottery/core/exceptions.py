"""Scratch Lottery - Custom exceptions.

Every error carries an HTTP ``status_code`` that only the API layer reads.
Services raise these and never build HTTP responses themselves.
"""

from typing import Any


class LotteryError(Exception):
    """Base exception for all scratch lottery errors."""

    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ============ Validation ============


class ValidationError(LotteryError):
    """Input validation failed."""

    pass


class InvalidAmountError(ValidationError):
    """Amount is zero, negative or outside the allowed range."""

    def __init__(self, amount: int, message: str = "amount must be positive") -> None:
        super().__init__(message, {"amount": amount})


class InvalidQuantityError(ValidationError):
    """Ticket quantity outside the allowed range."""

    pass


class InvalidSecurityCodeError(ValidationError):
    """Security code has the wrong format."""

    pass


class InvalidRulesConfigError(ValidationError):
    """A lottery type's rules_config could not be parsed."""

    pass


class InvalidAreaIndexError(ValidationError):
    """Scratch area index is outside the ticket grid."""

    pass


# ============ Not found ============


class NotFoundError(LotteryError):
    """Referenced entity does not exist."""

    status_code = 404


class UserNotFoundError(NotFoundError):
    pass


class LotteryTypeNotFoundError(NotFoundError):
    pass


class TicketNotFoundError(NotFoundError):
    pass


class ProductNotFoundError(NotFoundError):
    pass


class OrderNotFoundError(NotFoundError):
    pass


# ============ State conflicts ============


class StateConflictError(LotteryError):
    """Current state does not allow the operation."""

    status_code = 409


class SoldOutError(StateConflictError):
    """No inventory left (tickets, prize pool or product stock)."""

    pass


class TypeDisabledError(StateConflictError):
    """Lottery type is disabled."""

    pass


class InsufficientBalanceError(StateConflictError):
    """Wallet balance would go negative."""

    def __init__(
        self,
        required: int | None = None,
        available: int | None = None,
        message: str = "insufficient balance",
    ) -> None:
        details = {}
        if required is not None:
            details["required"] = required
        if available is not None:
            details["available"] = available
        super().__init__(message, details)


class InsufficientPointsError(InsufficientBalanceError):
    """Not enough points to redeem a product."""

    pass


class AlreadyScratchedError(StateConflictError):
    pass


class AlreadyPaidError(StateConflictError):
    pass


class PaymentMismatchError(StateConflictError):
    """Callback reports another merchant or a different paid amount."""

    pass


class NoAvailableKeyError(StateConflictError):
    """Product has no available card key left."""

    pass


class ProductOfflineError(StateConflictError):
    pass


class UserExistsError(StateConflictError):
    pass


class PaymentDisabledError(StateConflictError):
    pass


class TicketNotOwnedError(LotteryError):
    """Ticket belongs to another user."""

    status_code = 403


# ============ Security ============


class InvalidSignatureError(LotteryError):
    """Payment callback signature mismatch."""

    pass


# ============ Integrity ============


class DataIntegrityError(LotteryError):
    """Stored data is inconsistent or unreadable."""

    status_code = 500


class TicketIntegrityError(DataIntegrityError):
    """Ticket content failed to decrypt or disagrees with its cached prize."""

    pass


class PrizeInventoryError(DataIntegrityError):
    """Prize levels claim more winners than tickets left in the pool."""

    pass


class SecurityCodeExhaustedError(DataIntegrityError):
    """Could not produce an unused security code."""

    pass


class PaymentConfigError(DataIntegrityError):
    """Payment gateway is enabled but not configured."""

    pass
