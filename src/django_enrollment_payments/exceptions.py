"""Exceptions for django-enrollment-payments.

Every exception carries a stable ``code`` (the class name) which the HTTP
layer reports in the ``error`` field of its JSON responses.
"""


class PaymentsError(Exception):
    """Base exception for enrollment payment errors."""

    @property
    def code(self) -> str:
        return type(self).__name__


class PaymentsConfigError(PaymentsError):
    """Required configuration (gateway class, secrets) is missing or invalid."""
    pass


class EnrollmentValidationError(PaymentsError):
    """Enrollment input failed validation."""
    pass


class DuplicateEnrollmentError(PaymentsError):
    """A live enrollment already exists for this student and course."""
    pass


class AmountLockedError(PaymentsError):
    """Amount and currency are immutable once an order has been issued."""
    pass


class InvalidTransitionError(PaymentsError):
    """Raised when a status change is not an edge of the state machine."""

    def __init__(self, from_status: str, to_status: str, reason: str = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason or f"Cannot transition from '{from_status}' to '{to_status}'"
        super().__init__(self.reason)


class NotFoundError(PaymentsError):
    """Unknown enrollment or order."""
    pass


class EnrollmentNotFoundError(NotFoundError):
    """Enrollment does not exist (or has been soft-deleted)."""
    pass


class OrderNotFoundError(NotFoundError):
    """No local PaymentOrder matches the gateway order id."""
    pass


class AlreadyPaidError(PaymentsError):
    """Enrollment is already in a terminal success state."""
    pass


class InvalidSignatureError(PaymentsError):
    """Completion payload signature does not match the expected HMAC."""
    pass


class ConflictError(PaymentsError):
    """Compare-and-swap lost: stored state no longer matches the expectation."""

    def __init__(self, message: str = "", status: str = None):
        self.status = status
        super().__init__(message or "Enrollment state changed concurrently")


class StaleOrderError(ConflictError):
    """Order is not the enrollment's active order; caller should refresh."""
    pass


class IssueFailedError(PaymentsError):
    """Gateway order creation or local persistence failed; safe to retry."""
    pass


class GatewayError(PaymentsError):
    """Payment gateway call failed (timeout, network, non-2xx response)."""
    pass


class WebhookPayloadError(PaymentsError):
    """Webhook body is not valid JSON or lacks the payment/order entities."""
    pass


class PaymentValidationError(PaymentsError):
    """Completion payload fields are missing or longer than the stored columns."""
    pass
