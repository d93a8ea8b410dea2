"""Django Enrollment Payments - gateway orders and exactly-once payment reconciliation."""

__version__ = "0.1.0"

__all__ = [
    # Models
    "Enrollment",
    "PaymentOrder",
    "VerificationAttempt",
    # Services
    "create_enrollment",
    "get_enrollment",
    "transition",
    "issue_order",
    "verify",
    "reconcile_payment",
    "report_failure",
    "handle_webhook_event",
    # Exceptions
    "PaymentsError",
    "NotFoundError",
    "AlreadyPaidError",
    "InvalidSignatureError",
    "ConflictError",
    "StaleOrderError",
    "IssueFailedError",
]


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in ("Enrollment", "PaymentOrder", "VerificationAttempt"):
        from django_enrollment_payments import models
        return getattr(models, name)
    if name in ("create_enrollment", "get_enrollment", "transition"):
        from django_enrollment_payments import enrollments
        return getattr(enrollments, name)
    if name == "issue_order":
        from django_enrollment_payments import orders
        return getattr(orders, name)
    if name == "verify":
        from django_enrollment_payments import signatures
        return getattr(signatures, name)
    if name in ("reconcile_payment", "report_failure", "handle_webhook_event"):
        from django_enrollment_payments import reconciliation
        return getattr(reconciliation, name)
    if name in (
        "PaymentsError",
        "NotFoundError",
        "AlreadyPaidError",
        "InvalidSignatureError",
        "ConflictError",
        "StaleOrderError",
        "IssueFailedError",
    ):
        from django_enrollment_payments import exceptions
        return getattr(exceptions, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
