"""Reconciliation engine: apply verified payments to enrollments exactly once.

Every completion payload is recorded as a VerificationAttempt before the
enrollment is touched. The (order, payment_id) pair is the idempotency key:
a replayed payload returns the recorded outcome and never re-applies.

Usage:
    from django_enrollment_payments.reconciliation import reconcile_payment

    result = reconcile_payment(order_id, payment_id, signature)
    if result.success:
        grant_access(result.enrollment_id)
"""

import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction
from django.utils import timezone

from django_enrollment_payments.conf import get_required_setting
from django_enrollment_payments.enrollments import get_enrollment, transition
from django_enrollment_payments.exceptions import (
    ConflictError,
    InvalidSignatureError,
    NotFoundError,
    OrderNotFoundError,
    PaymentValidationError,
    StaleOrderError,
    WebhookPayloadError,
)
from django_enrollment_payments.models import Enrollment, PaymentOrder, VerificationAttempt
from django_enrollment_payments.signatures import is_valid_signature

logger = logging.getLogger(__name__)

CAPTURE_EVENTS = ("payment.captured", "order.paid")
FAILURE_EVENTS = ("payment.failed",)


@dataclass
class ReconciliationResult:
    """Outcome of a reconciliation call."""

    success: bool
    status: str
    enrollment_id: str = ""
    error: str | None = None
    replayed: bool = False

    @classmethod
    def ok(cls, status: str, enrollment_id, replayed: bool = False) -> "ReconciliationResult":
        return cls(success=True, status=status, enrollment_id=str(enrollment_id), replayed=replayed)

    @classmethod
    def fail(cls, error: str, status: str, enrollment_id, replayed: bool = False) -> "ReconciliationResult":
        return cls(
            success=False,
            status=status,
            enrollment_id=str(enrollment_id),
            error=error,
            replayed=replayed,
        )

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "status": self.status,
            "enrollmentId": self.enrollment_id,
            "replayed": self.replayed,
        }
        if self.error:
            data["error"] = self.error
        return data


def _resolve_order(order_id: str, enrollment_id=None) -> PaymentOrder:
    try:
        order = PaymentOrder.objects.select_related("enrollment").get(order_id=order_id)
    except PaymentOrder.DoesNotExist:
        raise OrderNotFoundError(f"Order '{order_id}' not found")

    if enrollment_id is not None and str(order.enrollment_id) != str(enrollment_id):
        # Don't reveal that the order exists under another enrollment
        raise OrderNotFoundError(f"Order '{order_id}' not found for enrollment '{enrollment_id}'")
    return order


def _max_length(field_name: str) -> int:
    return VerificationAttempt._meta.get_field(field_name).max_length


def _check_payment_id(payment_id: str) -> None:
    limit = _max_length("payment_id")
    if not payment_id:
        raise PaymentValidationError("payment_id is required")
    if len(payment_id) > limit:
        raise PaymentValidationError(f"payment_id is longer than {limit} characters")


def _stored_signature(signature: str) -> str:
    # Audit copy only; verification already used the full value
    return (signature or "")[:_max_length("signature")]


def _record_attempt(order, payment_id, signature, valid, source) -> tuple[VerificationAttempt, bool]:
    """Insert the attempt row, or return the one a previous call wrote."""
    defaults = {
        "signature": _stored_signature(signature),
        "result": VerificationAttempt.Result.VALID if valid else VerificationAttempt.Result.INVALID,
        "source": source,
        "error_code": "" if valid else InvalidSignatureError.__name__,
    }
    try:
        with transaction.atomic():
            return VerificationAttempt.objects.get_or_create(
                order=order, payment_id=payment_id, defaults=defaults,
            )
    except IntegrityError:
        return VerificationAttempt.objects.get(order=order, payment_id=payment_id), False


def _upgrade_attempt(attempt: VerificationAttempt, signature: str, source: str) -> VerificationAttempt:
    """A correctly signed resubmission replaces an unapplied invalid record."""
    VerificationAttempt.objects.filter(
        pk=attempt.pk,
        applied=False,
        result=VerificationAttempt.Result.INVALID,
    ).update(
        result=VerificationAttempt.Result.VALID,
        signature=_stored_signature(signature),
        source=source,
        error_code="",
        updated_at=timezone.now(),
    )
    return VerificationAttempt.objects.get(pk=attempt.pk)


def _replay(attempt: VerificationAttempt, order: PaymentOrder) -> ReconciliationResult:
    enrollment = get_enrollment(order.enrollment_id)
    logger.debug(
        "Replayed payment %s for order %s (enrollment %s is '%s')",
        attempt.payment_id, order.order_id, enrollment.pk, enrollment.status,
    )
    return ReconciliationResult.ok(enrollment.status, enrollment.pk, replayed=True)


def _apply(attempt: VerificationAttempt, order: PaymentOrder) -> Enrollment | None:
    """
    Activate the enrollment, consume the order and mark the attempt applied.

    Returns None if the attempt had already been applied by a concurrent call.

    Raises:
        ConflictError: If the order is no longer the enrollment's open order
    """
    now = timezone.now()
    with transaction.atomic():
        locked = VerificationAttempt.objects.select_for_update().get(pk=attempt.pk)
        if locked.applied:
            return None

        status = Enrollment.objects.filter(pk=order.enrollment_id).values_list(
            "status", flat=True
        ).first()
        if status == Enrollment.Status.FAILED:
            # A late success on the current order recovers a reported failure
            transition(
                order.enrollment_id,
                Enrollment.Status.FAILED,
                Enrollment.Status.AWAITING_GATEWAY,
                expected_order_id=order.pk,
            )

        enrollment = transition(
            order.enrollment_id,
            Enrollment.Status.AWAITING_GATEWAY,
            Enrollment.Status.ACTIVE,
            expected_order_id=order.pk,
        )

        consumed = PaymentOrder.objects.filter(pk=order.pk, consumed=False).update(
            consumed=True, consumed_at=now, updated_at=now,
        )
        if not consumed:
            raise ConflictError(
                f"Order {order.order_id} was already consumed",
                status=Enrollment.Status.AWAITING_GATEWAY,
            )

        locked.applied = True
        locked.applied_at = now
        locked.save(update_fields=["applied", "applied_at", "updated_at"])

    return enrollment


def _reconcile(order, payment_id, signature, valid, source) -> ReconciliationResult:
    attempt, created = _record_attempt(order, payment_id, signature, valid, source)

    # A bad signature is rejected even when the pair was already applied
    if not valid:
        logger.warning(
            "Invalid payment signature: order=%s payment=%s enrollment=%s source=%s",
            order.order_id, payment_id, order.enrollment_id, source,
        )
        enrollment = get_enrollment(order.enrollment_id)
        return ReconciliationResult.fail(
            InvalidSignatureError.__name__, enrollment.status, enrollment.pk,
            replayed=not created,
        )

    if not attempt.applied and not attempt.is_valid:
        attempt = _upgrade_attempt(attempt, signature, source)

    if attempt.applied:
        return _replay(attempt, order)

    try:
        enrollment = _apply(attempt, order)
    except ConflictError as e:
        attempt = VerificationAttempt.objects.get(pk=attempt.pk)
        if attempt.applied:
            return _replay(attempt, order)

        VerificationAttempt.objects.filter(pk=attempt.pk, applied=False).update(
            error_code=StaleOrderError.__name__,
        )
        logger.warning(
            "Stale order %s for enrollment %s (status '%s'); payment %s not applied",
            order.order_id, order.enrollment_id, e.status, payment_id,
        )
        raise StaleOrderError(
            f"Order {order.order_id} is no longer active for this enrollment",
            status=e.status,
        ) from e

    if enrollment is None:
        return _replay(VerificationAttempt.objects.get(pk=attempt.pk), order)

    logger.info(
        "Applied payment %s for order %s: enrollment %s is now '%s' (source=%s)",
        payment_id, order.order_id, enrollment.pk, enrollment.status, source,
    )
    return ReconciliationResult.ok(enrollment.status, enrollment.pk)


def reconcile_payment(
    order_id: str,
    payment_id: str,
    signature: str,
    enrollment_id=None,
    source: str = VerificationAttempt.Source.CLIENT,
) -> ReconciliationResult:
    """
    Verify a completion payload and apply it to its enrollment exactly once.

    Args:
        order_id: Gateway order id
        payment_id: Gateway payment id
        signature: Hex HMAC-SHA256 of 'order_id|payment_id'
        enrollment_id: Optional enrollment the caller believes owns the order
        source: Where the payload came from (client or webhook)

    Returns:
        ReconciliationResult. An invalid signature is reported as
        success=False with error='InvalidSignatureError'; the enrollment is
        left unchanged.

    Raises:
        PaymentValidationError: If payment_id is empty or too long to record
        OrderNotFoundError: If the order is unknown or not owned by enrollment_id
        StaleOrderError: If the order is no longer the enrollment's open order
    """
    _check_payment_id(payment_id)
    order = _resolve_order(order_id, enrollment_id)
    valid = is_valid_signature(order_id, payment_id, signature, get_required_setting("KEY_SECRET"))
    return _reconcile(order, payment_id, signature, valid, source)


def report_failure(
    order_id: str,
    payment_id: str = "",
    reason: str = "",
    enrollment_id=None,
) -> ReconciliationResult:
    """
    Mark an enrollment failed after the gateway reported a failed payment.

    The order is left unconsumed. Reporting the same failure twice is a no-op.

    Raises:
        OrderNotFoundError: If the order is unknown or not owned by enrollment_id
        StaleOrderError: If the order is no longer the enrollment's open order
    """
    order = _resolve_order(order_id, enrollment_id)

    try:
        enrollment = transition(
            order.enrollment_id,
            Enrollment.Status.AWAITING_GATEWAY,
            Enrollment.Status.FAILED,
            expected_order_id=order.pk,
        )
    except ConflictError as e:
        current = get_enrollment(order.enrollment_id)
        if current.status == Enrollment.Status.FAILED and current.current_order_id == order.pk:
            logger.debug("Failure for order %s already recorded", order.order_id)
            return ReconciliationResult.ok(current.status, current.pk, replayed=True)
        logger.warning(
            "Ignoring failure for stale order %s (enrollment %s is '%s')",
            order.order_id, current.pk, e.status,
        )
        raise StaleOrderError(
            f"Order {order.order_id} is no longer active for this enrollment",
            status=e.status,
        ) from e

    logger.info(
        "Payment failed for order %s (payment=%s reason=%r): enrollment %s is now '%s'",
        order.order_id, payment_id or "-", reason, enrollment.pk, enrollment.status,
    )
    return ReconciliationResult.ok(enrollment.status, enrollment.pk)


def _entity(event: dict, name: str) -> dict:
    try:
        entity = event["payload"][name]["entity"]
    except (KeyError, TypeError):
        return {}
    return entity if isinstance(entity, dict) else {}


def handle_webhook_event(event: dict) -> ReconciliationResult | None:
    """
    Route a signature-checked gateway webhook to the reconciliation engine.

    The caller must have verified the body signature already; it stands in
    for the client callback signature.

    Returns:
        ReconciliationResult, or None for events that are ignored (unknown
        event types, orders this app did not issue)

    Raises:
        WebhookPayloadError: If a handled event lacks order or payment ids
    """
    if not isinstance(event, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")

    name = event.get("event")
    if name not in CAPTURE_EVENTS and name not in FAILURE_EVENTS:
        logger.debug("Ignoring webhook event %r", name)
        return None

    payment = _entity(event, "payment")
    order_id = payment.get("order_id") or _entity(event, "order").get("id")
    payment_id = payment.get("id") or ""
    if not order_id or (name in CAPTURE_EVENTS and not payment_id):
        raise WebhookPayloadError(f"Webhook event {name!r} is missing order or payment id")
    if name in CAPTURE_EVENTS:
        try:
            _check_payment_id(payment_id)
        except PaymentValidationError as e:
            raise WebhookPayloadError(str(e)) from e

    try:
        if name in FAILURE_EVENTS:
            return report_failure(
                order_id,
                payment_id=payment_id,
                reason=payment.get("error_description") or payment.get("error_code") or "",
            )
        order = _resolve_order(order_id)
        return _reconcile(order, payment_id, "", True, VerificationAttempt.Source.WEBHOOK)
    except NotFoundError:
        logger.warning("Webhook %s for unknown order %s ignored", name, order_id)
        return None
    except StaleOrderError as e:
        if name in CAPTURE_EVENTS:
            logger.error(
                "Captured payment %s on stale order %s (enrollment status '%s'); needs manual refund",
                payment_id, order_id, e.status,
            )
        enrollment_id = PaymentOrder.objects.filter(order_id=order_id).values_list(
            "enrollment_id", flat=True
        ).first()
        return ReconciliationResult.fail(e.code, e.status, enrollment_id or "")
