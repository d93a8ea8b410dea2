"""Order issuer: create a gateway order for an enrollment and record it locally.

- Paid enrollments never get a new order
- An awaiting enrollment with an open order gets that same order back
- The PaymentOrder row is written before the order id leaves this module;
  persistence is retried without re-creating the gateway order
"""

import logging
import uuid
from dataclasses import dataclass

from django.db import DatabaseError, IntegrityError, transaction

from django_enrollment_payments.conf import get_persist_retries
from django_enrollment_payments.enrollments import get_enrollment, transition
from django_enrollment_payments.exceptions import (
    AlreadyPaidError,
    ConflictError,
    GatewayError,
    IssueFailedError,
)
from django_enrollment_payments.gateways import GatewayOrder, PaymentGateway, get_gateway
from django_enrollment_payments.models import Enrollment, PaymentOrder

logger = logging.getLogger(__name__)


@dataclass
class IssuedOrder:
    """What the checkout widget needs to open a payment for an order."""

    order_id: str
    amount: int
    currency: str
    gateway_public_key: str
    reused: bool = False

    @classmethod
    def from_order(cls, order: PaymentOrder, reused: bool = False) -> "IssuedOrder":
        return cls(
            order_id=order.order_id,
            amount=order.amount,
            currency=order.currency,
            gateway_public_key=order.gateway_key_id,
            reused=reused,
        )

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "amount": self.amount,
            "currency": self.currency,
            "gatewayPublicKey": self.gateway_public_key,
        }


def build_receipt(enrollment_id) -> str:
    """Receipt string for the gateway, at most 40 characters."""
    receipt = f"enroll_{str(enrollment_id).replace('-', '')[-8:]}_{uuid.uuid4().hex[:8]}"
    return receipt[:40]


def _open_order(enrollment: Enrollment) -> PaymentOrder | None:
    order = enrollment.current_order
    if (
        enrollment.status == Enrollment.Status.AWAITING_GATEWAY
        and order is not None
        and not order.consumed
    ):
        return order
    return None


def _persist_order(
    enrollment: Enrollment,
    gateway_order: GatewayOrder,
    gateway: PaymentGateway,
    receipt: str,
) -> PaymentOrder:
    """Write the PaymentOrder row, retrying on database errors.

    The gateway order already exists at this point; only the local write is
    retried.

    Raises:
        IssueFailedError: If every attempt fails (the gateway order is orphaned)
    """
    attempts = get_persist_retries()
    last_error = None

    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                # Same row lock as set_price, so the price cannot move under us
                locked = Enrollment.all_objects.select_for_update().get(pk=enrollment.pk)
                if (locked.amount, locked.currency) != (enrollment.amount, enrollment.currency):
                    logger.error(
                        "Orphaned gateway order %s (enrollment %s): price changed to %s %s "
                        "while the order for %s %s was being created",
                        gateway_order.order_id, enrollment.pk, locked.amount, locked.currency,
                        enrollment.amount, enrollment.currency,
                    )
                    raise IssueFailedError("Enrollment price changed; please try again")
                return PaymentOrder.objects.create(
                    order_id=gateway_order.order_id,
                    enrollment=locked,
                    amount=locked.amount,
                    currency=locked.currency,
                    gateway=gateway.provider_name,
                    gateway_key_id=gateway.public_key,
                    receipt=receipt,
                )
        except IntegrityError as e:
            # An earlier attempt may have committed before its error surfaced
            existing = PaymentOrder.objects.filter(order_id=gateway_order.order_id).first()
            if existing is not None and existing.enrollment_id == enrollment.pk:
                return existing
            if existing is not None:
                logger.error(
                    "Orphaned gateway order %s: id is already recorded for enrollment %s, not %s",
                    gateway_order.order_id, existing.enrollment_id, enrollment.pk,
                )
                raise IssueFailedError("Payment gateway returned a duplicate order id") from e
            last_error = e
        except DatabaseError as e:
            last_error = e

        logger.warning(
            "Persisting order %s for enrollment %s failed (attempt %s/%s): %s",
            gateway_order.order_id, enrollment.pk, attempt, attempts, last_error,
        )

    logger.error(
        "Orphaned gateway order %s (enrollment %s, %s %s): local record could not be written",
        gateway_order.order_id, enrollment.pk, enrollment.amount, enrollment.currency,
    )
    raise IssueFailedError("Could not record the payment order; please try again") from last_error


def issue_order(enrollment_id, gateway: PaymentGateway = None) -> IssuedOrder:
    """
    Issue (or re-issue) a gateway order for an enrollment.

    Args:
        enrollment_id: The enrollment to pay for
        gateway: Optional gateway instance (defaults to the configured one)

    Returns:
        IssuedOrder with order_id, amount, currency and gateway_public_key

    Raises:
        EnrollmentNotFoundError: If the enrollment does not exist
        AlreadyPaidError: If the enrollment is already active
        IssueFailedError: If the gateway call or local persistence failed
    """
    enrollment = get_enrollment(enrollment_id)

    if enrollment.is_paid:
        raise AlreadyPaidError(f"Enrollment {enrollment.pk} is already paid")

    existing = _open_order(enrollment)
    if existing is not None:
        logger.debug("Reusing open order %s for enrollment %s", existing.order_id, enrollment.pk)
        return IssuedOrder.from_order(existing, reused=True)

    if enrollment.status == Enrollment.Status.AWAITING_GATEWAY:
        # Awaiting without an open order means the row was changed outside the service layer
        raise IssueFailedError(f"Enrollment {enrollment.pk} has no open order to resume")

    gateway = gateway or get_gateway()
    receipt = build_receipt(enrollment.pk)
    notes = {
        "enrollment_id": str(enrollment.pk),
        "student_id": enrollment.student_id,
        "course": f"{enrollment.course_type}/{enrollment.course_slug}",
    }

    try:
        gateway_order = gateway.create_order(
            enrollment.amount, enrollment.currency, receipt=receipt, notes=notes,
        )
    except GatewayError as e:
        logger.warning("Gateway order creation failed for enrollment %s: %s", enrollment.pk, e)
        raise IssueFailedError("Payment gateway is unavailable; please try again") from e

    if gateway_order.amount != enrollment.amount or gateway_order.currency.upper() != enrollment.currency:
        logger.error(
            "Gateway order %s amount mismatch: expected %s %s, got %s %s",
            gateway_order.order_id, enrollment.amount, enrollment.currency,
            gateway_order.amount, gateway_order.currency,
        )
        raise IssueFailedError("Payment gateway returned an unexpected amount")

    order = _persist_order(enrollment, gateway_order, gateway, receipt)

    try:
        transition(
            enrollment.pk,
            enrollment.status,
            Enrollment.Status.AWAITING_GATEWAY,
            current_order=order,
        )
    except ConflictError:
        # A concurrent request moved the enrollment first; this order stays as
        # an abandoned audit row and the winner's order is returned
        logger.warning(
            "Order %s for enrollment %s abandoned after a concurrent issue",
            order.order_id, enrollment.pk,
        )
        current = get_enrollment(enrollment.pk)
        if current.is_paid:
            raise AlreadyPaidError(f"Enrollment {enrollment.pk} is already paid")
        winner = _open_order(current)
        if winner is not None:
            return IssuedOrder.from_order(winner, reused=True)
        raise IssueFailedError("Enrollment changed while issuing the order; please try again")

    logger.info(
        "Issued order %s for enrollment %s (%s %s)",
        order.order_id, enrollment.pk, order.amount, order.currency,
    )
    return IssuedOrder.from_order(order)
