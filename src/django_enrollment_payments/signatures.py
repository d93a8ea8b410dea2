"""Signature verification for gateway completion payloads.

The checkout widget hands the browser {order_id, payment_id, signature} where
signature = hex(HMAC-SHA256(key_secret, order_id + "|" + payment_id)).
Webhooks are signed over the raw request body with a separate secret.
"""

import hashlib
import hmac

from django_enrollment_payments.conf import get_required_setting
from django_enrollment_payments.exceptions import OrderNotFoundError
from django_enrollment_payments.models import PaymentOrder


def canonical_payload(order_id: str, payment_id: str) -> str:
    return f"{order_id}|{payment_id}"


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Return the hex HMAC-SHA256 of 'order_id|payment_id'."""
    return hmac.new(
        secret.encode("utf-8"),
        canonical_payload(order_id, payment_id).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def is_valid_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Constant-time comparison of signature against the expected HMAC.

    Pure function: no database or network access.
    """
    if not signature or not isinstance(signature, str):
        return False
    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


def verify(order_id: str, payment_id: str, signature: str) -> bool:
    """
    Verify a completion payload for a locally known order.

    An unknown order is reported separately from a bad signature: the former
    points at stale or garbage-collected data, the latter at tampering.

    Returns:
        True if the signature matches, False otherwise

    Raises:
        OrderNotFoundError: If no PaymentOrder has this gateway order id
        PaymentsConfigError: If the key secret is not configured
    """
    if not PaymentOrder.objects.filter(order_id=order_id).exists():
        raise OrderNotFoundError(f"Order '{order_id}' not found")
    return is_valid_signature(order_id, payment_id, signature, get_required_setting("KEY_SECRET"))


def verify_webhook_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check the X-Razorpay-Signature header against HMAC-SHA256 of the raw body."""
    if not signature or not isinstance(signature, str) or not secret:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
