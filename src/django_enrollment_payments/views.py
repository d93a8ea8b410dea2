"""JSON API views for enrollments, order issue and payment verification."""

import json
import logging
from uuid import UUID

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from django_enrollment_payments import enrollments, orders, reconciliation
from django_enrollment_payments.conf import get_required_setting
from django_enrollment_payments.exceptions import (
    AlreadyPaidError,
    AmountLockedError,
    ConflictError,
    DuplicateEnrollmentError,
    EnrollmentValidationError,
    InvalidSignatureError,
    InvalidTransitionError,
    IssueFailedError,
    NotFoundError,
    PaymentValidationError,
    PaymentsError,
    WebhookPayloadError,
)
from django_enrollment_payments.signatures import verify_webhook_signature

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS = (
    (EnrollmentValidationError, 400),
    (PaymentValidationError, 400),
    (NotFoundError, 404),
    (DuplicateEnrollmentError, 409),
    (AlreadyPaidError, 409),
    (AmountLockedError, 409),
    (InvalidTransitionError, 409),
    (ConflictError, 409),
    (IssueFailedError, 500),
)


def _error_response(exc: PaymentsError) -> JsonResponse:
    for exc_class, status in ERROR_STATUS:
        if isinstance(exc, exc_class):
            break
    else:
        raise exc

    data = {"success": False, "error": exc.code, "message": str(exc)}
    if isinstance(exc, ConflictError) and exc.status:
        data["status"] = exc.status
    return JsonResponse(data, status=status)


def _bad_request(message: str) -> JsonResponse:
    return JsonResponse({"success": False, "error": "BadRequest", "message": message}, status=400)


def _read_json(request) -> dict:
    body = json.loads(request.body or b"{}")
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def _pick(body: dict, *keys, default=None):
    """First non-empty value among keys (camelCase, snake_case, razorpay_*)."""
    for key in keys:
        value = body.get(key)
        if value not in (None, ""):
            return value
    return default


def _payment_fields(body: dict) -> tuple:
    return (
        _pick(body, "orderId", "order_id", "razorpay_order_id"),
        _pick(body, "paymentId", "payment_id", "razorpay_payment_id"),
        _pick(body, "signature", "razorpay_signature"),
    )


@csrf_exempt
@require_POST
def api_create_enrollment(request):
    """API: Create a pending enrollment."""
    try:
        body = _read_json(request)
    except ValueError:
        return _bad_request("Invalid JSON")

    try:
        enrollment = enrollments.create_enrollment(
            student_id=_pick(body, "studentId", "student_id", "userEmail"),
            course_type=_pick(body, "courseType", "course_type"),
            course_slug=_pick(body, "courseSlug", "course_slug"),
            amount=_pick(body, "amount"),
            currency=_pick(body, "currency"),
            metadata=_pick(body, "metadata"),
        )
    except PaymentsError as e:
        return _error_response(e)

    return JsonResponse({"enrollment": enrollment.to_dict()}, status=201)


@require_GET
def api_enrollment_detail(request, enrollment_id: UUID):
    """API: Current state of one enrollment."""
    try:
        enrollment = enrollments.get_enrollment(enrollment_id)
    except PaymentsError as e:
        return _error_response(e)
    return JsonResponse({"enrollment": enrollment.to_dict()})


@csrf_exempt
@require_POST
def api_create_order(request):
    """API: Issue (or re-issue) the gateway order for an enrollment."""
    try:
        body = _read_json(request)
    except ValueError:
        return _bad_request("Invalid JSON")

    enrollment_id = _pick(body, "enrollmentId", "enrollment_id")
    if not enrollment_id:
        return _bad_request("enrollmentId is required")

    try:
        issued = orders.issue_order(enrollment_id)
    except PaymentsError as e:
        return _error_response(e)

    return JsonResponse(issued.to_dict(), status=201)


@csrf_exempt
@require_POST
def api_verify_payment(request):
    """API: Verify the checkout completion payload and activate the enrollment."""
    try:
        body = _read_json(request)
    except ValueError:
        return _bad_request("Invalid JSON")

    order_id, payment_id, signature = _payment_fields(body)
    if not (order_id and payment_id and signature):
        return _bad_request("orderId, paymentId and signature are required")

    try:
        result = reconciliation.reconcile_payment(
            order_id,
            payment_id,
            signature,
            enrollment_id=_pick(body, "enrollmentId", "enrollment_id"),
        )
    except PaymentsError as e:
        return _error_response(e)

    return JsonResponse(result.to_dict())


@csrf_exempt
@require_POST
def api_payment_failure(request):
    """API: Client reports a failed checkout for an order."""
    try:
        body = _read_json(request)
    except ValueError:
        return _bad_request("Invalid JSON")

    order_id, payment_id, _ = _payment_fields(body)
    if not order_id:
        return _bad_request("orderId is required")

    reason = body.get("reason") or body.get("error")
    if isinstance(reason, dict):
        reason = reason.get("description") or reason.get("code")

    try:
        result = reconciliation.report_failure(
            order_id,
            payment_id=payment_id or "",
            reason=str(reason or ""),
            enrollment_id=_pick(body, "enrollmentId", "enrollment_id"),
        )
    except PaymentsError as e:
        return _error_response(e)

    return JsonResponse(result.to_dict())


@csrf_exempt
@require_POST
def api_webhook(request):
    """API: Gateway webhook, signed over the raw body."""
    signature = request.headers.get("X-Razorpay-Signature", "")
    secret = get_required_setting("WEBHOOK_SECRET")

    if not verify_webhook_signature(request.body, signature, secret):
        logger.warning("Rejected webhook with invalid signature")
        return JsonResponse(
            {"received": False, "error": InvalidSignatureError.__name__},
            status=400,
        )

    try:
        event = json.loads(request.body)
        result = reconciliation.handle_webhook_event(event)
    except ValueError:
        return JsonResponse({"received": False, "error": WebhookPayloadError.__name__}, status=400)
    except WebhookPayloadError as e:
        return JsonResponse({"received": False, "error": e.code, "message": str(e)}, status=400)

    data = {"received": True, "handled": result is not None}
    if result is not None:
        data.update(result.to_dict())
    return JsonResponse(data)
