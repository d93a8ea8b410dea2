"""Enrollment store: creation, lookup and compare-and-swap status transitions.

Provides:
- create_enrollment: Create a pending enrollment
- get_enrollment: Fetch a live enrollment by id
- transition: Atomic status change guarded by the expected current status
- set_price: Change amount/currency before any order is issued
"""

import logging

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from django_enrollment_payments.conf import get_default_currency
from django_enrollment_payments.exceptions import (
    AmountLockedError,
    ConflictError,
    DuplicateEnrollmentError,
    EnrollmentNotFoundError,
    EnrollmentValidationError,
    InvalidTransitionError,
)
from django_enrollment_payments.models import Enrollment, PaymentOrder
from django_enrollment_payments.money import normalize_currency

logger = logging.getLogger(__name__)

_UNSET = object()


def _clean_amount(amount) -> int:
    # bool is an int subclass; reject it along with floats and strings
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise EnrollmentValidationError(
            f"amount must be an integer number of minor units, got {amount!r}"
        )
    if amount <= 0:
        raise EnrollmentValidationError(f"amount must be positive, got {amount}")
    return amount


def _clean_currency(currency) -> str:
    try:
        return normalize_currency(currency or get_default_currency())
    except ValueError as e:
        raise EnrollmentValidationError(str(e))


def _clean_student_id(student_id) -> str:
    value = str(student_id or '').strip()
    if not value:
        raise EnrollmentValidationError("student_id is required")
    if '@' in value:
        value = value.lower()
    return value


def create_enrollment(
    student_id: str,
    course_type: str,
    course_slug: str,
    amount: int,
    currency: str = None,
    metadata: dict = None,
) -> Enrollment:
    """
    Create a new enrollment in status 'pending'.

    Args:
        student_id: Opaque student identity (emails are lower-cased)
        course_type: One of Enrollment.CourseType
        course_slug: Slug of the course or path
        amount: Price in minor units (e.g. 50000 paise for INR 500.00)
        currency: ISO-4217 code (defaults to ENROLLMENT_PAYMENTS_DEFAULT_CURRENCY)
        metadata: Optional free-form dict

    Returns:
        The created Enrollment

    Raises:
        EnrollmentValidationError: If any input is invalid
        DuplicateEnrollmentError: If a live enrollment exists for this student and course
    """
    student_id = _clean_student_id(student_id)

    if course_type not in Enrollment.CourseType.values:
        raise EnrollmentValidationError(
            f"course_type must be one of {Enrollment.CourseType.values}, got {course_type!r}"
        )

    course_slug = str(course_slug or '').strip()
    if not course_slug:
        raise EnrollmentValidationError("course_slug is required")

    if metadata is not None and not isinstance(metadata, dict):
        raise EnrollmentValidationError("metadata must be an object")

    try:
        with transaction.atomic():
            enrollment = Enrollment.objects.create(
                student_id=student_id,
                course_type=course_type,
                course_slug=course_slug,
                amount=_clean_amount(amount),
                currency=_clean_currency(currency),
                metadata=metadata or {},
            )
    except IntegrityError:
        raise DuplicateEnrollmentError(
            f"{student_id} is already enrolled in {course_type}/{course_slug}"
        )

    logger.info(
        "Created enrollment %s for %s (%s/%s)",
        enrollment.pk, student_id, course_type, course_slug,
    )
    return enrollment


def get_enrollment(enrollment_id) -> Enrollment:
    """
    Get a live enrollment by id.

    Raises:
        EnrollmentNotFoundError: If the id is unknown, malformed, or soft-deleted
    """
    try:
        return Enrollment.objects.select_related('current_order').get(pk=enrollment_id)
    except (Enrollment.DoesNotExist, ValidationError, ValueError):
        raise EnrollmentNotFoundError(f"Enrollment '{enrollment_id}' not found")


def transition(
    enrollment_id,
    expected_status: str,
    new_status: str,
    *,
    expected_order_id=None,
    current_order=_UNSET,
) -> Enrollment:
    """
    Compare-and-swap the enrollment status.

    Issues a single conditional UPDATE; of two concurrent calls with the same
    expected_status at most one matches a row. No lock is held beyond that
    statement.

    Args:
        enrollment_id: The enrollment to update
        expected_status: Status the row must have at the time of the update
        new_status: Status to set
        expected_order_id: If given, the row's current_order must also match
            (PaymentOrder primary key)
        current_order: If given, set current_order (PaymentOrder or None)

    Returns:
        The updated Enrollment, re-read from the database

    Raises:
        InvalidTransitionError: If expected_status -> new_status is not allowed
        EnrollmentNotFoundError: If the enrollment does not exist
        ConflictError: If the stored state did not match; .status holds the
            status actually found
    """
    if not Enrollment.can_transition(expected_status, new_status):
        if str(expected_status) in Enrollment.TERMINAL_SUCCESS:
            raise InvalidTransitionError(
                expected_status, new_status,
                f"Cannot transition from terminal state '{expected_status}'"
            )
        raise InvalidTransitionError(expected_status, new_status)

    updates = {'status': new_status, 'updated_at': timezone.now()}
    if current_order is not _UNSET:
        updates['current_order'] = current_order

    try:
        queryset = Enrollment.objects.filter(pk=enrollment_id, status=expected_status)
        if expected_order_id is not None:
            queryset = queryset.filter(current_order_id=expected_order_id)
        updated = queryset.update(**updates)
    except (ValidationError, ValueError):
        raise EnrollmentNotFoundError(f"Enrollment '{enrollment_id}' not found")

    if not updated:
        found = Enrollment.objects.filter(pk=enrollment_id).values_list('status', flat=True).first()
        if found is None:
            raise EnrollmentNotFoundError(f"Enrollment '{enrollment_id}' not found")
        raise ConflictError(
            f"Enrollment {enrollment_id} is '{found}', expected '{expected_status}'"
            + (" with a different active order" if found == expected_status else ""),
            status=found,
        )

    logger.debug("Enrollment %s: %s -> %s", enrollment_id, expected_status, new_status)
    return get_enrollment(enrollment_id)


@transaction.atomic
def set_price(enrollment_id, amount: int, currency: str = None) -> Enrollment:
    """
    Change the amount and currency of an enrollment.

    Raises:
        AmountLockedError: If any PaymentOrder has been issued against it
        EnrollmentValidationError: If amount or currency is invalid
    """
    enrollment = get_enrollment(enrollment_id)
    enrollment = Enrollment.objects.select_for_update().get(pk=enrollment.pk)

    if PaymentOrder.objects.filter(enrollment=enrollment).exists():
        raise AmountLockedError(
            f"Enrollment {enrollment.pk} already has an issued order; amount is frozen"
        )

    enrollment.amount = _clean_amount(amount)
    enrollment.currency = _clean_currency(currency or enrollment.currency)
    enrollment.save(update_fields=['amount', 'currency', 'updated_at'])
    return enrollment
