"""Tests for the enrollment store services."""
import uuid

import pytest

from django_enrollment_payments.enrollments import (
    create_enrollment,
    get_enrollment,
    set_price,
    transition,
)
from django_enrollment_payments.exceptions import (
    AmountLockedError,
    ConflictError,
    DuplicateEnrollmentError,
    EnrollmentNotFoundError,
    EnrollmentValidationError,
    InvalidTransitionError,
)
from django_enrollment_payments.models import Enrollment, PaymentOrder


@pytest.mark.django_db
class TestCreateEnrollment:
    """Tests for create_enrollment."""

    def test_creates_pending_enrollment(self):
        enrollment = create_enrollment("s-1", "skillpath", "data-science", 99900, "inr")

        assert enrollment.status == Enrollment.Status.PENDING
        assert enrollment.amount == 99900
        assert enrollment.currency == "INR"

    def test_email_student_ids_are_lowercased(self):
        enrollment = create_enrollment(" Ada@Example.COM ", "courses", "intro", 100)
        assert enrollment.student_id == "ada@example.com"

    def test_currency_defaults_from_settings(self, settings):
        settings.ENROLLMENT_PAYMENTS_DEFAULT_CURRENCY = "usd"
        enrollment = create_enrollment("s-1", "courses", "intro", 100)
        assert enrollment.currency == "USD"

    def test_metadata_stored(self):
        enrollment = create_enrollment("s-1", "courses", "intro", 100, metadata={"coupon": "X"})
        assert Enrollment.objects.get(pk=enrollment.pk).metadata == {"coupon": "X"}

    @pytest.mark.parametrize("amount", [0, -5, 10.5, "500", True, None])
    def test_rejects_bad_amounts(self, amount):
        with pytest.raises(EnrollmentValidationError):
            create_enrollment("s-1", "courses", "intro", amount)

    def test_rejects_unknown_course_type(self):
        with pytest.raises(EnrollmentValidationError):
            create_enrollment("s-1", "bootcamp", "intro", 100)

    def test_rejects_blank_slug_and_student(self):
        with pytest.raises(EnrollmentValidationError):
            create_enrollment("s-1", "courses", "  ", 100)
        with pytest.raises(EnrollmentValidationError):
            create_enrollment("", "courses", "intro", 100)

    def test_rejects_bad_currency(self):
        with pytest.raises(EnrollmentValidationError):
            create_enrollment("s-1", "courses", "intro", 100, currency="RUPEES")

    def test_duplicate_live_enrollment_rejected(self, enrollment):
        with pytest.raises(DuplicateEnrollmentError):
            create_enrollment("student@example.com", "courses", "python-basics", 50000)

        assert Enrollment.objects.count() == 1


@pytest.mark.django_db
class TestGetEnrollment:

    def test_returns_enrollment(self, enrollment):
        assert get_enrollment(enrollment.pk) == enrollment
        assert get_enrollment(str(enrollment.pk)) == enrollment

    def test_unknown_id(self):
        with pytest.raises(EnrollmentNotFoundError):
            get_enrollment(uuid.uuid4())

    def test_malformed_id(self):
        with pytest.raises(EnrollmentNotFoundError):
            get_enrollment("not-a-uuid")

    def test_soft_deleted_is_not_found(self, enrollment):
        enrollment.delete()
        with pytest.raises(EnrollmentNotFoundError):
            get_enrollment(enrollment.pk)


@pytest.mark.django_db
class TestTransition:
    """transition is a compare-and-swap on status."""

    def test_applies_allowed_transition(self, enrollment):
        updated = transition(enrollment.pk, "pending", "awaiting_gateway")
        assert updated.status == Enrollment.Status.AWAITING_GATEWAY

    def test_forbidden_edge_raises_without_touching_row(self, enrollment):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(enrollment.pk, "pending", "active")

        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "active"
        assert get_enrollment(enrollment.pk).status == "pending"

    def test_active_is_terminal(self, enrollment):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(enrollment.pk, "active", "failed")
        assert "terminal" in str(exc_info.value)

    def test_stale_expectation_raises_conflict_with_found_status(self, enrollment):
        transition(enrollment.pk, "pending", "awaiting_gateway")

        with pytest.raises(ConflictError) as exc_info:
            transition(enrollment.pk, "pending", "awaiting_gateway")

        assert exc_info.value.status == "awaiting_gateway"

    def test_second_cas_with_same_expectation_loses(self, enrollment):
        transition(enrollment.pk, "pending", "awaiting_gateway")
        transition(enrollment.pk, "awaiting_gateway", "active")

        with pytest.raises(ConflictError) as exc_info:
            transition(enrollment.pk, "awaiting_gateway", "failed")

        assert exc_info.value.status == "active"
        assert get_enrollment(enrollment.pk).status == "active"

    def test_expected_order_guard(self, issued):
        enrollment = Enrollment.objects.get(current_order__order_id=issued.order_id)
        other = PaymentOrder.objects.create(
            order_id="order_other",
            enrollment=enrollment,
            amount=enrollment.amount,
            currency=enrollment.currency,
            gateway="console",
        )

        with pytest.raises(ConflictError) as exc_info:
            transition(enrollment.pk, "awaiting_gateway", "active", expected_order_id=other.pk)

        assert exc_info.value.status == "awaiting_gateway"
        assert "different active order" in str(exc_info.value)

    def test_sets_current_order(self, enrollment):
        order = PaymentOrder.objects.create(
            order_id="order_abc",
            enrollment=enrollment,
            amount=enrollment.amount,
            currency=enrollment.currency,
            gateway="console",
        )

        updated = transition(enrollment.pk, "pending", "awaiting_gateway", current_order=order)

        assert updated.current_order == order

    def test_unknown_enrollment(self):
        with pytest.raises(EnrollmentNotFoundError):
            transition(uuid.uuid4(), "pending", "awaiting_gateway")

    def test_malformed_enrollment_id(self):
        with pytest.raises(EnrollmentNotFoundError):
            transition("nope", "pending", "awaiting_gateway")


@pytest.mark.django_db
class TestSetPrice:

    def test_changes_price_before_any_order(self, enrollment):
        updated = set_price(enrollment.pk, 45000)
        assert updated.amount == 45000
        assert updated.currency == "INR"

    def test_price_frozen_after_order_issued(self, issued):
        enrollment = Enrollment.objects.get(current_order__order_id=issued.order_id)

        with pytest.raises(AmountLockedError):
            set_price(enrollment.pk, 1)

        assert get_enrollment(enrollment.pk).amount == 50000
