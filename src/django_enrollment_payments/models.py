"""Enrollment, PaymentOrder and VerificationAttempt models.

Status and consumed flags are mutated only through the service layer
(enrollments.transition and the reconciliation engine), never by calling
save() on an instance with a new status.
"""
import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_enrollment_payments.money import format_amount


class TimeStampedModel(models.Model):
    """Abstract base model with created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class UUIDModel(models.Model):
    """Abstract base model with UUID primary key.

    Enrollment and order ids are handed to browsers; they shouldn't be guessable.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class SoftDeleteManager(models.Manager):
    """Manager that excludes soft-deleted objects by default.

    Use .with_deleted() to include soft-deleted objects.
    """

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)

    def with_deleted(self):
        return super().get_queryset()


class Enrollment(UUIDModel, TimeStampedModel):
    """
    A student's enrollment in a course or path, carrying its payment status.

    State machine:
        pending -> awaiting_gateway -> active | failed
        failed -> awaiting_gateway  (student retries with a new order)

    amount is always in minor units (paise, cents) with an explicit currency.
    amount and currency are frozen once any PaymentOrder exists.

    Never physically deleted by this app; soft delete via deleted_at.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        AWAITING_GATEWAY = 'awaiting_gateway', 'Awaiting gateway'
        ACTIVE = 'active', 'Active (paid)'
        FAILED = 'failed', 'Failed'

    class CourseType(models.TextChoices):
        SKILLPATH = 'skillpath', 'Skill path'
        CAREERPATH = 'careerpath', 'Career path'
        COURSES = 'courses', 'Course'

    # Keyed by raw value (enum members hash by name)
    ALLOWED_TRANSITIONS = {
        'pending': ['awaiting_gateway'],
        'awaiting_gateway': ['active', 'failed'],
        'failed': ['awaiting_gateway'],
        'active': [],
    }

    TERMINAL_SUCCESS = ("active",)

    student_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Opaque student identity (email addresses are stored lower-cased)"
    )
    course_type = models.CharField(
        max_length=20,
        choices=CourseType.choices,
    )
    course_slug = models.CharField(max_length=200)

    amount = models.PositiveBigIntegerField(
        help_text="Amount in smallest currency unit, e.g. paise or cents"
    )
    currency = models.CharField(max_length=3, default='INR')

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    metadata = models.JSONField(default=dict, blank=True)

    current_order = models.ForeignKey(
        'PaymentOrder',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text="The order a verified payment must reference to activate this enrollment"
    )

    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        app_label = 'django_enrollment_payments'
        constraints = [
            models.UniqueConstraint(
                fields=['student_id', 'course_type', 'course_slug'],
                condition=Q(deleted_at__isnull=True),
                name='uniq_live_enrollment_per_course',
            ),
        ]

    def __str__(self):
        return (
            f"{self.student_id} -> {self.course_type}/{self.course_slug} "
            f"[{self.status}] {format_amount(self.amount, self.currency)}"
        )

    def delete(self, using=None, keep_parents=False):
        """Soft delete by setting deleted_at."""
        self.deleted_at = timezone.now()
        self.save(update_fields=['deleted_at'])

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @property
    def is_paid(self) -> bool:
        return self.status in self.TERMINAL_SUCCESS

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        return str(to_status) in cls.ALLOWED_TRANSITIONS.get(str(from_status), [])

    def to_dict(self) -> dict:
        """JSON-safe representation for the HTTP layer."""
        return {
            'id': str(self.pk),
            'studentId': self.student_id,
            'courseType': self.course_type,
            'courseSlug': self.course_slug,
            'amount': self.amount,
            'currency': self.currency,
            'displayAmount': format_amount(self.amount, self.currency),
            'status': self.status,
            'currentOrderId': self.current_order.order_id if self.current_order_id else None,
            'metadata': self.metadata,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class PaymentOrder(UUIDModel, TimeStampedModel):
    """
    A gateway order issued against an Enrollment.

    An enrollment may accumulate several orders across retries; only its
    current_order can activate it. Abandoned orders are kept, unconsumed.
    consumed flips False -> True at most once (conditional UPDATE).
    """

    order_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Gateway-assigned order id"
    )
    enrollment = models.ForeignKey(
        Enrollment,
        on_delete=models.PROTECT,
        related_name='orders',
    )

    # Snapshots at issue time
    amount = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=3)

    gateway = models.CharField(max_length=50, help_text="Gateway provider name")
    gateway_key_id = models.CharField(
        max_length=100,
        blank=True,
        help_text="Public key the checkout widget must use for this order"
    )
    receipt = models.CharField(max_length=40, blank=True)

    consumed = models.BooleanField(default=False)
    consumed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        app_label = 'django_enrollment_payments'

    def __str__(self):
        state = 'consumed' if self.consumed else 'open'
        return f"{self.order_id} ({state})"

    @property
    def is_active(self) -> bool:
        """True if this order is the enrollment's current, unconsumed order."""
        return not self.consumed and self.enrollment.current_order_id == self.pk


class VerificationAttempt(UUIDModel, TimeStampedModel):
    """
    Audit and idempotency record for a completion payload.

    Identity is (order, payment_id). A second submission of the same pair is
    recognised as a duplicate and returns the recorded outcome instead of
    mutating the Enrollment again. Never updated after applied is set.
    """

    class Result(models.TextChoices):
        VALID = 'valid', 'Valid'
        INVALID = 'invalid', 'Invalid'

    class Source(models.TextChoices):
        CLIENT = 'client', 'Client callback'
        WEBHOOK = 'webhook', 'Gateway webhook'

    order = models.ForeignKey(
        PaymentOrder,
        on_delete=models.PROTECT,
        related_name='attempts',
    )
    payment_id = models.CharField(max_length=64)
    signature = models.CharField(max_length=128, blank=True)

    result = models.CharField(max_length=10, choices=Result.choices)
    source = models.CharField(
        max_length=10,
        choices=Source.choices,
        default=Source.CLIENT,
    )

    applied = models.BooleanField(default=False)
    applied_at = models.DateTimeField(null=True, blank=True)
    error_code = models.CharField(max_length=100, blank=True)

    class Meta:
        app_label = 'django_enrollment_payments'
        unique_together = ['order', 'payment_id']

    def __str__(self):
        applied = ' applied' if self.applied else ''
        return f"{self.order.order_id}:{self.payment_id} ({self.result}{applied})"

    @property
    def is_valid(self) -> bool:
        return self.result == self.Result.VALID
