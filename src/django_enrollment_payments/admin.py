"""Django admin configuration for enrollment payments.

Status, orders and attempts are read-only here; they change only through
the service layer.
"""

from django.contrib import admin

from .models import Enrollment, PaymentOrder, VerificationAttempt
from .money import format_amount


class PaymentOrderInline(admin.TabularInline):
    """Inline for viewing orders issued against an enrollment."""

    model = PaymentOrder
    extra = 0
    fields = ['order_id', 'amount', 'currency', 'gateway', 'consumed', 'created_at']
    readonly_fields = fields
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


class VerificationAttemptInline(admin.TabularInline):
    """Inline for viewing completion payloads received for an order."""

    model = VerificationAttempt
    extra = 0
    fields = ['payment_id', 'result', 'source', 'applied', 'error_code', 'created_at']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    """Admin for Enrollment model."""

    list_display = [
        'id',
        'student_id',
        'course_type',
        'course_slug',
        'get_display_amount',
        'status',
        'created_at',
    ]
    list_filter = ['status', 'course_type', 'currency']
    search_fields = ['student_id', 'course_slug', 'id']
    readonly_fields = [
        'id',
        'amount',
        'currency',
        'status',
        'current_order',
        'deleted_at',
        'created_at',
        'updated_at',
    ]
    fieldsets = [
        ('Enrollment', {
            'fields': ['id', 'student_id', 'course_type', 'course_slug', 'metadata']
        }),
        ('Payment', {
            'fields': ['amount', 'currency', 'status', 'current_order']
        }),
        ('Timestamps', {
            'fields': ['created_at', 'updated_at', 'deleted_at'],
            'classes': ['collapse']
        }),
    ]
    inlines = [PaymentOrderInline]

    def get_queryset(self, request):
        return Enrollment.all_objects.select_related('current_order')

    def get_display_amount(self, obj):
        """Display amount in major units."""
        return format_amount(obj.amount, obj.currency)
    get_display_amount.short_description = 'Amount'

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymentOrder)
class PaymentOrderAdmin(admin.ModelAdmin):
    """Admin for PaymentOrder model (read-only)."""

    list_display = ['order_id', 'enrollment', 'amount', 'currency', 'gateway', 'consumed', 'created_at']
    list_filter = ['consumed', 'gateway', 'created_at']
    search_fields = ['order_id', 'receipt']
    readonly_fields = [
        'id',
        'order_id',
        'enrollment',
        'amount',
        'currency',
        'gateway',
        'gateway_key_id',
        'receipt',
        'consumed',
        'consumed_at',
        'created_at',
        'updated_at',
    ]
    inlines = [VerificationAttemptInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(VerificationAttempt)
class VerificationAttemptAdmin(admin.ModelAdmin):
    """Admin for VerificationAttempt model (read-only)."""

    list_display = ['order', 'payment_id', 'result', 'source', 'applied', 'created_at']
    list_filter = ['result', 'source', 'applied', 'created_at']
    search_fields = ['payment_id', 'order__order_id']
    readonly_fields = [
        'id',
        'order',
        'payment_id',
        'signature',
        'result',
        'source',
        'applied',
        'applied_at',
        'error_code',
        'created_at',
        'updated_at',
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
