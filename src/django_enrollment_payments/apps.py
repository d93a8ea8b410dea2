"""Django app configuration for django-enrollment-payments."""

from django.apps import AppConfig


class DjangoEnrollmentPaymentsConfig(AppConfig):
    """App configuration for django-enrollment-payments."""

    name = 'django_enrollment_payments'
    verbose_name = 'Enrollment Payments'
    default_auto_field = 'django.db.models.BigAutoField'
