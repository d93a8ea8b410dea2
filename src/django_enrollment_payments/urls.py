"""URL configuration for enrollment payments."""

from django.urls import path

from . import views

app_name = "enrollment_payments"

urlpatterns = [
    path("enrollments/", views.api_create_enrollment, name="create_enrollment"),
    path("enrollments/<uuid:enrollment_id>/", views.api_enrollment_detail, name="enrollment_detail"),
    path("payments/orders/", views.api_create_order, name="create_order"),
    path("payments/verify/", views.api_verify_payment, name="verify_payment"),
    path("payments/failure/", views.api_payment_failure, name="payment_failure"),
    path("payments/webhook/", views.api_webhook, name="webhook"),
]
