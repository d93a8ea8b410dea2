# tests/conftest.py
"""
Pytest configuration for django-enrollment-payments.

File-backed SQLite by default, so threaded tests get their own connections.
Every transaction starts with BEGIN IMMEDIATE, which serialises writers.
Set ENROLLMENT_PAYMENTS_TEST_DB=postgres (plus the usual POSTGRES_* variables)
to run the same tests against row-level locking.
"""
import os
import tempfile

import django
import pytest
from django.conf import settings

TEST_KEY_ID = "rzp_test_key"
TEST_KEY_SECRET = "test-key-secret"
TEST_WEBHOOK_SECRET = "test-webhook-secret"


def _database():
    if os.environ.get("ENROLLMENT_PAYMENTS_TEST_DB") == "postgres":
        return {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ.get("POSTGRES_DB", "test_db"),
            "USER": os.environ.get("POSTGRES_USER", "postgres"),
            "PASSWORD": os.environ.get("POSTGRES_PASSWORD", "postgres"),
            "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
            "PORT": os.environ.get("POSTGRES_PORT", "5432"),
        }
    return {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
        "OPTIONS": {"transaction_mode": "IMMEDIATE", "timeout": 30},
        "TEST": {
            "NAME": os.path.join(tempfile.gettempdir(), f"enrollment_payments_test_{os.getpid()}.sqlite3"),
        },
    }


def pytest_configure():
    if not settings.configured:
        settings.configure(
            DEBUG=True,
            SECRET_KEY="test-secret-key-for-enrollment-payments",
            DATABASES={"default": _database()},
            INSTALLED_APPS=[
                "django.contrib.admin",
                "django.contrib.contenttypes",
                "django.contrib.auth",
                "django.contrib.sessions",
                "django.contrib.messages",
                "django_enrollment_payments",
            ],
            ROOT_URLCONF="project_urls",
            DEFAULT_AUTO_FIELD="django.db.models.BigAutoField",
            USE_TZ=True,
            ENROLLMENT_PAYMENTS_GATEWAY="django_enrollment_payments.gateways.ConsoleGateway",
            ENROLLMENT_PAYMENTS_KEY_ID=TEST_KEY_ID,
            ENROLLMENT_PAYMENTS_KEY_SECRET=TEST_KEY_SECRET,
            ENROLLMENT_PAYMENTS_WEBHOOK_SECRET=TEST_WEBHOOK_SECRET,
        )
    django.setup()


@pytest.fixture
def enrollment(db):
    """A pending INR 500.00 enrollment."""
    from django_enrollment_payments.enrollments import create_enrollment

    return create_enrollment(
        student_id="Student@Example.com",
        course_type="courses",
        course_slug="python-basics",
        amount=50000,
        currency="INR",
    )


@pytest.fixture
def issued(enrollment):
    """The enrollment after an order has been issued through the console gateway."""
    from django_enrollment_payments.orders import issue_order

    return issue_order(enrollment.pk)


@pytest.fixture
def sign():
    """Sign an (order_id, payment_id) pair with the test key secret."""
    from django_enrollment_payments.signatures import compute_signature

    def _sign(order_id, payment_id, secret=TEST_KEY_SECRET):
        return compute_signature(order_id, payment_id, secret)

    return _sign
