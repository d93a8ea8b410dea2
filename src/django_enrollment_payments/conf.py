"""Django Enrollment Payments configuration.

All settings can be overridden in your Django settings.py. Secrets fall back
to environment variables so they can be provisioned out-of-band.

Precedence:
    1. Django setting (ENROLLMENT_PAYMENTS_<NAME>)
    2. Environment variable (see ENV_FALLBACKS)
    3. Default

Example:
    # settings.py
    ENROLLMENT_PAYMENTS_GATEWAY = 'django_enrollment_payments.gateways.RazorpayGateway'
    ENROLLMENT_PAYMENTS_KEY_ID = 'rzp_live_xxx'
    ENROLLMENT_PAYMENTS_GATEWAY_TIMEOUT = 5.0
"""

import os

from django.conf import settings

from django_enrollment_payments.exceptions import PaymentsConfigError


PREFIX = 'ENROLLMENT_PAYMENTS_'

DEFAULTS = {
    'GATEWAY': 'django_enrollment_payments.gateways.RazorpayGateway',
    'KEY_ID': '',
    'KEY_SECRET': '',
    'WEBHOOK_SECRET': '',
    'API_BASE_URL': 'https://api.razorpay.com/v1',
    'GATEWAY_TIMEOUT': 10.0,
    'PERSIST_RETRIES': 3,
    'DEFAULT_CURRENCY': 'INR',
}

ENV_FALLBACKS = {
    'GATEWAY': 'ENROLLMENT_PAYMENTS_GATEWAY',
    'KEY_ID': 'RAZORPAY_KEY_ID',
    'KEY_SECRET': 'RAZORPAY_KEY_SECRET',
    'WEBHOOK_SECRET': 'RAZORPAY_WEBHOOK_SECRET',
}


def get_setting(name: str, default=None):
    """Get a setting with ENROLLMENT_PAYMENTS_ prefix, falling back to env then default."""
    value = getattr(settings, f"{PREFIX}{name}", None)
    if value not in (None, ''):
        return value

    env_var = ENV_FALLBACKS.get(name)
    if env_var:
        env_value = os.environ.get(env_var, '')
        if env_value:
            return env_value

    if default is not None:
        return default
    return DEFAULTS.get(name)


def get_required_setting(name: str) -> str:
    """Get a setting that must be non-empty (secrets, key ids).

    Raises:
        PaymentsConfigError: If neither the setting nor its env fallback is set
    """
    value = get_setting(name)
    if not value:
        env_var = ENV_FALLBACKS.get(name)
        hint = f" or the {env_var} environment variable" if env_var else ""
        raise PaymentsConfigError(f"{PREFIX}{name} setting{hint} is required")
    return value


def get_gateway_timeout() -> float:
    return float(get_setting('GATEWAY_TIMEOUT'))


def get_persist_retries() -> int:
    """Number of persistence attempts after a successful gateway call (at least 1)."""
    return max(1, int(get_setting('PERSIST_RETRIES')))


def get_default_currency() -> str:
    return str(get_setting('DEFAULT_CURRENCY')).upper()


# =============================================================================
# DEFAULT SETTINGS REFERENCE
# =============================================================================

# ENROLLMENT_PAYMENTS_GATEWAY = 'django_enrollment_payments.gateways.RazorpayGateway'
# ENROLLMENT_PAYMENTS_KEY_ID = ''          # env: RAZORPAY_KEY_ID (public, sent to the checkout widget)
# ENROLLMENT_PAYMENTS_KEY_SECRET = ''      # env: RAZORPAY_KEY_SECRET (API auth + callback HMAC)
# ENROLLMENT_PAYMENTS_WEBHOOK_SECRET = ''  # env: RAZORPAY_WEBHOOK_SECRET
# ENROLLMENT_PAYMENTS_API_BASE_URL = 'https://api.razorpay.com/v1'
# ENROLLMENT_PAYMENTS_GATEWAY_TIMEOUT = 10.0
# ENROLLMENT_PAYMENTS_PERSIST_RETRIES = 3
# ENROLLMENT_PAYMENTS_DEFAULT_CURRENCY = 'INR'
