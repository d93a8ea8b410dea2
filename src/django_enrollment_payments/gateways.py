"""Payment gateway implementations.

The gateway is an external collaborator used only to create orders. Payment
completion arrives from the client (or a webhook) and is verified locally
by signatures.py, never by calling back into the gateway.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx
from django.utils.module_loading import import_string

from django_enrollment_payments.conf import (
    get_gateway_timeout,
    get_required_setting,
    get_setting,
)
from django_enrollment_payments.exceptions import GatewayError, PaymentsConfigError

logger = logging.getLogger(__name__)


@dataclass
class GatewayOrder:
    """Order as created at the gateway."""

    order_id: str
    amount: int
    currency: str
    raw: dict = field(default_factory=dict)


class PaymentGateway(ABC):
    """Abstract base class for payment gateways."""

    provider_name: str = "base"

    @property
    @abstractmethod
    def public_key(self) -> str:
        """Key id the browser checkout widget is initialised with."""
        pass

    @abstractmethod
    def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str = "",
        notes: dict | None = None,
    ) -> GatewayOrder:
        """Create an order for amount (minor units) in currency.

        Raises:
            GatewayError: On timeout, transport failure or a non-2xx response
        """
        pass


class RazorpayGateway(PaymentGateway):
    """Razorpay Orders API over httpx with a bounded timeout."""

    provider_name = "razorpay"

    # Razorpay limits notes to 15 keys of up to 256 characters each
    MAX_NOTES = 15
    MAX_NOTE_LENGTH = 256

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.key_id = key_id or get_required_setting("KEY_ID")
        self.key_secret = key_secret or get_required_setting("KEY_SECRET")
        self.base_url = (base_url or get_setting("API_BASE_URL")).rstrip("/")
        self.timeout = timeout if timeout is not None else get_gateway_timeout()

    @property
    def public_key(self) -> str:
        return self.key_id

    def _build_notes(self, notes: dict | None) -> dict:
        items = list((notes or {}).items())[: self.MAX_NOTES]
        return {str(k): str(v)[: self.MAX_NOTE_LENGTH] for k, v in items}

    def _error_description(self, response: httpx.Response) -> str:
        try:
            return response.json()["error"]["description"]
        except (ValueError, KeyError, TypeError):
            return response.text[:200]

    def create_order(self, amount, currency, receipt="", notes=None):
        payload = {
            "amount": int(amount),
            "currency": currency,
            "receipt": receipt,
            "notes": self._build_notes(notes),
            "payment_capture": 1,
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    f"{self.base_url}/orders",
                    json=payload,
                    auth=(self.key_id, self.key_secret),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise GatewayError(f"Razorpay order creation timed out after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise GatewayError(
                f"Razorpay order creation failed ({e.response.status_code}): "
                f"{self._error_description(e.response)}"
            ) from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Razorpay order creation failed: {e}") from e
        except ValueError as e:
            raise GatewayError("Razorpay returned a non-JSON response") from e

        order_id = data.get("id")
        if not order_id:
            raise GatewayError("Razorpay response did not include an order id")

        return GatewayOrder(
            order_id=order_id,
            amount=int(data.get("amount", amount)),
            currency=data.get("currency", currency),
            raw=data,
        )


class ConsoleGateway(PaymentGateway):
    """Gateway that logs orders instead of creating them (for development and tests).

    Does not make any network calls.
    """

    provider_name = "console"

    @property
    def public_key(self) -> str:
        return get_setting("KEY_ID") or "console"

    def create_order(self, amount, currency, receipt="", notes=None):
        order_id = f"order_{uuid.uuid4().hex[:14]}"
        logger.info(
            "CONSOLE ORDER (not sent to a gateway): %s amount=%s %s receipt=%s",
            order_id, amount, currency, receipt,
        )
        return GatewayOrder(
            order_id=order_id,
            amount=int(amount),
            currency=currency,
            raw={"id": order_id, "receipt": receipt, "notes": notes or {}},
        )


def get_gateway() -> PaymentGateway:
    """Instantiate the gateway configured by ENROLLMENT_PAYMENTS_GATEWAY.

    Raises:
        PaymentsConfigError: If the dotted path cannot be imported
    """
    path = get_setting("GATEWAY")
    try:
        gateway_class = import_string(path)
    except ImportError as e:
        raise PaymentsConfigError(f"Cannot import payment gateway '{path}': {e}") from e
    return gateway_class()
