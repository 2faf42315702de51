# Payment Gateway for milestone transfers (Stripe Connect)
import requests
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Dict, Any
import logging
import uuid

from config.app_config import (
    STRIPE_SECRET_KEY, STRIPE_API_BASE, DEFAULT_CURRENCY, EXTERNAL_TIMEOUT_SECONDS
)
from services.errors import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    id: str
    status: str


class PaymentGateway:
    """Contract the unlock protocol depends on."""

    def create_transfer(
        self,
        destination: str,
        amount: Decimal,
        idempotency_key: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> TransferResult:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    """Stripe Connect transfers over the REST API"""

    def __init__(self, secret_key: str = STRIPE_SECRET_KEY, base_url: str = STRIPE_API_BASE,
                 currency: str = DEFAULT_CURRENCY, timeout: float = EXTERNAL_TIMEOUT_SECONDS):
        self.base_url = base_url
        self.currency = currency
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {secret_key}",
        }

    def _make_request(self, method: str, endpoint: str, data: Optional[Dict] = None,
                      idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        """Make a request to the Stripe API"""
        url = f"{self.base_url}{endpoint}"
        headers = dict(self.headers)
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        try:
            if method == "GET":
                response = requests.get(url, headers=headers, timeout=self.timeout)
            elif method == "POST":
                response = requests.post(url, headers=headers, data=data, timeout=self.timeout)
            else:
                raise ValueError(f"Unsupported method: {method}")

            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout as e:
            logger.error(f"Stripe API timeout: {e}")
            raise ExternalServiceError("Payment processor timed out, please retry", retryable=True)
        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            message = _error_message(e.response)
            logger.error(f"Stripe API error ({status_code}): {message}")
            # 429 and 5xx may succeed later; other 4xx will not
            retryable = status_code is None or status_code == 429 or status_code >= 500
            raise ExternalServiceError(f"Payment processor error: {message}", retryable=retryable)
        except requests.exceptions.RequestException as e:
            logger.error(f"Stripe API error: {e}")
            raise ExternalServiceError(f"Payment processor unreachable: {str(e)}", retryable=True)

    def create_transfer(self, destination, amount, idempotency_key, metadata=None):
        """
        Transfer ``amount`` (major units) to a connected account.

        The idempotency key makes a retried call return the original transfer
        instead of moving money twice.
        """
        data = {
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "destination": destination,
        }
        for key, value in (metadata or {}).items():
            data[f"metadata[{key}]"] = str(value)

        result = self._make_request("POST", "/transfers", data=data, idempotency_key=idempotency_key)
        logger.info(f"Stripe transfer {result.get('id')} created for {destination}")
        return TransferResult(id=result["id"], status=result.get("object", "transfer"))


class DevPaymentGateway(PaymentGateway):
    """Local stand-in used when no Stripe key is configured."""

    def __init__(self):
        self.transfers = {}

    def create_transfer(self, destination, amount, idempotency_key, metadata=None):
        if idempotency_key not in self.transfers:
            self.transfers[idempotency_key] = TransferResult(id=f"tr_dev_{uuid.uuid4().hex[:16]}", status="paid")
            logger.info(f"Dev transfer of {amount} to {destination} ({idempotency_key})")
        return self.transfers[idempotency_key]


def to_minor_units(amount) -> int:
    return int((Decimal(str(amount)) * 100).to_integral_value())


def _error_message(response) -> str:
    if response is None:
        return "unknown error"
    try:
        return response.json().get("error", {}).get("message", response.text)
    except ValueError:
        return response.text


_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency returning the process-wide gateway."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway() if STRIPE_SECRET_KEY else DevPaymentGateway()
    return _gateway
