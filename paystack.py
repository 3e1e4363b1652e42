"""
Paystack client

Two calls are needed to take a payment: initialize (returns the hosted
checkout URL) and verify (confirms the charge once the shopper is back).
Amounts go over the wire in kobo.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional

import httpx
import structlog

from errors import ConfigError, GatewayError, VerificationFailed

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://api.paystack.co"


def to_minor_units(amount: Any) -> int:
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Any) -> float:
    return float(Decimal(str(amount or 0)) / 100)


class PaystackClient:
    def __init__(
        self,
        secret_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        callback_url: Optional[str] = None,
        http: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.callback_url = callback_url
        self.http = http or httpx.Client(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        if not self.secret_key:
            raise ConfigError()
        return {"Authorization": f"Bearer {self.secret_key}"}

    def _call(self, method: str, path: str, error_cls, unreachable: str, **kwargs) -> Dict[str, Any]:
        headers = self._headers()
        try:
            resp = self.http.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            # no usable answer from Paystack is an upstream failure, not a declined payment
            logger.error("paystack_request_failed", path=path, error=str(e))
            raise GatewayError(unreachable, detail=str(e))
        if not isinstance(data, dict) or not data.get("status"):
            logger.error("paystack_rejected", path=path, detail=data)
            raise error_cls(detail=data)
        return data

    def initialize_transaction(self, email: str, amount: Any, order_draft: Optional[dict] = None) -> Dict[str, str]:
        body = {
            "email": email,
            "amount": to_minor_units(amount),
            "metadata": {"order": order_draft or {}},
        }
        if self.callback_url:
            body["callback_url"] = self.callback_url
        data = self._call("POST", "/transaction/initialize", GatewayError, "Paystack initialization failed", json=body)
        payload = data.get("data") or {}
        logger.info("paystack_initialized", reference=payload.get("reference"), amount=body["amount"])
        return {
            "authorization_url": payload.get("authorization_url"),
            "reference": payload.get("reference"),
        }

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        data = self._call("GET", f"/transaction/verify/{reference}", VerificationFailed, "Paystack verification failed")
        payment = data.get("data") or {}
        if payment.get("status") != "success":
            logger.warning("payment_not_successful", reference=reference, status=payment.get("status"))
            raise VerificationFailed("Payment not successful", detail={"status": payment.get("status")})
        logger.info("payment_verified", reference=reference, amount=payment.get("amount"))
        return payment

    def close(self) -> None:
        self.http.close()
