"""Paystack REST client: initialize / verify transactions and check webhook signatures (HMAC-SHA512 of the raw body)."""
import hashlib
import hmac
import logging

import httpx
from fastapi import Depends

from tales.core.config import Settings, get_settings
from tales.core.errors import ConfigurationError, PaymentProviderError
from tales.schemas.payment import InitializedTransaction, VerifiedTransaction

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 20.0
SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(secret_key: str, raw_body: bytes) -> str:
    return hmac.new(secret_key.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


class PaystackClient:
    def __init__(self, secret_key: str, base_url: str = "https://api.paystack.co", transport: httpx.BaseTransport | None = None):
        self.secret_key = (secret_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _request(self, method: str, path: str, json: dict | None = None) -> dict:
        if not self.secret_key:
            raise ConfigurationError("PAYSTACK_SECRET_KEY is missing.")
        try:
            with httpx.Client(timeout=HTTP_TIMEOUT, transport=self._transport) as client:
                r = client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers={
                        "Authorization": f"Bearer {self.secret_key}",
                        "Content-Type": "application/json",
                    },
                    json=json,
                )
        except httpx.HTTPError as e:
            logger.warning("paystack: %s %s failed: %s", method, path, e)
            raise PaymentProviderError("Paystack request failed.") from e
        try:
            data = r.json()
        except ValueError:
            data = {}
        if r.status_code >= 400:
            message = (data.get("message") if isinstance(data, dict) else None) or "Paystack request failed."
            logger.warning("paystack: %s %s HTTP %s: %s", method, path, r.status_code, message[:300])
            raise PaymentProviderError(message, {"status_code": r.status_code})
        return data if isinstance(data, dict) else {}

    def initialize_transaction(
        self,
        email: str,
        amount_minor: int,
        reference: str,
        callback_url: str,
        metadata: dict,
    ) -> InitializedTransaction:
        body = self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": email,
                "amount": int(amount_minor),
                "reference": reference,
                "metadata": metadata,
                "callback_url": callback_url,
            },
        )
        data = body.get("data") or {}
        if not data.get("authorization_url"):
            raise PaymentProviderError(body.get("message") or "Paystack did not return a checkout URL.")
        return InitializedTransaction(
            authorization_url=data["authorization_url"],
            reference=data.get("reference") or reference,
        )

    def verify_transaction(self, reference: str) -> VerifiedTransaction:
        body = self._request("GET", f"/transaction/verify/{reference}")
        data = body.get("data") or {}
        if not body.get("status") or not data:
            return VerifiedTransaction(status="failed", reference=reference, amount=0)
        return VerifiedTransaction(
            status=str(data.get("status") or ""),
            reference=str(data.get("reference") or reference),
            amount=int(data.get("amount") or 0),
            currency=str(data.get("currency") or "NGN"),
            metadata=data.get("metadata"),
        )

    def sign(self, raw_body: bytes) -> str:
        return compute_signature(self.secret_key, raw_body)

    def signature_matches(self, raw_body: bytes, signature: str | None) -> bool:
        if not self.secret_key or not signature:
            return False
        return hmac.compare_digest(self.sign(raw_body), signature.strip())


def get_payment_provider(settings: Settings = Depends(get_settings)) -> PaystackClient:
    """FastAPI dependency; tests override it with a fake provider."""
    return PaystackClient(settings.paystack_secret_key, settings.paystack_base_url)
