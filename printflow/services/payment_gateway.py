"""
Razorpay payment gateway client.

Creates orders through the Razorpay REST API and verifies the signature the
checkout widget hands back to the browser.
"""
import hmac
import hashlib

import httpx

from printflow.config import settings
from printflow.errors import PaymentGatewayError
from printflow.logging_config import get_logger


def generate_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    """HMAC-SHA256 of "order_id|payment_id", hex encoded."""
    return hmac.new(
        secret.encode(),
        f"{order_id}|{payment_id}".encode(),
        hashlib.sha256
    ).hexdigest()


class RazorpayGateway:
    """Thin async wrapper around the two Razorpay calls PrintFlow needs."""

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        api_url: str | None = None,
        currency: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.api_url = api_url or settings.RAZORPAY_API_URL
        self.currency = currency or settings.PAYMENT_CURRENCY
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    async def create_intent(self, amount: int, receipt: str, notes: dict | None = None) -> dict:
        """
        Create a Razorpay order for ``amount`` (major currency units).

        Returns:
            dict with order_id, amount (minor units), currency and key_id
            for the checkout widget.
        """
        if not self.configured:
            raise PaymentGatewayError("Payment gateway is not configured")

        payload = {
            "amount": amount * 100,
            "currency": self.currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        log = get_logger(receipt=receipt, amount=amount)

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.post(
                    f"{self.api_url}/orders",
                    json=payload,
                    auth=(self.key_id, self.key_secret),
                )
        except httpx.HTTPError as exc:
            log.error("payment_intent_failed", error=str(exc))
            raise PaymentGatewayError("Payment gateway unreachable", cause=exc) from exc

        if response.status_code >= 300:
            log.error("payment_intent_failed", status_code=response.status_code)
            raise PaymentGatewayError(f"Payment gateway returned HTTP {response.status_code}")

        order = response.json()
        log.info("payment_intent_created", order_id=order.get("id"))
        return {
            "order_id": order["id"],
            "amount": order["amount"],
            "currency": order.get("currency", self.currency),
            "key_id": self.key_id,
        }

    def verify_callback(self, order_id: str, payment_id: str, signature: str) -> bool:
        """True when the checkout signature was produced with our key secret."""
        if not self.key_secret or not (order_id and payment_id and signature):
            return False
        expected = generate_payment_signature(order_id, payment_id, self.key_secret)
        return hmac.compare_digest(expected, signature)
