# services/coinbase_client.py
from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from services.errors import ConfigurationError, PaymentProviderError, WebhookSignatureError

logger = logging.getLogger(__name__)

COINBASE_API_URL = "https://api.commerce.coinbase.com"
COINBASE_API_VERSION = "2018-03-22"


class CoinbaseCommerceClient:
    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        *,
        timeout_s: float = 15.0,
        simulation_mode: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.timeout_s = timeout_s
        self.simulation_mode = simulation_mode
        self._transport = transport

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> None:
        """HMAC-SHA256 of the raw body with the shared secret, hex encoded."""
        if not self.webhook_secret:
            raise ConfigurationError("COINBASE_COMMERCE_WEBHOOK_SECRET missing")
        if not payload or not payload.strip():
            raise WebhookSignatureError("Empty webhook body")
        if not signature:
            raise WebhookSignatureError("Missing X-CC-Webhook-Signature")

        expected = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(expected, signature.strip()):
            raise WebhookSignatureError("Invalid webhook signature")

    async def create_charge(
        self,
        *,
        name: str,
        description: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        redirect_url: str,
        cancel_url: str,
    ) -> Dict[str, Any]:
        if self.simulation_mode:
            code = f"SIM{uuid.uuid4().hex[:5].upper()}"
            logger.warning("coinbase_charge_simulated code=%s", code)
            return {"code": code, "hosted_url": redirect_url, "simulated": True}
        if not self.api_key:
            raise ConfigurationError("COINBASE_COMMERCE_API_KEY missing")

        body = {
            "name": name,
            "description": description,
            "pricing_type": "fixed_price",
            "local_price": {"amount": str(amount), "currency": currency.upper()},
            "metadata": metadata,
            "redirect_url": redirect_url,
            "cancel_url": cancel_url,
        }
        try:
            async with httpx.AsyncClient(base_url=COINBASE_API_URL, timeout=self.timeout_s, transport=self._transport) as client:
                r = await client.post(
                    "/charges",
                    json=body,
                    headers={"X-CC-Api-Key": self.api_key, "X-CC-Version": COINBASE_API_VERSION},
                )
        except httpx.HTTPError as exc:
            logger.exception("coinbase_charge_failed")
            raise PaymentProviderError("coinbase", str(exc)) from exc

        if r.status_code >= 400:
            logger.error("coinbase_charge_rejected status=%s", r.status_code)
            raise PaymentProviderError("coinbase", f"create charge returned {r.status_code}")

        data = r.json().get("data") or {}
        return {"code": data.get("code"), "hosted_url": data.get("hosted_url"), "simulated": False}
