# services/paypal_client.py
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from services.errors import ConfigurationError, PaymentProviderError

logger = logging.getLogger(__name__)

# Headers PayPal signs its webhook deliveries with
_SIGNATURE_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


class PayPalClient:
    """Async REST client for the handful of PayPal calls the billing flow needs."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        *,
        webhook_id: str = "",
        timeout_s: float = 15.0,
        simulation_mode: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.webhook_id = webhook_id
        self.timeout_s = timeout_s
        self.simulation_mode = simulation_mode
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout_s, transport=self._transport)

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("PayPal credentials not configured")

        r = await client.post(
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
        )
        if r.status_code != 200:
            logger.error("paypal_token_failed status=%s", r.status_code)
            raise PaymentProviderError("paypal", "Failed to get PayPal access token")
        return r.json()["access_token"]

    async def _request(self, method: str, path: str, *, json: Optional[dict] = None) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                r = await client.request(
                    method,
                    path,
                    json=json,
                    headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                )
        except httpx.HTTPError as exc:
            logger.exception("paypal_request_failed path=%s", path)
            raise PaymentProviderError("paypal", str(exc)) from exc

        if r.status_code >= 400:
            logger.error("paypal_request_rejected path=%s status=%s", path, r.status_code)
            raise PaymentProviderError("paypal", f"{method} {path} returned {r.status_code}")
        return r.json() if r.content else {}

    async def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v1/billing/subscriptions/{subscription_id}")

    async def capture_order(self, order_id: str) -> Dict[str, Any]:
        return await self._request("POST", f"/v2/checkout/orders/{order_id}/capture", json={})

    async def verify_webhook_signature(self, headers: Mapping[str, str], event: Dict[str, Any]) -> bool:
        """Ask PayPal whether *event* was signed for our webhook id."""
        if self.simulation_mode:
            logger.warning("paypal_webhook_verification_skipped simulation_mode=1")
            return True
        if not self.webhook_id:
            raise ConfigurationError("PAYPAL_WEBHOOK_ID missing")

        body: Dict[str, Any] = {"webhook_id": self.webhook_id, "webhook_event": event}
        for field, header in _SIGNATURE_HEADERS.items():
            value = headers.get(header)
            if not value:
                return False
            body[field] = value

        data = await self._request("POST", "/v1/notifications/verify-webhook-signature", json=body)
        return data.get("verification_status") == "SUCCESS"
