# services/stripe_gateway.py
"""
Thin wrapper over the Stripe SDK.

The API key is passed per call instead of being set on the module-level
``stripe.api_key``, so several apps/tests can hold differently configured
gateways in one process. With ``simulation_mode`` on, no outbound call is
made and canned objects are returned.
"""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, Optional

import stripe

from services.errors import (
    ConfigurationError,
    PaymentProviderError,
    WebhookPayloadError,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)


class StripeGateway:
    def __init__(self, api_key: str, webhook_secret: str = "", *, simulation_mode: bool = False):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.simulation_mode = simulation_mode

    def _key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("STRIPE_SECRET_KEY missing")
        return self.api_key

    # ─── Webhooks ────────────────────────────────────────────────

    def construct_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """Verify the signature and return the event as a plain dict."""
        if not self.webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET missing")
        if not payload or not payload.strip():
            raise WebhookSignatureError("Empty webhook body")
        if not sig_header:
            raise WebhookSignatureError("Missing stripe-signature")

        try:
            stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError("Invalid webhook signature") from exc
        except ValueError as exc:
            raise WebhookPayloadError("Invalid JSON payload") from exc

        return json.loads(payload)

    # ─── API calls ───────────────────────────────────────────────

    def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        if self.simulation_mode:
            raise PaymentProviderError("stripe", "subscriptions cannot be fetched in simulation mode")
        try:
            sub = stripe.Subscription.retrieve(subscription_id, api_key=self._key())
        except stripe.StripeError as exc:
            logger.exception("stripe_subscription_retrieve_failed subscription_id=%s", subscription_id)
            raise PaymentProviderError("stripe", str(exc)) from exc
        return sub.to_dict()

    def create_customer(self, *, email: Optional[str], user_id: str) -> str:
        if self.simulation_mode:
            return f"cus_sim_{uuid.uuid4().hex[:14]}"
        try:
            customer = stripe.Customer.create(
                api_key=self._key(),
                email=email,
                metadata={"userId": user_id},
            )
        except stripe.StripeError as exc:
            logger.exception("stripe_customer_create_failed user_id=%s", user_id)
            raise PaymentProviderError("stripe", str(exc)) from exc
        return customer["id"]

    def create_checkout_session(self, **params: Any) -> Dict[str, Any]:
        if self.simulation_mode:
            session_id = f"cs_sim_{uuid.uuid4().hex[:14]}"
            logger.warning("stripe_checkout_simulated session_id=%s mode=%s", session_id, params.get("mode"))
            return {"id": session_id, "url": params.get("success_url"), "simulated": True}
        try:
            session = stripe.checkout.Session.create(api_key=self._key(), **params)
        except stripe.StripeError as exc:
            logger.exception("stripe_checkout_create_failed mode=%s", params.get("mode"))
            raise PaymentProviderError("stripe", str(exc)) from exc
        return {"id": session["id"], "url": session["url"], "simulated": False}

    def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        if self.simulation_mode:
            return return_url
        try:
            session = stripe.billing_portal.Session.create(
                api_key=self._key(),
                customer=customer_id,
                return_url=return_url,
            )
        except stripe.StripeError as exc:
            logger.exception("stripe_portal_create_failed")
            raise PaymentProviderError("stripe", str(exc)) from exc
        return session["url"]

    def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> None:
        if self.simulation_mode:
            logger.warning("stripe_cancel_flag_simulated subscription_id=%s cancel=%s", subscription_id, cancel)
            return
        try:
            stripe.Subscription.modify(
                subscription_id,
                api_key=self._key(),
                cancel_at_period_end=cancel,
            )
        except stripe.StripeError as exc:
            logger.exception("stripe_subscription_modify_failed subscription_id=%s", subscription_id)
            raise PaymentProviderError("stripe", str(exc)) from exc
