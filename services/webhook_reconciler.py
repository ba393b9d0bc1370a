# services/webhook_reconciler.py
"""
Turns payment-provider events into local subscription / purchase rows.

Every write is a single conditional statement:
    subscriptions -> upsert keyed on provider_subscription_id
    purchases     -> insert-if-absent keyed on (payment_method, provider_session_id)
so a redelivered event rewrites the same values or does nothing.

Events that can't be attributed to a user or a plan are logged and dropped;
retrying them would not help. Database errors propagate so the webhook
route answers 500 and the provider redelivers.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from config.settings import BILLING_INTERVALS, Settings
from models.customer import Customer
from models.image import Image
from models.purchase import Purchase
from models.subscription import Subscription
from schemas.webhook_events import (
    CoinbaseCharge,
    CoinbaseChargeConfirmed,
    CoinbaseEvent,
    PayPalEvent,
    PayPalSaleCompleted,
    PayPalSubscriptionEnded,
    PayPalSubscriptionPaymentProblem,
    PayPalSubscriptionResource,
    PayPalSubscriptionUpserted,
    StripeCheckoutCompleted,
    StripeCheckoutSession,
    StripeEvent,
    StripeInvoicePaid,
    StripeInvoicePaymentFailed,
    StripeSubscription,
    StripeSubscriptionDeleted,
    StripeSubscriptionUpserted,
)
from services.plan_catalog import get_plan, plan_for_price_id
from services.stripe_gateway import StripeGateway
from services.usage_tracker import Clock, utcnow
from utils.db_upsert import insert_if_absent, upsert

logger = logging.getLogger(__name__)

# Stripe subscription.status -> local status
STRIPE_STATUS_MAP: Dict[str, str] = {
    "active": "active",
    "trialing": "trialing",
    "past_due": "past_due",
    "unpaid": "past_due",
    "incomplete": "past_due",
    "paused": "past_due",
    "canceled": "cancelled",
    "incomplete_expired": "expired",
}

# PayPal subscription.status -> local status
PAYPAL_STATUS_MAP: Dict[str, str] = {
    "ACTIVE": "active",
    "SUSPENDED": "past_due",
    "CANCELLED": "cancelled",
    "EXPIRED": "expired",
}

_ANONYMOUS = {"", "anonymous", "null", "none"}


def _from_unix(ts: Optional[int]) -> Optional[datetime]:
    return datetime.fromtimestamp(ts, tz=timezone.utc) if ts else None


def _metadata_user_id(metadata: Dict[str, Any]) -> Optional[str]:
    raw = metadata.get("userId") or metadata.get("user_id")
    if raw is None or str(raw).strip().lower() in _ANONYMOUS:
        return None
    return str(raw)


def _metadata_plan(metadata: Dict[str, Any]) -> Optional[Tuple[str, str]]:
    plan_type = metadata.get("planType") or metadata.get("plan_type")
    interval = metadata.get("billingInterval") or metadata.get("billing_interval") or "monthly"
    if get_plan(plan_type) is None or interval not in BILLING_INTERVALS:
        return None
    return plan_type, interval


def _to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


class WebhookReconciler:
    def __init__(
        self,
        db: Session,
        settings: Settings,
        stripe_gateway: Optional[StripeGateway] = None,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.settings = settings
        self.stripe = stripe_gateway
        self.clock = clock or utcnow

    # ─── Shared writes ───────────────────────────────────────────

    def _upsert_subscription(
        self,
        *,
        user_id: str,
        provider: str,
        provider_subscription_id: str,
        plan_type: str,
        billing_interval: str,
        status: str,
        period_start: Optional[datetime],
        period_end: Optional[datetime],
        cancel_at_period_end: bool = False,
    ) -> None:
        plan = get_plan(plan_type)
        upsert(
            self.db,
            Subscription,
            {
                "provider_subscription_id": provider_subscription_id,
                "user_id": user_id,
                "payment_provider": provider,
                "plan_type": plan_type,
                "billing_interval": billing_interval,
                "status": status,
                "current_period_start": period_start,
                "current_period_end": period_end,
                # catalog is the source of truth for prices and features, not the event
                "price_monthly": plan.price_monthly,
                "price_yearly": plan.price_yearly,
                "features": list(plan.features),
                "cancel_at_period_end": cancel_at_period_end,
                "updated_at": self.clock(),
            },
            conflict_columns=("provider_subscription_id",),
        )
        self.db.commit()
        logger.info(
            "subscription_upserted provider=%s subscription_id=%s user_id=%s plan=%s interval=%s status=%s",
            provider, provider_subscription_id, user_id, plan_type, billing_interval, status,
        )

    def _set_status(self, provider_subscription_id: Optional[str], status: str) -> bool:
        if not provider_subscription_id:
            logger.info("subscription_status_skipped reason=no_subscription_id status=%s", status)
            return False

        updated = (
            self.db.query(Subscription)
            .filter(Subscription.provider_subscription_id == provider_subscription_id)
            .update({"status": status, "updated_at": self.clock()}, synchronize_session=False)
        )
        self.db.commit()
        if not updated:
            logger.info("subscription_status_noop subscription_id=%s status=%s", provider_subscription_id, status)
            return False
        logger.info("subscription_status_set subscription_id=%s status=%s", provider_subscription_id, status)
        return True

    def _insert_purchase(self, values: Dict[str, Any]) -> bool:
        if self.db.get(Image, values["image_id"]) is None:
            logger.warning(
                "purchase_dropped reason=unknown_image image_id=%s session_id=%s",
                values["image_id"], values["provider_session_id"],
            )
            return False

        values.setdefault("payment_status", "completed")
        values.setdefault("purchased_at", self.clock())
        created = insert_if_absent(
            self.db,
            Purchase,
            values,
            conflict_columns=("payment_method", "provider_session_id"),
        )
        self.db.commit()
        if created:
            logger.info(
                "purchase_recorded method=%s session_id=%s image_id=%s user_id=%s",
                values["payment_method"], values["provider_session_id"], values["image_id"], values.get("user_id"),
            )
        else:
            logger.info(
                "purchase_already_recorded method=%s session_id=%s",
                values["payment_method"], values["provider_session_id"],
            )
        return created

    def _user_for_customer(self, customer_id: Optional[str]) -> Optional[str]:
        if not customer_id:
            return None
        row = self.db.query(Customer).filter_by(stripe_customer_id=customer_id).first()
        return row.user_id if row else None

    # ─── Stripe ──────────────────────────────────────────────────

    def handle_stripe_event(self, event: StripeEvent) -> None:
        if isinstance(event, StripeSubscriptionUpserted):
            self.upsert_stripe_subscription(event.data.object)
        elif isinstance(event, StripeSubscriptionDeleted):
            self._set_status(event.data.object.id, "cancelled")
        elif isinstance(event, StripeInvoicePaid):
            self._set_status(event.data.object.subscription_id, "active")
        elif isinstance(event, StripeInvoicePaymentFailed):
            self._set_status(event.data.object.subscription_id, "past_due")
        elif isinstance(event, StripeCheckoutCompleted):
            self.handle_checkout_completed(event.data.object)

    def upsert_stripe_subscription(self, sub: StripeSubscription, fallback_user_id: Optional[str] = None) -> bool:
        user_id = (
            _metadata_user_id(sub.metadata)
            or fallback_user_id
            or self._user_for_customer(sub.customer)
        )
        if not user_id:
            logger.error("stripe_subscription_dropped reason=no_user subscription_id=%s", sub.id)
            return False

        resolved = plan_for_price_id(sub.price_id, self.settings.stripe_price_ids) or _metadata_plan(sub.metadata)
        if not resolved:
            logger.error(
                "stripe_subscription_dropped reason=unknown_price subscription_id=%s price_id=%s",
                sub.id, sub.price_id,
            )
            return False
        plan_type, interval = resolved

        self._upsert_subscription(
            user_id=user_id,
            provider="stripe",
            provider_subscription_id=sub.id,
            plan_type=plan_type,
            billing_interval=interval,
            status=STRIPE_STATUS_MAP.get(sub.status, "past_due"),
            period_start=_from_unix(sub.period_start),
            period_end=_from_unix(sub.period_end),
            cancel_at_period_end=sub.cancel_at_period_end,
        )
        return True

    def handle_checkout_completed(self, session: StripeCheckoutSession) -> bool:
        if session.mode == "subscription":
            if not session.subscription:
                logger.error("stripe_checkout_dropped reason=no_subscription session_id=%s", session.id)
                return False
            if self.settings.payment_simulation_mode:
                logger.warning(
                    "stripe_checkout_dropped reason=simulation_mode session_id=%s subscription_id=%s",
                    session.id, session.subscription,
                )
                return False
            if self.stripe is None:
                raise RuntimeError("StripeGateway required to re-fetch checkout subscriptions")
            # the checkout session carries only a partial view; use the full object
            full = StripeSubscription.model_validate(self.stripe.retrieve_subscription(session.subscription))
            fallback = session.client_reference_id or _metadata_user_id(session.metadata)
            return self.upsert_stripe_subscription(full, fallback_user_id=fallback)

        if session.mode == "payment":
            image_id = session.metadata.get("imageId") or session.metadata.get("image_id")
            if not image_id:
                logger.error("stripe_purchase_dropped reason=no_image session_id=%s", session.id)
                return False
            return self._insert_purchase({
                "user_id": _metadata_user_id(session.metadata) or session.client_reference_id,
                "image_id": str(image_id),
                "license_type": session.metadata.get("licenseType") or "standard",
                "amount_paid": session.amount_total or 0,
                "currency": session.currency or "usd",
                "payment_method": "stripe",
                "provider_session_id": session.id,
            })

        logger.info("stripe_checkout_ignored mode=%s session_id=%s", session.mode, session.id)
        return False

    # ─── PayPal ──────────────────────────────────────────────────

    def handle_paypal_event(self, event: PayPalEvent) -> None:
        if isinstance(event, PayPalSubscriptionUpserted):
            forced = "active" if event.event_type != "BILLING.SUBSCRIPTION.UPDATED" else None
            self.upsert_paypal_subscription(event.resource, status=forced)
        elif isinstance(event, PayPalSubscriptionEnded):
            status = "expired" if event.event_type == "BILLING.SUBSCRIPTION.EXPIRED" else "cancelled"
            self._set_status(event.resource.id, status)
        elif isinstance(event, PayPalSubscriptionPaymentProblem):
            self._set_status(event.resource.id, "past_due")
        elif isinstance(event, PayPalSaleCompleted):
            self._set_status(event.resource.billing_agreement_id, "active")

    def upsert_paypal_subscription(
        self,
        resource: PayPalSubscriptionResource,
        *,
        fallback_user_id: Optional[str] = None,
        plan_hint: Optional[Tuple[str, str]] = None,
        status: Optional[str] = None,
    ) -> bool:
        user_id = resource.custom_id or fallback_user_id
        if not user_id:
            logger.error("paypal_subscription_dropped reason=no_user subscription_id=%s", resource.id)
            return False

        resolved = plan_for_price_id(resource.plan_id, self.settings.paypal_plan_ids) or plan_hint
        if not resolved:
            logger.error(
                "paypal_subscription_dropped reason=unknown_plan subscription_id=%s plan_id=%s",
                resource.id, resource.plan_id,
            )
            return False
        plan_type, interval = resolved

        if status is None:
            status = PAYPAL_STATUS_MAP.get((resource.status or "").upper(), "past_due")

        billing = resource.billing_info
        self._upsert_subscription(
            user_id=user_id,
            provider="paypal",
            provider_subscription_id=resource.id,
            plan_type=plan_type,
            billing_interval=interval,
            status=status,
            period_start=resource.start_time,
            period_end=billing.next_billing_time if billing else None,
        )
        return True

    def record_paypal_purchase(
        self,
        *,
        order_id: str,
        user_id: Optional[str],
        image_id: str,
        license_type: str,
        amount: Decimal,
        currency: str,
    ) -> bool:
        return self._insert_purchase({
            "user_id": user_id,
            "image_id": image_id,
            "license_type": license_type,
            "amount_paid": _to_minor_units(amount),
            "currency": currency.lower(),
            "payment_method": "paypal",
            "provider_session_id": order_id,
        })

    # ─── Coinbase Commerce ───────────────────────────────────────

    def handle_coinbase_event(self, event: CoinbaseEvent) -> None:
        if isinstance(event, CoinbaseChargeConfirmed):
            self.record_crypto_purchase(event.data)
        else:
            logger.info("coinbase_charge_notice type=%s code=%s", event.type, event.data.code)

    def record_crypto_purchase(self, charge: CoinbaseCharge) -> bool:
        image_id = charge.metadata.get("image_id") or charge.metadata.get("imageId")
        if not image_id:
            logger.error("crypto_purchase_dropped reason=no_image code=%s", charge.code)
            return False

        local = charge.pricing.local if charge.pricing else None
        return self._insert_purchase({
            "user_id": _metadata_user_id(charge.metadata),
            "image_id": str(image_id),
            "license_type": charge.metadata.get("license_type") or "standard",
            "amount_paid": _to_minor_units(local.amount) if local else 0,
            "currency": local.currency.lower() if local else "usd",
            "payment_method": "crypto",
            "provider_session_id": charge.code,
        })
