# routers/billing_routes.py
# Checkout routes carry @limiter.limit, which needs real annotations at
# import time: no `from __future__ import annotations` in this module.
import logging
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from config.settings import Settings, get_settings
from database import get_db
from middleware.rate_limit import CHECKOUT_RATE_LIMIT, limiter
from models.customer import Customer
from models.image import Image
from models.subscription import Subscription
from models.user import User
from schemas.billing import (
    ActivationOut,
    CancelOut,
    CaptureOut,
    CheckoutOut,
    CryptoCheckoutOut,
    ImageCheckoutIn,
    PayPalActivateIn,
    PayPalCaptureIn,
    PlanOut,
    PortalOut,
    SubscriptionCheckoutIn,
    SubscriptionOut,
)
from schemas.webhook_events import PayPalSubscriptionResource
from services.access_evaluator import AccessEvaluator
from services.coinbase_client import CoinbaseCommerceClient
from services.image_service import get_image
from services.paypal_client import PayPalClient
from services.plan_catalog import ImageLicense, get_license, get_plan, list_plans, price_id_for
from services.providers import get_coinbase_client, get_paypal_client, get_stripe_gateway
from services.stripe_gateway import StripeGateway
from services.supabase_auth import get_current_db_user, get_optional_db_user
from services.usage_tracker import UsageTracker
from services.webhook_reconciler import WebhookReconciler
from utils.db_upsert import insert_if_absent

logger = logging.getLogger(__name__)

router = APIRouter()


def ensure_customer(db: Session, user: User, gateway: StripeGateway) -> str:
    row = db.get(Customer, user.id)
    if row:
        return row.stripe_customer_id

    customer_id = gateway.create_customer(email=user.email, user_id=user.id)
    if not insert_if_absent(
        db,
        Customer,
        {"user_id": user.id, "stripe_customer_id": customer_id},
        conflict_columns=("user_id",),
    ):
        logger.warning("stripe_customer_race user_id=%s orphan_customer_id=%s", user.id, customer_id)
    db.commit()
    return db.get(Customer, user.id).stripe_customer_id


def _license_or_400(license_type: str) -> ImageLicense:
    image_license = get_license(license_type)
    if image_license is None:
        raise HTTPException(400, detail=f"Invalid license type: {license_type}")
    return image_license


def _image_or_404(db: Session, image_id: str) -> Image:
    image = get_image(db, image_id)
    if image is None:
        raise HTTPException(404, detail="Image not found")
    return image


def _active_stripe_subscription(db: Session, user: User) -> Subscription:
    sub = AccessEvaluator(db).active_subscription(user.id)
    if sub is None or sub.payment_provider != "stripe" or not sub.provider_subscription_id:
        raise HTTPException(400, detail="No active Stripe subscription")
    return sub


# ─── Catalog / status ────────────────────────────────────────────

@router.get("/api/billing/plans", response_model=List[PlanOut])
def get_plans():
    return [PlanOut.model_validate(plan) for plan in list_plans()]


@router.get("/api/billing/me", response_model=SubscriptionOut)
def get_my_subscription(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
):
    tracker = UsageTracker(db)
    sub = AccessEvaluator(db, usage_tracker=tracker).active_subscription(user.id)
    used = tracker.month_to_date_count(user.id)
    if sub is None:
        return SubscriptionOut(active=False, downloads_used=used)

    plan = get_plan(sub.plan_type)
    return SubscriptionOut(
        active=True,
        plan_type=sub.plan_type,
        billing_interval=sub.billing_interval,
        status=sub.status,
        payment_provider=sub.payment_provider,
        current_period_end=sub.current_period_end,
        cancel_at_period_end=sub.cancel_at_period_end,
        downloads_used=used,
        downloads_limit=plan.monthly_download_limit if plan else None,
    )


# ─── Stripe ──────────────────────────────────────────────────────

@router.post("/api/stripe/checkout", response_model=CheckoutOut)
@limiter.limit(CHECKOUT_RATE_LIMIT)
def create_image_checkout(
    request: Request,
    payload: ImageCheckoutIn,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_db_user),
    settings: Settings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    image_license = _license_or_400(payload.license_type)
    image = _image_or_404(db, payload.image_id)

    params = dict(
        mode="payment",
        line_items=[{
            "price_data": {
                "currency": image_license.currency,
                "unit_amount": image_license.amount,
                "product_data": {"name": f"{image_license.name}: {image.title}", "description": image_license.description},
            },
            "quantity": 1,
        }],
        success_url=f"{settings.frontend_url}/purchase/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.frontend_url}/gallery",
        metadata={
            "imageId": image.id,
            "licenseType": image_license.type,
            "userId": user.id if user else "anonymous",
        },
    )
    if user:
        params["client_reference_id"] = user.id
        if user.email:
            params["customer_email"] = user.email

    session = gateway.create_checkout_session(**params)
    logger.info(
        "image_checkout_created session_id=%s image_id=%s license=%s user_id=%s",
        session["id"], image.id, image_license.type, user.id if user else None,
    )
    return CheckoutOut(url=session["url"], session_id=session["id"], simulated=session["simulated"])


@router.post("/api/stripe/checkout/subscription", response_model=CheckoutOut)
@limiter.limit(CHECKOUT_RATE_LIMIT)
def create_subscription_checkout(
    request: Request,
    payload: SubscriptionCheckoutIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
    settings: Settings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    try:
        price_id = price_id_for(payload.plan_type, payload.billing_interval, settings.stripe_price_ids)
    except ValueError as e:
        raise HTTPException(400, detail=str(e))

    customer_id = ensure_customer(db, user, gateway)
    metadata = {
        "userId": user.id,
        "planType": payload.plan_type,
        "billingInterval": payload.billing_interval,
    }
    session = gateway.create_checkout_session(
        mode="subscription",
        customer=customer_id,
        client_reference_id=user.id,
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=f"{settings.frontend_url}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{settings.frontend_url}/pricing",
        metadata=metadata,
        subscription_data={"metadata": metadata},
        allow_promotion_codes=True,
    )
    logger.info(
        "subscription_checkout_created session_id=%s user_id=%s plan=%s interval=%s customer_id=%s",
        session["id"], user.id, payload.plan_type, payload.billing_interval, customer_id,
    )
    return CheckoutOut(url=session["url"], session_id=session["id"], simulated=session["simulated"])


@router.post("/api/stripe/customer-portal", response_model=PortalOut)
def create_portal_session(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
    settings: Settings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    row = db.get(Customer, user.id)
    if not row:
        raise HTTPException(400, detail="No Stripe customer yet")

    url = gateway.create_portal_session(
        customer_id=row.stripe_customer_id,
        return_url=f"{settings.frontend_url}/account",
    )
    logger.info("portal_session_created user_id=%s", user.id)
    return PortalOut(url=url)


@router.post("/api/stripe/subscription/cancel", response_model=CancelOut)
def cancel_subscription(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    # local row follows on the customer.subscription.updated webhook
    sub = _active_stripe_subscription(db, user)
    gateway.set_cancel_at_period_end(sub.provider_subscription_id, True)
    logger.info("subscription_cancel_requested user_id=%s subscription_id=%s", user.id, sub.provider_subscription_id)
    return CancelOut(ok=True, cancel_at_period_end=True)


@router.post("/api/stripe/subscription/reactivate", response_model=CancelOut)
def reactivate_subscription(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    sub = _active_stripe_subscription(db, user)
    gateway.set_cancel_at_period_end(sub.provider_subscription_id, False)
    logger.info("subscription_reactivated user_id=%s subscription_id=%s", user.id, sub.provider_subscription_id)
    return CancelOut(ok=True, cancel_at_period_end=False)


# ─── PayPal ──────────────────────────────────────────────────────

@router.post("/api/paypal/activate-subscription", response_model=ActivationOut)
async def activate_paypal_subscription(
    payload: PayPalActivateIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_db_user),
    settings: Settings = Depends(get_settings),
    paypal: PayPalClient = Depends(get_paypal_client),
):
    if settings.payment_simulation_mode:
        resource = PayPalSubscriptionResource(id=payload.subscription_id, custom_id=user.id, status="ACTIVE")
    else:
        resource = PayPalSubscriptionResource.model_validate(await paypal.get_subscription(payload.subscription_id))
        if (resource.status or "").upper() != "ACTIVE":
            raise HTTPException(400, detail="Subscription is not active")
        if resource.custom_id and resource.custom_id != user.id:
            raise HTTPException(403, detail="Subscription belongs to another user")

    stored = WebhookReconciler(db, settings).upsert_paypal_subscription(
        resource,
        fallback_user_id=user.id,
        plan_hint=(payload.plan_type, payload.billing_interval),
        status="active",
    )
    if not stored:
        raise HTTPException(400, detail="Unknown PayPal plan")
    return ActivationOut(success=True, message="Subscription activated")


def _capture_amount(order: dict) -> tuple:
    try:
        capture = order["purchase_units"][0]["payments"]["captures"][0]["amount"]
        return Decimal(capture["value"]), capture["currency_code"]
    except (KeyError, IndexError, TypeError, InvalidOperation):
        return None, None


@router.post("/api/paypal/capture", response_model=CaptureOut)
async def capture_paypal_order(
    payload: PayPalCaptureIn,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_db_user),
    settings: Settings = Depends(get_settings),
    paypal: PayPalClient = Depends(get_paypal_client),
):
    image_license = _license_or_400(payload.license_type)
    _image_or_404(db, payload.image_id)

    amount, currency = image_license.amount_decimal, image_license.currency
    if not settings.payment_simulation_mode:
        order = await paypal.capture_order(payload.order_id)
        if order.get("status") != "COMPLETED":
            raise HTTPException(400, detail="Payment not completed")
        captured, captured_currency = _capture_amount(order)
        if captured is not None:
            amount, currency = captured, captured_currency

    recorded = WebhookReconciler(db, settings).record_paypal_purchase(
        order_id=payload.order_id,
        user_id=user.id if user else None,
        image_id=payload.image_id,
        license_type=image_license.type,
        amount=amount,
        currency=currency,
    )
    return CaptureOut(success=True, recorded=recorded)


# ─── Coinbase Commerce ───────────────────────────────────────────

@router.post("/api/crypto/checkout", response_model=CryptoCheckoutOut)
@limiter.limit(CHECKOUT_RATE_LIMIT)
async def create_crypto_checkout(
    request: Request,
    payload: ImageCheckoutIn,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_db_user),
    settings: Settings = Depends(get_settings),
    coinbase: CoinbaseCommerceClient = Depends(get_coinbase_client),
):
    image_license = _license_or_400(payload.license_type)
    image = _image_or_404(db, payload.image_id)

    charge = await coinbase.create_charge(
        name=f"{image_license.name}: {image.title}",
        description=image_license.description,
        amount=image_license.amount_decimal,
        currency=image_license.currency,
        metadata={
            "user_id": user.id if user else "anonymous",
            "image_id": image.id,
            "license_type": image_license.type,
        },
        redirect_url=f"{settings.frontend_url}/purchase/success",
        cancel_url=f"{settings.frontend_url}/gallery",
    )
    logger.info("crypto_checkout_created code=%s image_id=%s license=%s", charge["code"], image.id, image_license.type)
    return CryptoCheckoutOut(hosted_url=charge["hosted_url"], code=charge["code"], simulated=charge["simulated"])
