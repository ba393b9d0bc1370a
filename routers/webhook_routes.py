# routers/webhook_routes.py
"""
Inbound provider webhooks. No auth: each body is verified against the
provider's signature before it is parsed.

    400 {"error": ...}    signature or payload rejected, provider should not retry
    200 {"received": true} processed, or an event type we ignore
    500 {"error": ...}    database/provider failure, provider redelivers
"""
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import Settings, get_settings
from database import get_db
from schemas.webhook_events import parse_coinbase_event, parse_paypal_event, parse_stripe_event
from services.coinbase_client import CoinbaseCommerceClient
from services.errors import PaymentProviderError, WebhookPayloadError, WebhookSignatureError
from services.paypal_client import PayPalClient
from services.providers import get_coinbase_client, get_paypal_client, get_stripe_gateway
from services.stripe_gateway import StripeGateway
from services.webhook_reconciler import WebhookReconciler

logger = logging.getLogger(__name__)

router = APIRouter()

RECEIVED = {"received": True}


def _rejected(provider: str, exc: Exception) -> JSONResponse:
    logger.warning("%s_webhook_rejected error=%s detail=%s", provider, type(exc).__name__, exc)
    return JSONResponse(status_code=400, content={"error": str(exc)})


def _failed(provider: str, db: Session, event_type: str) -> JSONResponse:
    db.rollback()
    logger.exception("%s_webhook_failed type=%s", provider, event_type)
    return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})


def _json_body(payload: bytes) -> dict:
    try:
        return json.loads(payload)
    except ValueError as exc:
        raise WebhookPayloadError("Invalid JSON payload") from exc


# ─── Stripe ──────────────────────────────────────────────────────

@router.post("/api/stripe/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    payload = await request.body()
    try:
        raw = gateway.construct_event(payload, request.headers.get("stripe-signature"))
        event = parse_stripe_event(raw)
    except (WebhookSignatureError, WebhookPayloadError) as exc:
        return _rejected("stripe", exc)

    event_type = raw.get("type")
    if event is None:
        logger.info("stripe_webhook_ignored type=%s", event_type)
        return RECEIVED

    try:
        WebhookReconciler(db, settings, stripe_gateway=gateway).handle_stripe_event(event)
    except (SQLAlchemyError, PaymentProviderError):
        return _failed("stripe", db, event_type)

    logger.info("stripe_webhook_processed type=%s id=%s", event_type, raw.get("id"))
    return RECEIVED


# ─── PayPal ──────────────────────────────────────────────────────

@router.post("/api/paypal/webhook")
async def paypal_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    paypal: PayPalClient = Depends(get_paypal_client),
):
    payload = await request.body()
    try:
        if not payload.strip():
            raise WebhookSignatureError("Empty webhook body")
        raw = _json_body(payload)
        if not await paypal.verify_webhook_signature(request.headers, raw):
            raise WebhookSignatureError("Invalid webhook signature")
        event = parse_paypal_event(raw)
    except (WebhookSignatureError, WebhookPayloadError) as exc:
        return _rejected("paypal", exc)
    except PaymentProviderError:
        logger.exception("paypal_webhook_verification_unavailable")
        return JSONResponse(status_code=500, content={"error": "Could not verify webhook"})

    event_type = raw.get("event_type")
    if event is None:
        logger.info("paypal_webhook_ignored type=%s", event_type)
        return RECEIVED

    try:
        WebhookReconciler(db, settings).handle_paypal_event(event)
    except SQLAlchemyError:
        return _failed("paypal", db, event_type)

    logger.info("paypal_webhook_processed type=%s id=%s", event_type, raw.get("id"))
    return RECEIVED


# ─── Coinbase Commerce ───────────────────────────────────────────

@router.post("/api/crypto/webhook")
async def crypto_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    coinbase: CoinbaseCommerceClient = Depends(get_coinbase_client),
):
    payload = await request.body()
    try:
        coinbase.verify_signature(payload, request.headers.get("x-cc-webhook-signature"))
        raw = _json_body(payload)
        event = parse_coinbase_event(raw)
    except (WebhookSignatureError, WebhookPayloadError) as exc:
        return _rejected("coinbase", exc)

    event_type = (raw.get("event") or {}).get("type")
    if event is None:
        logger.info("coinbase_webhook_ignored type=%s", event_type)
        return RECEIVED

    try:
        WebhookReconciler(db, settings).handle_coinbase_event(event)
    except SQLAlchemyError:
        return _failed("coinbase", db, event_type)

    logger.info("coinbase_webhook_processed type=%s id=%s", event_type, event.id)
    return RECEIVED
