# services/providers.py
"""FastAPI dependencies that build provider clients from the app settings.

Tests swap these out through ``app.dependency_overrides``.
"""
from fastapi import Depends

from config.settings import Settings, get_settings
from services.coinbase_client import CoinbaseCommerceClient
from services.paypal_client import PayPalClient
from services.stripe_gateway import StripeGateway


def get_stripe_gateway(settings: Settings = Depends(get_settings)) -> StripeGateway:
    return StripeGateway(
        settings.stripe_secret_key,
        settings.stripe_webhook_secret,
        simulation_mode=settings.payment_simulation_mode,
    )


def get_paypal_client(settings: Settings = Depends(get_settings)) -> PayPalClient:
    return PayPalClient(
        settings.paypal_base_url,
        settings.paypal_client_id,
        settings.paypal_client_secret,
        webhook_id=settings.paypal_webhook_id,
        timeout_s=settings.provider_timeout_s,
        simulation_mode=settings.payment_simulation_mode,
    )


def get_coinbase_client(settings: Settings = Depends(get_settings)) -> CoinbaseCommerceClient:
    return CoinbaseCommerceClient(
        settings.coinbase_api_key,
        settings.coinbase_webhook_secret,
        timeout_s=settings.provider_timeout_s,
        simulation_mode=settings.payment_simulation_mode,
    )
