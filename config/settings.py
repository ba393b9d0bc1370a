# config/settings.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from fastapi import Request

load_dotenv()

PLAN_TYPES = ("standard", "premium", "commercial")
BILLING_INTERVALS = ("monthly", "yearly")

# plan_type -> interval -> provider id
PriceIdTable = Dict[str, Dict[str, Optional[str]]]


def _flag(name: str, default: str = "0") -> bool:
    return (os.getenv(name) or default).strip().lower() in ("1", "true", "yes", "on")


def _price_table(prefix: str, suffix: str) -> PriceIdTable:
    """Read {PREFIX}_{PLAN}_{INTERVAL}_{SUFFIX} for every plan/interval pair."""
    table: PriceIdTable = {}
    for plan in PLAN_TYPES:
        table[plan] = {}
        for interval in BILLING_INTERVALS:
            env_name = f"{prefix}_{plan.upper()}_{interval.upper()}_{suffix}"
            table[plan][interval] = os.getenv(env_name) or None
    return table


@dataclass
class Settings:
    database_url: str = "sqlite:///./gallery.db"
    frontend_url: str = "http://localhost:3000"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    # Supabase auth
    supabase_project_url: str = ""
    supabase_jwt_aud: str = "authenticated"
    supabase_jwt_secret: str = ""

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_price_ids: PriceIdTable = field(default_factory=dict)

    # PayPal
    paypal_base_url: str = "https://api-m.sandbox.paypal.com"
    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    paypal_webhook_id: str = ""
    paypal_plan_ids: PriceIdTable = field(default_factory=dict)

    # Coinbase Commerce
    coinbase_api_key: str = ""
    coinbase_webhook_secret: str = ""

    # Provider calls are mocked only when this is set explicitly.
    payment_simulation_mode: bool = False
    provider_timeout_s: float = 15.0

    # DB pool tuning (ignored for sqlite)
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    @staticmethod
    def from_env() -> "Settings":
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL is not set in the environment")

        origins = os.getenv("CORS_ORIGINS") or "http://localhost:3000"
        return Settings(
            database_url=database_url,
            frontend_url=(os.getenv("FRONTEND_URL") or "http://localhost:3000").rstrip("/"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],

            supabase_project_url=(os.getenv("SUPABASE_PROJECT_URL") or "").rstrip("/"),
            supabase_jwt_aud=os.getenv("SUPABASE_JWT_AUD", "authenticated"),
            supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET", ""),

            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
            stripe_price_ids=_price_table("STRIPE", "PRICE_ID"),

            paypal_base_url=(os.getenv("PAYPAL_BASE_URL") or "https://api-m.sandbox.paypal.com").rstrip("/"),
            paypal_client_id=os.getenv("PAYPAL_CLIENT_ID", ""),
            paypal_client_secret=os.getenv("PAYPAL_CLIENT_SECRET", ""),
            paypal_webhook_id=os.getenv("PAYPAL_WEBHOOK_ID", ""),
            paypal_plan_ids=_price_table("PAYPAL", "PLAN_ID"),

            coinbase_api_key=os.getenv("COINBASE_COMMERCE_API_KEY", ""),
            coinbase_webhook_secret=os.getenv("COINBASE_COMMERCE_WEBHOOK_SECRET", ""),

            payment_simulation_mode=_flag("PAYMENT_SIMULATION_MODE"),
            provider_timeout_s=float(os.getenv("PROVIDER_TIMEOUT_S", "15")),

            db_pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            db_max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
            db_pool_timeout=int(os.getenv("DB_POOL_TIMEOUT", "30")),
            db_pool_recycle=int(os.getenv("DB_POOL_RECYCLE", "1800")),
        )


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
