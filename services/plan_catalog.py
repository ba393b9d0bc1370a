# services/plan_catalog.py
"""
Subscription plan catalog.

Usage:
    from services.plan_catalog import get_plan, plan_for_price_id

    plan = get_plan("premium")
    plan.monthly_download_limit   # 200  (None = unlimited)

    plan_for_price_id("price_123", settings.stripe_price_ids)
    # -> ("premium", "monthly") or None

The download limit is a typed field; the feature strings are display copy
only and are never parsed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Literal, Optional, Tuple

from config.settings import BILLING_INTERVALS, PriceIdTable
from services.errors import ConfigurationError

PlanType = Literal["standard", "premium", "commercial"]
BillingInterval = Literal["monthly", "yearly"]


@dataclass(frozen=True)
class SubscriptionPlan:
    type: str
    name: str
    description: str
    price_monthly: Decimal
    price_yearly: Decimal
    features: List[str] = field(default_factory=list)
    monthly_download_limit: Optional[int] = None  # None = unlimited

    @property
    def is_unlimited(self) -> bool:
        return self.monthly_download_limit is None


# ─── Plan definitions ────────────────────────────────────────────

SUBSCRIPTION_PLANS: Dict[str, SubscriptionPlan] = {
    "standard": SubscriptionPlan(
        type="standard",
        name="Standard Plan",
        description="Perfect for personal use and small projects",
        price_monthly=Decimal("9.99"),
        price_yearly=Decimal("99.99"),
        features=[
            "Access to standard quality images",
            "Basic usage rights",
            "Download up to 50 images/month",
            "Email support",
        ],
        monthly_download_limit=50,
    ),
    "premium": SubscriptionPlan(
        type="premium",
        name="Premium Plan",
        description="Great for professionals and growing businesses",
        price_monthly=Decimal("19.99"),
        price_yearly=Decimal("199.99"),
        features=[
            "Access to premium quality images",
            "Extended usage rights",
            "Download up to 200 images/month",
            "Priority email support",
            "Advanced filters and search",
        ],
        monthly_download_limit=200,
    ),
    "commercial": SubscriptionPlan(
        type="commercial",
        name="Commercial Plan",
        description="Everything you need for large-scale commercial use",
        price_monthly=Decimal("39.99"),
        price_yearly=Decimal("399.99"),
        features=[
            "Access to all images",
            "Full commercial usage rights",
            "Unlimited downloads",
            "Priority phone support",
            "Early access to new features",
            "Custom licensing options",
        ],
        monthly_download_limit=None,
    ),
}


# ─── Helpers ─────────────────────────────────────────────────────

def get_plan(plan_type: Optional[str]) -> Optional[SubscriptionPlan]:
    if not plan_type:
        return None
    return SUBSCRIPTION_PLANS.get(plan_type)


def list_plans() -> List[SubscriptionPlan]:
    return list(SUBSCRIPTION_PLANS.values())


def plan_for_price_id(
    price_id: Optional[str],
    price_ids: PriceIdTable,
) -> Optional[Tuple[str, str]]:
    """Reverse lookup of a provider price/plan id to (plan_type, billing_interval)."""
    if not price_id:
        return None
    for plan_type, intervals in price_ids.items():
        for interval, configured in intervals.items():
            if configured and configured == price_id:
                return plan_type, interval
    return None


def price_id_for(plan_type: str, interval: str, price_ids: PriceIdTable) -> str:
    if plan_type not in SUBSCRIPTION_PLANS:
        raise ValueError(f"Invalid plan type: {plan_type}")
    if interval not in BILLING_INTERVALS:
        raise ValueError(f"Invalid billing interval: {interval}")

    price_id = (price_ids.get(plan_type) or {}).get(interval)
    if not price_id:
        raise ConfigurationError(f"No provider price id configured for {plan_type}/{interval}")
    return price_id


# ─── One-off image licenses ──────────────────────────────────────

@dataclass(frozen=True)
class ImageLicense:
    type: str
    name: str
    description: str
    amount: int  # minor currency units
    currency: str = "usd"

    @property
    def amount_decimal(self) -> Decimal:
        return (Decimal(self.amount) / 100).quantize(Decimal("0.01"))


IMAGE_LICENSES: Dict[str, ImageLicense] = {
    "standard": ImageLicense(
        type="standard",
        name="Standard Image License",
        description="High-quality image download with standard usage rights",
        amount=500,
    ),
    "premium": ImageLicense(
        type="premium",
        name="Premium Image License",
        description="High-quality image download with extended usage rights",
        amount=1500,
    ),
    "commercial": ImageLicense(
        type="commercial",
        name="Commercial Image License",
        description="High-quality image download with full commercial usage rights",
        amount=3000,
    ),
}


def get_license(license_type: Optional[str]) -> Optional[ImageLicense]:
    if not license_type:
        return None
    return IMAGE_LICENSES.get(license_type)
