from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from services.plan_catalog import BillingInterval, PlanType


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlanOut(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    type: str
    name: str
    description: str
    price_monthly: Decimal
    price_yearly: Decimal
    features: list[str] = Field(default_factory=list)
    monthly_download_limit: Optional[int] = None


class SubscriptionOut(_CamelModel):
    active: bool
    plan_type: Optional[str] = None
    billing_interval: Optional[str] = None
    status: Optional[str] = None
    payment_provider: Optional[str] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    downloads_used: int = 0
    downloads_limit: Optional[int] = None


class ImageCheckoutIn(_CamelModel):
    image_id: str
    license_type: str = "standard"


class SubscriptionCheckoutIn(_CamelModel):
    plan_type: PlanType
    billing_interval: BillingInterval = "monthly"


class CheckoutOut(_CamelModel):
    url: str
    session_id: Optional[str] = None
    simulated: bool = False


class PortalOut(_CamelModel):
    url: str


class CancelOut(_CamelModel):
    ok: bool
    cancel_at_period_end: bool


class PayPalActivateIn(_CamelModel):
    subscription_id: str
    plan_type: PlanType
    billing_interval: BillingInterval = "monthly"


class PayPalCaptureIn(_CamelModel):
    order_id: str
    image_id: str
    license_type: str = "standard"


class CryptoCheckoutOut(_CamelModel):
    hosted_url: str
    code: Optional[str] = None
    simulated: bool = False


class ActivationOut(_CamelModel):
    success: bool
    message: str


class CaptureOut(_CamelModel):
    success: bool
    recorded: bool
