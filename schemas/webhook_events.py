"""
Typed webhook events.

Each provider's payload is parsed into one variant of a tagged union keyed by
its event-type string before anything reads it. Event types we don't handle
parse to ``None`` so the router can acknowledge them without touching the
database; a handled type with a malformed body raises WebhookPayloadError.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, ValidationError

from services.errors import WebhookPayloadError

T = TypeVar("T")


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _expandable_id(value: Any) -> Any:
    # Stripe fields like `customer` are either an id or the expanded object
    if isinstance(value, dict):
        return value.get("id")
    return value


ExpandableId = Annotated[Optional[str], BeforeValidator(_expandable_id)]


# ============================================================================
# STRIPE
# ============================================================================

class StripePrice(_Lenient):
    id: str


class StripeSubscriptionItem(_Lenient):
    price: StripePrice
    # newer API versions moved the billing period onto the item
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeItemList(_Lenient):
    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscription(_Lenient):
    id: str
    customer: ExpandableId = None
    status: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    items: StripeItemList = Field(default_factory=StripeItemList)
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False

    @property
    def first_item(self) -> Optional[StripeSubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def price_id(self) -> Optional[str]:
        item = self.first_item
        return item.price.id if item else None

    @property
    def period_start(self) -> Optional[int]:
        if self.current_period_start is not None:
            return self.current_period_start
        item = self.first_item
        return item.current_period_start if item else None

    @property
    def period_end(self) -> Optional[int]:
        if self.current_period_end is not None:
            return self.current_period_end
        item = self.first_item
        return item.current_period_end if item else None


class StripeInvoice(_Lenient):
    id: str
    subscription: ExpandableId = None
    parent: Optional[Dict[str, Any]] = None

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return self.subscription
        details = (self.parent or {}).get("subscription_details") or {}
        return _expandable_id(details.get("subscription"))


class StripeCheckoutSession(_Lenient):
    id: str
    mode: str
    subscription: ExpandableId = None
    customer: ExpandableId = None
    client_reference_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    amount_total: Optional[int] = None
    currency: Optional[str] = None


class EventData(_Lenient, Generic[T]):
    object: T


class StripeSubscriptionUpserted(_Lenient):
    type: Literal["customer.subscription.created", "customer.subscription.updated"]
    id: str
    data: EventData[StripeSubscription]


class StripeSubscriptionDeleted(_Lenient):
    type: Literal["customer.subscription.deleted"]
    id: str
    data: EventData[StripeSubscription]


class StripeInvoicePaid(_Lenient):
    type: Literal["invoice.payment_succeeded", "invoice.paid"]
    id: str
    data: EventData[StripeInvoice]


class StripeInvoicePaymentFailed(_Lenient):
    type: Literal["invoice.payment_failed"]
    id: str
    data: EventData[StripeInvoice]


class StripeCheckoutCompleted(_Lenient):
    type: Literal["checkout.session.completed"]
    id: str
    data: EventData[StripeCheckoutSession]


StripeEvent = Annotated[
    Union[
        StripeSubscriptionUpserted,
        StripeSubscriptionDeleted,
        StripeInvoicePaid,
        StripeInvoicePaymentFailed,
        StripeCheckoutCompleted,
    ],
    Field(discriminator="type"),
]

STRIPE_EVENT_TYPES = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.payment_succeeded",
    "invoice.paid",
    "invoice.payment_failed",
    "checkout.session.completed",
})

_stripe_adapter: TypeAdapter = TypeAdapter(StripeEvent)


# ============================================================================
# PAYPAL
# ============================================================================

class PayPalBillingInfo(_Lenient):
    next_billing_time: Optional[datetime] = None


class PayPalSubscriptionResource(_Lenient):
    id: str
    plan_id: Optional[str] = None
    custom_id: Optional[str] = None  # our user id, set when the subscription is created
    status: Optional[str] = None
    start_time: Optional[datetime] = None
    billing_info: Optional[PayPalBillingInfo] = None


class PayPalSaleResource(_Lenient):
    id: str
    billing_agreement_id: Optional[str] = None


class PayPalSubscriptionUpserted(_Lenient):
    event_type: Literal[
        "BILLING.SUBSCRIPTION.ACTIVATED",
        "BILLING.SUBSCRIPTION.UPDATED",
        "BILLING.SUBSCRIPTION.RE-ACTIVATED",
    ]
    id: str
    resource: PayPalSubscriptionResource


class PayPalSubscriptionEnded(_Lenient):
    event_type: Literal["BILLING.SUBSCRIPTION.CANCELLED", "BILLING.SUBSCRIPTION.EXPIRED"]
    id: str
    resource: PayPalSubscriptionResource


class PayPalSubscriptionPaymentProblem(_Lenient):
    event_type: Literal["BILLING.SUBSCRIPTION.SUSPENDED", "BILLING.SUBSCRIPTION.PAYMENT.FAILED"]
    id: str
    resource: PayPalSubscriptionResource


class PayPalSaleCompleted(_Lenient):
    event_type: Literal["PAYMENT.SALE.COMPLETED"]
    id: str
    resource: PayPalSaleResource


PayPalEvent = Annotated[
    Union[
        PayPalSubscriptionUpserted,
        PayPalSubscriptionEnded,
        PayPalSubscriptionPaymentProblem,
        PayPalSaleCompleted,
    ],
    Field(discriminator="event_type"),
]

PAYPAL_EVENT_TYPES = frozenset({
    "BILLING.SUBSCRIPTION.ACTIVATED",
    "BILLING.SUBSCRIPTION.UPDATED",
    "BILLING.SUBSCRIPTION.RE-ACTIVATED",
    "BILLING.SUBSCRIPTION.CANCELLED",
    "BILLING.SUBSCRIPTION.EXPIRED",
    "BILLING.SUBSCRIPTION.SUSPENDED",
    "BILLING.SUBSCRIPTION.PAYMENT.FAILED",
    "PAYMENT.SALE.COMPLETED",
})

_paypal_adapter: TypeAdapter = TypeAdapter(PayPalEvent)


# ============================================================================
# COINBASE COMMERCE
# ============================================================================

class CoinbaseMoney(_Lenient):
    amount: Decimal
    currency: str


class CoinbasePricing(_Lenient):
    local: Optional[CoinbaseMoney] = None


class CoinbaseCharge(_Lenient):
    id: str
    code: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    pricing: Optional[CoinbasePricing] = None


class CoinbaseChargeConfirmed(_Lenient):
    type: Literal["charge:confirmed"]
    id: str
    data: CoinbaseCharge


class CoinbaseChargeNotice(_Lenient):
    type: Literal["charge:failed", "charge:delayed", "charge:pending"]
    id: str
    data: CoinbaseCharge


CoinbaseEvent = Annotated[
    Union[CoinbaseChargeConfirmed, CoinbaseChargeNotice],
    Field(discriminator="type"),
]

COINBASE_EVENT_TYPES = frozenset({"charge:confirmed", "charge:failed", "charge:delayed", "charge:pending"})

_coinbase_adapter: TypeAdapter = TypeAdapter(CoinbaseEvent)


# ============================================================================
# PARSERS
# ============================================================================

def _parse(adapter: TypeAdapter, payload: Any, type_key: str, known: frozenset):
    if not isinstance(payload, dict):
        raise WebhookPayloadError("Webhook payload must be a JSON object")
    if payload.get(type_key) not in known:
        return None
    try:
        return adapter.validate_python(payload)
    except ValidationError as exc:
        raise WebhookPayloadError(f"Malformed {payload.get(type_key)} event: {exc.error_count()} error(s)") from exc


def parse_stripe_event(payload: Any) -> Optional[StripeEvent]:
    return _parse(_stripe_adapter, payload, "type", STRIPE_EVENT_TYPES)


def parse_paypal_event(payload: Any) -> Optional[PayPalEvent]:
    return _parse(_paypal_adapter, payload, "event_type", PAYPAL_EVENT_TYPES)


def parse_coinbase_event(payload: Any) -> Optional[CoinbaseEvent]:
    """Coinbase wraps the event: {"id": ..., "event": {"type": ..., "data": ...}}."""
    if not isinstance(payload, dict):
        raise WebhookPayloadError("Webhook payload must be a JSON object")
    return _parse(_coinbase_adapter, payload.get("event"), "type", COINBASE_EVENT_TYPES)
