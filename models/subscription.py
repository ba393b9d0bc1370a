from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, Numeric, String, func, false as sa_false
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    # Supabase auth user id. No FK: webhooks can land before the user's first API call.
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)

    # Upsert key for webhook redelivery
    provider_subscription_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    payment_provider: Mapped[str] = mapped_column(String(16), nullable=False)  # stripe | paypal

    plan_type: Mapped[str] = mapped_column(String(16), nullable=False)         # standard | premium | commercial
    billing_interval: Mapped[str] = mapped_column(String(16), nullable=False)  # monthly | yearly
    status: Mapped[str] = mapped_column(String(16), index=True, nullable=False)  # active | past_due | cancelled | trialing | expired

    current_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    price_monthly: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    price_yearly: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    features: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False, server_default=sa_false(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
