from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (
        # one row per provider checkout; duplicate webhook deliveries hit this
        UniqueConstraint("payment_method", "provider_session_id", name="uq_purchases_provider_session"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    user_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)  # None = anonymous checkout
    image_id: Mapped[str] = mapped_column(ForeignKey("images.id", ondelete="CASCADE"), index=True, nullable=False)

    license_type: Mapped[str] = mapped_column(String(32), default="standard", nullable=False)
    amount_paid: Mapped[int] = mapped_column(Integer, nullable=False)  # minor currency units
    currency: Mapped[str] = mapped_column(String(8), default="usd", nullable=False)

    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)  # stripe | paypal | crypto
    provider_session_id: Mapped[str] = mapped_column(String(128), nullable=False)
    payment_status: Mapped[str] = mapped_column(String(16), default="completed", nullable=False)  # pending | completed | failed

    purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
