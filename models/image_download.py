from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class ImageDownload(Base):
    __tablename__ = "image_downloads"
    __table_args__ = (
        # repeat downloads of the same image in a month count once
        UniqueConstraint(
            "user_id", "image_id", "download_year", "download_month",
            name="uq_image_downloads_user_image_month",
        ),
        Index("ix_image_downloads_user_month", "user_id", "download_year", "download_month"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    image_id: Mapped[str] = mapped_column(ForeignKey("images.id", ondelete="CASCADE"), nullable=False)

    downloaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    download_type: Mapped[str] = mapped_column(String(16), nullable=False)  # subscription | purchase | free

    # UTC calendar month of downloaded_at
    download_year: Mapped[int] = mapped_column(Integer, nullable=False)
    download_month: Mapped[int] = mapped_column(Integer, nullable=False)
