# models/user.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class User(Base):
    __tablename__ = "users"

    # Supabase auth.users.id (UUID string)
    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    email: Mapped[str | None] = mapped_column(String(320), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    images = relationship("Image", back_populates="owner")
    customer = relationship("Customer", back_populates="user", uselist=False)
