"""SQLAlchemy ORM models for ledger tables (DDL reference only — queries use raw SQL)."""
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.mk_common.database import Base


class ListingORM(Base):
    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True)
    seller_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seller_address: Mapped[str] = mapped_column(String(128), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(30, 6), nullable=False)
    full_price: Mapped[Decimal | None] = mapped_column(Numeric(30, 6), nullable=True)
    access_type: Mapped[str] = mapped_column(String(20), nullable=False, default="lifetime")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    pending_action: Mapped[str | None] = mapped_column(String(10), nullable=True)
    tx_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    confirmations: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONB, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    prior_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    prior_tx_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    prior_price: Mapped[Decimal | None] = mapped_column(Numeric(30, 6), nullable=True)
    prior_full_price: Mapped[Decimal | None] = mapped_column(Numeric(30, 6), nullable=True)
    prior_confirmations: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class PurchaseORM(Base):
    __tablename__ = "purchases"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True)
    buyer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    listing_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("listings.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(30, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False, default="ADA")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    tx_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    confirmations: Mapped[int | None] = mapped_column(Integer, nullable=True)
    subscription_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    subscription_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class FeeORM(Base):
    __tablename__ = "fees"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True)
    purchase_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("purchases.id"), nullable=False, unique=True
    )
    fee_amount: Mapped[Decimal] = mapped_column(Numeric(30, 6), nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
