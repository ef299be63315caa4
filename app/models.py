import uuid
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from .db import Base

MARKET_STATUS_ACTIVE = "active"
MARKET_STATUS_CLOSED = "closed"


class Market(Base):
    __tablename__ = "markets"
    __table_args__ = (
        UniqueConstraint("external_id", name="uq_markets_external_id"),
        Index("ix_markets_status_created", "status", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    external_id: Mapped[str] = mapped_column(String(128), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    category: Mapped[str] = mapped_column(String(64), default="Other")
    icon: Mapped[str] = mapped_column(String(16), default="📊")
    status: Mapped[str] = mapped_column(String(16), default=MARKET_STATUS_ACTIVE, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime, default=func.now(), nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(DateTime, default=func.now(), nullable=False)

    options: Mapped[list["MarketOption"]] = relationship(
        back_populates="market",
        cascade="all, delete-orphan",
        order_by="MarketOption.id",
    )


class MarketOption(Base):
    __tablename__ = "market_options"
    __table_args__ = (
        UniqueConstraint("market_id", "title", name="uq_market_options_market_title"),
        UniqueConstraint("market_id", "external_id", name="uq_market_options_market_external_id"),
        CheckConstraint(
            "current_probability >= 0 AND current_probability <= 100",
            name="ck_market_options_probability_range",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    market_id: Mapped[int] = mapped_column(
        ForeignKey("markets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(160), nullable=True)
    current_probability: Mapped[int] = mapped_column(Integer, nullable=False)  # cents, 0-100
    updated_at: Mapped[DateTime] = mapped_column(DateTime, default=func.now(), nullable=False)

    market: Mapped[Market] = relationship(back_populates="options")


class ProbabilityHistory(Base):
    __tablename__ = "probability_history"
    __table_args__ = (
        Index("ix_probability_history_market_recorded", "market_id", "recorded_at"),
        Index("ix_probability_history_option_recorded", "option_id", "recorded_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    market_id: Mapped[int] = mapped_column(ForeignKey("markets.id", ondelete="CASCADE"), nullable=False)
    option_id: Mapped[int] = mapped_column(
        ForeignKey("market_options.id", ondelete="CASCADE"),
        nullable=False,
    )
    probability: Mapped[int] = mapped_column(Integer, nullable=False)
    recorded_at: Mapped[DateTime] = mapped_column(DateTime, default=func.now(), nullable=False)


class UserProfile(Base):
    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_profiles_balance_non_negative"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    # Bumped on every debit; the ledger's compare-and-swap key.
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime, default=func.now(), nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(DateTime, default=func.now(), nullable=False)


class Position(Base):
    __tablename__ = "positions"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_positions_quantity_positive"),
        Index("ix_positions_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    market_id: Mapped[int] = mapped_column(ForeignKey("markets.id"), nullable=False)
    option_id: Mapped[int] = mapped_column(ForeignKey("market_options.id"), nullable=False)
    outcome: Mapped[str] = mapped_column(String(256), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_share: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)  # 0-1
    total_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime, default=func.now(), nullable=False)

    market: Mapped[Market] = relationship()
