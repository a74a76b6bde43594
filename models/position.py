from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

POSITION_CATEGORY_VALUES = ("stock", "commodity", "hedge", "cash", "cryptocurrency")
POSITION_TYPE_VALUES = ("long", "short")
POSITION_SIZE_TYPE_VALUES = ("capital", "units", "pips")
ANALYSIS_TREND_VALUES = ("bullish", "bearish", "neutral")
ANALYSIS_ENTRY_STRATEGY_VALUES = ("level", "candlePattern", "formationRetest")
DEFAULT_ENTRY_STRATEGY = "level"

CATEGORY_LABELS = {
    "stock": "Akcje",
    "commodity": "Surowiec",
    "hedge": "Zabezpieczenie",
    "cash": "Gotówka",
    "cryptocurrency": "Kryptowaluty",
}


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class Position(Base):
    __tablename__ = "portfolio_positions"
    __table_args__ = (
        UniqueConstraint("symbol", name="uq_portfolio_positions_symbol"),
        CheckConstraint(_in_list("category", POSITION_CATEGORY_VALUES), name="ck_portfolio_positions_category"),
        CheckConstraint(_in_list("position_type", POSITION_TYPE_VALUES), name="ck_portfolio_positions_type"),
        CheckConstraint(
            "position_size_type IS NULL OR " + _in_list("position_size_type", POSITION_SIZE_TYPE_VALUES),
            name="ck_portfolio_positions_size_type",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    symbol: Mapped[str] = mapped_column(String(64))
    quote_symbol: Mapped[str | None] = mapped_column(String(128), nullable=True)
    name: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(32))
    position_type: Mapped[str] = mapped_column(String(16))
    purchase_price_label: Mapped[str] = mapped_column(Text)
    position_currency: Mapped[str | None] = mapped_column(String(8), nullable=True)

    # sizing (all empty when no size type was given)
    position_size_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    position_size_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    position_size_label: Mapped[str | None] = mapped_column(Text, nullable=True)
    position_size_per_pip: Mapped[float | None] = mapped_column(Float, nullable=True)
    position_size_per_pip_label: Mapped[str | None] = mapped_column(Text, nullable=True)
    position_total_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    position_total_value_currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    position_total_value_label: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    snapshots = relationship(
        "PositionSnapshot",
        back_populates="position",
        cascade="all, delete-orphan",
        order_by="PositionSnapshot.recorded_at",
    )
    analysis = relationship(
        "PositionAnalysis",
        back_populates="position",
        uselist=False,
        cascade="all, delete-orphan",
    )


class PositionSnapshot(Base):
    """Immutable valuation of a position at `recorded_at`."""

    __tablename__ = "portfolio_position_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True)
    position_id: Mapped[int] = mapped_column(ForeignKey("portfolio_positions.id", ondelete="CASCADE"), index=True)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    current_price_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    current_price_currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    current_price_label: Mapped[str] = mapped_column(Text, nullable=False)
    return_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    return_label: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    position = relationship("Position", back_populates="snapshots")


Index(
    "ix_portfolio_position_snapshots_latest",
    PositionSnapshot.position_id,
    PositionSnapshot.recorded_at.desc(),
)


class PositionAnalysis(Base):
    """Trade plan attached to a position; at most one per position."""

    __tablename__ = "portfolio_position_analyses"
    __table_args__ = (
        UniqueConstraint("position_id", name="uq_portfolio_position_analyses_position_id"),
        CheckConstraint(_in_list("trend", ANALYSIS_TREND_VALUES), name="ck_portfolio_position_analyses_trend"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    position_id: Mapped[int] = mapped_column(ForeignKey("portfolio_positions.id", ondelete="CASCADE"))
    trend: Mapped[str] = mapped_column(String(16))
    target_tp1: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_tp2: Mapped[str | None] = mapped_column(Text, nullable=True)
    target_tp3: Mapped[str | None] = mapped_column(Text, nullable=True)
    stop_loss: Mapped[str] = mapped_column(Text)
    summary: Mapped[str] = mapped_column(Text)
    analysis_image: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0", nullable=False)
    completion_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    position_closed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0", nullable=False)
    position_closed_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    position_closed_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    entry_strategy: Mapped[str] = mapped_column(String(32), default=DEFAULT_ENTRY_STRATEGY, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    position = relationship("Position", back_populates="analysis")


class PositionAnalysisOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    trend: str
    targets: Dict[str, str] = Field(default_factory=dict)   # only tp1..tp3 that are set
    stop_loss: str = ""
    summary: str = ""
    analysis_image: Optional[str] = None
    completed: bool = False
    completion_note: Optional[str] = None
    completion_date: Optional[datetime] = None
    position_closed: bool = False
    position_closed_note: Optional[str] = None
    position_closed_date: Optional[datetime] = None
    entry_strategy: str = DEFAULT_ENTRY_STRATEGY


class PositionOut(BaseModel):
    """Position as served by the API: metadata plus its current valuation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str                                  # slug, the public identifier
    database_id: int
    slug: str
    symbol: str
    quote_symbol: str | None = None
    name: str
    category: str
    category_name: str
    position_type: str
    purchase_price: str

    position_size_type: str | None = None
    position_size_value: float | None = None
    position_size_label: str | None = None
    position_size_per_pip_value: float | None = None
    position_size_per_pip_label: str | None = None
    position_total_value: float | None = None
    position_total_value_currency: str | None = None
    position_total_value_label: str | None = None

    current_price: str | None = None
    current_price_value: float | None = None
    current_price_currency: str | None = None
    return_label: str = Field(alias="return")
    return_value: float = 0.0
    latest_price_updated_at: datetime | None = None
    analysis: PositionAnalysisOut | None = None
