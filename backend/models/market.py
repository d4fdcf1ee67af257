"""Market model for storing Polymarket market data."""

from datetime import datetime
from typing import Optional
from sqlalchemy import BigInteger, String, Text, DateTime, Numeric, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class PolymarketMarket(Base):
    """A single yes/no or multi-outcome question within an event.

    Outcomes are not linked by foreign key. They carry the market's
    condition_id and are matched to it at read time.
    """

    __tablename__ = "polymarket_markets"

    # Primary identifiers
    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    event_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("polymarket_events.id"),
        nullable=False,
        index=True,
    )
    condition_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    slug: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    # Market details
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    short_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    question: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolution_source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    icon_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Negative-risk grouping
    neg_risk: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    neg_risk_other: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    neg_risk_market_id: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    neg_risk_request_id: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)

    # Status
    is_active: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    is_closed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    # Market metrics
    volume_24h: Mapped[Optional[float]] = mapped_column(Numeric(20, 6), nullable=True)
    volume: Mapped[Optional[float]] = mapped_column(Numeric(20, 6), nullable=True)

    # Timing
    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<PolymarketMarket {self.id}: {(self.question or '')[:50]}>"
