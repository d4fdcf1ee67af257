"""Event model for storing Polymarket events."""

from datetime import datetime
from typing import Optional
from sqlalchemy import BigInteger, String, Text, DateTime, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


EVENT_STATUSES = ("draft", "active", "resolved", "archived")


class PolymarketEvent(Base):
    """A top-level prediction topic grouping one or more markets.

    `status` is derived from the upstream active/closed/archived flags at
    sync time, see services.event_transform.derive_event_status.
    """

    __tablename__ = "polymarket_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)

    # Display
    title: Mapped[str] = mapped_column(Text, nullable=False)
    icon_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rules: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Lifecycle: draft, active, resolved, archived
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    # Risk flags
    show_market_icons: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    enable_neg_risk: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    neg_risk_augmented: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    neg_risk: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    neg_risk_market_id: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)

    # Market counts
    active_markets_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_markets_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Timing
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<PolymarketEvent {self.id}: {self.title[:50]}>"
