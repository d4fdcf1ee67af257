"""Outcome model: one priceable position within a market."""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, DateTime, Boolean, SmallInteger
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class PolymarketOutcome(Base):
    """A CLOB token belonging to the market that holds its condition_id."""

    __tablename__ = "polymarket_outcomes"

    token_id: Mapped[str] = mapped_column(Text, primary_key=True)
    condition_id: Mapped[str] = mapped_column(String(66), nullable=False, index=True)

    outcome_text: Mapped[str] = mapped_column(Text, nullable=False)
    # 0 = YES, 1 = NO for binary markets; position in the upstream list otherwise
    outcome_index: Mapped[Optional[int]] = mapped_column(SmallInteger, nullable=True)
    is_winning_outcome: Mapped[Optional[bool]] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<PolymarketOutcome {self.token_id[:16]} {self.outcome_text!r}>"
