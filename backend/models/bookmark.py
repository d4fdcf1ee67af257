"""Bookmark model for events a user is following."""

from datetime import datetime
from sqlalchemy import BigInteger, String, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class Bookmark(Base):
    """An event bookmarked by a user.

    Rows are written by the user-facing part of the application; the events
    listing only reads them.
    """

    __tablename__ = "bookmarks"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("polymarket_events.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Bookmark user={self.user_id} event={self.event_id}>"
