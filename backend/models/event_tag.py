"""Association between Polymarket events and tags."""

from sqlalchemy import BigInteger, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class PolymarketEventTag(Base):
    """(event_id, tag_id) pair.

    tag_id is copied from the upstream payload and is not checked against
    the tags table.
    """

    __tablename__ = "polymarket_event_tags"

    event_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("polymarket_events.id"),
        primary_key=True,
    )
    tag_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, index=True)

    def __repr__(self) -> str:
        return f"<PolymarketEventTag event={self.event_id} tag={self.tag_id}>"
