"""Tag model used for category filtering."""

from typing import Optional
from sqlalchemy import BigInteger, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class Tag(Base):
    """A browsable category such as "politics" or "crypto"."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Tag {self.id}: {self.slug}>"
