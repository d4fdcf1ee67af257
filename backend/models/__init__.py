"""Database models."""

from .event import PolymarketEvent
from .market import PolymarketMarket
from .outcome import PolymarketOutcome
from .event_tag import PolymarketEventTag
from .tag import Tag
from .bookmark import Bookmark
from .job_run import JobRun

__all__ = [
    "PolymarketEvent",
    "PolymarketMarket",
    "PolymarketOutcome",
    "PolymarketEventTag",
    "Tag",
    "Bookmark",
    "JobRun",
]
