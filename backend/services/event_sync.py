"""Stream the Gamma events catalog into the database, one page at a time."""

import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

import httpx
from sqlalchemy.exc import DataError, IntegrityError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from database import upsert_statement
from errors import APIError, ConfigurationError, NoEventsFoundError, PersistenceError
from models.event import PolymarketEvent
from models.event_tag import PolymarketEventTag
from models.market import PolymarketMarket
from models.outcome import PolymarketOutcome
from services.event_transform import PageRecords, build_page_records
from services.polymarket_client import PolymarketClient
from services.sync_observer import SyncObserver

logger = logging.getLogger(__name__)

# Errors raised by the database for a statement it refused. Anything else
# (lost connection, pool exhaustion, ...) propagates out of the run.
BATCH_REJECTED_ERRORS = (IntegrityError, DataError, ProgrammingError)

# asyncpg refuses statements carrying more bind parameters than this
MAX_BIND_PARAMS = 32767


def chunk_rows(rows: List[dict], max_params: int = MAX_BIND_PARAMS) -> List[List[dict]]:
    """Split rows so that no multi-row INSERT exceeds max_params parameters."""
    if not rows:
        return []
    per_chunk = max(1, max_params // max(len(rows[0]), 1))
    return [rows[i:i + per_chunk] for i in range(0, len(rows), per_chunk)]


class UpsertPolicy(str, Enum):
    """What to do when the database rejects one upsert batch."""

    BEST_EFFORT = "best_effort"  # log it and carry on with the next batch
    FAIL_FAST = "fail_fast"  # abort the run with PersistenceError

    @classmethod
    def from_setting(cls, value: str) -> "UpsertPolicy":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown upsert failure policy {value!r}",
                setting="upsert_failure_policy",
            )


PageHandler = Callable[[list], Awaitable[None]]


class EventSyncService:
    """Synchronizes the Polymarket events catalog into the store.

    Pages are fetched and persisted strictly in sequence. Each page is
    written as four batches (events, markets, outcomes, tags), each in its
    own transaction, so a reader may briefly see a page half written.
    Nothing is ever deleted: entities that disappear upstream stay stored.
    """

    def __init__(
        self,
        client: PolymarketClient,
        session_factory: async_sessionmaker,
        page_size: Optional[int] = None,
        policy: Optional[UpsertPolicy] = None,
        observer: Optional[SyncObserver] = None,
        max_bind_params: int = MAX_BIND_PARAMS,
    ):
        self.client = client
        self.session_factory = session_factory
        self.page_size = page_size or settings.sync_page_size
        self.policy = policy or UpsertPolicy.from_setting(settings.upsert_failure_policy)
        self.observer = observer or SyncObserver(logger)
        self.max_bind_params = max_bind_params

    async def sync(self) -> int:
        """Run one full sync and return the number of upstream events seen.

        Raises APIError if a page cannot be fetched and NoEventsFoundError if
        the catalog came back empty.
        """
        total = await self.fetch_and_process(self.upsert_page)
        if total == 0:
            raise NoEventsFoundError()
        return total

    async def fetch_and_process(self, page_handler: PageHandler) -> int:
        """Page through /events, handing each non-empty page to page_handler.

        Stops on a non-list payload, an empty page or a short page. A
        transport failure aborts the whole run; pages handled before it
        remain persisted.
        """
        self.observer.sync_started(self.page_size)

        offset = 0
        total = 0
        page = 0

        while True:
            page += 1
            try:
                data = await self.client.get_events(limit=self.page_size, offset=offset)
            except httpx.HTTPStatusError as e:
                self.observer.page_failed(page, offset, e)
                raise APIError(
                    f"Failed to fetch events page {page} (offset={offset})",
                    status_code=e.response.status_code,
                    response=e.response.text[:500],
                ) from e
            except httpx.HTTPError as e:
                self.observer.page_failed(page, offset, e)
                raise APIError(f"Failed to fetch events page {page} (offset={offset}): {e}") from e
            except ValueError:
                # Body was not JSON at all
                self.observer.pagination_stopped(page, "no valid data received")
                break

            if not isinstance(data, list):
                self.observer.pagination_stopped(page, "no valid data received")
                break

            if not data:
                self.observer.pagination_stopped(page, "empty response, all data fetched")
                break

            self.observer.page_fetched(page, offset, len(data))
            await page_handler(data)
            total += len(data)

            if len(data) < self.page_size:
                self.observer.pagination_stopped(
                    page, f"received less than limit ({len(data)} < {self.page_size}), reached end"
                )
                break

            offset += self.page_size

        self.observer.sync_completed(total, page)
        return total

    async def upsert_page(self, raw_events: list) -> PageRecords:
        """Transform one page and write it in four ordered batches."""
        records = build_page_records(raw_events)

        async with self.session_factory() as session:
            await self._upsert_batch(
                session, "events", PolymarketEvent, list(records.events.values()), ["id"]
            )
            await self._upsert_batch(
                session, "markets", PolymarketMarket, list(records.markets.values()), ["id"]
            )
            await self._upsert_batch(
                session, "outcomes", PolymarketOutcome, list(records.outcomes.values()), ["token_id"]
            )
            await self._upsert_batch(
                session,
                "tags",
                PolymarketEventTag,
                list(records.tags.values()),
                ["event_id", "tag_id"],
                update_columns=[],
            )

        return records

    async def _upsert_batch(
        self,
        session: AsyncSession,
        entity: str,
        model,
        rows: List[dict],
        index_elements: List[str],
        update_columns: Optional[List[str]] = None,
    ) -> int:
        """Upsert rows, one statement and one transaction per chunk.

        Chunks keep each statement under max_bind_params parameters. A
        rejected chunk is rolled back; under best effort the remaining
        chunks are still written. Returns the number of rows written.
        """
        written = 0
        for chunk in chunk_rows(rows, self.max_bind_params):
            stmt = upsert_statement(session, model, chunk, index_elements, update_columns)
            try:
                await session.execute(stmt)
                await session.commit()
            except BATCH_REJECTED_ERRORS as e:
                await session.rollback()
                self.observer.batch_failed(entity, len(chunk), e)
                if self.policy is UpsertPolicy.FAIL_FAST:
                    raise PersistenceError(
                        f"Failed to batch upsert {entity}", entity=entity, rows=len(chunk)
                    ) from e
                continue

            self.observer.batch_upserted(entity, len(chunk))
            written += len(chunk)

        return written
