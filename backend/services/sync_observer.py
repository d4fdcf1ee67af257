"""Structured log checkpoints for the sync and pricing paths.

Business logic reports what happened through a SyncObserver instead of
writing log lines itself. Each checkpoint produces one log record whose
`checkpoint` and `fields` attributes are picked up by the JSON formatter
configured in main.py.
"""

import logging
from typing import Optional


class SyncObserver:
    """Default observer: writes every checkpoint to the standard logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("sync")

    def _emit(self, level: int, checkpoint: str, message: str, **fields) -> None:
        self.logger.log(
            level,
            message,
            extra={"checkpoint": checkpoint, "fields": fields},
        )

    # ---- ingestion ----

    def sync_started(self, page_size: int) -> None:
        self._emit(logging.INFO, "sync_started", f"Starting Polymarket events sync (page size {page_size})", page_size=page_size)

    def page_fetched(self, page: int, offset: int, count: int) -> None:
        self._emit(
            logging.INFO,
            "page_fetched",
            f"Page {page}: fetched {count} events at offset={offset}",
            page=page, offset=offset, count=count,
        )

    def page_failed(self, page: int, offset: int, error: Exception) -> None:
        self._emit(
            logging.ERROR,
            "page_failed",
            f"Failed to fetch page {page} (offset={offset}): {error}",
            page=page, offset=offset, error=str(error),
        )

    def pagination_stopped(self, page: int, reason: str) -> None:
        self._emit(logging.INFO, "pagination_stopped", f"Page {page}: {reason}, stopping", page=page, reason=reason)

    def batch_upserted(self, entity: str, rows: int) -> None:
        self._emit(logging.INFO, "batch_upserted", f"Upserted {rows} {entity}", entity=entity, rows=rows)

    def batch_failed(self, entity: str, rows: int, error: Exception) -> None:
        self._emit(
            logging.ERROR,
            "batch_failed",
            f"Failed to batch upsert {rows} {entity}: {error}",
            entity=entity, rows=rows, error=str(error),
        )

    def sync_completed(self, total: int, pages: int) -> None:
        self._emit(
            logging.INFO,
            "sync_completed",
            f"Completed: {total} events processed across {pages} pages",
            total=total, pages=pages,
        )

    # ---- pricing ----

    def price_batch_failed(self, size: int, error: Exception) -> None:
        self._emit(
            logging.ERROR,
            "price_batch_failed",
            f"Failed to fetch outcome prices batch ({size} tokens) from CLOB: {error}",
            size=size, error=str(error),
        )

    def price_fetch_aborted(self, unresolved: int) -> None:
        self._emit(
            logging.INFO,
            "price_fetch_aborted",
            f"Price fetch cancelled, {unresolved} tokens fall back to default prices",
            unresolved=unresolved,
        )
