"""Turn raw Gamma API events into rows for the four sync tables.

Everything here is pure: no I/O, no database. The sync service feeds each
fetched page through build_page_records() and upserts the result.
"""

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from dateutil.parser import parse as parse_date

logger = logging.getLogger(__name__)


def derive_event_status(raw_event: dict) -> str:
    """Map upstream flags to a lifecycle status.

    Priority is archived > closed > active; an event with none of them set
    is a draft.
    """
    if bool(raw_event.get("archived")):
        return "archived"
    if bool(raw_event.get("closed")):
        return "resolved"
    if bool(raw_event.get("active")):
        return "active"
    return "draft"


def parse_json_array(value, field_name: str = "", market_id=None) -> List[str]:
    """Parse a Gamma "JSON string of a list" field into a list of strings.

    Gamma encodes clobTokenIds and outcomes as strings like '["Yes", "No"]'.
    A native list is accepted too. Non-string items are dropped and any
    parse failure yields an empty list.
    """
    if value is None or value == "":
        return []

    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            logger.warning(
                f"Market {market_id}: could not parse {field_name}, using empty list. Raw: {value!r}"
            )
            return []

    if not isinstance(value, list):
        logger.warning(f"Market {market_id}: {field_name} is not a list, using empty list")
        return []

    return [item for item in value if isinstance(item, str)]


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an upstream timestamp into naive UTC, None if unusable."""
    if not value:
        return None
    try:
        if isinstance(value, str):
            parsed = parse_date(value)
        elif isinstance(value, (int, float)):
            # Epoch milliseconds or seconds
            seconds = value / 1000 if value > 1e12 else value
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        else:
            return None
    except (ValueError, OverflowError, OSError):
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_big_int(value) -> Optional[int]:
    """Upstream ids arrive as strings ("16167") or numbers."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def parse_volume(value) -> Optional[float]:
    """Volumes come as numbers or numeric strings; keep finite, non-negative values."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed):
        return None
    return max(parsed, 0.0)


def optional_bool(value) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


def build_outcome_rows(raw_market: dict, now: datetime) -> List[dict]:
    """Zip clobTokenIds with outcome labels for one market.

    Outcomes are all-or-nothing: when the two arrays differ in length, or
    are empty, no outcome rows are produced for the market.
    """
    market_id = raw_market.get("id")
    token_ids = parse_json_array(raw_market.get("clobTokenIds"), "clobTokenIds", market_id)
    labels = parse_json_array(raw_market.get("outcomes"), "outcomes", market_id)

    if not token_ids or len(token_ids) != len(labels):
        logger.warning(
            f"Market {market_id}: clobTokenIds and outcomes mismatch or empty "
            f"(clobTokenIds: {len(token_ids)}, outcomes: {len(labels)})"
        )
        return []

    condition_id = raw_market.get("conditionId")
    if not condition_id:
        logger.warning(f"Market {market_id}: no conditionId, skipping its outcomes")
        return []

    created_at = parse_timestamp(raw_market.get("createdAt")) or now
    updated_at = parse_timestamp(raw_market.get("updatedAt")) or now

    return [
        {
            "token_id": token_id,
            "condition_id": condition_id,
            "outcome_text": label,
            "outcome_index": index,
            "created_at": created_at,
            "updated_at": updated_at,
        }
        for index, (token_id, label) in enumerate(zip(token_ids, labels))
    ]


def build_market_row(raw_market: dict, event_id: int, now: datetime) -> Optional[dict]:
    market_id = parse_big_int(raw_market.get("id"))
    if market_id is None:
        return None

    return {
        "id": market_id,
        "event_id": event_id,
        "condition_id": raw_market.get("conditionId"),
        "title": raw_market.get("question"),
        "slug": raw_market.get("slug") or str(market_id),
        "short_title": raw_market.get("groupItemTitle"),
        "question": raw_market.get("question"),
        "description": raw_market.get("description"),
        "resolution_source": raw_market.get("resolutionSource"),
        "neg_risk": optional_bool(raw_market.get("negRisk")),
        "neg_risk_other": optional_bool(raw_market.get("negRiskOther")),
        "neg_risk_market_id": raw_market.get("negRiskMarketID"),
        "neg_risk_request_id": raw_market.get("negRiskRequestID"),
        "icon_url": raw_market.get("icon"),
        "is_active": optional_bool(raw_market.get("active")),
        "is_closed": optional_bool(raw_market.get("closed")),
        "volume_24h": parse_volume(raw_market.get("volume24hr")),
        "volume": parse_volume(raw_market.get("volume")),
        "start_time": parse_timestamp(raw_market.get("startDate")),
        "end_time": parse_timestamp(raw_market.get("endDate")),
        "created_at": parse_timestamp(raw_market.get("createdAt")) or now,
        "updated_at": parse_timestamp(raw_market.get("updatedAt")) or now,
    }


def build_event_row(raw_event: dict, event_id: int, markets: List[dict], now: datetime) -> dict:
    active_markets = [
        m for m in markets if m.get("is_active") and not m.get("is_closed")
    ]
    return {
        "id": event_id,
        "slug": raw_event.get("slug"),
        "title": raw_event.get("title") or "",
        "icon_url": raw_event.get("icon"),
        "rules": raw_event.get("description"),
        "status": derive_event_status(raw_event),
        "show_market_icons": optional_bool(raw_event.get("showMarketImages")),
        "enable_neg_risk": optional_bool(raw_event.get("enableNegRisk")),
        "neg_risk_augmented": optional_bool(raw_event.get("negRiskAugmented")),
        "neg_risk": optional_bool(raw_event.get("negRisk")),
        "neg_risk_market_id": raw_event.get("negRiskMarketID"),
        "active_markets_count": len(active_markets),
        "total_markets_count": len(markets),
        "end_date": parse_timestamp(raw_event.get("endDate")),
        "created_at": parse_timestamp(raw_event.get("createdAt")) or now,
        "updated_at": parse_timestamp(raw_event.get("updatedAt")) or now,
    }


@dataclass
class PageRecords:
    """Rows extracted from one page of events, keyed for de-duplication."""

    events: Dict[int, dict] = field(default_factory=dict)
    markets: Dict[int, dict] = field(default_factory=dict)
    outcomes: Dict[str, dict] = field(default_factory=dict)
    tags: Dict[Tuple[int, int], dict] = field(default_factory=dict)

    @property
    def counts(self) -> Dict[str, int]:
        return {
            "events": len(self.events),
            "markets": len(self.markets),
            "outcomes": len(self.outcomes),
            "tags": len(self.tags),
        }


def build_page_records(raw_events: list, now: Optional[datetime] = None) -> PageRecords:
    """Transform one page of raw Gamma events.

    Rows are keyed by their upsert identity so that an entity repeated within
    a page is written once (last occurrence wins). Events without a numeric
    id or a slug are skipped along with their markets.
    """
    now = now or datetime.utcnow()
    records = PageRecords()

    for raw_event in raw_events:
        if not isinstance(raw_event, dict):
            continue

        event_id = parse_big_int(raw_event.get("id"))
        if event_id is None or not raw_event.get("slug"):
            logger.warning(f"Skipping event {raw_event.get('id')!r}: missing id or slug")
            continue

        markets = []
        raw_markets = raw_event.get("markets")
        if isinstance(raw_markets, list):
            for raw_market in raw_markets:
                if not isinstance(raw_market, dict):
                    continue
                market_row = build_market_row(raw_market, event_id, now)
                if market_row is None:
                    logger.warning(f"Event {event_id}: skipping market with invalid id {raw_market.get('id')!r}")
                    continue
                markets.append(market_row)
                records.markets[market_row["id"]] = market_row

                for outcome_row in build_outcome_rows(raw_market, now):
                    records.outcomes[outcome_row["token_id"]] = outcome_row

        records.events[event_id] = build_event_row(raw_event, event_id, markets, now)

        raw_tags = raw_event.get("tags")
        if isinstance(raw_tags, list):
            for raw_tag in raw_tags:
                tag_id = parse_big_int(raw_tag.get("id")) if isinstance(raw_tag, dict) else None
                if tag_id is None:
                    continue
                records.tags[(event_id, tag_id)] = {"event_id": event_id, "tag_id": tag_id}

    return records
