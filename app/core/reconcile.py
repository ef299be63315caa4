from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import MARKET_STATUS_ACTIVE, MARKET_STATUS_CLOSED, Market
from ..quotes.schemas import NEUTRAL_PRICE, NormalizedQuote
from .catalog import BINARY_TITLES, find_option, upsert_market, upsert_option, utcnow
from .categories import classify
from .errors import MalformedQuote
from .history import HistoryRecord, append_history

logger = logging.getLogger(__name__)

# Integer cents compare strictly; the tolerance only matters for fractional feeds.
PROBABILITY_TOLERANCE = 0.01


@dataclass
class ReconcileResult:
    markets_synced: int = 0
    history_records: int = 0
    series_failed: int = 0
    history_error: str | None = None
    market_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "markets_synced": self.markets_synced,
            "history_records": self.history_records,
            "series_failed": self.series_failed,
        }
        if self.history_error:
            payload["history_error"] = self.history_error
        return payload


@dataclass(frozen=True)
class TargetOption:
    title: str
    external_id: str | None
    # None means the source had no price: keep the last known value.
    probability: int | None


def reconcile_quotes(
    db: Session,
    quotes: Iterable[NormalizedQuote],
    observed_at: datetime | None = None,
) -> ReconcileResult:
    """
    Apply one sync pass of quotes to the catalog.

    Each series is committed on its own; a malformed or failing series is
    rolled back, logged and skipped. History records are appended in one batch
    after every series has been processed. A failed append is reported but
    catalog writes stay committed.
    """
    observed_at = observed_at or utcnow()
    result = ReconcileResult()
    pending: list[HistoryRecord] = []

    for series_id, series_quotes in group_by_series(quotes).items():
        try:
            market, records = _reconcile_series(db, series_id, series_quotes, observed_at)
            db.commit()
        except MalformedQuote as exc:
            db.rollback()
            result.series_failed += 1
            logger.warning("sync_series_skipped external_id=%s reason=%s", series_id, exc.message)
            continue
        except SQLAlchemyError:
            db.rollback()
            result.series_failed += 1
            logger.exception("sync_series_failed external_id=%s", series_id)
            continue
        result.markets_synced += 1
        result.market_ids.append(market.id)
        pending.extend(records)

    try:
        result.history_records = append_history(db, pending)
    except SQLAlchemyError:
        logger.exception("sync_history_append_failed records=%s", len(pending))
        result.history_error = "history_append_failed"

    logger.info(
        "sync_reconcile_summary markets_synced=%s history_records=%s series_failed=%s",
        result.markets_synced,
        result.history_records,
        result.series_failed,
    )
    return result


def group_by_series(quotes: Iterable[NormalizedQuote]) -> dict[str, list[NormalizedQuote]]:
    grouped: dict[str, list[NormalizedQuote]] = {}
    for quote in quotes:
        key = (quote.external_series_id or "").strip()
        grouped.setdefault(key, []).append(quote)
    return grouped


def plan_options(quotes: list[NormalizedQuote]) -> list[TargetOption]:
    """
    One quote is a binary market (synthesized Yes/No); several quotes are a
    multi-outcome market with one option per quote.
    """
    if len(quotes) == 1:
        quote = quotes[0]
        ticker = quote.external_option_id
        if not quote.has_price:
            return [TargetOption(title, f"{ticker}-{title}", None) for title in BINARY_TITLES]
        yes = to_cents(quote.yes_price)
        return [
            TargetOption("Yes", f"{ticker}-Yes", yes),
            TargetOption("No", f"{ticker}-No", 100 - yes),
        ]

    targets: list[TargetOption] = []
    used_titles: set[str] = set()
    for quote in quotes:
        title = (quote.subtitle or "").strip() or quote.external_option_id
        if title in used_titles:
            title = quote.external_option_id
        used_titles.add(title)
        probability = to_cents(quote.yes_price) if quote.has_price else None
        targets.append(TargetOption(title, quote.external_option_id, probability))
    return targets


def to_cents(price: float) -> int:
    cents = int(Decimal(str(price)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return min(max(cents, 0), 100)


def has_changed(stored: int | float, incoming: int | float) -> bool:
    return abs(float(incoming) - float(stored)) > PROBABILITY_TOLERANCE


def _reconcile_series(
    db: Session,
    series_id: str,
    quotes: list[NormalizedQuote],
    observed_at: datetime,
) -> tuple[Market, list[HistoryRecord]]:
    _validate_series(series_id, quotes)
    lead = quotes[0]
    category, icon = classify(lead.category)
    is_binary = len(quotes) == 1
    market = upsert_market(
        db,
        series_id,
        {
            "title": lead.title,
            "description": (lead.subtitle or lead.title) if is_binary else lead.title,
            "category": category,
            "icon": icon,
            "status": (
                MARKET_STATUS_ACTIVE
                if any(q.is_active for q in quotes)
                else MARKET_STATUS_CLOSED
            ),
        },
    )

    records: list[HistoryRecord] = []
    applied: dict[str, int] = {}
    for target in plan_options(quotes):
        probability, record = _apply_option(db, market.id, target, observed_at)
        applied[target.title] = probability
        if record is not None:
            records.append(record)

    if is_binary and sum(applied.values()) != 100:
        logger.warning(
            "sync_binary_sum_mismatch external_id=%s yes=%s no=%s",
            series_id,
            applied.get("Yes"),
            applied.get("No"),
        )
    return market, records


def _apply_option(
    db: Session,
    market_id: int,
    target: TargetOption,
    observed_at: datetime,
) -> tuple[int, HistoryRecord | None]:
    existing = find_option(db, market_id, title=target.title, external_id=target.external_id)
    if existing is None:
        probability = target.probability if target.probability is not None else to_cents(NEUTRAL_PRICE)
        option, _ = upsert_option(
            db,
            market_id,
            title=target.title,
            external_id=target.external_id,
            probability=probability,
        )
        return probability, HistoryRecord(market_id, option.id, probability, observed_at)

    stored = existing.current_probability
    if target.probability is None or not has_changed(stored, target.probability):
        # No price movement: only adopt a missing external id, never emit history.
        if target.external_id and existing.external_id != target.external_id:
            upsert_option(
                db,
                market_id,
                title=existing.title,
                external_id=target.external_id,
                probability=stored,
            )
        return stored, None

    option, _ = upsert_option(
        db,
        market_id,
        title=target.title,
        external_id=target.external_id,
        probability=target.probability,
    )
    return target.probability, HistoryRecord(market_id, option.id, target.probability, observed_at)


def _validate_series(series_id: str, quotes: list[NormalizedQuote]) -> None:
    if not series_id:
        raise MalformedQuote("Quote has no series id")
    if not quotes:
        raise MalformedQuote("Series has no quotes", external_id=series_id)
    if not quotes[0].title.strip():
        raise MalformedQuote(f"Series {series_id} has no title", external_id=series_id)
    for quote in quotes:
        if not quote.external_option_id.strip():
            raise MalformedQuote(f"Series {series_id} has a quote without ticker", external_id=series_id)
        if not math.isfinite(quote.yes_price) or not 0 <= quote.yes_price <= 100:
            raise MalformedQuote(
                f"Series {series_id} has an invalid price for {quote.external_option_id}",
                external_id=series_id,
            )
