from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import MARKET_STATUS_ACTIVE, Market, MarketOption
from .errors import NotFound

BINARY_TITLES = ("Yes", "No")
MARKET_FIELDS = ("title", "description", "category", "icon", "status")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def upsert_market(db: Session, external_id: str, fields: dict[str, Any]) -> Market:
    """
    Insert-or-update a market keyed on its provider id. Repeating a call with
    identical fields leaves the row untouched (updated_at included).
    """
    market = db.execute(
        select(Market).where(Market.external_id == external_id)
    ).scalar_one_or_none()
    now_ts = utcnow()
    if market is None:
        market = Market(external_id=external_id, created_at=now_ts, updated_at=now_ts)
        _apply_fields(market, fields)
        db.add(market)
        db.flush()
        return market
    if _apply_fields(market, fields):
        market.updated_at = now_ts
        db.flush()
    return market


def upsert_option(
    db: Session,
    market_id: int,
    *,
    title: str,
    probability: int,
    external_id: str | None = None,
) -> tuple[MarketOption, bool]:
    """
    Insert-or-update an option. Keyed on external_id when given, otherwise on
    (market_id, title). A legacy row found by title adopts the external_id.
    Returns (option, created).
    """
    if db.get(Market, market_id) is None:
        raise NotFound(f"Market {market_id} not found", market_id=market_id)

    option = find_option(db, market_id, title=title, external_id=external_id)
    now_ts = utcnow()
    if option is None:
        option = MarketOption(
            market_id=market_id,
            title=title,
            external_id=external_id,
            current_probability=probability,
            updated_at=now_ts,
        )
        db.add(option)
        db.flush()
        return option, True

    changed = False
    if external_id and option.external_id != external_id:
        option.external_id = external_id
        changed = True
    if option.title != title:
        option.title = title
        changed = True
    if option.current_probability != probability:
        option.current_probability = probability
        changed = True
    if changed:
        option.updated_at = now_ts
        db.flush()
    return option, False


def find_option(
    db: Session,
    market_id: int,
    *,
    title: str,
    external_id: str | None = None,
) -> MarketOption | None:
    if external_id:
        option = db.execute(
            select(MarketOption).where(
                MarketOption.market_id == market_id,
                MarketOption.external_id == external_id,
            )
        ).scalar_one_or_none()
        if option is not None:
            return option
    return db.execute(
        select(MarketOption).where(
            MarketOption.market_id == market_id,
            MarketOption.title == title,
        )
    ).scalar_one_or_none()


def get_market(db: Session, market_id: int) -> Market:
    market = db.get(Market, market_id)
    if market is None:
        raise NotFound(f"Market {market_id} not found", market_id=market_id)
    return market


def get_options_for_market(db: Session, market_id: int) -> list[MarketOption]:
    get_market(db, market_id)
    options = list(
        db.execute(
            select(MarketOption)
            .where(MarketOption.market_id == market_id)
            .order_by(MarketOption.id.asc())
        ).scalars()
    )
    return order_options(options)


def order_options(options: list[MarketOption]) -> list[MarketOption]:
    if is_binary(options):
        return sorted(options, key=lambda o: BINARY_TITLES.index(o.title))
    return sorted(options, key=lambda o: (-o.current_probability, o.id))


def is_binary(options: list[MarketOption]) -> bool:
    return sorted(o.title for o in options) == sorted(BINARY_TITLES)


def list_markets(
    db: Session,
    status: str | None = MARKET_STATUS_ACTIVE,
    category: str | None = None,
    limit: int | None = None,
) -> list[Market]:
    stmt = select(Market)
    if status:
        stmt = stmt.where(Market.status == status)
    if category and category.lower() != "all":
        stmt = stmt.where(Market.category == category)
    stmt = stmt.order_by(Market.created_at.desc(), Market.id.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list(db.execute(stmt).scalars())


def catalog_external_ids(db: Session) -> list[str]:
    rows = db.execute(
        select(Market.external_id)
        .where(Market.status == MARKET_STATUS_ACTIVE)
        .order_by(Market.id.asc())
    ).scalars()
    return [row for row in rows if row]


def _apply_fields(market: Market, fields: dict[str, Any]) -> bool:
    changed = False
    for key in MARKET_FIELDS:
        if key not in fields:
            continue
        value = fields[key]
        if getattr(market, key) != value:
            setattr(market, key, value)
            changed = True
    return changed
