from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import MarketOption, ProbabilityHistory
from ..settings import settings
from .catalog import utcnow


@dataclass(frozen=True)
class HistoryRecord:
    market_id: int
    option_id: int
    probability: int
    recorded_at: datetime


@dataclass(frozen=True)
class HistoryPoint:
    option_id: int
    probability: int
    recorded_at: datetime


def append_history(db: Session, records: Iterable[HistoryRecord]) -> int:
    """Append records in a single commit. Callers keep per-option order."""
    rows = [
        ProbabilityHistory(
            market_id=r.market_id,
            option_id=r.option_id,
            probability=r.probability,
            recorded_at=r.recorded_at,
        )
        for r in records
    ]
    if not rows:
        return 0
    try:
        db.add_all(rows)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return len(rows)


def query_history(
    db: Session,
    market_id: int,
    since: datetime | None = None,
    limit: int | None = None,
) -> list[HistoryPoint]:
    """Latest `limit` records for a market, returned oldest first."""
    limit = limit if limit and limit > 0 else settings.HISTORY_DEFAULT_LIMIT
    stmt = select(ProbabilityHistory).where(ProbabilityHistory.market_id == market_id)
    if since is not None:
        stmt = stmt.where(ProbabilityHistory.recorded_at >= since)
    stmt = stmt.order_by(
        ProbabilityHistory.recorded_at.desc(),
        ProbabilityHistory.id.desc(),
    ).limit(limit)
    rows = list(db.execute(stmt).scalars())
    rows.reverse()
    return [
        HistoryPoint(option_id=r.option_id, probability=r.probability, recorded_at=r.recorded_at)
        for r in rows
    ]


def build_chart_points(
    history: list[HistoryPoint],
    options: list[MarketOption],
    now: datetime | None = None,
) -> list[dict[str, object]]:
    """
    Group history into one point per timestamp keyed by option title. With no
    history yet, synthesize a single point from current option state so
    consumers never render an empty chart. Nothing is written.
    """
    if not history:
        point: dict[str, object] = {"timestamp": (now or utcnow()).isoformat()}
        for option in options:
            point[option.title] = option.current_probability
        return [point]

    titles = {option.id: option.title for option in options}
    grouped: dict[str, dict[str, object]] = {}
    for record in history:
        title = titles.get(record.option_id)
        if title is None:
            continue
        key = record.recorded_at.isoformat()
        grouped.setdefault(key, {"timestamp": key})[title] = record.probability
    return list(grouped.values())
