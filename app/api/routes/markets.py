from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, model_validator
from sqlalchemy.orm import Session

from ...core.catalog import get_market, get_options_for_market, list_markets, order_options
from ...core.categories import display_categories
from ...core.errors import PaperMarketsError
from ...core.history import build_chart_points, query_history
from ...db import get_db
from ...deps import get_quote_source, http_error
from ...models import Market, MarketOption
from ...quotes.base import QuoteSource
from ...services.onboarding_service import add_market, preview_market

router = APIRouter()


class MarketReference(BaseModel):
    url: str | None = None
    external_id: str | None = None

    @model_validator(mode="after")
    def _require_reference(self):
        if not (self.url or "").strip() and not (self.external_id or "").strip():
            raise ValueError("url or external_id is required")
        return self

    @property
    def value(self) -> str:
        return (self.url or "").strip() or (self.external_id or "").strip()


def _option_payload(option: MarketOption) -> dict[str, object]:
    return {
        "id": option.id,
        "title": option.title,
        "external_id": option.external_id,
        "current_probability": option.current_probability,
        "updated_at": option.updated_at.isoformat() if option.updated_at else None,
    }


def _market_payload(market: Market, options: list[MarketOption]) -> dict[str, object]:
    return {
        "id": market.id,
        "external_id": market.external_id,
        "title": market.title,
        "description": market.description,
        "category": market.category,
        "icon": market.icon,
        "status": market.status,
        "created_at": market.created_at.isoformat() if market.created_at else None,
        "options": [_option_payload(o) for o in options],
    }


@router.get("/categories")
def categories():
    return ["All", *display_categories()]


@router.get("/markets")
def markets_list(
    db: Session = Depends(get_db),
    category: str | None = None,
    limit: int = 100,
):
    markets = list_markets(db, category=category, limit=limit)
    return [_market_payload(m, order_options(list(m.options))) for m in markets]


@router.get("/markets/{market_id}")
def market_detail(market_id: int, db: Session = Depends(get_db)):
    try:
        market = get_market(db, market_id)
        options = get_options_for_market(db, market_id)
    except PaperMarketsError as exc:
        raise http_error(exc)
    return _market_payload(market, options)


@router.get("/markets/{market_id}/history")
def market_history(
    market_id: int,
    db: Session = Depends(get_db),
    since: datetime | None = None,
    limit: int | None = None,
):
    try:
        options = get_options_for_market(db, market_id)
    except PaperMarketsError as exc:
        raise http_error(exc)
    history = query_history(db, market_id, since=since, limit=limit)
    return {
        "market_id": market_id,
        "records": [
            {
                "option_id": point.option_id,
                "probability": point.probability,
                "recorded_at": point.recorded_at.isoformat(),
            }
            for point in history
        ],
        "points": build_chart_points(history, options),
    }


@router.post("/markets/preview")
async def market_preview(
    payload: MarketReference,
    source: QuoteSource = Depends(get_quote_source),
):
    try:
        preview = await preview_market(payload.value, source=source)
    except PaperMarketsError as exc:
        raise http_error(exc)
    return preview.model_dump()


@router.post("/markets/add")
async def market_add(
    payload: MarketReference,
    db: Session = Depends(get_db),
    source: QuoteSource = Depends(get_quote_source),
):
    try:
        result = await add_market(db, payload.value, source=source)
    except PaperMarketsError as exc:
        raise http_error(exc)
    if not result.market_ids:
        raise HTTPException(
            status_code=422,
            detail={"code": "malformed_quote", "message": "Failed to add market"},
        )
    market_id = result.market_ids[0]
    market = get_market(db, market_id)
    return {
        **result.as_dict(),
        "market": _market_payload(market, get_options_for_market(db, market_id)),
    }
