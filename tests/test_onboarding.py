import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.errors import InvalidMarketReference, NotFound
from app.db import Base
from app.models import Market, MarketOption
from app.quotes.schemas import NormalizedQuote
from app.services.onboarding_service import add_market, build_preview, preview_market


@pytest.fixture()
def db_session():
    # Shared connection: catalog writes run on a worker thread.
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class SeriesSource:
    name = "fake"

    def __init__(self, series):
        self.series = series
        self.requested = []

    async def fetch_quotes(self, scope, external_ids=None):
        return [q for quotes in self.series.values() for q in quotes]

    async def fetch_series(self, series_ticker):
        self.requested.append(series_ticker)
        return list(self.series.get(series_ticker, []))


def _outcome(ticker: str, price: float, subtitle: str) -> NormalizedQuote:
    return NormalizedQuote(
        external_series_id="KXHIGHNY",
        external_option_id=ticker,
        title="Highest temperature in NYC today?",
        subtitle=subtitle,
        category="Climate and Weather",
        yes_price=price,
    )


SERIES = {
    "KXHIGHNY": [
        _outcome("KXHIGHNY-B1", 23.5, "79° or below"),
        _outcome("KXHIGHNY-B2", 51, "80° to 81°"),
        _outcome("KXHIGHNY-B3", 26, "82° or above"),
    ]
}


def test_preview_from_url():
    source = SeriesSource(SERIES)

    preview = asyncio.run(
        preview_market("https://kalshi.com/markets/kxhighny/highest-temperature-in-nyc", source=source)
    )

    assert source.requested == ["KXHIGHNY"]
    assert preview.series_ticker == "KXHIGHNY"
    assert preview.title == "Highest temperature in NYC today?"
    assert [(m.yes_price, m.no_price) for m in preview.markets] == [(24, 76), (51, 49), (26, 74)]


def test_preview_invalid_reference():
    with pytest.raises(InvalidMarketReference):
        asyncio.run(preview_market("not a ticker!", source=SeriesSource(SERIES)))


def test_preview_unknown_series():
    with pytest.raises(NotFound):
        asyncio.run(preview_market("KXNOPE", source=SeriesSource(SERIES)))


def test_build_preview_requires_quotes():
    with pytest.raises(NotFound):
        build_preview("KXEMPTY", [])


def test_add_market_goes_through_reconciler(db_session):
    source = SeriesSource(SERIES)

    result = asyncio.run(add_market(db_session, "kxhighny", source=source))
    again = asyncio.run(add_market(db_session, "KXHIGHNY", source=source))

    assert result.markets_synced == 1
    assert result.history_records == 3
    assert again.history_records == 0
    assert again.market_ids == result.market_ids
    market = db_session.query(Market).one()
    assert market.external_id == "KXHIGHNY"
    assert (market.category, market.icon) == ("Climate", "🌡️")
    assert db_session.query(MarketOption).count() == 3
