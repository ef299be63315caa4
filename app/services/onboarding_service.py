import asyncio
import logging

from sqlalchemy.orm import Session

from ..core.errors import NotFound
from ..core.reconcile import ReconcileResult, reconcile_quotes, to_cents
from ..quotes.base import QuoteSource
from ..quotes.kalshi import KalshiQuoteSource, extract_series_ticker
from ..quotes.schemas import MarketPreview, NormalizedQuote, PreviewOutcome

logger = logging.getLogger(__name__)


def build_preview(series_ticker: str, quotes: list[NormalizedQuote]) -> MarketPreview:
    if not quotes:
        raise NotFound("No markets found for this ticker", series_ticker=series_ticker)
    lead = quotes[0]
    outcomes = []
    for quote in quotes:
        yes_price = to_cents(quote.yes_price)
        outcomes.append(
            PreviewOutcome(
                ticker=quote.external_option_id,
                title=quote.title,
                subtitle=quote.subtitle,
                yes_price=yes_price,
                no_price=100 - yes_price,
                status=quote.status,
            )
        )
    return MarketPreview(
        series_ticker=series_ticker,
        title=lead.title,
        category=lead.category,
        markets=outcomes,
    )


async def preview_market(reference: str, source: QuoteSource | None = None) -> MarketPreview:
    series_ticker = extract_series_ticker(reference)
    source = source or KalshiQuoteSource()
    quotes = await source.fetch_series(series_ticker)
    logger.info("market_preview series_ticker=%s outcomes=%s", series_ticker, len(quotes))
    return build_preview(series_ticker, quotes)


async def add_market(
    db: Session,
    reference: str,
    source: QuoteSource | None = None,
) -> ReconcileResult:
    """Commit a previewed series to the catalog through the reconciliation engine."""
    series_ticker = extract_series_ticker(reference)
    source = source or KalshiQuoteSource()
    quotes = await source.fetch_series(series_ticker)
    if not quotes:
        raise NotFound("No markets found for this ticker", series_ticker=series_ticker)
    result = await asyncio.to_thread(reconcile_quotes, db, quotes)
    logger.info(
        "market_added series_ticker=%s markets_synced=%s history_records=%s",
        series_ticker,
        result.markets_synced,
        result.history_records,
    )
    return result
