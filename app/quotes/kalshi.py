import logging
import math
import re
from typing import Iterable

import httpx

from ..core.errors import InvalidMarketReference, SourceUnavailable
from ..external import QUOTE_SOURCE_BREAKER, QUOTE_SOURCE_SEMAPHORE, CircuitBreaker, async_limited
from ..http_logging import RequestTimer, log_quote_failure, log_quote_response
from ..settings import settings
from .schemas import NEUTRAL_PRICE, NormalizedQuote, SyncScope

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = {"open", "active", "initialized"}
# Checked in order; the first field carrying a positive price wins.
FALLBACK_PRICE_FIELDS = ("yes_ask", "yes_bid", "previous_price")

_URL_TICKER_RE = re.compile(r"markets/([A-Za-z0-9_.-]+)", re.IGNORECASE)
_BARE_TICKER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


class KalshiQuoteSource:
    name = "kalshi"

    def __init__(
        self,
        base_url: str | None = None,
        page_limit: int | None = None,
        max_pages: int | None = None,
        timeout_seconds: float | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.base_url = (base_url or settings.KALSHI_BASE_URL).rstrip("/")
        self.page_limit = _coerce_positive_int(page_limit or settings.KALSHI_PAGE_LIMIT, default=100)
        self.max_pages = settings.KALSHI_MAX_PAGES if max_pages is None else max_pages
        self.timeout_seconds = timeout_seconds or settings.KALSHI_TIMEOUT_SECONDS
        self.breaker = breaker or QUOTE_SOURCE_BREAKER

    async def fetch_quotes(
        self,
        scope: SyncScope,
        external_ids: Iterable[str] | None = None,
    ) -> list[NormalizedQuote]:
        """
        Fetch quotes for one sync pass:
        - ALL_OPEN: GET /markets?status=open with cursor pagination; every
          Kalshi market is its own binary series keyed by its ticker
        - CATALOG: one series lookup per saved external id, falling back to a
          single-ticker lookup for markets saved by an ALL_OPEN pass
        """
        scope = SyncScope.parse(scope)
        quotes: list[NormalizedQuote] = []
        rows_seen = 0
        dropped = 0
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            if scope is SyncScope.ALL_OPEN:
                rows = await self._fetch_open_markets(client)
                rows_seen = len(rows)
                quotes, dropped = _parse_markets(rows)
            else:
                for external_id in external_ids or []:
                    series_quotes, series_rows, series_dropped = await self._fetch_series_quotes(
                        client, external_id
                    )
                    rows_seen += series_rows
                    dropped += series_dropped
                    quotes.extend(series_quotes)

        _log_fetch_summary(scope, rows_seen, len(quotes), dropped)
        return quotes

    async def fetch_series(self, series_ticker: str) -> list[NormalizedQuote]:
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            quotes, _, _ = await self._fetch_series_quotes(client, series_ticker)
        return quotes

    async def _fetch_series_quotes(
        self,
        client: httpx.AsyncClient,
        series_id: str,
    ) -> tuple[list[NormalizedQuote], int, int]:
        series_id = str(series_id or "").strip()
        if not series_id:
            return [], 0, 0
        rows = _markets_from_payload(await self._get_markets(client, {"series_ticker": series_id}))
        if not rows:
            rows = _markets_from_payload(await self._get_markets(client, {"tickers": series_id}))
        quotes, dropped = _parse_markets(rows, series_id=series_id)
        return quotes, len(rows), dropped

    async def _fetch_open_markets(self, client: httpx.AsyncClient) -> list[dict]:
        rows: list[dict] = []
        cursor: str | None = None
        page_count = 0
        while True:
            if self.max_pages is not None and page_count >= self.max_pages:
                if cursor:
                    logger.info(
                        "kalshi_pagination_max_pages_reached max_pages=%s rows=%s",
                        self.max_pages,
                        len(rows),
                    )
                break
            params = {"status": "open", "limit": str(self.page_limit)}
            if cursor:
                params["cursor"] = cursor
            payload = await self._get_markets(client, params)
            page_count += 1
            page_rows = _markets_from_payload(payload)
            rows.extend(page_rows)
            cursor = str(payload.get("cursor") or "").strip() or None
            if not page_rows or not cursor:
                break
        return rows

    async def _get_markets(self, client: httpx.AsyncClient, params: dict[str, str]) -> dict:
        if not self.breaker.allow():
            raise SourceUnavailable("Kalshi circuit open", source=self.name)
        url = f"{self.base_url}/markets"
        timer = RequestTimer()
        try:
            async with async_limited(QUOTE_SOURCE_SEMAPHORE.get()):
                response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            self.breaker.record_failure()
            log_quote_failure(exc, timer.elapsed(), source=self.name, params=params)
            raise SourceUnavailable(f"Kalshi request failed: {exc}", source=self.name) from exc

        log_quote_response(response, timer.elapsed(), source=self.name, params=params)
        if not response.is_success:
            self.breaker.record_failure()
            raise SourceUnavailable(
                f"Kalshi API Error: {response.status_code}",
                source=self.name,
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            self.breaker.record_failure()
            raise SourceUnavailable("Kalshi returned invalid JSON", source=self.name) from exc
        self.breaker.record_success()
        return payload if isinstance(payload, dict) else {}


def extract_series_ticker(reference: str | None) -> str:
    """
    Accept a Kalshi market URL (https://kalshi.com/markets/KXHIGHNY/...) or a
    bare ticker and return the upper-cased series ticker.
    """
    value = str(reference or "").strip()
    if not value:
        raise InvalidMarketReference("A Kalshi URL or ticker is required")
    match = _URL_TICKER_RE.search(value)
    if match:
        return match.group(1).upper()
    if _BARE_TICKER_RE.match(value):
        return value.upper()
    raise InvalidMarketReference()


def resolve_yes_price(market: dict) -> tuple[float, bool]:
    last_price = _price_field(market, "last_price")
    if last_price is not None:
        return last_price, True
    yes_bid = _price_field(market, "yes_bid")
    yes_ask = _price_field(market, "yes_ask")
    if yes_bid is not None and yes_ask is not None:
        return (yes_bid + yes_ask) / 2, True
    for field in FALLBACK_PRICE_FIELDS:
        price = _price_field(market, field)
        if price is not None:
            return price, True
    return NEUTRAL_PRICE, False


def normalize_status(raw) -> str:
    value = str(raw or "").strip().lower()
    if not value or value in ACTIVE_STATUSES:
        return "active"
    return "closed"


def _parse_markets(rows: list[dict], series_id: str | None = None) -> tuple[list[NormalizedQuote], int]:
    quotes: list[NormalizedQuote] = []
    dropped = 0
    for m in rows:
        if not isinstance(m, dict):
            dropped += 1
            continue
        ticker = str(m.get("ticker") or "").strip()
        if not ticker:
            dropped += 1
            continue
        yes_price, has_price = resolve_yes_price(m)
        subtitle = (m.get("subtitle") or m.get("yes_sub_title") or "").strip() or None
        quotes.append(
            NormalizedQuote(
                external_series_id=series_id or ticker,
                external_option_id=ticker,
                title=(m.get("title") or "").strip(),
                subtitle=subtitle,
                category=(m.get("category") or "").strip() or None,
                yes_price=yes_price,
                status=normalize_status(m.get("status")),
                has_price=has_price,
            )
        )
    return quotes, dropped


def _markets_from_payload(payload: dict) -> list[dict]:
    markets = payload.get("markets") if isinstance(payload, dict) else None
    return markets if isinstance(markets, list) else []


def _price_field(market: dict, name: str) -> float | None:
    raw = market.get(name)
    scale = 1.0
    if raw is None:
        raw = market.get(f"{name}_dollars")
        scale = 100.0
    if raw is None or raw == "":
        return None
    try:
        value = float(raw) * scale
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def _coerce_positive_int(value, default: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


def _log_fetch_summary(scope: SyncScope, rows_seen: int, quotes_kept: int, dropped: int) -> None:
    logger.info(
        "kalshi_fetch_summary scope=%s rows_seen=%s quotes_kept=%s dropped=%s",
        scope.value,
        rows_seen,
        quotes_kept,
        dropped,
    )
