from fastapi import HTTPException

from .core.errors import PaperMarketsError
from .quotes.base import QuoteSource
from .quotes.kalshi import KalshiQuoteSource


def get_quote_source() -> QuoteSource:
    return KalshiQuoteSource()


def http_error(exc: PaperMarketsError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


__all__ = [
    "get_quote_source",
    "http_error",
]
