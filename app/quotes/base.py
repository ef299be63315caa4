from typing import Iterable, Protocol

from .schemas import NormalizedQuote, SyncScope


class QuoteSource(Protocol):
    """Provider adapter feeding the reconciliation engine.

    Implementations raise `SourceUnavailable` on transport/auth failure and
    never retry internally; the caller or scheduler owns retry policy.
    """

    name: str

    async def fetch_quotes(
        self,
        scope: SyncScope,
        external_ids: Iterable[str] | None = None,
    ) -> list[NormalizedQuote]:
        ...

    async def fetch_series(self, series_ticker: str) -> list[NormalizedQuote]:
        ...
