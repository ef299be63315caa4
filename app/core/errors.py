from __future__ import annotations


class PaperMarketsError(Exception):
    """Base error. `code` is stable for API clients, `message` is user-facing."""

    code = "error"
    status_code = 400

    def __init__(self, message: str | None = None, **context) -> None:
        self.message = message or self.default_message()
        self.context = context
        super().__init__(self.message)

    def default_message(self) -> str:
        return "Request failed"

    def to_detail(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message}


class SourceUnavailable(PaperMarketsError):
    code = "source_unavailable"
    status_code = 502

    def default_message(self) -> str:
        return "sync failed"


class MalformedQuote(PaperMarketsError):
    code = "malformed_quote"
    status_code = 422

    def default_message(self) -> str:
        return "Quote is missing required fields"


class InvalidMarketReference(PaperMarketsError):
    code = "invalid_market_reference"
    status_code = 400

    def default_message(self) -> str:
        return "Invalid Kalshi URL format. Expected https://kalshi.com/markets/TICKER/..."


class NotFound(PaperMarketsError):
    code = "not_found"
    status_code = 404

    def default_message(self) -> str:
        return "Not found"


class InvalidQuantity(PaperMarketsError):
    code = "invalid_quantity"
    status_code = 400

    def default_message(self) -> str:
        return "Quantity must be a whole number of shares"


class InsufficientBalance(PaperMarketsError):
    code = "insufficient_balance"
    status_code = 400

    def default_message(self) -> str:
        return "Insufficient balance for this trade"


class ConcurrentUpdateConflict(PaperMarketsError):
    code = "concurrent_update_conflict"
    status_code = 409

    def default_message(self) -> str:
        return "Your balance changed while the trade was processing. Please retry."
