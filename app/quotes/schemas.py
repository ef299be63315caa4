from enum import Enum

from pydantic import BaseModel, Field, field_validator

NEUTRAL_PRICE = 50.0


class SyncScope(str, Enum):
    ALL_OPEN = "all_open"
    CATALOG = "catalog"

    @classmethod
    def parse(cls, value: "str | SyncScope | None", default: "SyncScope | None" = None) -> "SyncScope":
        if isinstance(value, SyncScope):
            return value
        normalized = str(value or "").strip().lower().replace("-", "_")
        if normalized in {"all", "open", "all_open"}:
            return cls.ALL_OPEN
        if normalized == "catalog":
            return cls.CATALOG
        if default is not None:
            return default
        raise ValueError(f"unknown sync scope: {value!r}")


class NormalizedQuote(BaseModel):
    external_series_id: str
    external_option_id: str
    title: str
    subtitle: str | None = None
    category: str | None = None
    yes_price: float = Field(default=NEUTRAL_PRICE)  # cents, 0-100
    status: str = "active"
    # False when the provider sent no price signal and NEUTRAL_PRICE was substituted.
    has_price: bool = True

    @field_validator("yes_price", mode="before")
    @classmethod
    def _clamp_price(cls, value):
        try:
            price = float(value)
        except (TypeError, ValueError):
            return value
        if price != price:
            return value
        return min(max(price, 0.0), 100.0)

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class PreviewOutcome(BaseModel):
    ticker: str
    title: str
    subtitle: str | None = None
    yes_price: int
    no_price: int
    status: str


class MarketPreview(BaseModel):
    series_ticker: str
    title: str
    category: str | None = None
    markets: list[PreviewOutcome] = Field(default_factory=list)
