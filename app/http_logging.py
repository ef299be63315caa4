import logging
import time

import httpx

from .settings import settings

logger = logging.getLogger("app.http")

# Query params worth echoing in provider logs; anything else is dropped.
_LOGGED_PARAMS = ("series_ticker", "tickers", "status", "cursor")


class RequestTimer:
    def __init__(self) -> None:
        self._start = time.monotonic()

    def elapsed(self) -> float:
        return time.monotonic() - self._start


def log_quote_response(
    response: httpx.Response,
    duration_seconds: float,
    *,
    source: str,
    params: dict[str, str] | None = None,
) -> None:
    """Log provider responses that failed or crossed the slow threshold."""
    is_slow = _is_slow(duration_seconds)
    is_error = not response.is_success
    if not (is_slow or is_error):
        return
    tag = "error_slow" if is_slow and is_error else ("error" if is_error else "slow")
    logger.warning(
        "quote_source_request_%s source=%s status=%s latency_ms=%s %s",
        tag,
        source,
        response.status_code,
        int(duration_seconds * 1000),
        _format_params(params),
    )


def log_quote_failure(
    exc: httpx.HTTPError,
    duration_seconds: float,
    *,
    source: str,
    params: dict[str, str] | None = None,
) -> None:
    logger.warning(
        "quote_source_request_failed source=%s error=%s latency_ms=%s %s",
        source,
        type(exc).__name__,
        int(duration_seconds * 1000),
        _format_params(params),
    )


def _is_slow(duration_seconds: float) -> bool:
    try:
        threshold = max(float(settings.HTTPX_SLOW_REQUEST_THRESHOLD_SECONDS), 0.0)
    except (TypeError, ValueError):
        return False
    return threshold > 0 and duration_seconds >= threshold


def _format_params(params: dict[str, str] | None) -> str:
    params = params or {}
    return " ".join(f"{key}={params[key]}" for key in _LOGGED_PARAMS if params.get(key))
