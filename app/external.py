import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager

from .settings import settings

logger = logging.getLogger(__name__)


class CircuitBreaker:
    def __init__(self, name: str, max_failures: int, reset_seconds: int) -> None:
        self.name = name
        self.max_failures = max(int(max_failures), 1)
        self.reset_seconds = max(int(reset_seconds), 1)
        self._failures = 0
        self._opened_at: float | None = None
        self._lock = threading.Lock()

    def allow(self) -> bool:
        with self._lock:
            if self._opened_at is None:
                return True
            if time.monotonic() - self._opened_at >= self.reset_seconds:
                self._failures = 0
                self._opened_at = None
                logger.info("circuit_half_open name=%s", self.name)
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._failures >= self.max_failures:
                if self._opened_at is None:
                    self._opened_at = time.monotonic()
                    logger.warning("circuit_opened name=%s failures=%s", self.name, self._failures)


def _async_semaphore(limit: int | None) -> asyncio.Semaphore | None:
    if limit is None or limit <= 0:
        return None
    return asyncio.Semaphore(limit)


@asynccontextmanager
async def async_limited(semaphore: asyncio.Semaphore | None):
    if semaphore is None:
        yield
        return
    async with semaphore:
        yield


class _LoopLocalSemaphore:
    """asyncio.Semaphore bound lazily per event loop (each RQ job runs its own loop)."""

    def __init__(self, limit: int | None) -> None:
        self.limit = limit
        self._by_loop: dict[int, asyncio.Semaphore | None] = {}

    def get(self) -> asyncio.Semaphore | None:
        loop = asyncio.get_running_loop()
        key = id(loop)
        if key not in self._by_loop:
            self._by_loop = {key: _async_semaphore(self.limit)}
        return self._by_loop[key]


QUOTE_SOURCE_SEMAPHORE = _LoopLocalSemaphore(settings.KALSHI_MAX_CONCURRENT_CALLS)

QUOTE_SOURCE_BREAKER = CircuitBreaker(
    "kalshi",
    settings.KALSHI_CIRCUIT_MAX_FAILURES,
    settings.KALSHI_CIRCUIT_RESET_SECONDS,
)
