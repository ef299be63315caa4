import asyncio
import json
import logging
import os
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ..core.catalog import catalog_external_ids
from ..core.errors import SourceUnavailable
from ..core.reconcile import reconcile_quotes
from ..integrations.redis_client import redis_conn
from ..quotes.base import QuoteSource
from ..quotes.kalshi import KalshiQuoteSource
from ..quotes.schemas import SyncScope
from ..settings import settings

logger = logging.getLogger(__name__)
SYNC_LOCK_KEY = "lock:sync"
SYNC_LAST_TS_KEY = "sync:last_ts"
SYNC_LAST_RESULT_KEY = "sync:last_result"


async def run_sync(
    db: Session,
    source: QuoteSource | None = None,
    scope: SyncScope | str = SyncScope.ALL_OPEN,
) -> dict:
    """
    One run-to-completion sync pass. Safe to re-run; overlapping passes are
    skipped through a Redis lock.
    """
    started_at = datetime.now(timezone.utc)
    scope = SyncScope.parse(scope)
    result: dict = {"ok": False, "scope": scope.value, "markets_synced": 0, "history_records": 0}
    lock_value = f"{os.getpid()}:{started_at.isoformat()}"
    lock_ttl = max(settings.SYNC_INTERVAL_SECONDS * 2, 30)
    try:
        locked = redis_conn.set(SYNC_LOCK_KEY, lock_value, nx=True, ex=lock_ttl)
    except Exception:
        logger.exception("sync_lock_failed")
        locked = True
    if not locked:
        logger.debug("sync_skipped reason=lock_held")
        result["reason"] = "sync_locked"
        return result

    try:
        source = source or KalshiQuoteSource()
        external_ids = (
            await asyncio.to_thread(catalog_external_ids, db)
            if scope is SyncScope.CATALOG
            else None
        )
        if scope is SyncScope.CATALOG and not external_ids:
            logger.info("sync_catalog_empty")
            result["ok"] = True
            return result

        quotes = await source.fetch_quotes(scope, external_ids)
        # Catalog writes are blocking; keep them off the event loop.
        reconciled = await asyncio.to_thread(reconcile_quotes, db, quotes, observed_at=started_at)
        result.update(reconciled.as_dict())
        result["ok"] = True
        return result
    except SourceUnavailable as exc:
        logger.warning("sync_source_unavailable scope=%s error=%s", scope.value, exc.message)
        result["error"] = "sync failed"
        return result
    except Exception:
        logger.exception("sync_failed scope=%s", scope.value)
        result["error"] = "sync failed"
        raise
    finally:
        result["ts"] = datetime.now(timezone.utc).isoformat()
        try:
            current = redis_conn.get(SYNC_LOCK_KEY)
            if current and _decode(current) == lock_value:
                redis_conn.delete(SYNC_LOCK_KEY)
        except Exception:
            logger.exception("sync_lock_release_failed")
        try:
            redis_conn.set(SYNC_LAST_TS_KEY, result["ts"])
            redis_conn.set(SYNC_LAST_RESULT_KEY, json.dumps(result, ensure_ascii=True))
        except Exception:
            logger.exception("sync_status_update_failed")


def _decode(value) -> str:
    return value.decode() if isinstance(value, (bytes, bytearray)) else str(value)
