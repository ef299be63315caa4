import os
import time
import logging

from rq import Queue

from ..core.logging_config import configure_logging
from ..integrations.redis_client import redis_conn
from ..integrations.rq_queue import q
from ..quotes.schemas import SyncScope
from ..settings import settings
from .run import job_sync_wrapper

logger = logging.getLogger(__name__)
SCHEDULER_HEARTBEAT_KEY = "scheduler:heartbeat"


def scheduled_scope() -> SyncScope:
    return SyncScope.parse(settings.SYNC_SCHEDULED_SCOPE, default=SyncScope.CATALOG)


def enqueue_sync_if_idle(queue: Queue, scope: SyncScope) -> str | None:
    count = queue.count if isinstance(queue.count, int) else queue.count()
    if count:
        logger.info("sync_enqueue_skipped queue_count=%s", count)
        return None
    job = queue.enqueue(job_sync_wrapper, scope.value)
    logger.info("sync_enqueued id=%s scope=%s", job.id, scope.value)
    return job.id


def main() -> None:
    configure_logging()
    interval = max(30, settings.SYNC_INTERVAL_SECONDS)
    scheduler_id = f"{os.getpid()}:{int(time.time())}"
    scope = scheduled_scope()

    while True:
        try:
            ttl_seconds = max(interval * 2, 60)
            claimed = redis_conn.set(SCHEDULER_HEARTBEAT_KEY, scheduler_id, nx=True, ex=ttl_seconds)
            if not claimed:
                existing = redis_conn.get(SCHEDULER_HEARTBEAT_KEY)
                existing_id = existing.decode() if existing else "unknown"
                if existing_id != scheduler_id:
                    logger.warning("scheduler_multiple_detected existing=%s current=%s", existing_id, scheduler_id)
                redis_conn.set(SCHEDULER_HEARTBEAT_KEY, scheduler_id, ex=ttl_seconds)
            enqueue_sync_if_idle(q, scope)
        except Exception:
            logger.exception("sync_enqueue_failed")
        time.sleep(interval)


if __name__ == "__main__":
    main()
