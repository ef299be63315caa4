from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ...db import get_db
from ...deps import get_quote_source
from ...integrations.rq_queue import q
from ...jobs.run import job_sync_wrapper
from ...jobs.tasks import run_sync
from ...quotes.base import QuoteSource
from ...quotes.schemas import SyncScope

router = APIRouter()


def _parse_scope(scope: str) -> SyncScope:
    try:
        return SyncScope.parse(scope)
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid_scope")


@router.post("/sync")
async def sync_markets(
    scope: str = SyncScope.ALL_OPEN.value,
    db: Session = Depends(get_db),
    source: QuoteSource = Depends(get_quote_source),
):
    result = await run_sync(db, source=source, scope=_parse_scope(scope))
    if result.get("reason") == "sync_locked":
        return JSONResponse(status_code=409, content={"error": "sync already running"})
    if result.get("error"):
        return JSONResponse(status_code=502, content={"error": result["error"]})
    payload = {
        "markets_synced": result.get("markets_synced", 0),
        "history_records": result.get("history_records", 0),
        "series_failed": result.get("series_failed", 0),
    }
    if result.get("history_error"):
        payload["history_error"] = result["history_error"]
    return payload


@router.post("/jobs/sync")
def enqueue_sync(scope: str = SyncScope.CATALOG.value):
    job = q.enqueue(job_sync_wrapper, _parse_scope(scope).value)
    return {"job_id": job.id}
