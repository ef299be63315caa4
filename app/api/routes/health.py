import json

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ...db import get_db
from ...integrations.redis_client import redis_conn
from ...jobs.tasks import SYNC_LAST_RESULT_KEY, SYNC_LAST_TS_KEY
from ...models import Market, MarketOption, ProbabilityHistory

router = APIRouter()


@router.get("/health")
def health():
    return {"ok": True}


@router.get("/status")
def status(db: Session = Depends(get_db)):
    last_sync_ts = redis_conn.get(SYNC_LAST_TS_KEY)
    last_sync_result = redis_conn.get(SYNC_LAST_RESULT_KEY)
    parsed_result = None
    if last_sync_result:
        try:
            parsed_result = json.loads(last_sync_result)
        except ValueError:
            parsed_result = None
    last_history_ts = db.query(func.max(ProbabilityHistory.recorded_at)).scalar()
    return {
        "last_sync_time": last_sync_ts.decode() if last_sync_ts else None,
        "last_sync_result": parsed_result,
        "markets": db.query(func.count()).select_from(Market).scalar() or 0,
        "options": db.query(func.count()).select_from(MarketOption).scalar() or 0,
        "history_records": db.query(func.count()).select_from(ProbabilityHistory).scalar() or 0,
        "last_history_ts": last_history_ts.isoformat() if last_history_ts else None,
    }
