import asyncio
from sqlalchemy.orm import Session
from ..db import SessionLocal
from ..quotes.schemas import SyncScope
from .tasks import run_sync


def job_sync_wrapper(scope: str = SyncScope.ALL_OPEN.value):
    db: Session = SessionLocal()
    try:
        return asyncio.run(run_sync(db, scope=scope))
    finally:
        db.close()
