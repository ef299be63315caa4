from fastapi import APIRouter

from .routes import health, jobs, markets, trades

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(jobs.router)
api_router.include_router(markets.router)
api_router.include_router(trades.router)
