import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.router import api_router
from .core.logging_config import configure_logging
from .request_logging import RequestLoggingMiddleware
from .settings import settings

configure_logging()
logger = logging.getLogger(__name__)

DISCLAIMER = (
    "Paper trading only. Balances are virtual and prices are mirrored "
    "from an external exchange. No real money is at stake."
)

app = FastAPI(
    title="Paper Markets",
    description=DISCLAIMER,
)

if settings.CORS_ALLOW_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.add_middleware(RequestLoggingMiddleware)
app.include_router(api_router)

logger.info("app_started env=%s", settings.ENV)
