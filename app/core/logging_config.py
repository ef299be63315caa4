import json
import logging
import logging.config
from datetime import datetime, timezone

from ..settings import settings

_CONFIGURED = False

# LogRecord attributes that are never copied into the "extra" payload.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

# Held at WARNING unless the root is at DEBUG. uvicorn.access duplicates
# RequestLoggingMiddleware.
_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS and not k.startswith("_")}
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging() -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    root_level = _root_level()
    quiet_level = logging.DEBUG if root_level <= logging.DEBUG else max(root_level, logging.WARNING)
    loggers = {name: {"level": quiet_level} for name in _NOISY_LOGGERS}
    # Sync summaries and trade events stay visible even under a WARNING root.
    loggers["app"] = {"level": min(root_level, logging.INFO)}
    loggers["rq.worker"] = {"level": root_level}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JsonFormatter},
                "plain": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if settings.LOG_JSON else "plain",
                },
            },
            "root": {"level": root_level, "handlers": ["default"]},
            "loggers": loggers,
        }
    )
    _CONFIGURED = True


def _root_level() -> int:
    level = logging.getLevelName(str(settings.LOG_LEVEL or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    if settings.ENV.lower() == "prod":
        level = max(level, logging.INFO)
    return level
