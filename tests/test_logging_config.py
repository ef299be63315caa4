import json
import logging

from app.core import logging_config
from app.settings import settings


def test_json_formatter_includes_extra_fields():
    record = logging.makeLogRecord(
        {
            "name": "app.core.ledger",
            "levelno": logging.INFO,
            "levelname": "INFO",
            "msg": "trade_executed user_id=%s",
            "args": ("u1",),
            "request_id": "abc123",
        }
    )

    payload = json.loads(logging_config.JsonFormatter().format(record))

    assert payload["logger"] == "app.core.ledger"
    assert payload["message"] == "trade_executed user_id=u1"
    assert payload["extra"] == {"request_id": "abc123"}


def test_configure_logging_keeps_app_events_under_warning_root(monkeypatch):
    monkeypatch.setattr(settings, "LOG_LEVEL", "WARNING")
    monkeypatch.setattr(settings, "ENV", "dev")
    monkeypatch.setattr(logging_config, "_CONFIGURED", False)

    logging_config.configure_logging()

    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("app").level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("uvicorn.access").level == logging.WARNING


def test_prod_floors_root_level_at_info(monkeypatch):
    monkeypatch.setattr(settings, "LOG_LEVEL", "DEBUG")
    monkeypatch.setattr(settings, "ENV", "prod")
    assert logging_config._root_level() == logging.INFO

    monkeypatch.setattr(settings, "LOG_LEVEL", "nonsense")
    monkeypatch.setattr(settings, "ENV", "dev")
    assert logging_config._root_level() == logging.INFO
