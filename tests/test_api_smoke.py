from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.routes import health
from app.core.errors import SourceUnavailable
from app.db import Base, get_db
from app.deps import get_quote_source
from app.jobs import tasks
from app.main import app
from app.quotes.schemas import NormalizedQuote


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value.encode() if isinstance(value, str) else value
        return True

    def delete(self, key):
        self.store.pop(key, None)


class FakeSource:
    name = "fake"

    def __init__(self):
        self.quotes = [
            NormalizedQuote(
                external_series_id="KXA",
                external_option_id="KXA",
                title="Will A happen?",
                category="Politics",
                yes_price=60,
            ),
            NormalizedQuote(
                external_series_id="KXB",
                external_option_id="KXB",
                title="Will B happen?",
                category="Crypto",
                yes_price=30,
            ),
        ]
        self.error = None

    async def fetch_quotes(self, scope, external_ids=None):
        if self.error:
            raise self.error
        return list(self.quotes)

    async def fetch_series(self, series_ticker):
        return [q for q in self.quotes if q.external_series_id == series_ticker]


@pytest.fixture()
def fake_source():
    return FakeSource()


@pytest.fixture()
def fake_redis(monkeypatch):
    redis = FakeRedis()
    monkeypatch.setattr(tasks, "redis_conn", redis)
    monkeypatch.setattr(health, "redis_conn", redis)
    return redis


@pytest.fixture()
def client(db_session, fake_source, fake_redis):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_quote_source] = lambda: fake_source
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health_ok(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert response.headers.get("x-request-id")


def test_sync_then_browse(client):
    response = client.post("/sync")
    assert response.status_code == 200
    assert response.json() == {"markets_synced": 2, "history_records": 4, "series_failed": 0}

    markets = client.get("/markets").json()
    assert {m["external_id"] for m in markets} == {"KXA", "KXB"}

    crypto = client.get("/markets", params={"category": "Crypto"}).json()
    assert [m["external_id"] for m in crypto] == ["KXB"]
    assert crypto[0]["icon"] == "₿"

    market_id = crypto[0]["id"]
    detail = client.get(f"/markets/{market_id}").json()
    assert [(o["title"], o["current_probability"]) for o in detail["options"]] == [("Yes", 30), ("No", 70)]

    history = client.get(f"/markets/{market_id}/history").json()
    assert len(history["records"]) == 2
    assert history["points"][0]["Yes"] == 30

    status = client.get("/status").json()
    assert status["markets"] == 2
    assert status["history_records"] == 4
    assert status["last_sync_result"]["markets_synced"] == 2


def test_sync_rejects_unknown_scope(client):
    response = client.post("/sync", params={"scope": "everything"})
    assert response.status_code == 400


def test_sync_locked_returns_conflict(client, fake_redis):
    fake_redis.store[tasks.SYNC_LOCK_KEY] = b"other-worker"
    response = client.post("/sync")
    assert response.status_code == 409
    assert response.json() == {"error": "sync already running"}


def test_sync_source_failure(client, fake_source):
    fake_source.error = SourceUnavailable("Kalshi API Error: 500")
    response = client.post("/sync")
    assert response.status_code == 502
    assert response.json() == {"error": "sync failed"}


def test_missing_market_returns_404(client):
    response = client.get("/markets/12345")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not_found"


def test_preview_and_add(client):
    response = client.post("/markets/preview", json={"url": "https://kalshi.com/markets/kxa/will-a"})
    assert response.status_code == 200
    preview = response.json()
    assert preview["series_ticker"] == "KXA"
    assert preview["markets"][0]["yes_price"] == 60

    response = client.post("/markets/add", json={"external_id": "KXA"})
    assert response.status_code == 200
    body = response.json()
    assert body["markets_synced"] == 1
    assert body["market"]["external_id"] == "KXA"

    response = client.post("/markets/preview", json={"url": "??"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_market_reference"

    response = client.post("/markets/preview", json={})
    assert response.status_code == 422


def test_trade_flow(client):
    client.post("/markets/add", json={"external_id": "KXA"})
    market = client.get("/markets").json()[0]
    yes = market["options"][0]

    response = client.post("/profiles", json={"balance": "100.00"})
    assert response.status_code == 200
    user_id = response.json()["user_id"]

    payload = {"user_id": user_id, "market_id": market["id"], "option_id": yes["id"], "quantity": 150}
    response = client.post("/trades", json=payload)
    assert response.status_code == 200
    trade = response.json()
    assert trade["total_cost"] == "90.00"
    assert trade["outcome"] == "Yes"

    response = client.post("/trades", json={**payload, "quantity": 100})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "insufficient_balance"

    response = client.post("/trades", json={**payload, "quantity": 0})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_quantity"

    portfolio = client.get(f"/portfolio/{user_id}").json()
    assert Decimal(portfolio["balance"]) == Decimal("10.00")
    assert portfolio["position_count"] == 1
    assert portfolio["positions"][0]["market_title"] == "Will A happen?"


def test_portfolio_unknown_user(client):
    response = client.get(f"/portfolio/{uuid4()}")
    assert response.status_code == 404


def test_categories_listed_in_classifier_order(client):
    categories = client.get("/categories").json()
    assert categories[0] == "All"
    assert categories[1] == "Politics"
    assert categories[-1] == "Other"
