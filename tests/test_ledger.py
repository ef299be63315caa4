from decimal import Decimal
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core import ledger
from app.core.catalog import upsert_market, upsert_option
from app.core.errors import ConcurrentUpdateConflict, InsufficientBalance, InvalidQuantity, NotFound
from app.core.ledger import create_profile, execute_trade, get_profile, validate_quantity
from app.db import Base
from app.models import Position, UserProfile
from app.services.portfolio_service import build_portfolio


@pytest.fixture()
def session_factory(tmp_path):
    # File-backed so two sessions can race on the same profile row.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    finally:
        engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def market(db_session):
    market = upsert_market(
        db_session,
        "KXA",
        {"title": "Will A happen?", "description": "", "category": "Other", "icon": "📊", "status": "active"},
    )
    yes, _ = upsert_option(db_session, market.id, title="Yes", probability=60, external_id="KXA-Yes")
    no, _ = upsert_option(db_session, market.id, title="No", probability=40, external_id="KXA-No")
    db_session.commit()
    return {"id": market.id, "yes": yes.id, "no": no.id}


def _profile(db, balance: str) -> uuid.UUID:
    return create_profile(db, balance=Decimal(balance)).user_id


@pytest.mark.parametrize("quantity", [0, -5])
def test_rejects_non_positive_quantity(db_session, market, quantity):
    user_id = _profile(db_session, "100.00")
    with pytest.raises(InvalidQuantity):
        execute_trade(db_session, user_id, market["id"], market["yes"], quantity)
    assert db_session.query(Position).count() == 0


def test_validate_quantity_rules():
    assert validate_quantity(5) == 5
    assert validate_quantity(5.0) == 5
    with pytest.raises(InvalidQuantity):
        validate_quantity(2.5)
    with pytest.raises(InvalidQuantity):
        validate_quantity(True)
    with pytest.raises(InvalidQuantity) as exc_info:
        validate_quantity(10_001)
    assert exc_info.value.message == "Maximum 10,000 shares per trade"


def test_insufficient_balance_leaves_state_untouched(db_session, market):
    user_id = _profile(db_session, "100.00")

    with pytest.raises(InsufficientBalance):
        execute_trade(db_session, user_id, market["id"], market["yes"], 200)

    assert get_profile(db_session, user_id).balance == Decimal("100.00")
    assert db_session.query(Position).count() == 0


def test_trade_debits_balance_and_records_position(db_session, market):
    user_id = _profile(db_session, "100.00")

    position = execute_trade(db_session, user_id, market["id"], market["yes"], 150)

    assert position.outcome == "Yes"
    assert position.quantity == 150
    assert position.price_per_share == Decimal("0.6000")
    assert position.total_cost == Decimal("90.00")
    profile = get_profile(db_session, user_id)
    assert profile.balance == Decimal("10.00")
    assert profile.version == 1


def test_option_must_belong_to_market(db_session, market):
    user_id = _profile(db_session, "100.00")
    with pytest.raises(NotFound):
        execute_trade(db_session, user_id, market["id"] + 1, market["yes"], 1)
    with pytest.raises(NotFound):
        execute_trade(db_session, user_id, market["id"], 999, 1)


def test_unknown_profile(db_session, market):
    with pytest.raises(NotFound):
        execute_trade(db_session, uuid.uuid4(), market["id"], market["yes"], 1)
    with pytest.raises(NotFound):
        execute_trade(db_session, "not-a-uuid", market["id"], market["yes"], 1)


def test_balance_never_goes_negative(db_session, market):
    user_id = _profile(db_session, "100.00")
    execute_trade(db_session, user_id, market["id"], market["no"], 100)  # 40.00
    execute_trade(db_session, user_id, market["id"], market["no"], 100)  # 40.00
    with pytest.raises(InsufficientBalance):
        execute_trade(db_session, user_id, market["id"], market["no"], 100)

    assert get_profile(db_session, user_id).balance == Decimal("20.00")
    portfolio = build_portfolio(db_session, user_id)
    assert portfolio["balance"] == "20.00"
    assert portfolio["total_invested"] == "80.00"
    assert portfolio["position_count"] == 2


def test_concurrent_trades_cannot_overspend(session_factory, db_session, market, monkeypatch):
    user_id = _profile(db_session, "100.00")
    original_debit = ledger._apply_debit
    raced = {"done": False}

    def _racing_debit(db, profile, total_cost):
        if not raced["done"]:
            raced["done"] = True
            # A second request lands between the balance check and the debit.
            other = session_factory()
            try:
                execute_trade(other, user_id, market["id"], market["yes"], 100)
            finally:
                other.close()
        return original_debit(db, profile, total_cost)

    monkeypatch.setattr(ledger, "_apply_debit", _racing_debit)

    # 60.00 each against 100.00: only one may succeed.
    with pytest.raises(InsufficientBalance):
        execute_trade(db_session, user_id, market["id"], market["yes"], 100)

    db_session.expire_all()
    assert get_profile(db_session, user_id).balance == Decimal("40.00")
    assert db_session.query(Position).count() == 1


def test_conflict_surfaces_after_retries(db_session, market, monkeypatch):
    user_id = _profile(db_session, "100.00")
    attempts = {"count": 0}

    def _always_conflict(db, profile, total_cost):
        attempts["count"] += 1
        raise ConcurrentUpdateConflict()

    monkeypatch.setattr(ledger, "_apply_debit", _always_conflict)

    with pytest.raises(ConcurrentUpdateConflict):
        execute_trade(db_session, user_id, market["id"], market["yes"], 1, max_attempts=3)

    assert attempts["count"] == 3
    assert get_profile(db_session, user_id).balance == Decimal("100.00")
    assert db_session.query(UserProfile).one().version == 0
