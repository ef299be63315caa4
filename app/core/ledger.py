from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_random

from ..db_utils import is_lock_conflict
from ..models import MarketOption, Position, UserProfile
from ..settings import settings
from .catalog import utcnow
from .errors import ConcurrentUpdateConflict, InsufficientBalance, InvalidQuantity, NotFound

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
PRICE_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class TradeQuote:
    option: MarketOption
    price_per_share: Decimal
    total_cost: Decimal


def execute_trade(
    db: Session,
    user_id: uuid.UUID | str,
    market_id: int,
    option_id: int,
    quantity,
    *,
    max_quantity: int | None = None,
    max_attempts: int | None = None,
) -> Position:
    """
    Buy `quantity` shares of an option at its current probability.

    The balance debit and the position insert commit together or not at all.
    The debit is a compare-and-swap on the profile version taken under a row
    lock, so two trades by the same user can never both pass the balance
    check against the same balance. A lost race is retried a bounded number
    of times and then surfaces as ConcurrentUpdateConflict.
    """
    quantity = validate_quantity(quantity, max_quantity)
    user_id = _coerce_user_id(user_id)
    attempts = max(int(max_attempts or settings.TRADE_MAX_ATTEMPTS), 1)

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_random(0, 0.05),
        retry=retry_if_exception_type(ConcurrentUpdateConflict),
        reraise=True,
    )
    for attempt in retrying:
        with attempt:
            return _settle_once(db, user_id, market_id, option_id, quantity)
    raise ConcurrentUpdateConflict()  # pragma: no cover


def validate_quantity(quantity, max_quantity: int | None = None) -> int:
    limit = int(max_quantity or settings.TRADE_MAX_QUANTITY)
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        if isinstance(quantity, float) and quantity.is_integer():
            quantity = int(quantity)
        else:
            raise InvalidQuantity("Quantity must be a whole number", quantity=quantity)
    if quantity <= 0:
        raise InvalidQuantity("Please enter a valid quantity", quantity=quantity)
    if quantity > limit:
        raise InvalidQuantity(f"Maximum {limit:,} shares per trade", quantity=quantity)
    return quantity


def quote_trade(db: Session, market_id: int, option_id: int, quantity: int) -> TradeQuote:
    option = db.get(MarketOption, option_id, populate_existing=True)
    if option is None or option.market_id != market_id:
        raise NotFound("Market option not found", market_id=market_id, option_id=option_id)
    price = price_from_probability(option.current_probability)
    total_cost = (price * quantity).quantize(CENT, rounding=ROUND_HALF_UP)
    return TradeQuote(option=option, price_per_share=price, total_cost=total_cost)


def price_from_probability(probability: int) -> Decimal:
    return (Decimal(int(probability)) / Decimal(100)).quantize(PRICE_QUANTUM)


def create_profile(
    db: Session,
    user_id: uuid.UUID | str | None = None,
    balance: Decimal | None = None,
) -> UserProfile:
    starting = Decimal(balance if balance is not None else settings.STARTING_BALANCE).quantize(CENT)
    if starting < 0:
        raise ValueError("starting balance must be non-negative")
    now_ts = utcnow()
    profile = UserProfile(
        user_id=_coerce_user_id(user_id) if user_id else uuid.uuid4(),
        balance=starting,
        version=0,
        created_at=now_ts,
        updated_at=now_ts,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def get_profile(db: Session, user_id: uuid.UUID | str) -> UserProfile:
    profile = db.get(UserProfile, _coerce_user_id(user_id))
    if profile is None:
        raise NotFound("Profile not found", user_id=str(user_id))
    return profile


def _settle_once(
    db: Session,
    user_id: uuid.UUID,
    market_id: int,
    option_id: int,
    quantity: int,
) -> Position:
    try:
        trade = quote_trade(db, market_id, option_id, quantity)
        profile = _load_profile_for_update(db, user_id)
        if trade.total_cost > profile.balance:
            raise InsufficientBalance(
                f"Insufficient balance: this trade costs ${trade.total_cost:.2f}, "
                f"available ${profile.balance:.2f}",
                total_cost=str(trade.total_cost),
                balance=str(profile.balance),
            )
        _apply_debit(db, profile, trade.total_cost)
        now_ts = utcnow()
        position = Position(
            user_id=user_id,
            market_id=market_id,
            option_id=option_id,
            outcome=trade.option.title,
            quantity=quantity,
            price_per_share=trade.price_per_share,
            total_cost=trade.total_cost,
            created_at=now_ts,
        )
        db.add(position)
        db.commit()
    except ConcurrentUpdateConflict:
        db.rollback()
        logger.info("trade_balance_conflict user_id=%s market_id=%s", user_id, market_id)
        raise
    except OperationalError as exc:
        db.rollback()
        if is_lock_conflict(exc):
            logger.info("trade_lock_conflict user_id=%s market_id=%s", user_id, market_id)
            raise ConcurrentUpdateConflict() from exc
        raise
    except (SQLAlchemyError, InsufficientBalance, NotFound):
        db.rollback()
        raise

    db.refresh(position)
    logger.info(
        "trade_executed user_id=%s market_id=%s option_id=%s quantity=%s total_cost=%s",
        user_id,
        market_id,
        option_id,
        quantity,
        position.total_cost,
    )
    return position


def _load_profile_for_update(db: Session, user_id: uuid.UUID) -> UserProfile:
    profile = db.execute(
        select(UserProfile)
        .where(UserProfile.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if profile is None:
        raise NotFound("Profile not found", user_id=str(user_id))
    return profile


def _apply_debit(db: Session, profile: UserProfile, total_cost: Decimal) -> None:
    new_balance = (profile.balance - total_cost).quantize(CENT)
    result = db.execute(
        update(UserProfile)
        .where(
            UserProfile.user_id == profile.user_id,
            UserProfile.version == profile.version,
        )
        .values(
            balance=new_balance,
            version=profile.version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrentUpdateConflict()


def _coerce_user_id(user_id: uuid.UUID | str) -> uuid.UUID:
    if isinstance(user_id, uuid.UUID):
        return user_id
    try:
        return uuid.UUID(str(user_id))
    except ValueError as exc:
        raise NotFound("Profile not found", user_id=str(user_id)) from exc
