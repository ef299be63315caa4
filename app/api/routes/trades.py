from decimal import Decimal
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ...core.errors import PaperMarketsError
from ...core.ledger import create_profile, execute_trade
from ...db import get_db
from ...deps import http_error
from ...services.portfolio_service import build_portfolio

router = APIRouter()


class ProfileCreate(BaseModel):
    user_id: uuid.UUID | None = None
    balance: Decimal | None = Field(default=None, ge=0)


class TradeRequest(BaseModel):
    user_id: uuid.UUID
    market_id: int
    option_id: int
    # Validated by the ledger so every caller gets the same error.
    quantity: int | float | str


@router.post("/profiles")
def profiles_create(payload: ProfileCreate, db: Session = Depends(get_db)):
    profile = create_profile(db, user_id=payload.user_id, balance=payload.balance)
    return {
        "user_id": str(profile.user_id),
        "balance": f"{Decimal(profile.balance):.2f}",
    }


@router.post("/trades")
def trades_create(payload: TradeRequest, db: Session = Depends(get_db)):
    try:
        position = execute_trade(
            db,
            payload.user_id,
            payload.market_id,
            payload.option_id,
            _parse_quantity(payload.quantity),
        )
    except PaperMarketsError as exc:
        raise http_error(exc)
    return {
        "id": position.id,
        "user_id": str(position.user_id),
        "market_id": position.market_id,
        "option_id": position.option_id,
        "outcome": position.outcome,
        "quantity": position.quantity,
        "price_per_share": f"{Decimal(position.price_per_share):.2f}",
        "total_cost": f"{Decimal(position.total_cost):.2f}",
        "created_at": position.created_at.isoformat() if position.created_at else None,
    }


@router.get("/portfolio/{user_id}")
def portfolio(user_id: str, db: Session = Depends(get_db)):
    try:
        return build_portfolio(db, user_id)
    except PaperMarketsError as exc:
        raise http_error(exc)


def _parse_quantity(value):
    if isinstance(value, str):
        raw = value.strip()
        try:
            return int(raw)
        except ValueError:
            try:
                return float(raw)
            except ValueError:
                return raw
    return value
