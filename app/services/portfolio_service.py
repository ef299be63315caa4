from decimal import Decimal
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from ..core.ledger import get_profile
from ..models import Position


def _decimal_str(value: Decimal | None) -> str:
    return f"{Decimal(value or 0):.2f}"


def _build_position_payload(position: Position) -> dict[str, object]:
    return {
        "id": position.id,
        "market_id": position.market_id,
        "market_title": position.market.title if position.market else None,
        "option_id": position.option_id,
        "outcome": position.outcome,
        "quantity": position.quantity,
        "price_per_share": f"{Decimal(position.price_per_share):.2f}",
        "total_cost": _decimal_str(position.total_cost),
        "created_at": position.created_at.isoformat() if position.created_at else None,
    }


def build_portfolio(db: Session, user_id: uuid.UUID | str) -> dict[str, object]:
    profile = get_profile(db, user_id)
    positions = list(
        db.execute(
            select(Position)
            .options(joinedload(Position.market))
            .where(Position.user_id == profile.user_id)
            .order_by(Position.created_at.desc(), Position.id.desc())
        ).scalars()
    )
    total_invested = sum((Decimal(p.total_cost) for p in positions), Decimal("0"))
    return {
        "user_id": str(profile.user_id),
        "balance": _decimal_str(profile.balance),
        "total_invested": _decimal_str(total_invested),
        "position_count": len(positions),
        "positions": [_build_position_payload(p) for p in positions],
    }
