import argparse
from decimal import Decimal

from app.core.ledger import create_profile
from app.db import SessionLocal
from app.settings import settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a paper trading profile")
    parser.add_argument("--user-id", default=None, help="Existing UUID to reuse (optional)")
    parser.add_argument("--balance", type=Decimal, default=settings.STARTING_BALANCE)
    args = parser.parse_args()

    db = SessionLocal()
    try:
        profile = create_profile(db, user_id=args.user_id, balance=args.balance)
        print(f"{profile.user_id} {profile.balance}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
