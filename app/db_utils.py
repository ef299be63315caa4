from sqlalchemy.exc import OperationalError

# serialization_failure, deadlock_detected, lock_not_available
_LOCK_CONFLICT_PGCODES = {"40001", "40P01", "55P03"}


def is_lock_conflict(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None)
    if pgcode in _LOCK_CONFLICT_PGCODES:
        return True
    message = str(exc).lower()
    return (
        "could not serialize access" in message
        or "deadlock detected" in message
        or "database is locked" in message
    )
