from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from .settings import settings


def _backend_name(database_url: str) -> str:
    try:
        return make_url(database_url).get_backend_name()
    except Exception:
        return "postgresql" if database_url.startswith("postgres") else ""


def _build_connect_args(database_url: str) -> dict[str, object]:
    backend = _backend_name(database_url)
    args: dict[str, object] = {}
    if backend == "sqlite":
        # Sync passes and trade requests share the engine across threads.
        args["check_same_thread"] = False
    elif backend == "postgresql" and settings.DB_STATEMENT_TIMEOUT_SECONDS > 0:
        timeout_ms = int(settings.DB_STATEMENT_TIMEOUT_SECONDS * 1000)
        args["options"] = f"-c statement_timeout={timeout_ms}"
    return args


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_build_connect_args(settings.DATABASE_URL),
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
