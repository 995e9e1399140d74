from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from topshop.config import settings
from topshop.models import Base

SQLITE_BUSY_TIMEOUT_MS = 5000


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _build_engine(url: str) -> Engine:
    if not is_sqlite(url):
        return create_engine(url, future=True, pool_pre_ping=True)

    sqlite_engine = create_engine(url, future=True, connect_args={"check_same_thread": False})

    @event.listens_for(sqlite_engine, "connect")
    def _sqlite_pragmas(dbapi_connection, _connection_record) -> None:
        # store deletes rely on ON DELETE SET NULL / CASCADE
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()

    return sqlite_engine


engine: Engine = _build_engine(settings.TOPSHOP_DB_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def get_session() -> Iterator[Session]:
    """Request-scoped session; repositories commit their own writes."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
