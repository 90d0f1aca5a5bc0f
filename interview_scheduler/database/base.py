"""Engine, session factory and declarative base shared by every model."""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import QueuePool

from ..config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Local runs only: requests are served from a thread pool
        return {"connect_args": {"check_same_thread": False}}
    return {
        "poolclass": QueuePool,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
    }


engine = create_engine(settings.effective_database_url, **_engine_options(settings.effective_database_url))

SessionLocal = sessionmaker(bind=engine)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; services commit or roll back themselves."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
