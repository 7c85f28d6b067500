"""Database configuration and session management."""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from hbank.config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


# Consuming a code or rotating a token is a conditional UPDATE/DELETE whose
# rowcount decides the winner; READ COMMITTED re-evaluates the condition after
# a competing writer commits. A request stuck behind a row lock fails with
# OperationalError after db_lock_timeout_ms, which flows report as transient.
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_recycle=3600,
    isolation_level="READ COMMITTED",
    connect_args={"options": f"-c lock_timeout={settings.db_lock_timeout_ms}"},
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Services return ORM objects after committing
)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session shared by every service of one request.

    The current user resolved by ``get_current_user`` and the service that
    changes it use this same session, since FastAPI caches the dependency.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
