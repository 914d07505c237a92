"""
Database engine and session management using SQLAlchemy 2.x.
Provides the declarative base, session factory and commit helpers.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from skillconnect.lib.settings import settings


def utcnow() -> datetime:
    """Timezone-aware UTC now, used for column defaults and query bounds."""
    return datetime.now(timezone.utc)


# Base class for all SQLAlchemy models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool options per backend; in-memory SQLite must share one connection."""
    if url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/").endswith(":"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": 5,
        "max_overflow": 10,
    }


engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    **_engine_options(settings.database_url),
)


# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI routes to get a database session.

    Usage:
        @app.get("/example")
        def example(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI routes.

    Usage:
        with get_db_context() as db:
            result = db.query(User).first()
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def conflicts_as_409(db: Session) -> Generator[None, None, None]:
    """
    Roll back and raise a 409 when a flush or commit loses a race.

    A StaleDataError means a versioned row changed underneath us; an
    IntegrityError means a uniqueness rule (one booking per request,
    one idempotency key per user) was hit by a concurrent writer.
    """
    from skillconnect.api.middleware.error_handler import ConflictException

    try:
        yield
    except StaleDataError as exc:
        db.rollback()
        raise ConflictException(
            "The resource was modified by another request, please retry",
            details={"reason": "stale_version"},
        ) from exc
    except IntegrityError as exc:
        db.rollback()
        raise ConflictException(
            "The change conflicts with an existing record",
            details={"reason": "integrity"},
        ) from exc


def commit_or_conflict(db: Session) -> None:
    """Commit the current transaction, mapping lost races to a 409."""
    with conflicts_as_409(db):
        db.commit()


def init_db():
    """
    Initialize the database by creating all tables.
    Should be called after all models are imported.
    """
    Base.metadata.create_all(bind=engine)


def drop_db():
    """
    Drop all tables. Use with caution - for testing only.
    """
    Base.metadata.drop_all(bind=engine)
