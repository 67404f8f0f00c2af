from __future__ import annotations

from collections.abc import Callable, Generator
from contextlib import AbstractContextManager, contextmanager

from loguru import logger
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from hercules.config.settings import settings

SessionFactory = Callable[[], AbstractContextManager[Session]]

# Lazy initialization to avoid import-time database connections
_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _get_engine() -> Engine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        logger.info(f"Initializing database engine: {settings.database_url}")

        connect_args = {}
        if "sqlite" in settings.database_url.lower():
            connect_args = {"check_same_thread": False}
        else:
            connect_args = {
                "connect_timeout": 10,
                "application_name": "hercules-schedule",
            }

        _engine = create_engine(
            settings.database_url,
            connect_args=connect_args,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        logger.info("Database engine initialized")
    return _engine


def get_engine() -> Engine:
    """Get or create the database engine (public API)."""
    return _get_engine()


def _get_session_local() -> sessionmaker[Session]:
    """Get or create the session factory (lazy initialization)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_get_engine())
        logger.info("Database session factory initialized")
    return _SessionLocal


def init_db() -> None:
    """Create all tables known to the model metadata."""
    from hercules.db.models import Base

    Base.metadata.create_all(bind=_get_engine())
    logger.info("Database tables verified")


def session_scope(factory: sessionmaker[Session]) -> SessionFactory:
    """Build a get_session()-style context manager over an explicit sessionmaker.

    Used by tests and tools that bind to their own engine.
    """

    @contextmanager
    def _scope() -> Generator[Session, None, None]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return _scope


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get database session context manager.

    Commits when the block exits cleanly; any exception rolls the session
    back, is logged, and is re-raised to the caller.
    """
    logger.debug("Creating new database session")
    session = _get_session_local()()
    try:
        yield session
        # Bulk statements (delete/update) do not mark the session dirty
        session.commit()
        logger.debug("Database session committed successfully")
    except Exception as e:
        logger.error(
            f"Database session error, rolling back: {e}. "
            f"Error type: {type(e).__name__}, session state: "
            f"dirty={len(session.dirty)}, new={len(session.new)}, deleted={len(session.deleted)}"
        )
        session.rollback()
        raise
    finally:
        session.close()
        logger.debug("Database session closed")
