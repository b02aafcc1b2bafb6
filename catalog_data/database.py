"""
Database configuration and connection management.

Builds the engine and session factory from settings and hands out
persistent contexts for units of work.
"""

import time
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .logging_config import get_logger
from .models import Base
from .persistence.context import PersistentContext

logger = get_logger(__name__)


def get_database_url() -> str:
    """
    Get database URL from settings.

    Returns:
        Database connection URL
    """
    db_url = settings.DATABASE_URL

    # Sanitize for logging
    if "@" in db_url:
        safe_url = db_url.split("://")[0] + "://...@" + db_url.split("@", 1)[1]
    else:
        safe_url = db_url

    logger.info("Using database", url=safe_url)
    return db_url


def get_connect_args(db_url: str) -> dict:
    """
    Get database-specific connection arguments.

    Args:
        db_url: Database connection URL

    Returns:
        Connection arguments dict
    """
    if db_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def create_db_engine(db_url: str) -> Engine:
    """
    Create the SQLAlchemy engine.

    Pool sizing only applies to server databases; SQLite uses the
    dialect's default pool.

    Args:
        db_url: Database connection URL

    Returns:
        Configured engine
    """
    options = {
        "connect_args": get_connect_args(db_url),
        "echo": settings.DB_ECHO,
    }
    if not db_url.startswith("sqlite"):
        options.update(
            pool_pre_ping=settings.DB_POOL_PRE_PING,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    return create_engine(db_url, **options)


# Query performance tracking
@event.listens_for(Engine, "before_cursor_execute")
def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Track query start time."""
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(Engine, "after_cursor_execute")
def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """Log slow queries."""
    total_time_ms = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000

    if total_time_ms > settings.QUERY_LOG_THRESHOLD_MS:
        logger.warning(
            "Slow query detected",
            query_time_ms=round(total_time_ms, 2),
            statement=statement[:200],
        )


engine = create_db_engine(get_database_url())

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
    class_=Session,
)


def init_db(bind: Optional[Engine] = None) -> None:
    """
    Initialize database tables.

    Uses checkfirst=True to safely handle existing tables.

    Args:
        bind: Engine to create the tables on; the module engine by default
    """
    try:
        logger.info("Initializing database tables...")
        Base.metadata.create_all(bind=bind or engine, checkfirst=True)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize database", error=str(e))
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Get database session for dependency injection.

    Yields:
        SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_context() -> Generator[PersistentContext, None, None]:
    """
    Persistent context for one unit of work.

        with db_context() as context:
            fuels = Repository(context, Fuel)
            ...

    Uncommitted changes are discarded when the block exits.
    """
    context = PersistentContext(SessionLocal())
    try:
        yield context
    finally:
        context.close()
