"""Database session. SQLite compatible with connection pooling."""
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from poultry.core.config import settings


def _enable_sqlite_pragmas(dbapi_connection, connection_record):
    # Several terminals write to the same file: WAL lets readers run while a
    # posting commits, and foreign keys are off by default in SQLite.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    """Build an engine for the given URL with per-backend pool settings."""
    if database_url.startswith("sqlite"):
        # SQLite: Use NullPool for thread-safety
        from sqlalchemy.pool import NullPool
        db_engine = create_engine(
            database_url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS,
            },
            poolclass=NullPool,
        )
        event.listen(db_engine, "connect", _enable_sqlite_pragmas)
        return db_engine

    # PostgreSQL/MySQL: Use QueuePool with sensible defaults
    return create_engine(
        database_url,
        pool_size=5,  # Number of persistent connections
        max_overflow=10,  # Max temporary connections
        pool_timeout=30,  # Seconds to wait for connection
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True  # Verify connection health
    )


def make_session_factory(db_engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


engine = create_db_engine(settings.DATABASE_URL)

SessionLocal = make_session_factory(engine)
