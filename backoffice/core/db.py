# backoffice/core/db.py - Engine, sessions and the get_db dependency
from sqlalchemy import create_engine, text, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool, QueuePool
from typing import Any, Dict, Generator, Optional
import logging
import time
import threading
from contextlib import contextmanager

from backoffice.core.config import settings

logger = logging.getLogger(__name__)

SLOW_QUERY_SECONDS = 0.1


def _engine_options(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        # One shared connection; SQLite serialises writers anyway
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False, "timeout": 30},
        }
    return {
        "poolclass": QueuePool,
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
        "pool_recycle": settings.DATABASE_POOL_RECYCLE,
        "pool_pre_ping": True,
        "connect_args": {
            "connect_timeout": 10,
            "application_name": f"school_backoffice_{settings.ENV}",
            "options": "-c timezone=UTC",
        },
    }


def install_sqlite_pragmas(engine: Engine):
    """Turn on foreign keys for every SQLite connection"""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _watch_slow_queries(engine: Engine):
    @event.listens_for(engine, "before_cursor_execute")
    def start_timer(conn, cursor, statement, parameters, context, executemany):
        context._started_at = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def report_slow(conn, cursor, statement, parameters, context, executemany):
        elapsed = time.perf_counter() - getattr(context, "_started_at", time.perf_counter())
        if elapsed > SLOW_QUERY_SECONDS:
            logger.warning(f"Slow query ({elapsed:.3f}s): {statement[:100]}...")


class DatabaseManager:
    """
    Lazily built engine plus session factory.

    Nothing touches the database until the first session, transaction or
    health check is requested.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or settings.DATABASE_URL
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self._lock = threading.Lock()

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_initialized(self) -> bool:
        return self.engine is not None

    @property
    def safe_url(self) -> str:
        """Database URL without credentials, for logs and /health"""
        return self.database_url.split("@")[-1] if "@" in self.database_url else "local"

    def initialize(self):
        with self._lock:
            if self.is_initialized:
                return
            engine = create_engine(
                self.database_url,
                echo=settings.DATABASE_ECHO,
                **_engine_options(self.database_url),
            )
            install_sqlite_pragmas(engine)
            if settings.is_development:
                _watch_slow_queries(engine)

            try:
                with engine.connect() as conn:
                    version_query = "SELECT sqlite_version()" if self.is_sqlite else "SELECT version()"
                    version = conn.execute(text(version_query)).scalar()
            except Exception as e:
                logger.error(f"Failed to connect to {self.safe_url}: {e}")
                engine.dispose()
                raise

            self.engine = engine
            self.SessionLocal = sessionmaker(
                bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
            )
            logger.info(f"Connected to {'SQLite' if self.is_sqlite else 'PostgreSQL'} {str(version)[:50]}")

    def _new_session(self) -> Session:
        if not self.is_initialized:
            self.initialize()
        return self.SessionLocal()

    def get_session(self) -> Generator[Session, None, None]:
        """Request-scoped session; the caller commits, failures roll back"""
        session = self._new_session()
        try:
            yield session
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    @contextmanager
    def transaction(self):
        """
        Session that commits on exit and rolls back on any exception.

        Usage:
            with db_manager.transaction() as session:
                session.add(level)
        """
        session = self._new_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Transaction rolled back: {e}")
            raise
        finally:
            session.close()

    def health_check(self) -> dict:
        try:
            if not self.is_initialized:
                self.initialize()
            started = time.perf_counter()
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}
        return {
            "status": "healthy",
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "database_url": self.safe_url,
        }

    def close(self):
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            self.SessionLocal = None
            logger.info("Database connections closed")


db_manager = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request"""
    yield from db_manager.get_session()


def get_engine() -> Engine:
    if not db_manager.is_initialized:
        db_manager.initialize()
    return db_manager.engine


def health_check() -> dict:
    return db_manager.health_check()


__all__ = [
    "DatabaseManager",
    "install_sqlite_pragmas",
    "get_db",
    "get_engine",
    "health_check",
    "db_manager",
]
