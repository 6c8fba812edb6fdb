import logging
import os
import threading
import time
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

# Get environment-specific pool settings
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "0.1"))
HIGH_QUERY_COUNT = int(os.getenv("DB_HIGH_QUERY_COUNT", "20"))


def build_engine(url: str) -> Engine:
    """Create an engine; pool tuning only applies to server databases"""
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_pre_ping=True,  # Test connections before using
        pool_recycle=POOL_RECYCLE,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        echo=False,  # Don't log all SQL (use slow query logging instead)
    )


class QueryMetrics:
    """
    Query counters for one engine lifecycle.

    Owned by whoever owns the engine (API lifespan, worker startup, tests).
    Counts are per window; reset() closes the window and returns its snapshot.
    """

    def __init__(
        self,
        slow_query_threshold: float = SLOW_QUERY_THRESHOLD,
        high_query_count: int = HIGH_QUERY_COUNT,
    ):
        self.slow_query_threshold = slow_query_threshold
        self.high_query_count = high_query_count
        self._lock = threading.Lock()
        self.query_count = 0
        self.slow_query_count = 0
        self.window_started_at = time.monotonic()

    def record(self, duration: float, statement: str) -> None:
        with self._lock:
            self.query_count += 1
            slow = duration > self.slow_query_threshold
            if slow:
                self.slow_query_count += 1

        if slow:
            logger.warning(f"🐌 Slow query ({duration:.3f}s): {statement[:200]}...")

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "query_count": self.query_count,
                "slow_query_count": self.slow_query_count,
                "window_seconds": round(time.monotonic() - self.window_started_at, 1),
            }

    def reset(self) -> dict:
        """Close the current window and start a fresh one"""
        summary = self.snapshot()
        if summary["query_count"] > self.high_query_count:
            logger.warning(
                f"⚠️ High query count: {summary['query_count']} queries "
                f"in {summary['window_seconds']}s"
            )
        with self._lock:
            self.query_count = 0
            self.slow_query_count = 0
            self.window_started_at = time.monotonic()
        return summary


def install_query_metrics(engine: Engine, metrics: QueryMetrics) -> None:
    """Attach cursor timing listeners that feed the given metrics"""

    def before_cursor_execute(conn, _cursor, _statement, _parameters, _context, _executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    def after_cursor_execute(conn, _cursor, statement, _parameters, _context, _executemany):
        started = conn.info["query_start_time"].pop(-1)
        metrics.record(time.perf_counter() - started, statement)

    event.listen(engine, "before_cursor_execute", before_cursor_execute)
    event.listen(engine, "after_cursor_execute", after_cursor_execute)
    metrics._listeners = (before_cursor_execute, after_cursor_execute)
    logger.info(f"📊 Query metrics enabled (slow threshold: {metrics.slow_query_threshold}s)")


def remove_query_metrics(engine: Engine, metrics: QueryMetrics) -> None:
    listeners: Optional[tuple] = getattr(metrics, "_listeners", None)
    if not listeners:
        return
    event.remove(engine, "before_cursor_execute", listeners[0])
    event.remove(engine, "after_cursor_execute", listeners[1])
    metrics._listeners = None


try:
    engine = build_engine(DATABASE_URL)
    logger.info("✅ Database engine created successfully")
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    raise

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
