"""
Database session and connection-pool setup.

Pool parameters:
- pool_size: persistent connections (default 10, enough for 4 uvicorn workers)
- max_overflow: extra connections allowed at peak
- pool_timeout: max seconds to wait for a connection
- pool_recycle: recycle period so PostgreSQL does not drop idle connections
- pool_pre_ping: liveness check before each checkout
"""

import logging
import time
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker
from app.config import settings

logger = logging.getLogger("marketplace.db")

POOL_SIZE = settings.DB_POOL_SIZE
MAX_OVERFLOW = settings.DB_MAX_OVERFLOW
POOL_TIMEOUT = 30
POOL_RECYCLE = 1800  # 30 minutes

# Slow query threshold (ms)
SLOW_QUERY_THRESHOLD_MS = 500


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_size": POOL_SIZE,
        "max_overflow": MAX_OVERFLOW,
        "pool_timeout": POOL_TIMEOUT,
        "pool_recycle": POOL_RECYCLE,
    }


engine = create_engine(
    settings.database_url,
    echo=settings.DB_ECHO,
    **_engine_kwargs(settings.database_url),
)


@event.listens_for(engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    total_ms = (time.perf_counter() - conn.info["query_start_time"].pop()) * 1000

    if total_ms >= SLOW_QUERY_THRESHOLD_MS:
        # Truncate long SQL so one query cannot flood the log
        stmt_preview = statement[:500] + "..." if len(statement) > 500 else statement
        logger.warning(
            "Slow query detected (%.1fms): %s",
            total_ms,
            stmt_preview,
        )


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def ping_database() -> None:
    """Run ``SELECT 1`` on a fresh session; raises if the database is unreachable."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    finally:
        db.close()
