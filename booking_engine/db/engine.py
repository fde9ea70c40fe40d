"""
SQLAlchemy engine for the booking database.

The application shares one engine per process. PostgreSQL (production) gets a
connection pool sized for concurrent API requests plus the sync workers;
SQLite URLs (local development and tests) get the dialect's default pool.
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from booking_engine.config import DATABASE_URL


def create_db_engine(url: str) -> Engine:
    """
    Build an engine for the given database URL.

    Args:
        url: SQLAlchemy database URL

    Returns:
        Engine: configured engine
    """
    if make_url(url).get_backend_name() == "sqlite":
        # Sync workers and request threads share connections
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_size=10,  # API requests
        max_overflow=20,  # sync workers and sweeps on top of request load
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
    )


engine: Engine = create_db_engine(DATABASE_URL)


def check_engine_health(db_engine: Engine = engine) -> bool:
    """
    Check if the database is reachable.

    Used by the /ready endpoint before the service accepts traffic.

    Returns:
        bool: True if a trivial query succeeds, False otherwise
    """
    try:
        with db_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
