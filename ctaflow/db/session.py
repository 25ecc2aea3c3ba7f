# ctaflow/db/session.py
"""
Database session management for the draft cache store.
"""
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from ctaflow.core.config import DRAFT_DATABASE_URL

log = logging.getLogger("ctaflow.database")


# ────────────────────────────────────────────
# SQLAlchemy Engine
# ────────────────────────────────────────────
def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=10,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using
        echo=False
    )


engine = build_engine(DRAFT_DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# ────────────────────────────────────────────
# Context Manager
# ────────────────────────────────────────────
@contextmanager
def get_db_session(factory=None):
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as db:
            entry = db.query(DraftCacheEntry).first()
    """
    db = (factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ────────────────────────────────────────────
# Database Utilities
# ────────────────────────────────────────────
def test_db_connection() -> bool:
    """Test database connection"""
    try:
        with get_db_session() as db:
            db.execute(text("SELECT 1"))
        log.info("✅ Draft cache database reachable")
        return True
    except Exception as e:
        log.error(f"❌ Draft cache database connection failed: {e}")
        return False


def init_db(bind: Engine = None):
    """Create the draft cache tables"""
    from ctaflow.db.base import Base
    try:
        Base.metadata.create_all(bind=bind or engine)
        log.info("✅ Draft cache tables initialized")
    except Exception as e:
        log.error(f"❌ Failed to initialize draft cache tables: {e}")
        raise
