"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (SQLite in-memory)
- Table definitions for profiles and typing results
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Index
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
import logging
import os

from speedtype.core.config import settings


logger = logging.getLogger("speedtype")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # Single shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )
    logger.info(f"Database engine initialized ({_engine.dialect.name})")

    return _engine


def dispose_engine() -> None:
    """Drop the current engine (tests re-initialize per case)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """Drop every table in metadata. Only use in tests."""
    engine = get_engine()
    metadata.drop_all(bind=engine)


# Player profiles (display name, email, coin balance)
profiles = Table(
    'profiles',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('username', String(100), nullable=True),
    Column('email', String(255), nullable=True),
    Column('coins', Integer, nullable=False, server_default='0'),
    Column('created_at', DateTime(timezone=True), nullable=True),
)

# Validated typing results (authoritative leaderboard source)
typing_results = Table(
    'typing_results',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(64), nullable=False, index=True),
    Column('wpm', Integer, nullable=False),
    Column('accuracy', Integer, nullable=False),
    Column('correct_chars', Integer, nullable=False),
    Column('incorrect_chars', Integer, nullable=False),
    Column('duration', Integer, nullable=False),
    Column('theme', String(100), nullable=False),
    Column('language', String(16), nullable=False, server_default='en'),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Index('ix_typing_results_ranking', 'duration', 'wpm', 'accuracy', 'created_at'),
)

# Tables checked by /readyz
REQUIRED_TABLES = ["profiles", "typing_results"]

