"""
Database connection management for OneManVan.
Handles SQLAlchemy engine creation, session management, and connection verification.
"""

import os
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = 'sqlite:///onemanvan.db'

# Get DATABASE_URL from environment
DATABASE_URL = os.environ.get('DATABASE_URL', DEFAULT_DATABASE_URL)

# SQLAlchemy Base for model declarations
Base = declarative_base()

# Engine and SessionLocal will be initialized when needed
engine = None
SessionLocal = None


def _build_engine(url: str):
    """Create an engine suited to the URL's backend."""
    if url.startswith('sqlite'):
        kwargs = {'connect_args': {'check_same_thread': False}, 'echo': False}
        # In-memory databases live and die with a single connection
        if ':memory:' in url or url in ('sqlite://', 'sqlite:///'):
            kwargs['poolclass'] = StaticPool
        return create_engine(url, **kwargs)

    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=300,    # Recycle connections after 5 minutes
        echo=False
    )


def get_engine():
    """Get or create the SQLAlchemy engine."""
    global engine

    if engine is not None:
        return engine

    try:
        engine = _build_engine(DATABASE_URL)
        logger.info(f"Database engine created for {DATABASE_URL.split('://')[0]}")
        return engine
    except Exception as e:
        logger.error(f"Failed to create database engine: {e}")
        raise RuntimeError(f"Failed to connect to database: {e}")


def configure_database(url: str):
    """
    Point the data layer at a different database.

    Disposes the current engine (if any) and rebuilds the engine and
    session factory for ``url``. Used by the app factory and by tests.
    """
    global DATABASE_URL, engine, SessionLocal

    if engine is not None:
        engine.dispose()

    DATABASE_URL = url
    engine = None
    SessionLocal = None
    get_session_factory()
    logger.info(f"Database configured: {url}")
    return engine


def get_session_factory():
    """Get or create the session factory."""
    global SessionLocal

    if SessionLocal is not None:
        return SessionLocal

    eng = get_engine()
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=eng)
    return SessionLocal


def get_db():
    """
    Generator dependency for routes to get a database session.
    Yields a session and ensures it's closed after use.
    """
    session_factory = get_session_factory()
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session():
    """
    Context manager for getting a database session.

    Example:
        with get_db_session() as db:
            customers = db.query(Customer).all()
    """
    session_factory = get_session_factory()
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_db_connection():
    """
    Verify that the database connection is working.
    Returns True if connection is successful, raises exception otherwise.
    """
    try:
        eng = get_engine()
        with eng.connect() as conn:
            result = conn.execute(text("SELECT 1"))
            result.fetchone()
        logger.debug("Database connection verified successfully")
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        raise RuntimeError(f"Cannot connect to database: {e}")


def init_db():
    """
    Initialize the database by creating all tables.
    This should be called at application startup.
    """
    # Import models to ensure they're registered with Base
    from database import models  # noqa: F401

    eng = get_engine()
    Base.metadata.create_all(bind=eng)
    logger.info("Database tables created/verified")


def drop_db():
    """Drop all tables. Only used by tests and local resets."""
    from database import models  # noqa: F401

    eng = get_engine()
    Base.metadata.drop_all(bind=eng)
    logger.warning("Database tables dropped")
