"""
Database configuration and session management
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
import logging

from config import database_url

logger = logging.getLogger("print_dispatch.database")

# Database configuration
DATABASE_URL = database_url()


def make_engine(url: str):
    """Create an engine; SQLite gets a thread-shareable connection"""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)

    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,  # Verify connections before using
        echo=False  # Set to True for SQL query logging
    )


def make_session_factory(bind):
    # rows are read detached by background print tasks
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


# Create engine
engine = make_engine(DATABASE_URL)

# Session factory
SessionLocal = make_session_factory(engine)

# Base class for models
Base = declarative_base()

# Dependency for FastAPI routes
def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@contextmanager
def get_db_context(session_factory=None):
    """Context manager for database session"""
    db: Session = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        db.close()

def init_db(bind=None):
    """Initialize database - create all tables"""
    import models  # noqa: F401  registers tables on Base.metadata

    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("✓ Database tables created successfully")
    except Exception as e:
        logger.error(f"✗ Failed to create database tables: {e}")
        raise

def drop_all_tables(bind=None):
    """Drop all tables (use with caution!)"""
    Base.metadata.drop_all(bind=bind or engine)
    logger.warning("⚠ All tables dropped")
