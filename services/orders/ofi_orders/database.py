"""
Database configuration and session management for the Orders service.

This module sets up the database connection using SQLAlchemy and provides
the session factory used by request handlers, the WebSocket endpoint and
startup tasks. PostgreSQL is used in deployment; SQLite is the local default.
"""
import os
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Get database URL from environment variable
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ofi_orders.db")

# SQLite connections are handed between threadpool workers by FastAPI
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def init_db(bind=None) -> None:
    """Create any missing tables."""
    # Models register themselves on Base when imported
    from . import models
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """
    Dependency function that provides a database session.

    Yields:
        Session: SQLAlchemy database session

    Usage:
        Use as a FastAPI dependency to inject database sessions into route handlers.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory=None):
    """
    Session for work outside a request (one WebSocket message, startup seeding).

    Args:
        factory: Session factory to use instead of SessionLocal
    """
    db = (factory or SessionLocal)()
    try:
        yield db
    finally:
        db.close()
