"""
Database connection and setup
SQLAlchemy engine and session factory, URL taken from settings
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.settings import settings
from teamdesk.models import Base


def make_engine(database_url: str, echo: bool = False):
    """
    Create an engine for the given URL
    SQLite needs cross-thread access (sessions are opened from the
    revalidation pool), in-memory SQLite also needs a single shared connection
    """
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


engine = make_engine(settings.database_url, echo=settings.database_echo)

# Session factory
SessionLocal = make_session_factory(engine)


def init_db(bind=None):
    """
    Initialize database - create all tables
    Safe to call multiple times (won't recreate existing tables)
    """
    Base.metadata.create_all(bind=bind or engine)
