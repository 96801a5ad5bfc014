"""
Database engine and session management
"""
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from georef.core.config import settings


Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Creates the engine for a database URL (SQLite gets thread-safe connections)."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Search and batch workers open their own sessions from other threads
        connect_args["check_same_thread"] = False
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        connect_args=connect_args
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
SessionLocal = build_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None) -> None:
    """Creates the PSGC tables if they do not exist."""
    from georef.models import psgc  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
