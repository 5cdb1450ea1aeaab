"""
Database schema and connection management.

Uses SQLAlchemy for word storage. SQLite works for local runs and tests;
any SQLAlchemy URL (e.g. PostgreSQL) works in deployment.
"""

from datetime import datetime
from pathlib import Path
from typing import Union

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class Word(Base):
    """A word and its (possibly missing) etymology analysis."""

    __tablename__ = "words"
    __table_args__ = (UniqueConstraint("word", "language", name="uq_words_word_language"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    word = Column(String, nullable=False)
    language = Column(String(8), nullable=False, index=True)  # partition key: ko, ja, zh, ...
    etymology = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def database_url(target: Union[str, Path]) -> str:
    """Accept either a SQLAlchemy URL or a path to a SQLite file."""
    if isinstance(target, Path) or "://" not in str(target):
        return f"sqlite:///{target}"
    return str(target)


def make_engine(target: Union[str, Path]) -> Engine:
    """
    Create an engine usable from many worker threads.

    Args:
        target: SQLAlchemy URL or SQLite file path
    """
    url = make_url(database_url(target))
    if url.get_backend_name() == "sqlite":
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    return create_engine(url, pool_pre_ping=True)


def init_database(target: Union[str, Path]) -> Engine:
    """
    Initialize database and create tables.

    Args:
        target: SQLAlchemy URL or SQLite file path

    Returns:
        The engine bound to the initialized database
    """
    engine = make_engine(target)
    Base.metadata.create_all(engine)
    return engine


def get_session(target: Union[str, Path, Engine]):
    """
    Get database session.

    Args:
        target: Engine, SQLAlchemy URL or SQLite file path

    Returns:
        SQLAlchemy session
    """
    engine = target if isinstance(target, Engine) else make_engine(target)
    Session = sessionmaker(bind=engine)
    return Session()
