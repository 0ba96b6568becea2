"""Database configuration and session management.

This module declares the SQLAlchemy declarative base and the
:class:`Database` object that owns the engine and session factory.
The application opens one instance at startup, keeps it on
``app.state.database`` and closes it at shutdown. :func:`get_db` hands
out per-request sessions from it.
"""

import logging
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)


Base = declarative_base()
"""Declarative base class for SQLAlchemy models."""


class Database:
    """Storage handle with an explicit open/close lifecycle."""

    def __init__(self, url: str, **engine_options):
        self.url = url
        self.engine_options = engine_options
        self.engine: Engine | None = None
        self.SessionLocal: sessionmaker | None = None

    def open(self) -> "Database":
        """
        Create the engine and session factory, then make sure tables exist.

        Returns:
            Database: ``self``, so ``Database(url).open()`` can be chained.
        """
        options = dict(self.engine_options)
        if self.url.startswith("sqlite"):
            connect_args = options.setdefault("connect_args", {})
            connect_args.setdefault("check_same_thread", False)
        self.engine = create_engine(self.url, future=True, **options)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            future=True,
        )
        # Tables must be registered on Base before create_all.
        from . import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("database opened: %s", self.engine.url)
        return self

    def close(self) -> None:
        """Dispose of the engine and its connections."""
        if self.engine is not None:
            self.engine.dispose()
            logger.info("database closed: %s", self.engine.url)
        self.engine = None
        self.SessionLocal = None

    def session(self) -> Session:
        """
        Return a new session bound to the open engine.

        Raises:
            RuntimeError: If :meth:`open` has not been called.
        """
        if self.SessionLocal is None:
            raise RuntimeError("Database is not open")
        return self.SessionLocal()


def get_db(request: Request) -> Iterator[Session]:
    """
    Provide a SQLAlchemy database session.

    This function is used as a FastAPI dependency. It yields a session
    from the application's :class:`Database` and closes it once the
    request is completed.
    """

    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
