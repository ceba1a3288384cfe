"""SQLAlchemy engine and session factory.

When DATABASE_URL is configured the SQL repositories are used; when it is
not, ``engine`` and ``session_factory`` are None and the service runs on
in-memory repositories.

The core operations are synchronous (FastAPI runs them in its threadpool),
so this is the synchronous engine.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from quizcore.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all table models."""


def make_engine(url: str, *, echo: bool = False) -> Engine:
    if url.startswith("sqlite") and ":memory:" in url:
        # One shared connection, or every session would see an empty database
        return create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(url, echo=echo, pool_size=5, max_overflow=10, pool_pre_ping=True)


def make_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind, expire_on_commit=False)


def create_schema(bind: Engine) -> None:
    import quizcore.db.tables  # noqa: F401  registers the tables on Base

    Base.metadata.create_all(bind)


if SETTINGS.database_url:
    engine: Engine | None = make_engine(SETTINGS.database_url, echo=SETTINGS.is_dev)
    session_factory: sessionmaker[Session] | None = make_session_factory(engine)
else:
    engine = None
    session_factory = None


@asynccontextmanager
async def lifespan_db():
    """Startup/shutdown hook for the database engine."""
    if engine is None:
        logger.info("No DATABASE_URL configured, using in-memory repositories")
        yield
        return

    create_schema(engine)
    logger.info("Database engine ready: %s", engine.url.render_as_string(hide_password=True))
    yield
    engine.dispose()
    logger.info("Database engine disposed")
