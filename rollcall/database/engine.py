"""
rollcall.database.engine — Engine, sessions and the async bridge
=================================================================

Cache store, membership, sync and section services are plain synchronous
functions over a :class:`Session`.  The aggregator is a coroutine, so it
reaches them through :func:`run_db`.

Usage::

    from rollcall.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # DATABASE_URL from .env
    init_db(engine)

    cached = await run_db(store.get_faction_roster, faction_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from rollcall.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Applied to every engine; a roster view holds one connection per run_db call.
POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 10,
    "pool_recycle": 3600,
}


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build the engine for *url*, falling back to ``DATABASE_URL``.

    Raises
    ------
    RuntimeError
        Neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example to .env and point it at the rollcall database."
        )

    engine = create_engine(url, echo=False, **POOL_OPTIONS)
    logger.info("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create any missing rollcall tables.  Deployed databases use Alembic."""
    Base.metadata.create_all(engine)
    logger.info("Rollcall tables verified / created.")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """One unit of work: commit on success, roll back on any exception.

    Objects stay loaded after commit so services can return ORM rows
    (memberships, snapshots, cache records) to callers.
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await synchronous database work *func* on a worker thread::

        scores = await run_db(store.get_activity_scores, faction_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
