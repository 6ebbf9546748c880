"""
rollcall.bootstrap — Composition root
======================================

Wiring:
1. Configure logging.
2. Load .env (``DATABASE_URL``).
3. Load config.yaml (API locations, cache thresholds, HTTP tuning).
4. Create the SQLAlchemy engine and ensure tables exist.
5. Build the cache store, the faction API client and the aggregator.

Usage::

    from rollcall.bootstrap import build_services

    services = build_services()
    view = await services.aggregator.build_roster_view(roster_id, access_token=token)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import Engine

from rollcall.clients.faction_api import FactionApiClient
from rollcall.config import RollcallConfig, load_config
from rollcall.database.engine import create_db_engine, init_db
from rollcall.services.cache_store import CacheStore
from rollcall.services.roster_service import RosterAggregator

logger = logging.getLogger("rollcall")

LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")


@dataclass(frozen=True, slots=True)
class Services:
    config: RollcallConfig
    engine: Engine
    store: CacheStore
    faction_api: FactionApiClient
    aggregator: RosterAggregator


def build_services(
    config_path: str | Path = "config.yaml",
    *,
    database_url: str | None = None,
    create_tables: bool = True,
) -> Services:
    """Load settings and wire every long-lived collaborator."""
    load_dotenv()

    cfg = load_config(config_path)
    logger.info(
        "Config loaded: roster/ABAS/forum cache: %d/%d/%d min",
        cfg.roster_cache_minutes, cfg.abas_cache_minutes, cfg.forum_cache_minutes,
    )

    engine = create_db_engine(database_url)
    if create_tables:
        init_db(engine)

    store = CacheStore(engine)
    faction_api = FactionApiClient(
        cfg.faction_api_base_url,
        timeout=cfg.http_timeout_seconds,
        retries=cfg.http_retries,
    )
    aggregator = RosterAggregator(engine, store, faction_api, cfg)
    return Services(
        config=cfg,
        engine=engine,
        store=store,
        faction_api=faction_api,
        aggregator=aggregator,
    )
