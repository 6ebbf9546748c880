"""
rollcall.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for deployment-level settings: upstream API locations,
cache freshness thresholds and HTTP tuning.  Per-faction settings (forum
URL + key, ABAS minimums) live on the ``factions`` table instead.

Usage::

    from rollcall.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.roster_cache_minutes)  # 1440
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from rollcall.constants import (
    DEFAULT_ABAS_CACHE_MINUTES,
    DEFAULT_FACTION_API_BASE_URL,
    DEFAULT_FORUM_API_PATH,
    DEFAULT_FORUM_CACHE_MINUTES,
    DEFAULT_ROSTER_CACHE_MINUTES,
)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RollcallConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Upstream APIs
    faction_api_base_url: str = DEFAULT_FACTION_API_BASE_URL
    forum_api_path: str = DEFAULT_FORUM_API_PATH

    # Cache freshness (minutes)
    roster_cache_minutes: int = DEFAULT_ROSTER_CACHE_MINUTES
    abas_cache_minutes: int = DEFAULT_ABAS_CACHE_MINUTES
    forum_cache_minutes: int = DEFAULT_FORUM_CACHE_MINUTES

    # HTTP
    http_timeout_seconds: float = 10.0
    http_retries: int = 1


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> RollcallConfig:
    """Read *path* and return a :class:`RollcallConfig` instance.

    Keys missing from the file keep their defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a cache threshold is not a positive number of minutes.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return config_from_mapping(raw)


def config_from_mapping(raw: dict) -> RollcallConfig:
    """Build a :class:`RollcallConfig` from an already-parsed mapping."""
    defaults = RollcallConfig()

    cfg = RollcallConfig(
        faction_api_base_url=str(
            raw.get("faction_api_base_url", defaults.faction_api_base_url)
        ).rstrip("/"),
        forum_api_path=str(raw.get("forum_api_path", defaults.forum_api_path)).strip("/"),
        roster_cache_minutes=int(raw.get("roster_cache_minutes", defaults.roster_cache_minutes)),
        abas_cache_minutes=int(raw.get("abas_cache_minutes", defaults.abas_cache_minutes)),
        forum_cache_minutes=int(raw.get("forum_cache_minutes", defaults.forum_cache_minutes)),
        http_timeout_seconds=float(
            raw.get("http_timeout_seconds", defaults.http_timeout_seconds)
        ),
        http_retries=int(raw.get("http_retries", defaults.http_retries)),
    )

    for key in ("roster_cache_minutes", "abas_cache_minutes", "forum_cache_minutes"):
        if getattr(cfg, key) <= 0:
            raise ValueError(f"{key} must be a positive number of minutes")

    return cfg
