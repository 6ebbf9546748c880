"""
rollcall.engine.freshness — Cache staleness policy
===================================================

A cache row is stale when it was never synced, or when at least
``threshold_minutes`` have elapsed since its last sync.  Sources that are
refreshed together (faction roster + ABAS) share the *minimum* of their
thresholds, so neither can outlive its own window.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

__all__ = ["is_stale", "effective_threshold", "utcnow"]


def utcnow() -> datetime:
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_stale(now: datetime, last_sync: datetime | None, threshold_minutes: float) -> bool:
    """Return True if a record synced at *last_sync* must be refetched at *now*."""
    if last_sync is None:
        return True
    return _as_utc(now) - _as_utc(last_sync) >= timedelta(minutes=threshold_minutes)


def effective_threshold(*thresholds_minutes: float) -> float:
    """Threshold for sources fetched under one refresh event."""
    if not thresholds_minutes:
        raise ValueError("at least one threshold is required")
    return min(thresholds_minutes)
