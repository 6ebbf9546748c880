"""
Shared error types for rollcall services.

Primary failures (the faction roster fetch, missing caches, authorization)
are raised to the caller.  Best-effort sources (ABAS, individual forum
lookups) never surface these; they log and degrade instead.
"""

from __future__ import annotations


class RollcallError(Exception):
    """Base class for every error raised by the core."""


class UpstreamFetchFailed(RollcallError):
    """A required external source answered with a non-2xx status or not at all."""

    def __init__(self, source: str, status_code: int | None = None, detail: str = ""):
        message = f"Failed to fetch {source}"
        if status_code is not None:
            message += f" (status {status_code})"
        if detail:
            message += f": {detail}"
        super().__init__(message)
        self.source = source
        self.status_code = status_code
        self.detail = detail


class ReauthRequired(UpstreamFetchFailed):
    """The game-world API rejected the caller's bearer credential (HTTP 401)."""

    def __init__(self, source: str = "faction roster"):
        super().__init__(source, 401, "session expired, log in again")


class CachePreconditionFailed(RollcallError):
    """A cache the operation reads from has never been populated.

    The caller should run a manual sync first; the core never refetches on
    its own behalf in these paths.
    """


class ForumSyncUnavailable(RollcallError):
    """Forum-dependent feature requested without the needed configuration."""


class InvariantViolation(RollcallError):
    """An insert would give a character a second primary assignment."""

    def __init__(self, character_ids: list[int] | set[int]):
        ids = sorted(character_ids)
        super().__init__(
            f"Characters already hold a primary assignment: {ids}"
        )
        self.character_ids = ids


class Forbidden(RollcallError):
    """The actor may not manage the requested category."""


class RecordNotFound(RollcallError):
    """A roster, category, membership or faction does not exist."""
