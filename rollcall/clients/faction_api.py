"""
rollcall.clients.faction_api — Game-world faction API
======================================================

Two endpoints, both authorized with the caller's bearer token:

    GET /faction/{id}       → {"data": {"members": [Character, ...]}}
    GET /faction/{id}/abas  → {"data": [ActivityScore, ...]}

A 401 raises :class:`~rollcall.errors.ReauthRequired` so callers can send
the user through login again; every other failure raises
:class:`~rollcall.errors.UpstreamFetchFailed`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from rollcall.constants import DEFAULT_FACTION_API_BASE_URL
from rollcall.engine.members import AbasEntry, Character
from rollcall.errors import ReauthRequired, UpstreamFetchFailed

logger = logging.getLogger(__name__)

ROSTER_SOURCE = "faction roster"
ABAS_SOURCE = "faction ABAS"


class FactionApiClient:
    def __init__(
        self,
        base_url: str = DEFAULT_FACTION_API_BASE_URL,
        *,
        timeout: float = 10.0,
        retries: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retries = retries
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        transport = self._transport or httpx.AsyncHTTPTransport(retries=self._retries)
        return httpx.AsyncClient(timeout=self._timeout, transport=transport)

    async def _get(self, path: str, access_token: str, source: str) -> Any:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        try:
            async with self._client() as client:
                resp = await client.get(f"{self.base_url}{path}", headers=headers)
        except httpx.HTTPError as exc:
            raise UpstreamFetchFailed(source, None, str(exc)) from exc

        if resp.status_code == 401:
            raise ReauthRequired(source)
        if not resp.is_success:
            raise UpstreamFetchFailed(source, resp.status_code, resp.text[:200])
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamFetchFailed(source, resp.status_code, "response is not JSON") from exc

    async def fetch_roster(self, faction_id: int, access_token: str) -> list[Character]:
        body = await self._get(f"/faction/{faction_id}", access_token, ROSTER_SOURCE)
        try:
            raw_members = body["data"]["members"]
            return [Character.from_dict(m) for m in raw_members]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise UpstreamFetchFailed(ROSTER_SOURCE, 200, "unexpected response shape") from exc

    async def fetch_activity_scores(self, faction_id: int, access_token: str) -> list[AbasEntry]:
        """Decode the ABAS list; rows that cannot be decoded are skipped."""
        body = await self._get(f"/faction/{faction_id}/abas", access_token, ABAS_SOURCE)
        try:
            rows = body["data"]
        except (KeyError, TypeError) as exc:
            raise UpstreamFetchFailed(ABAS_SOURCE, 200, "unexpected response shape") from exc
        if not isinstance(rows, list):
            raise UpstreamFetchFailed(ABAS_SOURCE, 200, "unexpected response shape")

        entries: list[AbasEntry] = []
        for row in rows:
            try:
                entries.append(AbasEntry.from_dict(row))
            except (AttributeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping undecodable ABAS row for faction %d: %r", faction_id, row)
        return entries
