"""
rollcall.clients.forum_api — Forum group/user API
==================================================

Optional per faction: a faction without a forum URL + key simply has no
forum client (:meth:`ForumApiClient.for_faction` returns ``None``).

    GET {url}/{path}/group/{id}?key=K          → {"group": {"members": [...], "leaders": [...]}}
    GET {url}/{path}/user/{id}?key=K           → {"user": {"username": ...}}
    GET {url}/{path}/user/username/{name}?key=K → {"user": {...}}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from rollcall.constants import DEFAULT_FORUM_API_PATH
from rollcall.errors import UpstreamFetchFailed

if TYPE_CHECKING:
    from rollcall.config import RollcallConfig
    from rollcall.database.models import Faction

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ForumGroup:
    group_id: int
    members: list[str] = field(default_factory=list)
    leaders: list[str] = field(default_factory=list)

    @property
    def usernames(self) -> list[str]:
        """Members then leaders, without repeats."""
        return list(dict.fromkeys([*self.members, *self.leaders]))


def _usernames(entries: Any) -> list[str]:
    if not isinstance(entries, list):
        return []
    return [e["username"] for e in entries if isinstance(e, dict) and e.get("username")]


class ForumApiClient:
    def __init__(
        self,
        forum_url: str,
        api_key: str,
        *,
        api_path: str = DEFAULT_FORUM_API_PATH,
        timeout: float = 10.0,
        retries: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = f"{forum_url.rstrip('/')}/{api_path.strip('/')}"
        self._api_key = api_key
        self._timeout = timeout
        self._retries = retries
        self._transport = transport

    @classmethod
    def for_faction(
        cls,
        faction: Faction,
        config: RollcallConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ForumApiClient | None:
        """Build a client from the faction's settings, or ``None`` if unset."""
        if not faction.forum_configured:
            return None
        return cls(
            faction.forum_api_url,
            faction.forum_api_key,
            api_path=config.forum_api_path,
            timeout=config.http_timeout_seconds,
            retries=config.http_retries,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        transport = self._transport or httpx.AsyncHTTPTransport(retries=self._retries)
        return httpx.AsyncClient(timeout=self._timeout, transport=transport)

    async def _get(self, path: str, source: str, *, allow_404: bool = False) -> Any:
        try:
            async with self._client() as client:
                resp = await client.get(f"{self.base_url}{path}", params={"key": self._api_key})
        except httpx.HTTPError as exc:
            raise UpstreamFetchFailed(source, None, str(exc)) from exc

        if allow_404 and resp.status_code == 404:
            return None
        if not resp.is_success:
            raise UpstreamFetchFailed(source, resp.status_code)
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamFetchFailed(source, resp.status_code, "response is not JSON") from exc

    async def fetch_group(self, group_id: int) -> ForumGroup:
        source = f"forum group {group_id}"
        body = await self._get(f"/group/{group_id}", source)
        try:
            group = (body or {}).get("group") or {}
            return ForumGroup(
                group_id=group_id,
                members=_usernames(group.get("members")),
                leaders=_usernames(group.get("leaders")),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise UpstreamFetchFailed(source, 200, "unexpected response shape") from exc

    async def fetch_user(self, user_id: int) -> str | None:
        """Return the username of forum user *user_id* (``None`` if blank)."""
        source = f"forum user {user_id}"
        body = await self._get(f"/user/{user_id}", source)
        try:
            username = ((body or {}).get("user") or {}).get("username")
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise UpstreamFetchFailed(source, 200, "unexpected response shape") from exc
        return str(username) if username else None

    async def find_user(self, username: str) -> dict | None:
        """Look a user up by name; ``None`` when the forum has no such user."""
        source = f"forum user {username!r}"
        body = await self._get(f"/user/username/{quote(username)}", source, allow_404=True)
        if body is None:
            return None
        if not isinstance(body, dict) or not isinstance(body.get("user") or {}, dict):
            raise UpstreamFetchFailed(source, 200, "unexpected response shape")
        return body.get("user") or None
