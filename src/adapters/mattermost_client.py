"""Mattermost REST adapter.

Implements the core WorkspacePort against the Mattermost v4 API. Every
response is normalized here into the core dataclasses, so shape differences
(bare arrays vs. wrapped objects, space-separated roles, millisecond
timestamps) never leak into the pipeline.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from core.errors import WorkspaceError
from core.models import Channel, Message, UserProfile

LOGGER = logging.getLogger(__name__)

API_PREFIX = "/api/v4"
USERS_PAGE_SIZE = 200


def _unwrap_list(payload: Any, key: str) -> list[dict[str, Any]]:
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return [item for item in payload[key] if isinstance(item, dict)]
    LOGGER.warning("Unexpected %s response shape: %s", key, type(payload).__name__)
    return []


def _require_id(payload: Any, kind: str) -> str:
    if not isinstance(payload, dict) or not payload.get("id"):
        raise WorkspaceError(f"Malformed {kind} payload from Mattermost")
    return str(payload["id"])


def channel_from_payload(payload: dict[str, Any]) -> Channel:
    channel_id = _require_id(payload, "channel")
    return Channel(
        id=channel_id,
        name=str(payload.get("name", "")),
        type=str(payload.get("type", "")),
    )


def user_from_payload(payload: dict[str, Any]) -> UserProfile:
    user_id = _require_id(payload, "user")
    full_name = " ".join(
        part for part in (payload.get("first_name"), payload.get("last_name")) if part
    )
    roles = payload.get("roles") or ""
    if isinstance(roles, str):
        roles = roles.split()
    return UserProfile(
        id=user_id,
        username=str(payload.get("username", "")),
        display_name=str(payload.get("nickname") or full_name or ""),
        roles=tuple(str(role) for role in roles),
        is_bot=bool(payload.get("is_bot", False)),
    )


def message_from_payload(payload: dict[str, Any]) -> Message:
    message_id = _require_id(payload, "post")
    created_ms = int(payload.get("create_at") or 0)
    return Message(
        id=message_id,
        channel_id=str(payload.get("channel_id", "")),
        author_id=str(payload.get("user_id", "")),
        text=str(payload.get("message") or ""),
        created_at=datetime.fromtimestamp(created_ms / 1000, tz=timezone.utc),
        system=str(payload.get("type") or "").startswith("system_"),
    )


class MattermostClient:
    """Thin async Mattermost client that satisfies the WorkspacePort contract."""

    def __init__(
        self,
        url: str,
        token: str,
        team_id: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not url or not token or not team_id:
            raise ValueError("url, token and team_id are required")
        self._team_id = team_id
        self._client = httpx.AsyncClient(
            base_url=url.rstrip("/") + API_PREFIX,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise WorkspaceError(
                f"Mattermost API error {exc.response.status_code} on {method} {path}: "
                f"{exc.response.text[:200]}"
            ) from exc
        except httpx.RequestError as exc:
            raise WorkspaceError(f"Mattermost request {method} {path} failed: {exc!r}") from exc
        except ValueError as exc:
            raise WorkspaceError(f"Mattermost returned invalid JSON for {path}") from exc

    async def get_me(self) -> UserProfile:
        return user_from_payload(await self._request("GET", "/users/me"))

    async def list_channels(self) -> list[Channel]:
        payload = await self._request("GET", f"/users/me/teams/{self._team_id}/channels")
        return [channel_from_payload(item) for item in _unwrap_list(payload, "channels")]

    async def list_messages(self, channel_id: str, limit: int) -> dict[str, Message]:
        """Return up to ``limit`` most recent messages, newest first, keyed by id."""

        payload = await self._request(
            "GET",
            f"/channels/{channel_id}/posts",
            params={"page": 0, "per_page": limit},
        )
        if not isinstance(payload, dict):
            raise WorkspaceError(f"Unexpected posts response for channel {channel_id}")
        posts = payload.get("posts") or {}
        order = payload.get("order") or list(posts)
        messages: dict[str, Message] = {}
        for post_id in order:
            post = posts.get(post_id)
            if not isinstance(post, dict) or post.get("delete_at"):
                continue
            messages[post_id] = message_from_payload(post)
            if len(messages) >= limit:
                break
        return messages

    async def get_user_profile(self, user_id: str) -> UserProfile:
        return user_from_payload(await self._request("GET", f"/users/{user_id}"))

    async def list_users(self) -> list[UserProfile]:
        payload = await self._request(
            "GET",
            "/users",
            params={"in_team": self._team_id, "page": 0, "per_page": USERS_PAGE_SIZE},
        )
        return [user_from_payload(item) for item in _unwrap_list(payload, "users")]

    async def create_direct_channel(self, user_a: str, user_b: str) -> Channel:
        return channel_from_payload(
            await self._request("POST", "/channels/direct", json=[user_a, user_b])
        )

    async def post_message(self, channel_id: str, text: str) -> str:
        payload = await self._request(
            "POST",
            "/posts",
            json={"channel_id": channel_id, "message": text},
        )
        return _require_id(payload, "post")
