"""Cursor background agents API integration."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field

from cursor_bot.core.config import settings
from cursor_bot.services.image_cache import CachedImage

logger = logging.getLogger(__name__)

T = TypeVar("T")

AGENT_WEB_URL = "https://cursor.com/agents?selectedBcId={id}"


def agent_web_url(agent_id: str) -> str:
    return AGENT_WEB_URL.format(id=agent_id)


class CursorAPIError(Exception):
    """Non-2xx response, network failure or timeout talking to the Cursor API."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status
        self.message = message


class AgentSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str = ""
    status: str = ""
    source: dict[str, Any] = Field(default_factory=dict)
    target: dict[str, Any] = Field(default_factory=dict)
    created_at: str | None = Field(default=None, alias="createdAt")
    summary: str | None = None


class ConversationEntry(BaseModel):
    id: str
    type: str  # "user_message" | "assistant_message"
    text: str = ""


class AgentConversation(BaseModel):
    id: str
    messages: list[ConversationEntry] = Field(default_factory=list)


class ListedRepository(BaseModel):
    owner: str = ""
    name: str = ""
    repository: str = ""  # full URL


class TTLCache:
    """Per-instance memo with an expiry and one in-flight fetch per key."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._in_flight: dict[str, asyncio.Future] = {}

    async def get_or_fetch(self, key: str, ttl: float, fetch: Callable[[], Awaitable[T]]) -> T:
        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry[1] < ttl:
            return entry[0]

        pending = self._in_flight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future = asyncio.ensure_future(fetch())
        self._in_flight[key] = future
        try:
            value = await asyncio.shield(future)
            self._entries[key] = (value, self._clock())
            return value
        finally:
            self._in_flight.pop(key, None)

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)


class CursorService:
    """Cursor background agents API client using an API key."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        repos_ttl: float | None = None,
        models_ttl: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._api_key = api_key if api_key is not None else settings.cursor_api_key
        self._base_url = (base_url or settings.cursor_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.cursor_timeout
        self._repos_ttl = repos_ttl if repos_ttl is not None else settings.cursor_repos_ttl
        self._models_ttl = models_ttl if models_ttl is not None else settings.cursor_models_ttl
        self._transport = transport
        self.cache = TTLCache(clock)

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise CursorAPIError("Cursor API key not configured. Set CURSOR_API_KEY.")
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        headers = self._headers()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.request(method, f"{self._base_url}{path}", headers=headers, json=json)
        except httpx.TimeoutException as e:
            raise CursorAPIError(f"Request to {path} timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise CursorAPIError(f"Request to {path} failed: {e}") from e

        if resp.is_error:
            detail = resp.text.strip()
            message = f"HTTP {resp.status_code} {resp.reason_phrase}" + (f": {detail}" if detail else "")
            raise CursorAPIError(message, status=resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    @staticmethod
    def _map_images(images: list[CachedImage] | None) -> list[dict[str, Any]] | None:
        if not images:
            return None
        return [
            {"data": img.data, "dimension": {"width": img.width, "height": img.height}}
            for img in images
        ]

    # --- Agents ---

    async def create_agent(
        self,
        text: str,
        repository: str,
        images: list[CachedImage] | None = None,
        model: str | None = None,
        ref: str | None = None,
    ) -> AgentSummary:
        prompt: dict[str, Any] = {"text": text}
        mapped = self._map_images(images)
        if mapped:
            prompt["images"] = mapped

        source: dict[str, Any] = {"repository": repository}
        if ref:
            source["ref"] = ref

        payload: dict[str, Any] = {"prompt": prompt, "source": source}
        if model:
            payload["model"] = model

        data = await self._request("POST", "/v0/agents", json=payload)
        return AgentSummary.model_validate(data)

    async def get_agent(self, agent_id: str) -> AgentSummary:
        data = await self._request("GET", f"/v0/agents/{quote(agent_id, safe='')}")
        return AgentSummary.model_validate(data)

    async def get_conversation(self, agent_id: str) -> AgentConversation:
        data = await self._request("GET", f"/v0/agents/{quote(agent_id, safe='')}/conversation")
        return AgentConversation.model_validate(data)

    async def add_followup(
        self, agent_id: str, text: str, images: list[CachedImage] | None = None,
    ) -> str:
        prompt: dict[str, Any] = {"text": text}
        mapped = self._map_images(images)
        if mapped:
            prompt["images"] = mapped
        data = await self._request(
            "POST", f"/v0/agents/{quote(agent_id, safe='')}/followup", json={"prompt": prompt},
        )
        return data.get("id", agent_id)

    async def delete_agent(self, agent_id: str) -> str:
        data = await self._request("DELETE", f"/v0/agents/{quote(agent_id, safe='')}")
        return data.get("id", agent_id)

    # --- Catalogue (cached) ---

    async def list_models(self) -> list[str]:
        async def fetch() -> list[str]:
            data = await self._request("GET", "/v0/models")
            return list(data.get("models", []))

        return await self.cache.get_or_fetch("models", self._models_ttl, fetch)

    async def list_repositories(self) -> list[ListedRepository]:
        async def fetch() -> list[ListedRepository]:
            data = await self._request("GET", "/v0/repositories")
            return [ListedRepository.model_validate(r) for r in data.get("repositories", [])]

        return await self.cache.get_or_fetch("repositories", self._repos_ttl, fetch)
