"""HTTP collaborators for the filter engine.

``HttpLookupTransport`` backs DebouncedRemoteLookup with the dashboard's
location and user-handle search endpoints; ``HttpFilterCommitter`` hands
the merged FilterSet to the search backend when filters are applied.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from src.logging_config.performance import log_performance
from src.settings import Settings, get_settings

from .config import EntityKind, FilterErrorCode
from .exceptions import ApplyFailed, LookupFailed
from .names import EntityRecord
from .slots import FilterSet, serialize_filter_set

logger = logging.getLogger(__name__)


def _error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return fallback


def parse_location(raw: dict) -> EntityRecord:
    name = raw.get("name") or ""
    return EntityRecord(
        id=str(raw["id"]),
        display_name=raw.get("display_name") or name or f"Location {raw['id']}",
        type_tag=raw.get("type"),
        kind=EntityKind.LOCATION,
        attributes={"name": name},
    )


def parse_userhandle(raw: dict) -> EntityRecord:
    username = str(raw["username"])
    return EntityRecord(
        id=username,
        display_name=f"@{username}",
        kind=EntityKind.HANDLE,
        attributes={
            "user_id": raw.get("user_id"),
            "fullname": raw.get("fullname", ""),
            "picture": raw.get("picture"),
            "followers": raw.get("followers"),
            "is_verified": bool(raw.get("is_verified", False)),
        },
    )


class HttpLookupTransport:
    """Location and user-handle search over HTTP.

    Example:
        async with HttpLookupTransport() as transport:
            lookup = DebouncedRemoteLookup(transport, names)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.api_base_url,
            timeout=self._settings.request_timeout_seconds,
        )

    async def __aenter__(self) -> "HttpLookupTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @log_performance()
    async def fetch(
        self,
        query: str,
        kind: EntityKind,
        *,
        limit: int,
        platform: Optional[str] = None,
    ) -> list[EntityRecord]:
        if kind == EntityKind.LOCATION:
            path = self._settings.locations_path
            params: dict[str, Any] = {"search_string": query, "limit": limit, "offset": 0}
            parse = parse_location
        elif kind == EntityKind.HANDLE:
            path = self._settings.userhandles_path
            params = {"q": query, "type": "search", "limit": limit,
                      "work_platform_id": platform or ""}
            parse = parse_userhandle
        else:
            raise LookupFailed(f"No remote search for {kind.value}", kind, query)

        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise LookupFailed(f"Request failed: {exc}", kind, query) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise LookupFailed(f"HTTP {response.status_code}: invalid JSON", kind, query) from exc

        if not isinstance(payload, dict):
            raise LookupFailed("Unexpected response shape", kind, query)
        if response.status_code != 200:
            raise LookupFailed(
                _error_message(payload, f"HTTP {response.status_code} error"), kind, query,
            )
        if not payload.get("success", False):
            raise LookupFailed(_error_message(payload, "Search failed"), kind, query)

        try:
            return [parse(item) for item in payload.get("data") or []]
        except (KeyError, TypeError) as exc:
            raise LookupFailed(f"Malformed {kind.value} result: {exc}", kind, query) from exc


class HttpFilterCommitter:
    """Commit collaborator: posts the merged FilterSet to the search backend."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        platform: Optional[str] = None,
    ):
        self._settings = settings or get_settings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.api_base_url,
            timeout=self._settings.request_timeout_seconds,
        )
        self.platform = platform

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __call__(self, filters: FilterSet) -> dict[str, Any]:
        body = {"work_platform_id": self.platform, "filters": serialize_filter_set(filters)}
        response = await self._client.post(self._settings.commit_path, json=body)
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.status_code >= 400 or not payload.get("success", False):
            message = _error_message(payload, f"Search backend returned HTTP {response.status_code}")
            raise ApplyFailed(message, error_code=FilterErrorCode.APPLY_REJECTED)

        logger.info("Filters committed to search backend (%d slots)", len(body["filters"]))
        return payload
