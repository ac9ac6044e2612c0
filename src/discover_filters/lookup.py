"""Debounced remote lookup.

Generic asynchronous search primitive behind the location picker and
the handle search box. Each call waits for the query to be stable for a
quiet interval, issues at most one request, and only the freshest query
per entity kind is ever observable: older calls resolve as superseded
or stale, keyed by a per-kind sequence number.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from src.logging_config.performance import PerformanceTimer

from .config import EntityKind, FilterErrorCode, LookupConfig, LookupStatus
from .exceptions import LookupFailed
from .names import EntityRecord, NameResolutionTable

logger = logging.getLogger(__name__)


class LookupTransport(Protocol):
    """External search endpoint. Must be idempotent for repeated queries."""

    async def fetch(
        self,
        query: str,
        kind: EntityKind,
        *,
        limit: int,
        platform: Optional[str] = None,
    ) -> list[EntityRecord]: ...


@dataclass
class LookupResult:
    """Outcome of one ``search`` call."""

    query: str
    kind: EntityKind
    status: LookupStatus
    items: list[EntityRecord] = field(default_factory=list)
    error: Optional[LookupFailed] = None
    sequence: int = 0
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.status == LookupStatus.OK

    @property
    def failed(self) -> bool:
        return self.status == LookupStatus.FAILED

    @property
    def is_current(self) -> bool:
        """False for superseded and stale outcomes the caller should ignore."""
        return self.status not in (LookupStatus.SUPERSEDED, LookupStatus.STALE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "kind": self.kind.value,
            "status": self.status.value,
            "items": [item.to_dict() for item in self.items],
            "error": self.error.to_dict() if self.error else None,
            "from_cache": self.from_cache,
        }


class DebouncedRemoteLookup:
    """Debounced, superseding, caching search over a remote endpoint.

    Example::

        lookup = DebouncedRemoteLookup(transport, names)
        result = await lookup.search("austr", EntityKind.LOCATION)
        if result.ok:
            show(result.items)
        elif result.failed:
            show_error(result.error.message)
    """

    def __init__(
        self,
        transport: LookupTransport,
        names: NameResolutionTable,
        config: Optional[LookupConfig] = None,
        platform: Optional[str] = None,
    ):
        self.config = config or LookupConfig()
        self._transport = transport
        self._names = names
        self._platform = platform
        self._sequence: dict[EntityKind, int] = {}
        self._cache: dict[tuple, list[EntityRecord]] = {}
        self._requests_issued = 0
        self._stale_discarded = 0
        self._failures = 0

    @property
    def platform(self) -> Optional[str]:
        return self._platform

    def set_platform(self, platform: Optional[str]) -> None:
        """Switch platform; outstanding handle searches lose interest."""
        if platform == self._platform:
            return
        self._platform = platform
        self._next_sequence(EntityKind.HANDLE)

    def invalidate(self, kind: Optional[EntityKind] = None) -> None:
        """Supersede every outstanding call (for one kind, or all kinds)."""
        for k in ([kind] if kind is not None else list(self._sequence)):
            self._next_sequence(k)

    def clear_cache(self, kind: Optional[EntityKind] = None) -> None:
        if kind is None:
            self._cache.clear()
            return
        for key in [k for k in self._cache if k[0] == kind]:
            del self._cache[key]

    async def search(self, query: str, kind: EntityKind = EntityKind.LOCATION) -> LookupResult:
        """Search for entities matching ``query``.

        Resolves to an OK result with items, SKIPPED for short queries,
        SUPERSEDED or STALE when a newer call of the same kind took over,
        or FAILED with a LookupFailed error. Never raises LookupFailed.
        """
        normalized = self._normalize(query, kind)
        sequence = self._next_sequence(kind)

        if len(normalized) < self.config.min_length_for(kind):
            return LookupResult(query=normalized, kind=kind,
                                status=LookupStatus.SKIPPED, sequence=sequence)

        if kind == EntityKind.HANDLE and not self._platform:
            error = LookupFailed(
                "Please select a platform first", kind, normalized,
                error_code=FilterErrorCode.PLATFORM_REQUIRED,
            )
            return LookupResult(query=normalized, kind=kind, status=LookupStatus.FAILED,
                                error=error, sequence=sequence)

        cache_key = self._cache_key(normalized, kind)
        cached = self._cache.get(cache_key)
        if cached is not None:
            # the name table may have been reset since this was cached
            self._names.merge(cached)
            return LookupResult(query=normalized, kind=kind, status=LookupStatus.OK,
                                items=list(cached), sequence=sequence, from_cache=True)

        await asyncio.sleep(self.config.quiet_seconds)
        if self._is_superseded(kind, sequence):
            return LookupResult(query=normalized, kind=kind,
                                status=LookupStatus.SUPERSEDED, sequence=sequence)

        self._requests_issued += 1
        error: Optional[LookupFailed] = None
        items: list[EntityRecord] = []
        try:
            with PerformanceTimer(f"lookup.{kind.value}"):
                items = list(await self._transport.fetch(
                    normalized, kind,
                    limit=self.config.limit_for(kind),
                    platform=self._platform,
                ))
        except LookupFailed as exc:
            error = exc
        except Exception as exc:
            error = LookupFailed(str(exc) or type(exc).__name__, kind, normalized)

        if self._is_superseded(kind, sequence):
            self._stale_discarded += 1
            logger.debug(
                "Discarded stale %s response for '%s'", kind.value, normalized,
                extra={"kind": kind.value, "query": normalized, "sequence": sequence},
            )
            return LookupResult(query=normalized, kind=kind,
                                status=LookupStatus.STALE, sequence=sequence)

        if error is not None:
            self._failures += 1
            logger.warning(
                "%s lookup failed for '%s': %s", kind.value, normalized, error.message,
                extra={"kind": kind.value, "query": normalized},
            )
            return LookupResult(query=normalized, kind=kind, status=LookupStatus.FAILED,
                                error=error, sequence=sequence)

        self._names.merge(items)
        if self.config.cache_results:
            self._cache[cache_key] = list(items)
        return LookupResult(query=normalized, kind=kind, status=LookupStatus.OK,
                            items=items, sequence=sequence)

    def get_statistics(self) -> dict[str, Any]:
        return {
            "requests_issued": self._requests_issued,
            "stale_discarded": self._stale_discarded,
            "failures": self._failures,
            "cached_queries": len(self._cache),
        }

    # ── internals ─────────────────────────────────────────────────────

    @staticmethod
    def _normalize(query: str, kind: EntityKind) -> str:
        normalized = (query or "").strip()
        if kind == EntityKind.HANDLE:
            normalized = normalized.lstrip("@")
        return normalized

    def _cache_key(self, query: str, kind: EntityKind) -> tuple:
        platform = self._platform if kind == EntityKind.HANDLE else None
        return (kind, platform, query.lower())

    def _next_sequence(self, kind: EntityKind) -> int:
        self._sequence[kind] = self._sequence.get(kind, 0) + 1
        return self._sequence[kind]

    def _is_superseded(self, kind: EntityKind, sequence: int) -> bool:
        return self._sequence.get(kind, 0) != sequence
