"""Name resolution for opaque filter ids.

The NameResolutionTable turns ids (locations, handles, languages,
interests) into display names for active-filter chips. It is shared by
reference between every component that can learn or needs a name, so a
name learned by a search survives after the widget that ran the search
is gone.

Resolution order:
    1. entries realized in an attached selection ledger
    2. every entity ever returned by a lookup (the "seen" tier)
    3. a synthetic ``"<Kind> <id>"`` fallback
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Protocol

from .config import EntityKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityRecord:
    """An entity returned by a remote search, e.g. a location or a handle."""

    id: str
    display_name: str
    type_tag: Optional[str] = None
    kind: EntityKind = EntityKind.LOCATION
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "type_tag": self.type_tag,
            "kind": self.kind.value,
            **dict(self.attributes),
        }


class NameSource(Protocol):
    """Anything that holds realized selections for one entity kind."""

    kind: EntityKind

    def get(self, entity_id: str) -> Any: ...


class NameResolutionTable:
    """Append-mostly ``id -> display name`` table with three provenance tiers."""

    def __init__(self) -> None:
        self._seen: dict[EntityKind, dict[str, EntityRecord]] = {}
        self._sources: list[NameSource] = []

    # ── registration ──────────────────────────────────────────────────

    def attach(self, source: NameSource) -> None:
        """Register a ledger as the first resolution tier for its kind."""
        if source not in self._sources:
            self._sources.append(source)

    def detach(self, source: NameSource) -> None:
        if source in self._sources:
            self._sources.remove(source)

    def merge(self, entities: Iterable[EntityRecord]) -> int:
        """Merge entities into the seen tier. Returns the number of new ids.

        Known ids are refreshed with the newer record; nothing is removed.
        """
        added = 0
        for entity in entities:
            bucket = self._seen.setdefault(entity.kind, {})
            if entity.id not in bucket:
                added += 1
            bucket[entity.id] = entity
        if added:
            logger.debug("Name table learned %d new entities", added)
        return added

    def seed(self, kind: EntityKind, names: Mapping[str, str]) -> int:
        """Merge a static ``id -> name`` mapping (languages, interests)."""
        return self.merge(
            EntityRecord(id=str(k), display_name=v, kind=kind) for k, v in names.items()
        )

    def reset(self, kinds: Optional[Iterable[EntityKind]] = None) -> None:
        """Forget the seen tier for the given kinds (all kinds when None)."""
        if kinds is None:
            self._seen.clear()
            return
        for kind in kinds:
            self._seen.pop(kind, None)

    # ── reads ─────────────────────────────────────────────────────────

    def lookup(self, kind: EntityKind, entity_id: str) -> Optional[EntityRecord]:
        """Best known record for an id from the ledger and seen tiers."""
        for source in self._sources:
            if source.kind != kind:
                continue
            entry = source.get(entity_id)
            if entry is not None:
                return EntityRecord(
                    id=entity_id,
                    display_name=entry.display_name,
                    type_tag=entry.type_tag,
                    kind=kind,
                )
        return self._seen.get(kind, {}).get(entity_id)

    def resolve(self, kind: EntityKind, entity_id: str) -> str:
        record = self.lookup(kind, entity_id)
        if record is not None and record.display_name:
            return record.display_name
        return f"{kind.label} {entity_id}"

    def type_of(self, entity_id: str, kind: EntityKind = EntityKind.LOCATION) -> Optional[str]:
        record = self.lookup(kind, entity_id)
        return record.type_tag if record is not None else None

    def is_known(self, kind: EntityKind, entity_id: str) -> bool:
        return self.lookup(kind, entity_id) is not None

    def known(self, kind: EntityKind) -> list[EntityRecord]:
        """Every entity of a kind in the seen tier, in first-seen order."""
        return list(self._seen.get(kind, {}).values())

    def size(self, kind: Optional[EntityKind] = None) -> int:
        if kind is not None:
            return len(self._seen.get(kind, {}))
        return sum(len(bucket) for bucket in self._seen.values())
