"""Selection ledgers for multi-select filters.

A ledger is the working list of entities picked in a multi-select
control, kept with the display metadata captured when each entity was
picked. It has no authority over the filter: every mutation returns the
slot value it proposes, and the caller stages that value.

``WeightedSelectionLedger`` adds a percentage per entry (audience
locations). Each weight is clamped to [1, 100] on write. The sum is
advisory: it may exceed 100, only the default weight of a new entry is
bounded by the remaining budget.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .config import EntityKind, WeightConfig
from .names import NameResolutionTable
from .slots import WeightedLocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectionLedgerEntry:
    """One selected entity."""

    id: str
    display_name: str
    type_tag: Optional[str] = None
    weight: Optional[int] = None

    def to_dict(self) -> dict:
        data = {"id": self.id, "display_name": self.display_name, "type_tag": self.type_tag}
        if self.weight is not None:
            data["weight"] = self.weight
        return data


class SelectionLedger:
    """Ordered multi-select ledger proposing a list of ids."""

    weighted = False

    def __init__(self, slot_key: str, kind: EntityKind = EntityKind.LOCATION):
        self.slot_key = slot_key
        self.kind = kind
        self._entries: dict[str, SelectionLedgerEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entries

    def get(self, entity_id: str) -> Optional[SelectionLedgerEntry]:
        return self._entries.get(entity_id)

    def snapshot(self) -> list[SelectionLedgerEntry]:
        return list(self._entries.values())

    def proposal(self) -> list:
        """The slot value this ledger currently proposes."""
        return list(self._entries)

    # ── mutations (each returns the proposed slot value) ──────────────

    def toggle(self, entity: Any) -> list:
        """Select an entity, or deselect it when already selected.

        Display name and type tag are captured now and not re-resolved.
        """
        entity_id = str(entity.id)
        if entity_id in self._entries:
            del self._entries[entity_id]
        else:
            self._entries[entity_id] = self._new_entry(
                entity_id,
                getattr(entity, "display_name", "") or entity_id,
                getattr(entity, "type_tag", None),
            )
        return self.proposal()

    def remove(self, entity_id: str) -> list:
        self._entries.pop(entity_id, None)
        return self.proposal()

    def clear(self) -> list:
        self._entries.clear()
        return self.proposal()

    def sync(self, value: Optional[Sequence], names: NameResolutionTable) -> bool:
        """Reconcile the ledger with a slot value decided elsewhere.

        Entries missing from ``value`` are dropped; ids not yet in the
        ledger are added with names from ``names``. Returns True when the
        ledger changed.
        """
        wanted = [self._member_id(m) for m in (value or [])]
        before = self.snapshot()
        entries: dict[str, SelectionLedgerEntry] = {}
        for member, entity_id in zip(value or [], wanted):
            entry = self._entries.get(entity_id)
            if entry is None:
                record = names.lookup(self.kind, entity_id)
                entry = SelectionLedgerEntry(
                    id=entity_id,
                    display_name=names.resolve(self.kind, entity_id),
                    type_tag=record.type_tag if record is not None else None,
                )
            entries[entity_id] = self._with_member(entry, member)
        self._entries = entries
        changed = self.snapshot() != before
        if changed:
            logger.debug("Ledger %s synced to %d entries", self.slot_key, len(entries))
        return changed

    # ── hooks for the weighted variant ────────────────────────────────

    def _new_entry(self, entity_id: str, display_name: str, type_tag: Optional[str]) -> SelectionLedgerEntry:
        return SelectionLedgerEntry(id=entity_id, display_name=display_name, type_tag=type_tag)

    @staticmethod
    def _member_id(member: Any) -> str:
        return str(member)

    @staticmethod
    def _with_member(entry: SelectionLedgerEntry, member: Any) -> SelectionLedgerEntry:
        return entry


class WeightedSelectionLedger(SelectionLedger):
    """Ledger whose entries carry a percentage weight."""

    weighted = True

    def __init__(
        self,
        slot_key: str,
        kind: EntityKind = EntityKind.LOCATION,
        weights: Optional[WeightConfig] = None,
    ):
        super().__init__(slot_key, kind)
        self.weights = weights or WeightConfig()

    @property
    def total_weight(self) -> int:
        return sum(e.weight or 0 for e in self._entries.values())

    @property
    def remaining_weight(self) -> int:
        return self.weights.max_weight - self.total_weight

    @property
    def is_over_allocated(self) -> bool:
        """Advisory flag for the UI; the ledger never rebalances on its own."""
        return self.total_weight > self.weights.max_weight

    def proposal(self) -> list[WeightedLocation]:
        return [
            WeightedLocation(location_id=e.id, percentage_value=int(e.weight or 0))
            for e in self._entries.values()
        ]

    def set_weight(self, entity_id: str, weight: float) -> list[WeightedLocation]:
        """Set one entry's weight, clamped to the bounds. Siblings are untouched."""
        entry = self._entries.get(entity_id)
        if entry is None:
            logger.debug("set_weight ignored for unselected id %s", entity_id)
            return self.proposal()
        self._entries[entity_id] = dataclasses.replace(entry, weight=self.weights.clamp(weight))
        return self.proposal()

    def _new_entry(self, entity_id: str, display_name: str, type_tag: Optional[str]) -> SelectionLedgerEntry:
        return SelectionLedgerEntry(
            id=entity_id,
            display_name=display_name,
            type_tag=type_tag,
            weight=self.weights.default_for(self.total_weight),
        )

    @staticmethod
    def _member_id(member: Any) -> str:
        return member.location_id

    @staticmethod
    def _with_member(entry: SelectionLedgerEntry, member: Any) -> SelectionLedgerEntry:
        if entry.weight == member.percentage_value:
            return entry
        return dataclasses.replace(entry, weight=member.percentage_value)
