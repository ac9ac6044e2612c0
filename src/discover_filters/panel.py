"""Filter panel facade.

Wires the draft store, the remote lookup, the selection ledgers and the
platform directory together for a UI layer. The panel owns the filter
session: its section toggles, the selected platform and the log context
of the session.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from src.logging_config.context import SessionContext, generate_session_id

from .config import EntityKind, FilterEngineConfig, FilterSection, LookupConfig
from .constraints import ConstraintCatalog
from .exceptions import ValidationRejected
from .ledger import SelectionLedger, WeightedSelectionLedger
from .lookup import DebouncedRemoteLookup, LookupResult, LookupTransport
from .names import EntityRecord, NameResolutionTable
from .platforms import PlatformDirectory, PlatformInfo
from .propagation import DeferredPropagator
from .store import ActiveFilterDescriptor, Committer, FilterDraftStore

logger = logging.getLogger(__name__)

CONTEXT_CHANNEL = "context"
DEFAULT_COLLAPSED = frozenset(s for s in FilterSection if s != FilterSection.DEMOGRAPHICS)


@dataclass
class FilterContext:
    """What the surrounding page needs to know about the filter session."""

    platform: Optional[str] = None
    creator_locations: list[str] = field(default_factory=list)
    location_names: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "creator_locations": list(self.creator_locations),
            "location_names": dict(self.location_names),
        }


class FilterPanel:
    """One discovery filter session.

    Example::

        panel = FilterPanel(committer, transport, platforms=directory)
        panel.select_platform("tiktok")
        result = await panel.search_locations("austr")
        panel.toggle_location(result.items[0])
        await panel.apply()
    """

    def __init__(
        self,
        committer: Committer,
        transport: LookupTransport,
        platforms: Union[PlatformDirectory, Iterable[PlatformInfo], None] = None,
        catalog: Optional[ConstraintCatalog] = None,
        config: Optional[FilterEngineConfig] = None,
        lookup_config: Optional[LookupConfig] = None,
        names: Optional[NameResolutionTable] = None,
        propagator: Optional[DeferredPropagator] = None,
        session_id: Optional[str] = None,
        static_names: Optional[Mapping[EntityKind, Mapping[str, str]]] = None,
    ):
        self.config = config or FilterEngineConfig()
        self.names = names or NameResolutionTable()
        for kind, id_to_name in (static_names or {}).items():
            self.names.seed(EntityKind(kind), id_to_name)
        self.propagator = propagator or DeferredPropagator()
        self.catalog = catalog or ConstraintCatalog(weights=self.config.weights)
        if isinstance(platforms, PlatformDirectory):
            self.platforms = platforms
        else:
            self.platforms = PlatformDirectory(platforms or ())
        self._committer = committer
        self.store = FilterDraftStore(
            committer,
            catalog=self.catalog,
            names=self.names,
            config=self.config,
            propagator=self.propagator,
        )
        self.lookup = DebouncedRemoteLookup(transport, self.names, lookup_config)
        self.ledgers: dict[str, SelectionLedger] = {
            "creator_locations": SelectionLedger("creator_locations", EntityKind.LOCATION),
            "audience_locations": WeightedSelectionLedger(
                "audience_locations", EntityKind.LOCATION, weights=self.config.weights,
            ),
        }
        for ledger in self.ledgers.values():
            self.store.bind_ledger(ledger)
        self.session_id = session_id or generate_session_id()
        self.selected_platform: Optional[PlatformInfo] = None
        self._collapsed: set[FilterSection] = set(DEFAULT_COLLAPSED)

    # ── sections ──────────────────────────────────────────────────────

    @property
    def collapsed_sections(self) -> frozenset[FilterSection]:
        return frozenset(self._collapsed)

    def is_section_collapsed(self, section: FilterSection) -> bool:
        return FilterSection(section) in self._collapsed

    def toggle_section(self, section: FilterSection) -> bool:
        """Flip one section; returns True when it is now collapsed."""
        section = FilterSection(section)
        if section in self._collapsed:
            self._collapsed.discard(section)
            return False
        self._collapsed.add(section)
        return True

    def expand_all(self) -> None:
        self._collapsed.clear()

    def collapse_all(self) -> None:
        self._collapsed = set(FilterSection)

    # ── platform ──────────────────────────────────────────────────────

    @property
    def platform_key(self) -> Optional[str]:
        return self.selected_platform.key if self.selected_platform else self.store.platform

    def select_platform(self, platform: Union[PlatformInfo, str, None]) -> list[str]:
        """Switch the platform and sweep the filters. Returns the changed slots."""
        info = self._resolve_platform(platform)
        self.selected_platform = info
        key = info.key if info else None
        work_platform_id = info.work_platform_id if info else None

        self.lookup.set_platform(work_platform_id)
        if hasattr(self._committer, "platform"):
            self._committer.platform = work_platform_id
        with SessionContext(session_id=self.session_id, platform=key or ""):
            changed = self.store.on_platform_change(key)
        self._publish_context()
        return changed

    def list_platforms(self, query: str = "") -> list[PlatformInfo]:
        return self.platforms.search(query)

    # ── lookups ───────────────────────────────────────────────────────

    async def search_locations(self, query: str, slot: str = "creator_locations") -> LookupResult:
        """Search locations; items are narrowed to what ``slot`` accepts here."""
        with SessionContext(session_id=self.session_id, platform=self.platform_key or ""):
            result = await self.lookup.search(query, EntityKind.LOCATION)
        if result.ok:
            result = dataclasses.replace(
                result, items=self.catalog.filter_entities(self.store.platform, slot, result.items),
            )
            self._publish_context()
        return result

    async def search_handles(self, query: str) -> LookupResult:
        with SessionContext(session_id=self.session_id, platform=self.platform_key or ""):
            return await self.lookup.search(query, EntityKind.HANDLE)

    # ── edits ─────────────────────────────────────────────────────────

    def stage(self, partial: Mapping[str, Any]) -> None:
        try:
            self.store.stage(partial)
        except ValidationRejected:
            # a ledger edit may have run ahead of the rejected stage
            self.store.sync_ledgers(partial)
            raise
        self._publish_context()

    def toggle_location(self, entity: EntityRecord, slot: str = "creator_locations") -> None:
        """Select or deselect a location in a location slot and stage the result."""
        self.names.merge([entity])
        proposal = self._ledger(slot).toggle(entity)
        self.stage({slot: proposal})

    def remove_location(self, location_id: str, slot: str = "creator_locations") -> None:
        proposal = self._ledger(slot).remove(location_id)
        self.stage({slot: proposal})

    def set_audience_weight(self, location_id: str, weight: float) -> None:
        ledger = self._ledger("audience_locations")
        if location_id not in ledger:
            logger.debug("Weight change ignored for unselected location %s", location_id)
            return
        self.stage({"audience_locations": ledger.set_weight(location_id, weight)})

    def select_lookalike(self, handle: Optional[EntityRecord]) -> None:
        if handle is None:
            self.stage({"lookalike_handle": None})
            return
        self.names.merge([handle])
        self.stage({"lookalike_handle": handle.id})

    def remove_filter(self, descriptor: ActiveFilterDescriptor) -> bool:
        """Remove the value behind one active-filter chip."""
        removed = self.store.remove_one(descriptor.slot_key, descriptor.value)
        if removed:
            self._publish_context()
        return removed

    async def apply(self):
        with SessionContext(session_id=self.session_id, platform=self.platform_key or ""):
            result = await self.store.apply()
        self._publish_context()
        return result

    def clear(self) -> None:
        """Reset filters, pending searches and section toggles."""
        with SessionContext(session_id=self.session_id, platform=self.platform_key or ""):
            self.store.clear()
        self.lookup.invalidate()
        self._collapsed = set(DEFAULT_COLLAPSED)
        self._publish_context()

    # ── reads ─────────────────────────────────────────────────────────

    @property
    def has_pending_changes(self) -> bool:
        return self.store.has_pending_changes

    def has_active_filters(self) -> bool:
        return self.store.has_active_filters()

    def active_filters(self) -> list[ActiveFilterDescriptor]:
        return self.store.active_filters()

    def active_filter_counts(self) -> dict[FilterSection, int]:
        return self.store.active_filter_counts()

    def context(self) -> FilterContext:
        creator_locations = list(self.store.display_filters()["creator_locations"])
        names = {r.id: r.display_name for r in self.names.known(EntityKind.LOCATION)}
        for location_id in creator_locations:
            names[location_id] = self.names.resolve(EntityKind.LOCATION, location_id)
        return FilterContext(
            platform=self.platform_key,
            creator_locations=creator_locations,
            location_names=names,
        )

    def on_context_update(self, listener: Callable[[FilterContext], None]) -> Callable[[], None]:
        """Be told the filter context on the turn after it changes."""
        return self.propagator.subscribe(CONTEXT_CHANNEL, listener)

    def get_statistics(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "platform": self.platform_key,
            "staged_slots": self.store.staged_slots,
            "active_filters": len(self.store.active_filters()),
            "known_locations": self.names.size(EntityKind.LOCATION),
            "lookup": self.lookup.get_statistics(),
        }

    # ── internals ─────────────────────────────────────────────────────

    def _ledger(self, slot: str) -> SelectionLedger:
        try:
            return self.ledgers[slot]
        except KeyError:
            raise KeyError(f"No selection ledger for slot '{slot}'") from None

    def _resolve_platform(self, platform: Union[PlatformInfo, str, None]) -> Optional[PlatformInfo]:
        if platform is None or isinstance(platform, PlatformInfo):
            return platform
        found = self.platforms.get(platform)
        if found is not None:
            return found
        for candidate in self.platforms.active():
            if candidate.key == platform.strip().lower():
                return candidate
        return PlatformInfo(id=platform, name=platform, work_platform_id=platform)

    def _publish_context(self) -> None:
        self.propagator.schedule(CONTEXT_CHANNEL, self.context)
