"""Filter draft store.

Holds the last committed FilterSet and a sparse overlay of staged,
uncommitted edits. Each overlay entry is the complete new value of its
slot, so the display value of a slot is the overlay value when staged
and the committed value otherwise.

State machine per filter session::

    CLEAN --stage/remove_one--> DIRTY --apply ok / clear--> CLEAN
    DIRTY --stage/remove_one/apply failure--> DIRTY

``stage``, ``remove_one``, ``clear`` and ``on_platform_change`` are
synchronous reducers; a call made while another reducer is running is
queued and runs right after it. ``apply`` is the only suspension point.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from src.logging_config.performance import PerformanceTimer

from .config import (
    DraftState,
    EntityKind,
    FilterEngineConfig,
    FilterErrorCode,
    FilterSection,
    SlotKind,
)
from .constraints import ConstraintCatalog, normalize_platform
from .exceptions import ApplyFailed, FilterEngineError, ValidationRejected
from .formatting import (
    format_compact_number,
    format_enum,
    format_growth,
    format_percent,
    format_range,
    format_timestamp,
)
from .ledger import SelectionLedger
from .names import NameResolutionTable
from .propagation import DeferredPropagator
from .slots import (
    SLOT_INDEX,
    SLOTS,
    FilterSet,
    SlotSpec,
    coerce_value,
    default_filter_set,
)

logger = logging.getLogger(__name__)

Committer = Callable[[FilterSet], Awaitable[Any]]
FILTERS_CHANNEL = "filters"

_TEXT_PREFIXES = {"hashtags": "#", "mentions": "@"}


@dataclass(frozen=True)
class ActiveFilterDescriptor:
    """One active-filter chip. Derived on every read, never stored."""

    slot_key: str
    label: str
    value: Any
    section: FilterSection
    staged: bool = False

    def to_dict(self) -> dict:
        value = self.value.to_dict() if hasattr(self.value, "to_dict") else self.value
        return {
            "slot_key": self.slot_key,
            "label": self.label,
            "value": value,
            "section": self.section.value,
            "staged": self.staged,
        }


class FilterDraftStore:
    """Draft/commit reconciliation engine for the discovery filter panel.

    Example::

        store = FilterDraftStore(committer=backend.search)
        store.stage({"creator_locations": ["L1"]})
        store.active_filters()   # [ActiveFilterDescriptor(... staged=True)]
        await store.apply()      # committer receives the merged FilterSet
    """

    def __init__(
        self,
        committer: Committer,
        catalog: Optional[ConstraintCatalog] = None,
        names: Optional[NameResolutionTable] = None,
        config: Optional[FilterEngineConfig] = None,
        propagator: Optional[DeferredPropagator] = None,
        committed: Optional[Mapping[str, Any]] = None,
        platform: Optional[str] = None,
    ):
        self.config = config or FilterEngineConfig()
        self.catalog = catalog or ConstraintCatalog(weights=self.config.weights)
        self.names = names or NameResolutionTable()
        self.propagator = propagator or DeferredPropagator()
        self._committer = committer
        self._platform = platform if platform is not None else self.config.default_platform
        self._committed: FilterSet = default_filter_set()
        self._overlay: dict[str, Any] = {}
        self._ledgers: dict[str, SelectionLedger] = {}
        self._queue: deque[Callable[[], Any]] = deque()
        self._dispatching = False
        self._apply_lock = asyncio.Lock()
        self._generation = 0
        self._auto_apply_task: Optional[asyncio.Task] = None
        self.last_rejections: list[dict[str, Any]] = []
        if committed:
            self._committed.update(self._coerce_all(committed))

    # ── read side ─────────────────────────────────────────────────────

    @property
    def platform(self) -> Optional[str]:
        return self._platform

    @property
    def state(self) -> DraftState:
        return DraftState.DIRTY if self._overlay else DraftState.CLEAN

    @property
    def auto_apply_task(self) -> Optional[asyncio.Task]:
        """The commit scheduled by the last platform switch, if any."""
        return self._auto_apply_task

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._overlay)

    @property
    def staged_slots(self) -> list[str]:
        return [spec.key for spec in SLOTS if spec.key in self._overlay]

    def committed(self) -> FilterSet:
        return copy.deepcopy(self._committed)

    def pending(self) -> dict[str, Any]:
        return copy.deepcopy(self._overlay)

    def display_filters(self) -> FilterSet:
        """Committed values with staged slots replaced by their overlay value."""
        return copy.deepcopy(self._merged())

    def active_filters(self) -> list[ActiveFilterDescriptor]:
        """Chips for every non-empty slot, in slot declaration order.

        Collection slots yield one chip per member.
        """
        merged = self._merged()
        descriptors: list[ActiveFilterDescriptor] = []
        for spec in SLOTS:
            value = merged.get(spec.key)
            if spec.is_empty(value):
                continue
            staged = spec.key in self._overlay
            members = value if spec.is_collection else [value]
            for member in members:
                descriptors.append(ActiveFilterDescriptor(
                    slot_key=spec.key,
                    label=f"{spec.label}: {self._describe(spec, member)}",
                    value=copy.deepcopy(member),
                    section=spec.section,
                    staged=staged,
                ))
        return descriptors

    def active_filter_counts(self) -> dict[FilterSection, int]:
        """Number of active slots per section."""
        merged = self._merged()
        counts = {section: 0 for section in FilterSection}
        for spec in SLOTS:
            if not spec.is_empty(merged.get(spec.key)):
                counts[spec.section] += 1
        return counts

    def has_active_filters(self) -> bool:
        merged = self._merged()
        return any(not spec.is_empty(merged.get(spec.key)) for spec in SLOTS)

    def subscribe(self, listener: Callable[[FilterSet], None]) -> Callable[[], None]:
        """Be told the display filters on the turn after they change."""
        return self.propagator.subscribe(FILTERS_CHANNEL, listener)

    def bind_ledger(self, ledger: SelectionLedger) -> None:
        """Attach a ledger to its slot; it follows every change of that slot."""
        if ledger.slot_key not in SLOT_INDEX:
            raise KeyError(f"Unknown filter slot '{ledger.slot_key}'")
        replaced = self._ledgers.get(ledger.slot_key)
        if replaced is not None and replaced is not ledger:
            self.names.detach(replaced)
        self._ledgers[ledger.slot_key] = ledger
        self.names.attach(ledger)
        ledger.sync(self._merged().get(ledger.slot_key), self.names)

    # ── transitions ───────────────────────────────────────────────────

    def stage(self, partial: Mapping[str, Any]) -> None:
        """Stage whole-slot replacements without touching the committed set.

        Illegal members of collection slots are dropped (see
        ``last_rejections``). An unknown slot, an illegal scalar or a
        non-empty value for a disabled slot rejects the whole call.

        Called from inside another reducer (a ledger or listener reacting
        synchronously), the edit is queued and runs once that reducer
        returns; a rejection of the queued edit is then raised from the
        outermost call.

        Raises:
            ValidationRejected: nothing from ``partial`` was staged.
        """
        self._dispatch(lambda: self._reduce_stage(dict(partial)))

    def remove_one(self, slot_key: str, matcher: Any = None) -> bool:
        """Remove one member from a slot by restaging the slot without it.

        ``matcher`` is a predicate over members or a value compared with the
        member (weighted entries compare by location id). For scalar slots,
        or with no matcher, the whole slot is staged back to its default.
        Returns True when something was removed.
        """
        return bool(self._dispatch(lambda: self._reduce_remove_one(slot_key, matcher)))

    def clear(self) -> None:
        """Reset committed and staged values, bound ledgers and owned names.

        Never triggers ``apply``.
        """
        self._dispatch(self._reduce_clear)

    def on_platform_change(self, platform: Optional[str]) -> list[str]:
        """Re-validate every committed and staged slot for a new platform.

        Altered slots are staged, never written to the committed set.
        Auto-apply slots that were not already staged are then committed
        through ``apply`` on the next loop turn (see ``auto_apply_task``);
        without a running loop they stay staged. Returns the slot keys
        whose value changed.
        """
        return self._dispatch(lambda: self._reduce_platform(platform)) or []

    def load(self, committed: Mapping[str, Any]) -> None:
        """Replace the committed set (e.g. restored from a saved search)."""
        self._dispatch(lambda: self._reduce_load(committed))

    async def apply(self, slots: Optional[Iterable[str]] = None) -> Optional[FilterSet]:
        """Commit staged edits through the committer.

        With ``slots`` only those staged slots are sent and committed; the
        rest of the overlay stays staged. No-op returning None when nothing
        (of ``slots``) is staged. On success returns the new committed set.
        On failure the overlay is left as it was.

        Raises:
            ApplyFailed: the committer raised or returned False.
        """
        async with self._apply_lock:
            wanted = None if slots is None else set(slots)
            sent_overlay = {
                key: value for key, value in self._overlay.items()
                if wanted is None or key in wanted
            }
            if not sent_overlay:
                logger.debug("apply() with nothing staged")
                return None

            staged = [spec.key for spec in SLOTS if spec.key in sent_overlay]
            payload = copy.deepcopy({**self._committed, **sent_overlay})
            generation = self._generation

            try:
                with PerformanceTimer("filters.apply"):
                    outcome = await self._committer(payload)
            except ApplyFailed as exc:
                exc.staged_slots = staged
                exc.details = [{"staged_slots": staged}]
                logger.warning("Apply rejected: %s", exc.message,
                               extra={"error_code": exc.error_code.value})
                raise
            except Exception as exc:
                logger.warning("Apply failed: %s", exc,
                               extra={"error_code": FilterErrorCode.APPLY_FAILED.value})
                raise ApplyFailed(f"Failed to apply filters: {exc}", staged_slots=staged) from exc

            if outcome is False:
                logger.warning("Apply rejected by search backend")
                raise ApplyFailed(
                    "Search backend rejected the filters",
                    error_code=FilterErrorCode.APPLY_REJECTED,
                    staged_slots=staged,
                )

            if generation != self._generation:
                logger.info("Filters were cleared while applying; commit result dropped")
                return None

            self._committed = {**self._committed, **sent_overlay}
            for key, value in sent_overlay.items():
                if key in self._overlay and self._overlay[key] is value:
                    del self._overlay[key]
            logger.info("Applied %d staged slots", len(staged))
            self._notify()
            return copy.deepcopy(self._committed)

    # ── reducers ──────────────────────────────────────────────────────

    def _dispatch(self, action: Callable[[], Any]) -> Any:
        if self._dispatching:
            self._queue.append(action)
            return None
        self._dispatching = True
        queued_errors: list[FilterEngineError] = []
        try:
            result = action()
        finally:
            try:
                while self._queue:
                    queued = self._queue.popleft()
                    try:
                        queued()
                    except FilterEngineError as exc:
                        logger.warning("Queued filter update rejected: %s", exc.message)
                        queued_errors.append(exc)
            finally:
                self._dispatching = False
        if queued_errors:
            raise queued_errors[0]
        return result

    def _reduce_stage(self, partial: dict[str, Any]) -> None:
        updates: dict[str, Any] = {}
        rejections: list[dict[str, Any]] = []
        for key, raw in partial.items():
            spec = SLOT_INDEX.get(key)
            if spec is None:
                raise ValidationRejected(
                    f"Unknown filter slot '{key}'", key,
                    error_code=FilterErrorCode.UNKNOWN_SLOT, rejected=raw, platform=self._platform,
                )
            try:
                value = coerce_value(spec, raw)
            except (TypeError, ValueError, KeyError) as exc:
                raise ValidationRejected(
                    f"Invalid value for {key}: {exc}", key, rejected=raw, platform=self._platform,
                ) from exc

            if spec.is_empty(value):
                updates[key] = spec.default()
                continue
            if not self.catalog.is_slot_enabled(self._platform, key):
                raise ValidationRejected(
                    f"{spec.label} is not available for {self._platform or 'this platform'}", key,
                    error_code=FilterErrorCode.SLOT_DISABLED, rejected=raw, platform=self._platform,
                )
            if spec.is_collection:
                value = self._dedupe(spec, value)
                sanitized = self.catalog.sanitize(
                    self._platform, key, value, type_of=self._type_resolver(spec),
                )
                if len(sanitized) != len(value):
                    dropped = [m for m in value if m not in sanitized]
                    rejections.append({"slot": key, "rejected": dropped})
                value = sanitized
            elif not self.catalog.is_value_legal(self._platform, key, value):
                raise ValidationRejected(
                    f"Illegal value for {spec.label}: {raw!r}", key,
                    rejected=raw, platform=self._platform,
                )
            updates[key] = value

        self._overlay.update(updates)
        self.last_rejections = rejections
        for rejection in rejections:
            logger.info("Dropped %d illegal values from %s", len(rejection["rejected"]),
                        rejection["slot"], extra={"slot_key": rejection["slot"]})
        self.sync_ledgers(updates)
        self._notify()

    def _reduce_remove_one(self, slot_key: str, matcher: Any) -> bool:
        spec = SLOT_INDEX.get(slot_key)
        if spec is None:
            raise ValidationRejected(
                f"Unknown filter slot '{slot_key}'", slot_key,
                error_code=FilterErrorCode.UNKNOWN_SLOT, platform=self._platform,
            )
        current = self._overlay[slot_key] if slot_key in self._overlay else self._committed[slot_key]
        if spec.is_empty(current):
            return False

        if spec.is_collection and matcher is not None:
            index = next(
                (i for i, m in enumerate(current) if self._matches(spec, matcher, m)), None,
            )
            if index is None:
                return False
            new_value = list(current[:index]) + list(current[index + 1:])
        elif matcher is None or self._matches(spec, matcher, current):
            new_value = spec.default()
        else:
            return False

        self._overlay[slot_key] = new_value
        self.sync_ledgers({slot_key: new_value})
        self._notify()
        return True

    def _reduce_clear(self) -> None:
        self._generation += 1
        self._committed = default_filter_set()
        self._overlay = {}
        self.last_rejections = []
        self.names.reset(self.config.owned_name_kinds)
        for ledger in self._ledgers.values():
            ledger.clear()
        logger.info("Filters cleared")
        self._notify()

    def _reduce_platform(self, platform: Optional[str]) -> list[str]:
        previous = self._platform
        self._platform = platform
        if normalize_platform(previous) == normalize_platform(platform):
            return []

        changed: list[str] = []
        auto_applied: dict[str, Any] = {}
        for spec in SLOTS:
            key = spec.key
            if key in self._overlay:
                staged_value = self._overlay[key]
                swept_staged = self._sweep(spec, staged_value, platform)
                if swept_staged != staged_value:
                    self._overlay[key] = swept_staged
                    changed.append(key)
                continue

            committed_value = self._committed[key]
            swept_committed = self._sweep(spec, committed_value, platform)
            if swept_committed != committed_value:
                self._overlay[key] = swept_committed
                changed.append(key)
                if key in self.config.auto_apply_on_platform_switch:
                    auto_applied[key] = swept_committed

        if changed:
            logger.info("Platform %s -> %s adjusted slots: %s", previous, platform, ", ".join(changed))
        self.sync_ledgers({key: None for key in changed})
        self._notify()
        if auto_applied:
            self._schedule_auto_apply(auto_applied)
        return changed

    def _schedule_auto_apply(self, swept: dict[str, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info("No running event loop; %s left staged", ", ".join(swept))
            return
        self._auto_apply_task = loop.create_task(self._auto_apply(swept))

    async def _auto_apply(self, swept: dict[str, Any]) -> None:
        # slots edited again since the sweep belong to the user's next apply
        keys = [key for key, value in swept.items() if self._overlay.get(key) is value]
        if not keys:
            return
        try:
            await self.apply(slots=keys)
        except ApplyFailed as exc:
            logger.warning("Auto-apply after platform switch failed, %s stay staged: %s",
                           ", ".join(keys), exc.message,
                           extra={"error_code": exc.error_code.value})

    def _reduce_load(self, committed: Mapping[str, Any]) -> None:
        self._committed = default_filter_set()
        self._committed.update(self._coerce_all(committed))
        self._overlay = {}
        self.sync_ledgers({spec.key: None for spec in SLOTS})
        self._notify()

    # ── helpers ───────────────────────────────────────────────────────

    def _merged(self) -> FilterSet:
        return {**self._committed, **self._overlay}

    def _notify(self) -> None:
        self.propagator.schedule(FILTERS_CHANNEL, self.display_filters)

    def sync_ledgers(self, keys: Optional[Iterable[str]] = None) -> None:
        """Re-synchronize bound ledgers (all, or those of ``keys``) with the display value."""
        merged = None
        for key in (self._ledgers if keys is None else list(keys)):
            ledger = self._ledgers.get(key)
            if ledger is None:
                continue
            merged = merged if merged is not None else self._merged()
            ledger.sync(merged.get(key), self.names)

    def _sweep(self, spec: SlotSpec, value: Any, platform: Optional[str]) -> Any:
        if spec.is_empty(value):
            return value
        if not self.catalog.is_slot_enabled(platform, spec.key):
            return spec.default()
        if spec.is_collection:
            return self.catalog.sanitize(platform, spec.key, value, type_of=self._type_resolver(spec))
        return value

    def _type_resolver(self, spec: SlotSpec) -> Optional[Callable[[str], Optional[str]]]:
        if spec.name_kind is None:
            return None
        kind = spec.name_kind
        return lambda entity_id: self.names.type_of(entity_id, kind)

    def _coerce_all(self, values: Mapping[str, Any]) -> dict[str, Any]:
        coerced = {}
        for key, raw in values.items():
            spec = SLOT_INDEX.get(key)
            if spec is None:
                raise ValidationRejected(
                    f"Unknown filter slot '{key}'", key,
                    error_code=FilterErrorCode.UNKNOWN_SLOT, rejected=raw,
                )
            coerced[key] = coerce_value(spec, raw)
        return coerced

    @staticmethod
    def _dedupe(spec: SlotSpec, members: list) -> list:
        seen: set = set()
        unique = []
        for member in members:
            member_id = spec.member_id(member)
            if member_id in seen:
                continue
            seen.add(member_id)
            unique.append(member)
        return unique

    @staticmethod
    def _matches(spec: SlotSpec, matcher: Any, member: Any) -> bool:
        if callable(matcher):
            return bool(matcher(member))
        return matcher == member or matcher == spec.member_id(member)

    def _describe(self, spec: SlotSpec, value: Any) -> str:
        kind = spec.kind
        if kind == SlotKind.WEIGHTED_LIST:
            name = self.names.resolve(spec.name_kind or EntityKind.LOCATION, value.location_id)
            return f"{name} ({value.percentage_value}%)"
        if spec.name_kind is not None and kind in (SlotKind.ID_LIST, SlotKind.ID, SlotKind.CODE):
            return self.names.resolve(spec.name_kind, value)
        if kind in (SlotKind.ENUM, SlotKind.ENUM_LIST):
            return format_enum(value)
        if kind == SlotKind.TEXT_LIST:
            prefix = _TEXT_PREFIXES.get(spec.key, "")
            return value if value.startswith(prefix) else f"{prefix}{value}"
        if kind == SlotKind.NUMERIC_RANGE:
            return format_range(value)
        if kind == SlotKind.GROWTH:
            return format_growth(value)
        if kind == SlotKind.PERCENT:
            return f">= {format_percent(value)}"
        if kind == SlotKind.TIMESTAMP:
            return format_timestamp(value)
        if kind == SlotKind.TEXT:
            return f'"{value}"'
        return format_compact_number(value) if isinstance(value, (int, float)) else str(value)
