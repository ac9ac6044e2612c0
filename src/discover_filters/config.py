"""Discovery Filters: Configuration.

Enums shared across the engine and the dataclass configs for the
lookup primitive and the draft store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class FilterSection(str, Enum):
    """Collapsible sections of the discovery filter panel."""

    DEMOGRAPHICS = "demographics"
    PERFORMANCE = "performance"
    CONTENT = "content"
    ACCOUNT = "account"


class SlotKind(str, Enum):
    """Shape of the value a filter slot holds."""

    ID_LIST = "id_list"
    WEIGHTED_LIST = "weighted_list"
    TEXT_LIST = "text_list"
    ENUM_LIST = "enum_list"
    ENUM = "enum"
    CODE = "code"
    ID = "id"
    TEXT = "text"
    NUMERIC_RANGE = "numeric_range"
    GROWTH = "growth"
    PERCENT = "percent"
    TIMESTAMP = "timestamp"

    @property
    def is_collection(self) -> bool:
        return self in (
            SlotKind.ID_LIST,
            SlotKind.WEIGHTED_LIST,
            SlotKind.TEXT_LIST,
            SlotKind.ENUM_LIST,
        )


class EntityKind(str, Enum):
    """Kinds of opaque ids that need human-readable names."""

    LOCATION = "location"
    HANDLE = "handle"
    LANGUAGE = "language"
    INTEREST = "interest"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class LocationType(str, Enum):
    """Type tags attached to location entities by the search backend."""

    COUNTRY = "COUNTRY"
    STATE = "STATE"
    CITY = "CITY"


class LookupStatus(str, Enum):
    """Outcome of a debounced lookup call."""

    OK = "ok"
    SKIPPED = "skipped"  # query below minimum length, no network call
    SUPERSEDED = "superseded"  # a newer query arrived during the quiet interval
    STALE = "stale"  # response arrived after a newer query, discarded
    FAILED = "failed"


class DraftState(str, Enum):
    """State of a filter session."""

    CLEAN = "clean"
    DIRTY = "dirty"


class FilterErrorCode(str, Enum):
    """Error codes carried by engine exceptions."""

    UNKNOWN_SLOT = "UNKNOWN_SLOT"
    SLOT_DISABLED = "SLOT_DISABLED"
    ILLEGAL_VALUE = "ILLEGAL_VALUE"
    LOOKUP_FAILED = "LOOKUP_FAILED"
    PLATFORM_REQUIRED = "PLATFORM_REQUIRED"
    APPLY_FAILED = "APPLY_FAILED"
    APPLY_REJECTED = "APPLY_REJECTED"


@dataclass
class LookupConfig:
    """Configuration for debounced remote lookups."""

    debounce_ms: int = 300
    min_query_length: dict[EntityKind, int] = field(
        default_factory=lambda: {
            EntityKind.LOCATION: 2,
            EntityKind.HANDLE: 3,
        }
    )
    result_limit: dict[EntityKind, int] = field(
        default_factory=lambda: {
            EntityKind.LOCATION: 20,
            EntityKind.HANDLE: 12,
        }
    )
    cache_results: bool = True

    @property
    def quiet_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    def min_length_for(self, kind: EntityKind) -> int:
        return self.min_query_length.get(kind, 1)

    def limit_for(self, kind: EntityKind) -> int:
        return self.result_limit.get(kind, 20)

    @classmethod
    def from_settings(cls, settings=None) -> "LookupConfig":
        """Build from the process settings (``src.settings``)."""
        if settings is None:
            from src.settings import get_settings
            settings = get_settings()
        return cls(
            debounce_ms=settings.debounce_ms,
            min_query_length={
                EntityKind.LOCATION: settings.location_min_query_length,
                EntityKind.HANDLE: settings.handle_min_query_length,
            },
            result_limit={
                EntityKind.LOCATION: settings.location_result_limit,
                EntityKind.HANDLE: settings.handle_result_limit,
            },
        )


@dataclass
class WeightConfig:
    """Bounds for weighted selections (audience location percentages)."""

    default_weight: int = 20
    min_weight: int = 1
    max_weight: int = 100

    def clamp(self, weight: float) -> int:
        return int(min(self.max_weight, max(self.min_weight, round(weight))))

    def default_for(self, current_sum: int) -> int:
        """Default for a new entry: never more than the remaining budget."""
        return min(self.default_weight, max(self.min_weight, self.max_weight - current_sum))


@dataclass
class FilterEngineConfig:
    """Configuration for the filter draft store."""

    # Slots whose platform-switch sanitization is committed without review
    auto_apply_on_platform_switch: frozenset[str] = frozenset({"creator_locations"})
    # Name kinds whose "ever seen" tier is reset by clear()
    owned_name_kinds: frozenset[EntityKind] = frozenset({EntityKind.LOCATION})
    weights: WeightConfig = field(default_factory=WeightConfig)
    default_platform: Optional[str] = None

    @classmethod
    def from_settings(cls, settings=None, **overrides) -> "FilterEngineConfig":
        if settings is None:
            from src.settings import get_settings
            settings = get_settings()
        weights = WeightConfig(
            default_weight=settings.default_weight,
            min_weight=settings.min_weight,
            max_weight=settings.max_weight,
        )
        return cls(weights=weights, **overrides)
