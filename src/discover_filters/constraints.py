"""Platform constraint catalog.

Pure lookup of platform-dependent rules: which filter slots are usable
for a platform and which values a slot may hold there (for example only
country-level locations on TikTok and YouTube).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from .config import LocationType, SlotKind, WeightConfig
from .slots import (
    GROWTH_INTERVALS,
    GROWTH_OPERATORS,
    SLOT_INDEX,
    GrowthFilter,
    NumericRange,
    SlotSpec,
    WeightedLocation,
)

logger = logging.getLogger(__name__)

TypeResolver = Callable[[str], Optional[str]]

DEFAULT_PROFILE_KEY = "default"
LOCATION_SLOTS = ("creator_locations", "audience_locations")
COUNTRY_ONLY = frozenset({LocationType.COUNTRY.value})


@dataclass(frozen=True)
class ConstraintProfile:
    """Rules for one platform. Slots not listed are enabled and unrestricted."""

    platform: str
    disabled_slots: frozenset[str] = frozenset()
    legal_type_tags: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def is_enabled(self, slot_key: str) -> bool:
        return slot_key not in self.disabled_slots

    def type_tags_for(self, slot_key: str) -> Optional[frozenset[str]]:
        return self.legal_type_tags.get(slot_key)


_RESTRICTED_CONTENT = frozenset({"reel_views", "interests", "brand_partnerships"})

DEFAULT_PROFILES: dict[str, ConstraintProfile] = {
    "instagram": ConstraintProfile(
        platform="instagram",
        disabled_slots=frozenset({"average_views"}),
    ),
    "tiktok": ConstraintProfile(
        platform="tiktok",
        disabled_slots=_RESTRICTED_CONTENT,
        legal_type_tags={slot: COUNTRY_ONLY for slot in LOCATION_SLOTS},
    ),
    "youtube": ConstraintProfile(
        platform="youtube",
        disabled_slots=_RESTRICTED_CONTENT,
        legal_type_tags={slot: COUNTRY_ONLY for slot in LOCATION_SLOTS},
    ),
    DEFAULT_PROFILE_KEY: ConstraintProfile(
        platform=DEFAULT_PROFILE_KEY,
        disabled_slots=_RESTRICTED_CONTENT,
    ),
}


def normalize_platform(platform: Optional[str]) -> str:
    return (platform or "").strip().lower()


class ConstraintCatalog:
    """Platform-keyed lookup of slot eligibility and legal values.

    Example::

        catalog = ConstraintCatalog()
        catalog.is_slot_enabled("tiktok", "reel_views")      # False
        catalog.sanitize("tiktok", "creator_locations", ["L1", "L2"],
                         type_of=names.type_of)               # countries only
    """

    def __init__(
        self,
        profiles: Optional[Mapping[str, ConstraintProfile]] = None,
        weights: Optional[WeightConfig] = None,
    ):
        self._profiles: dict[str, ConstraintProfile] = {
            normalize_platform(k): v for k, v in (profiles or DEFAULT_PROFILES).items()
        }
        if DEFAULT_PROFILE_KEY not in self._profiles:
            self._profiles[DEFAULT_PROFILE_KEY] = ConstraintProfile(platform=DEFAULT_PROFILE_KEY)
        self._weights = weights or WeightConfig()

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Mapping[str, Any]],
        weights: Optional[WeightConfig] = None,
    ) -> "ConstraintCatalog":
        """Build a catalog from plain data, e.g. a decoded JSON document.

        Expected shape::

            {"tiktok": {"disabled_slots": ["reel_views"],
                        "legal_type_tags": {"creator_locations": ["COUNTRY"]}}}
        """
        profiles: dict[str, ConstraintProfile] = {}
        for platform, raw in data.items():
            unknown = [k for k in raw.get("disabled_slots", []) if k not in SLOT_INDEX]
            if unknown:
                raise ValueError(f"Profile '{platform}' disables unknown slots: {unknown}")
            profiles[platform] = ConstraintProfile(
                platform=normalize_platform(platform),
                disabled_slots=frozenset(raw.get("disabled_slots", [])),
                legal_type_tags={
                    slot: frozenset(tags)
                    for slot, tags in raw.get("legal_type_tags", {}).items()
                },
            )
        return cls(profiles=profiles, weights=weights)

    @property
    def platforms(self) -> list[str]:
        return sorted(k for k in self._profiles if k != DEFAULT_PROFILE_KEY)

    def profile_for(self, platform: Optional[str]) -> ConstraintProfile:
        key = normalize_platform(platform)
        return self._profiles.get(key, self._profiles[DEFAULT_PROFILE_KEY])

    def is_slot_enabled(self, platform: Optional[str], slot_key: str) -> bool:
        if slot_key not in SLOT_INDEX:
            return False
        return self.profile_for(platform).is_enabled(slot_key)

    def legal_type_tags(self, platform: Optional[str], slot_key: str) -> Optional[frozenset[str]]:
        """Legal entity type tags for a slot, or None when unrestricted."""
        return self.profile_for(platform).type_tags_for(slot_key)

    def is_value_legal(
        self,
        platform: Optional[str],
        slot_key: str,
        value: Any,
        type_of: Optional[TypeResolver] = None,
    ) -> bool:
        spec = SLOT_INDEX.get(slot_key)
        if spec is None:
            return False
        if spec.is_empty(value):
            return True
        profile = self.profile_for(platform)
        if not profile.is_enabled(slot_key):
            return False
        if spec.is_collection:
            return all(self._member_legal(profile, spec, m, type_of) for m in value)
        return self._scalar_legal(spec, value)

    def sanitize(
        self,
        platform: Optional[str],
        slot_key: str,
        value: Any,
        type_of: Optional[TypeResolver] = None,
    ) -> Any:
        """Drop illegal members of a collection value.

        Scalar values are returned untouched even when illegal; the caller
        decides whether to reject them.
        """
        spec = SLOT_INDEX[slot_key]
        if not spec.is_collection or spec.is_empty(value):
            return value
        profile = self.profile_for(platform)
        if not profile.is_enabled(slot_key):
            return []
        kept = [m for m in value if self._member_legal(profile, spec, m, type_of)]
        if len(kept) != len(value):
            logger.debug(
                "Sanitized %s for %s: dropped %d of %d",
                slot_key, profile.platform, len(value) - len(kept), len(value),
                extra={"slot_key": slot_key},
            )
        return kept

    def filter_entities(self, platform: Optional[str], slot_key: str, entities: Iterable) -> list:
        """Keep search results whose type tag the slot accepts on this platform."""
        tags = self.legal_type_tags(platform, slot_key)
        if tags is None:
            return list(entities)
        return [e for e in entities if getattr(e, "type_tag", None) in tags]

    # ── member and scalar rules ──────────────────────────────────────

    def _member_legal(
        self,
        profile: ConstraintProfile,
        spec: SlotSpec,
        member: Any,
        type_of: Optional[TypeResolver],
    ) -> bool:
        if spec.kind == SlotKind.WEIGHTED_LIST:
            if not isinstance(member, WeightedLocation):
                return False
            weight = member.percentage_value
            if not self._weights.min_weight <= weight <= self._weights.max_weight:
                return False
            return self._type_legal(profile, spec, member.location_id, type_of)
        if spec.kind == SlotKind.ENUM_LIST:
            return member in (spec.enum_values or ())
        if not isinstance(member, str) or not member.strip():
            return False
        return self._type_legal(profile, spec, member, type_of)

    @staticmethod
    def _type_legal(
        profile: ConstraintProfile,
        spec: SlotSpec,
        entity_id: str,
        type_of: Optional[TypeResolver],
    ) -> bool:
        tags = profile.type_tags_for(spec.key)
        if tags is None:
            return True
        type_tag = type_of(entity_id) if type_of is not None else None
        # an unknown type cannot be proven legal on a restricted profile
        return type_tag in tags

    @staticmethod
    def _scalar_legal(spec: SlotSpec, value: Any) -> bool:
        kind = spec.kind
        if kind == SlotKind.ENUM:
            return value in (spec.enum_values or ())
        if kind == SlotKind.NUMERIC_RANGE:
            if not isinstance(value, NumericRange):
                return False
            return all(b is None or b >= 0 for b in (value.min, value.max))
        if kind == SlotKind.GROWTH:
            return (
                isinstance(value, GrowthFilter)
                and value.interval in GROWTH_INTERVALS
                and value.operator in GROWTH_OPERATORS
                and value.percentage_value > 0
            )
        if kind == SlotKind.PERCENT:
            return isinstance(value, (int, float)) and 0 < value <= 100
        if kind == SlotKind.TIMESTAMP:
            try:
                datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            except ValueError:
                return False
            return True
        return isinstance(value, str) and bool(value.strip())
