"""Filter slot registry and slot value types.

A FilterSet is a plain ``dict`` keyed by slot key. The set of slots is
fixed and declared here once, in display order; active-filter chips and
per-section counts follow this order rather than edit order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Optional

from .config import EntityKind, FilterSection, SlotKind

FilterSet = dict[str, Any]

GENDERS = ("MALE", "FEMALE", "OTHER")
ACCOUNT_TYPES = ("PERSONAL", "BUSINESS", "CREATOR")
GROWTH_OPERATORS = ("GT", "GTE", "LT", "LTE")
GROWTH_INTERVALS = (1, 2, 3, 4, 5, 6)


@dataclass(frozen=True)
class NumericRange:
    """Closed numeric range; either bound may be open."""

    min: Optional[float] = None
    max: Optional[float] = None

    def __post_init__(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"Range min {self.min} is above max {self.max}")

    @property
    def is_open(self) -> bool:
        return self.min is None and self.max is None

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max}


@dataclass(frozen=True)
class WeightedLocation:
    """One audience location with its minimum audience percentage."""

    location_id: str
    percentage_value: int

    def to_dict(self) -> dict:
        return {"location_id": self.location_id, "percentage_value": self.percentage_value}


@dataclass(frozen=True)
class GrowthFilter:
    """Follower growth over a trailing interval."""

    interval: int
    percentage_value: float = 5.0
    interval_unit: str = "MONTH"
    operator: str = "GT"

    def to_dict(self) -> dict:
        return {
            "interval": self.interval,
            "interval_unit": self.interval_unit,
            "operator": self.operator,
            "percentage_value": self.percentage_value,
        }


@dataclass(frozen=True)
class SlotSpec:
    """Declaration of one filter slot."""

    key: str
    label: str
    kind: SlotKind
    section: FilterSection
    name_kind: Optional[EntityKind] = None
    enum_values: Optional[tuple] = None

    @property
    def is_collection(self) -> bool:
        return self.kind.is_collection

    def default(self) -> Any:
        return [] if self.is_collection else None

    def is_empty(self, value: Any) -> bool:
        if value is None:
            return True
        if self.is_collection:
            return len(value) == 0
        if isinstance(value, NumericRange):
            return value.is_open
        if isinstance(value, str):
            return value.strip() == ""
        return False

    def member_id(self, member: Any) -> Any:
        """Identity of a collection member (weighted entries match by id)."""
        if isinstance(member, WeightedLocation):
            return member.location_id
        return member


SLOTS: tuple[SlotSpec, ...] = (
    # Demographics
    SlotSpec("creator_locations", "Creator location", SlotKind.ID_LIST,
             FilterSection.DEMOGRAPHICS, name_kind=EntityKind.LOCATION),
    SlotSpec("audience_locations", "Audience location", SlotKind.WEIGHTED_LIST,
             FilterSection.DEMOGRAPHICS, name_kind=EntityKind.LOCATION),
    SlotSpec("creator_gender", "Gender", SlotKind.ENUM,
             FilterSection.DEMOGRAPHICS, enum_values=GENDERS),
    SlotSpec("creator_language", "Language", SlotKind.CODE,
             FilterSection.DEMOGRAPHICS, name_kind=EntityKind.LANGUAGE),
    SlotSpec("creator_age", "Age", SlotKind.NUMERIC_RANGE, FilterSection.DEMOGRAPHICS),
    # Performance
    SlotSpec("follower_count", "Followers", SlotKind.NUMERIC_RANGE, FilterSection.PERFORMANCE),
    SlotSpec("follower_growth", "Follower growth", SlotKind.GROWTH, FilterSection.PERFORMANCE),
    SlotSpec("total_engagements", "Engagements", SlotKind.NUMERIC_RANGE, FilterSection.PERFORMANCE),
    SlotSpec("engagement_rate", "Engagement rate", SlotKind.PERCENT, FilterSection.PERFORMANCE),
    SlotSpec("average_views", "Average views", SlotKind.NUMERIC_RANGE, FilterSection.PERFORMANCE),
    SlotSpec("reel_views", "Reel views", SlotKind.NUMERIC_RANGE, FilterSection.PERFORMANCE),
    # Content
    SlotSpec("bio_phrase", "Bio phrase", SlotKind.TEXT, FilterSection.CONTENT),
    SlotSpec("topics", "Topic", SlotKind.TEXT_LIST, FilterSection.CONTENT),
    SlotSpec("lookalike_handle", "Lookalike", SlotKind.ID,
             FilterSection.CONTENT, name_kind=EntityKind.HANDLE),
    SlotSpec("hashtags", "Hashtag", SlotKind.TEXT_LIST, FilterSection.CONTENT),
    SlotSpec("caption_keywords", "Caption keyword", SlotKind.TEXT_LIST, FilterSection.CONTENT),
    SlotSpec("interests", "Interest", SlotKind.ID_LIST,
             FilterSection.CONTENT, name_kind=EntityKind.INTEREST),
    SlotSpec("mentions", "Mention", SlotKind.TEXT_LIST, FilterSection.CONTENT),
    SlotSpec("brand_partnerships", "Partnership", SlotKind.TEXT_LIST, FilterSection.CONTENT),
    # Account
    SlotSpec("creator_account_type", "Account type", SlotKind.ENUM_LIST,
             FilterSection.ACCOUNT, enum_values=ACCOUNT_TYPES),
    SlotSpec("last_post_timestamp", "Last post", SlotKind.TIMESTAMP, FilterSection.ACCOUNT),
)

SLOT_INDEX: dict[str, SlotSpec] = {spec.key: spec for spec in SLOTS}


def get_slot(key: str) -> SlotSpec:
    """Look up a slot declaration; raises KeyError for unknown keys."""
    return SLOT_INDEX[key]


def iter_slots(section: Optional[FilterSection] = None) -> Iterator[SlotSpec]:
    for spec in SLOTS:
        if section is None or spec.section == section:
            yield spec


def default_filter_set() -> FilterSet:
    return {spec.key: spec.default() for spec in SLOTS}


def coerce_value(spec: SlotSpec, value: Any) -> Any:
    """Normalize a raw slot value (e.g. decoded JSON) into slot value types.

    Raises:
        TypeError, ValueError: the value does not have the slot's shape.
    """
    if value is None:
        return spec.default()

    if spec.is_collection:
        if isinstance(value, (str, bytes, Mapping)):
            raise TypeError(f"{spec.key} expects a list, got {type(value).__name__}")
        members = list(value)
        if spec.kind == SlotKind.WEIGHTED_LIST:
            return [_coerce_weighted(m) for m in members]
        return [str(m) for m in members]

    if spec.kind == SlotKind.NUMERIC_RANGE:
        if isinstance(value, NumericRange):
            return value
        if isinstance(value, Mapping):
            return NumericRange(min=value.get("min"), max=value.get("max"))
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return NumericRange(min=value[0], max=value[1])
        raise TypeError(f"{spec.key} expects a numeric range")

    if spec.kind == SlotKind.GROWTH:
        if isinstance(value, GrowthFilter):
            return value
        if isinstance(value, Mapping):
            return GrowthFilter(
                interval=int(value["interval"]),
                percentage_value=float(value.get("percentage_value", 5.0)),
                interval_unit=value.get("interval_unit", "MONTH"),
                operator=value.get("operator", "GT"),
            )
        raise TypeError(f"{spec.key} expects a growth filter")

    if spec.kind == SlotKind.PERCENT:
        return float(value)

    return value


def _coerce_weighted(member: Any) -> WeightedLocation:
    if isinstance(member, WeightedLocation):
        return member
    if isinstance(member, Mapping):
        return WeightedLocation(
            location_id=str(member["location_id"]),
            percentage_value=int(member["percentage_value"]),
        )
    raise TypeError(f"Weighted entry must be a mapping, got {type(member).__name__}")


def serialize_filter_set(filters: Mapping[str, Any]) -> dict[str, Any]:
    """Convert a FilterSet into plain JSON-compatible data, dropping empty slots."""
    payload: dict[str, Any] = {}
    for spec in SLOTS:
        value = filters.get(spec.key)
        if spec.is_empty(value):
            continue
        if spec.is_collection:
            payload[spec.key] = [m.to_dict() if hasattr(m, "to_dict") else m for m in value]
        elif hasattr(value, "to_dict"):
            payload[spec.key] = value.to_dict()
        else:
            payload[spec.key] = value
    return payload
