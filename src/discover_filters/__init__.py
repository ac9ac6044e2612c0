"""Discovery Filter Engine.

Draft/commit state engine for the creator discovery filter panel:
platform constraints, debounced remote lookups, selection ledgers,
name resolution and deferred change propagation.
"""

from src.discover_filters.config import (
    DraftState,
    EntityKind,
    FilterEngineConfig,
    FilterErrorCode,
    FilterSection,
    LocationType,
    LookupConfig,
    LookupStatus,
    SlotKind,
    WeightConfig,
)
from src.discover_filters.constraints import ConstraintCatalog, ConstraintProfile
from src.discover_filters.exceptions import (
    ApplyFailed,
    FilterEngineError,
    LookupFailed,
    ValidationRejected,
)
from src.discover_filters.ledger import (
    SelectionLedger,
    SelectionLedgerEntry,
    WeightedSelectionLedger,
)
from src.discover_filters.lookup import DebouncedRemoteLookup, LookupResult
from src.discover_filters.names import EntityRecord, NameResolutionTable
from src.discover_filters.panel import FilterContext, FilterPanel
from src.discover_filters.platforms import PlatformDirectory, PlatformInfo
from src.discover_filters.propagation import DeferredPropagator
from src.discover_filters.slots import (
    SLOTS,
    FilterSet,
    GrowthFilter,
    NumericRange,
    SlotSpec,
    WeightedLocation,
    default_filter_set,
    get_slot,
    serialize_filter_set,
)
from src.discover_filters.store import ActiveFilterDescriptor, FilterDraftStore
from src.discover_filters.transport import HttpFilterCommitter, HttpLookupTransport

__all__ = [
    # Config
    "DraftState",
    "EntityKind",
    "FilterEngineConfig",
    "FilterErrorCode",
    "FilterSection",
    "LocationType",
    "LookupConfig",
    "LookupStatus",
    "SlotKind",
    "WeightConfig",
    # Slots
    "SLOTS",
    "FilterSet",
    "GrowthFilter",
    "NumericRange",
    "SlotSpec",
    "WeightedLocation",
    "default_filter_set",
    "get_slot",
    "serialize_filter_set",
    # Constraints
    "ConstraintCatalog",
    "ConstraintProfile",
    # Names
    "EntityRecord",
    "NameResolutionTable",
    # Lookup
    "DebouncedRemoteLookup",
    "LookupResult",
    "HttpLookupTransport",
    # Ledgers
    "SelectionLedger",
    "SelectionLedgerEntry",
    "WeightedSelectionLedger",
    # Store
    "ActiveFilterDescriptor",
    "DeferredPropagator",
    "FilterDraftStore",
    "HttpFilterCommitter",
    # Panel
    "FilterContext",
    "FilterPanel",
    "PlatformDirectory",
    "PlatformInfo",
    # Errors
    "ApplyFailed",
    "FilterEngineError",
    "LookupFailed",
    "ValidationRejected",
]
