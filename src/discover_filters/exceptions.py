"""Exception hierarchy for the discovery filter engine.

Every error the engine surfaces derives from FilterEngineError so a UI
layer can catch the whole family in one place. None of them leave the
engine in an unusable state.
"""

from typing import Any, Dict, List, Optional

from .config import EntityKind, FilterErrorCode


class FilterEngineError(Exception):
    """Base exception for all filter engine errors."""

    def __init__(
        self,
        message: str,
        error_code: FilterErrorCode,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": list(self.details),
        }


class ValidationRejected(FilterEngineError):
    """A staged value is illegal for the current platform."""

    def __init__(
        self,
        message: str,
        slot_key: str,
        error_code: FilterErrorCode = FilterErrorCode.ILLEGAL_VALUE,
        rejected: Any = None,
        platform: Optional[str] = None,
    ):
        details = [{"slot": slot_key, "platform": platform, "rejected": rejected}]
        super().__init__(message, error_code, details)
        self.slot_key = slot_key
        self.rejected = rejected
        self.platform = platform


class LookupFailed(FilterEngineError):
    """A remote lookup failed at the network or parse step."""

    def __init__(
        self,
        message: str,
        kind: EntityKind,
        query: str = "",
        error_code: FilterErrorCode = FilterErrorCode.LOOKUP_FAILED,
    ):
        super().__init__(message, error_code, [{"kind": kind.value, "query": query}])
        self.kind = kind
        self.query = query


class ApplyFailed(FilterEngineError):
    """The commit collaborator refused or raised; the overlay is preserved."""

    def __init__(
        self,
        message: str = "Failed to apply filters",
        error_code: FilterErrorCode = FilterErrorCode.APPLY_FAILED,
        staged_slots: Optional[List[str]] = None,
    ):
        super().__init__(message, error_code, [{"staged_slots": staged_slots or []}])
        self.staged_slots = staged_slots or []
