"""Session Context Management.

Binds the filter session id, the selected platform and arbitrary extra
fields to every log entry emitted while the context is active. Uses
contextvars so concurrent lookups in different sessions stay separate.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any


_session_id_var: ContextVar[str] = ContextVar("session_id", default="")
_platform_var: ContextVar[str] = ContextVar("platform", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_session_id() -> str:
    """Generate a short unique filter session id."""
    return uuid.uuid4().hex[:16]


def get_session_id() -> str:
    return _session_id_var.get()


def get_platform() -> str:
    return _platform_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all bound context values as a dictionary for log binding."""
    ctx: dict[str, Any] = {}
    session_id = _session_id_var.get()
    if session_id:
        ctx["session_id"] = session_id
    platform = _platform_var.get()
    if platform:
        ctx["platform"] = platform
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class SessionContext:
    """Context manager for session-scoped logging context.

    Example:
        with SessionContext(session_id="f3a9", platform="tiktok"):
            logger.info("applying filters")  # includes session_id, platform
    """

    session_id: str = ""
    platform: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.session_id:
            self.session_id = generate_session_id()

    def __enter__(self) -> "SessionContext":
        self._tokens = [
            (_session_id_var, _session_id_var.set(self.session_id)),
            (_platform_var, _platform_var.set(self.platform)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        # nested contexts unwind to the outer values
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the active context."""
        current = _extra_context_var.get()
        _extra_context_var.set({**current, **kwargs})
        self.extra.update(kwargs)
