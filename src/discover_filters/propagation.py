"""Deferred propagation of state changes to listeners.

Listeners are told about a change on the next scheduling turn, after the
change is fully committed locally, so a listener reading "current" state
never sees a half-applied update and cannot re-enter the code that
produced it. Changes on the same channel within one turn are coalesced:
the channel fires once, with the value its producer returns when the
turn runs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

Producer = Callable[[], Any]
Listener = Callable[[Any], None]
Scheduler = Callable[[Callable[[], None]], Any]


def _loop_scheduler(callback: Callable[[], None]) -> bool:
    """Schedule on the running asyncio loop; False when no loop is running."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return False
    loop.call_soon(callback)
    return True


class DeferredPropagator:
    """Queue of pending propagations drained once per scheduling turn.

    Without a running event loop (and without a custom scheduler) nothing
    is lost: pending channels wait for the next ``flush()`` or the next
    schedule made from inside a loop.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None):
        self._scheduler = scheduler or _loop_scheduler
        self._pending: dict[str, Producer] = {}
        self._listeners: dict[str, list[Listener]] = {}
        self._drain_scheduled = False
        self._fired: dict[str, int] = {}

    def subscribe(self, channel: str, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.setdefault(channel, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(channel, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def schedule(self, channel: str, producer: Producer) -> None:
        """Mark a channel changed; the latest producer wins within a turn."""
        self._pending[channel] = producer
        if not self._drain_scheduled:
            self._drain_scheduled = self._scheduler(self.flush) is not False

    @property
    def pending_channels(self) -> list[str]:
        return list(self._pending)

    def fired_count(self, channel: str) -> int:
        return self._fired.get(channel, 0)

    def flush(self) -> int:
        """Drain the current queue now. Returns the number of channels fired.

        Propagations scheduled by listeners during the drain go to the next
        turn, not this one.
        """
        self._drain_scheduled = False
        pending, self._pending = self._pending, {}
        for channel, producer in pending.items():
            value = producer()
            self._fired[channel] = self._fired.get(channel, 0) + 1
            for listener in list(self._listeners.get(channel, [])):
                try:
                    listener(value)
                except Exception:
                    logger.exception("Listener on channel %s failed", channel)
        return len(pending)
