"""Tests for deferred change propagation."""

import asyncio
import logging

import pytest

from src.discover_filters.propagation import DeferredPropagator

from fakes import ManualScheduler


class TestDeferredPropagator:

    def test_listeners_run_on_the_next_turn_only(self):
        scheduler = ManualScheduler()
        propagator = DeferredPropagator(scheduler)
        seen = []
        propagator.subscribe("filters", seen.append)
        propagator.schedule("filters", lambda: 1)
        assert seen == []
        scheduler.run()
        assert seen == [1]

    def test_same_channel_is_coalesced_last_producer_wins(self):
        scheduler = ManualScheduler()
        propagator = DeferredPropagator(scheduler)
        seen = []
        propagator.subscribe("filters", seen.append)
        propagator.schedule("filters", lambda: "first")
        propagator.schedule("filters", lambda: "second")
        assert len(scheduler.callbacks) == 1
        scheduler.run()
        assert seen == ["second"]
        assert propagator.fired_count("filters") == 1

    def test_producer_reads_state_when_turn_runs(self):
        scheduler = ManualScheduler()
        propagator = DeferredPropagator(scheduler)
        state = {"value": 1}
        seen = []
        propagator.subscribe("filters", seen.append)
        propagator.schedule("filters", lambda: state["value"])
        state["value"] = 2
        scheduler.run()
        assert seen == [2]

    def test_channels_fire_independently(self):
        scheduler = ManualScheduler()
        propagator = DeferredPropagator(scheduler)
        seen = []
        propagator.subscribe("a", lambda v: seen.append(("a", v)))
        propagator.subscribe("b", lambda v: seen.append(("b", v)))
        propagator.schedule("a", lambda: 1)
        propagator.schedule("b", lambda: 2)
        assert propagator.pending_channels == ["a", "b"]
        assert propagator.flush() == 2
        assert seen == [("a", 1), ("b", 2)]

    def test_schedule_from_listener_goes_to_next_turn(self):
        scheduler = ManualScheduler()
        propagator = DeferredPropagator(scheduler)
        seen = []

        def listener(value):
            seen.append(value)
            if value == 1:
                propagator.schedule("filters", lambda: 2)

        propagator.subscribe("filters", listener)
        propagator.schedule("filters", lambda: 1)
        scheduler.run()
        assert seen == [1]
        scheduler.run()
        assert seen == [1, 2]

    def test_unsubscribe(self):
        propagator = DeferredPropagator(ManualScheduler())
        seen = []
        unsubscribe = propagator.subscribe("filters", seen.append)
        unsubscribe()
        unsubscribe()
        propagator.schedule("filters", lambda: 1)
        propagator.flush()
        assert seen == []

    def test_failing_listener_is_logged_and_others_still_run(self, caplog):
        propagator = DeferredPropagator(ManualScheduler())
        seen = []

        def broken(_value):
            raise RuntimeError("listener bug")

        propagator.subscribe("filters", broken)
        propagator.subscribe("filters", seen.append)
        propagator.schedule("filters", lambda: 7)
        with caplog.at_level(logging.ERROR, logger="src.discover_filters.propagation"):
            propagator.flush()
        assert seen == [7]
        assert "Listener on channel filters failed" in caplog.text

    def test_without_running_loop_waits_for_flush(self):
        propagator = DeferredPropagator()
        seen = []
        propagator.subscribe("filters", seen.append)
        propagator.schedule("filters", lambda: 1)
        assert seen == []
        assert propagator.flush() == 1
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_runs_on_event_loop_turn(self):
        propagator = DeferredPropagator()
        seen = []
        propagator.subscribe("filters", seen.append)
        propagator.schedule("filters", lambda: "x")
        assert seen == []
        await asyncio.sleep(0)
        assert seen == ["x"]
