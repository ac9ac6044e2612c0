"""Tests for the debounced remote lookup."""

import asyncio

import pytest

from src.discover_filters.config import EntityKind, FilterErrorCode, LookupConfig, LookupStatus
from src.discover_filters.exceptions import LookupFailed
from src.discover_filters.lookup import DebouncedRemoteLookup, LookupResult
from src.discover_filters.names import NameResolutionTable

from fakes import FakeTransport, handle, location


@pytest.fixture
def transport():
    return FakeTransport(results={
        "aus": [location("AU", "Australia"), location("AT", "Austria")],
        "austin": [location("AUS", "Austin", "CITY")],
        "nike": [handle("nike"), handle("nikefootball")],
    })


@pytest.fixture
def lookup(transport, names, fast_lookup_config):
    return DebouncedRemoteLookup(transport, names, fast_lookup_config)


class TestLookupConfig:

    def test_defaults(self):
        config = LookupConfig()
        assert config.quiet_seconds == 0.3
        assert config.min_length_for(EntityKind.LOCATION) == 2
        assert config.min_length_for(EntityKind.HANDLE) == 3
        assert config.limit_for(EntityKind.LOCATION) == 20
        assert config.limit_for(EntityKind.HANDLE) == 12

    def test_from_settings_reads_env(self, monkeypatch):
        monkeypatch.setenv("DISCOVERY_DEBOUNCE_MS", "150")
        monkeypatch.setenv("DISCOVERY_HANDLE_RESULT_LIMIT", "5")
        config = LookupConfig.from_settings()
        assert config.debounce_ms == 150
        assert config.limit_for(EntityKind.HANDLE) == 5


class TestDebouncedRemoteLookup:

    @pytest.mark.asyncio
    async def test_short_query_is_skipped(self, lookup, transport):
        result = await lookup.search(" a ")
        assert result.status == LookupStatus.SKIPPED
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_ok_merges_names(self, lookup, transport, names):
        result = await lookup.search("  aus ")
        assert result.ok
        assert [e.id for e in result.items] == ["AU", "AT"]
        assert transport.calls == [("aus", EntityKind.LOCATION, 20, None)]
        assert names.resolve(EntityKind.LOCATION, "AT") == "Austria"

    @pytest.mark.asyncio
    async def test_newer_query_supersedes_pending_one(self, lookup, transport):
        first = asyncio.create_task(lookup.search("aus"))
        await asyncio.sleep(0.005)
        second = await lookup.search("austin")
        first_result = await first
        assert first_result.status == LookupStatus.SUPERSEDED
        assert not first_result.is_current
        assert second.ok
        assert [call[0] for call in transport.calls] == ["austin"]

    @pytest.mark.asyncio
    async def test_stale_response_is_discarded(self, transport, names, fast_lookup_config):
        transport.delays["aus"] = 0.1
        lookup = DebouncedRemoteLookup(transport, names, fast_lookup_config)
        first = asyncio.create_task(lookup.search("aus"))
        await asyncio.sleep(0.04)
        second = await lookup.search("austin")
        first_result = await first

        assert second.ok
        assert first_result.status == LookupStatus.STALE
        assert first_result.items == []
        assert not names.is_known(EntityKind.LOCATION, "AU")
        assert names.is_known(EntityKind.LOCATION, "AUS")
        assert lookup.get_statistics()["stale_discarded"] == 1
        assert lookup.get_statistics()["cached_queries"] == 1

    @pytest.mark.asyncio
    async def test_transport_error_becomes_failed_result(self, lookup, transport):
        transport.fail_with = RuntimeError("connection reset")
        result = await lookup.search("aus")
        assert result.failed
        assert isinstance(result.error, LookupFailed)
        assert result.error.message == "connection reset"
        assert result.error.error_code == FilterErrorCode.LOOKUP_FAILED
        assert lookup.get_statistics()["failures"] == 1

    @pytest.mark.asyncio
    async def test_failed_query_is_not_cached(self, lookup, transport):
        transport.fail_with = LookupFailed("HTTP 500 error", EntityKind.LOCATION, "aus")
        assert (await lookup.search("aus")).failed
        transport.fail_with = None
        assert (await lookup.search("aus")).ok
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_cached_query_skips_network(self, lookup, transport):
        await lookup.search("aus")
        again = await lookup.search(" AUS ")
        assert again.ok
        assert again.from_cache
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_cache_hit_relearns_forgotten_names(self, lookup, transport, names):
        await lookup.search("aus")
        names.reset([EntityKind.LOCATION])
        assert names.resolve(EntityKind.LOCATION, "AT") == "Location AT"

        again = await lookup.search("aus")
        assert again.from_cache
        assert names.resolve(EntityKind.LOCATION, "AT") == "Austria"
        assert names.type_of("AT") == "COUNTRY"

    @pytest.mark.asyncio
    async def test_cache_hit_still_supersedes(self, lookup, transport):
        await lookup.search("aus")
        pending = asyncio.create_task(lookup.search("austin"))
        await asyncio.sleep(0.005)
        await lookup.search("aus")
        assert (await pending).status == LookupStatus.SUPERSEDED

    @pytest.mark.asyncio
    async def test_clear_cache(self, lookup, transport):
        await lookup.search("aus")
        lookup.clear_cache(EntityKind.LOCATION)
        await lookup.search("aus")
        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_invalidate_supersedes_pending(self, lookup):
        pending = asyncio.create_task(lookup.search("aus"))
        await asyncio.sleep(0.005)
        lookup.invalidate()
        assert (await pending).status == LookupStatus.SUPERSEDED


class TestHandleLookup:

    @pytest.mark.asyncio
    async def test_requires_platform(self, lookup, transport):
        result = await lookup.search("nike", EntityKind.HANDLE)
        assert result.failed
        assert result.error.message == "Please select a platform first"
        assert result.error.error_code == FilterErrorCode.PLATFORM_REQUIRED
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_strips_at_sign_and_passes_platform(self, lookup, transport, names):
        lookup.set_platform("wp-ig")
        result = await lookup.search("@nike", EntityKind.HANDLE)
        assert result.ok
        assert transport.calls == [("nike", EntityKind.HANDLE, 12, "wp-ig")]
        assert names.resolve(EntityKind.HANDLE, "nikefootball") == "@nikefootball"

    @pytest.mark.asyncio
    async def test_min_length_after_stripping(self, lookup):
        lookup.set_platform("wp-ig")
        assert (await lookup.search("@ni", EntityKind.HANDLE)).status == LookupStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_cache_is_per_platform(self, lookup, transport):
        lookup.set_platform("wp-ig")
        await lookup.search("nike", EntityKind.HANDLE)
        lookup.set_platform("wp-tt")
        result = await lookup.search("nike", EntityKind.HANDLE)
        assert not result.from_cache
        assert [call[3] for call in transport.calls] == ["wp-ig", "wp-tt"]

    @pytest.mark.asyncio
    async def test_platform_switch_supersedes_pending_handle_search(self, lookup):
        lookup.set_platform("wp-ig")
        pending = asyncio.create_task(lookup.search("nike", EntityKind.HANDLE))
        await asyncio.sleep(0.005)
        lookup.set_platform("wp-tt")
        assert (await pending).status == LookupStatus.SUPERSEDED

    @pytest.mark.asyncio
    async def test_location_searches_do_not_supersede_handles(self, lookup):
        lookup.set_platform("wp-ig")
        pending = asyncio.create_task(lookup.search("nike", EntityKind.HANDLE))
        await asyncio.sleep(0.005)
        await lookup.search("aus")
        assert (await pending).ok


class TestLookupResult:

    def test_to_dict(self):
        result = LookupResult(query="aus", kind=EntityKind.LOCATION, status=LookupStatus.OK,
                              items=[location("AU", "Australia")])
        data = result.to_dict()
        assert data["status"] == "ok"
        assert data["items"][0]["display_name"] == "Australia"
        assert data["error"] is None
