"""Tests for the httpx-backed lookup transport and filter committer."""

import json

import httpx
import pytest

from src.discover_filters.config import EntityKind, FilterErrorCode
from src.discover_filters.exceptions import ApplyFailed, LookupFailed
from src.discover_filters.slots import NumericRange, default_filter_set
from src.discover_filters.transport import (
    HttpFilterCommitter,
    HttpLookupTransport,
    parse_location,
    parse_userhandle,
)
from src.settings import Settings


def make_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")


class TestParsers:

    def test_location_prefers_display_name(self):
        record = parse_location({"id": 7, "name": "Austin", "display_name": "Austin, TX", "type": "CITY"})
        assert record.id == "7"
        assert record.display_name == "Austin, TX"
        assert record.type_tag == "CITY"

    def test_location_falls_back_to_name(self):
        assert parse_location({"id": "1", "name": "France"}).display_name == "France"

    def test_userhandle(self):
        record = parse_userhandle({"user_id": "u1", "username": "nike", "followers": 10,
                                   "is_verified": True})
        assert record.id == "nike"
        assert record.display_name == "@nike"
        assert record.kind == EntityKind.HANDLE
        assert record.attributes["is_verified"] is True


class TestHttpLookupTransport:

    @pytest.mark.asyncio
    async def test_location_request(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"success": True, "data": [
                {"id": "US", "name": "United States", "type": "COUNTRY"},
            ]})

        async with HttpLookupTransport(Settings(), client=make_client(handler)) as transport:
            records = await transport.fetch("united", EntityKind.LOCATION, limit=20)

        assert seen["path"] == "/api/v0/discover/locations"
        assert seen["params"] == {"search_string": "united", "limit": "20", "offset": "0"}
        assert [(r.id, r.type_tag) for r in records] == [("US", "COUNTRY")]

    @pytest.mark.asyncio
    async def test_userhandle_request(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"success": True, "data": [{"username": "nike"}]})

        transport = HttpLookupTransport(Settings(), client=make_client(handler))
        records = await transport.fetch("nike", EntityKind.HANDLE, limit=12, platform="wp-ig")
        assert seen["path"] == "/api/v0/discover/userhandles"
        assert seen["params"] == {"q": "nike", "type": "search", "limit": "12",
                                  "work_platform_id": "wp-ig"}
        assert records[0].display_name == "@nike"

    @pytest.mark.asyncio
    async def test_error_payload_message(self):
        def handler(request):
            return httpx.Response(500, json={"success": False, "error": {"message": "index offline"}})

        transport = HttpLookupTransport(Settings(), client=make_client(handler))
        with pytest.raises(LookupFailed) as exc_info:
            await transport.fetch("aus", EntityKind.LOCATION, limit=20)
        assert exc_info.value.message == "index offline"

    @pytest.mark.asyncio
    async def test_unsuccessful_200(self):
        def handler(request):
            return httpx.Response(200, json={"success": False})

        transport = HttpLookupTransport(Settings(), client=make_client(handler))
        with pytest.raises(LookupFailed, match="Search failed"):
            await transport.fetch("aus", EntityKind.LOCATION, limit=20)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(502, text="<html>bad gateway</html>")

        transport = HttpLookupTransport(Settings(), client=make_client(handler))
        with pytest.raises(LookupFailed, match="invalid JSON"):
            await transport.fetch("aus", EntityKind.LOCATION, limit=20)

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        transport = HttpLookupTransport(Settings(), client=make_client(handler))
        with pytest.raises(LookupFailed) as exc_info:
            await transport.fetch("aus", EntityKind.LOCATION, limit=20)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_malformed_item(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": [{"name": "no id"}]})

        transport = HttpLookupTransport(Settings(), client=make_client(handler))
        with pytest.raises(LookupFailed, match="Malformed"):
            await transport.fetch("aus", EntityKind.LOCATION, limit=20)

    @pytest.mark.asyncio
    async def test_unsupported_kind(self):
        transport = HttpLookupTransport(Settings(), client=make_client(lambda r: httpx.Response(200)))
        with pytest.raises(LookupFailed):
            await transport.fetch("en", EntityKind.LANGUAGE, limit=5)


class TestHttpFilterCommitter:

    @pytest.mark.asyncio
    async def test_posts_serialized_filters(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "data": {"total": 3}})

        committer = HttpFilterCommitter(Settings(), client=make_client(handler), platform="wp-ig")
        filters = default_filter_set()
        filters["follower_count"] = NumericRange(min=1000)
        filters["topics"] = ["food"]
        payload = await committer(filters)

        assert seen["path"] == "/api/v0/discover/search"
        assert seen["body"] == {
            "work_platform_id": "wp-ig",
            "filters": {"follower_count": {"min": 1000, "max": None}, "topics": ["food"]},
        }
        assert payload["data"]["total"] == 3

    @pytest.mark.asyncio
    async def test_rejection_raises_apply_failed(self):
        def handler(request):
            return httpx.Response(422, json={"success": False, "error": "bad filters"})

        committer = HttpFilterCommitter(Settings(), client=make_client(handler))
        with pytest.raises(ApplyFailed) as exc_info:
            await committer(default_filter_set())
        assert exc_info.value.error_code == FilterErrorCode.APPLY_REJECTED
        assert exc_info.value.message == "bad filters"

    @pytest.mark.asyncio
    async def test_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("DISCOVERY_COMMIT_PATH", "/custom/search")
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            return httpx.Response(200, json={"success": True})

        committer = HttpFilterCommitter(client=make_client(handler))
        await committer(default_filter_set())
        assert seen["path"] == "/custom/search"
