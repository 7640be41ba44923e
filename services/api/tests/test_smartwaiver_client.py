from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
from services.api.app.services.waiver_base import (
    WaiverClientConfigError,
    WaiverUpstreamError,
    WaiverUpstreamTimeoutError,
)
from services.api.app.services.waiver_factory import get_waiver_client
from services.api.app.services.waiver_mock import MockWaiverClient
from services.api.app.services.waiver_smartwaiver import SmartwaiverClient, base_url_candidates
from services.api.app.settings import Settings, clean_api_key


def _client(handler, **kw) -> SmartwaiverClient:
    return SmartwaiverClient(
        api_key=kw.pop("api_key", "k3y"),
        base_url=kw.pop("base_url", "https://api.smartwaiver.com/v4"),
        transport=httpx.MockTransport(handler),
        **kw,
    )


def test_base_url_candidates() -> None:
    assert base_url_candidates("https://api.smartwaiver.com") == [
        "https://api.smartwaiver.com/v4",
        "https://api.smartwaiver.com",
    ]
    assert base_url_candidates("api.example.com/v4/") == [
        "https://api.example.com/v4",
        "https://api.example.com",
    ]


def test_clean_api_key() -> None:
    assert clean_api_key('  "abc123"\n') == "abc123"
    assert clean_api_key("ab\u200bc\t") == "abc"


def test_fetch_waiver_retries_with_alternate_header() -> None:
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        header = "x-api-key" if "x-api-key" in request.headers else "sw-api-key"
        seen.append(header)
        if header == "sw-api-key":
            return httpx.Response(401, json={"message": "bad key header"})
        return httpx.Response(200, json={"waiver": {"waiverId": "W1"}})

    async def run() -> tuple[dict, dict]:
        client = _client(handler)
        try:
            first = await client.fetch_waiver("W1")
            second = await client.fetch_waiver("W1")
        finally:
            await client.aclose()
        return first, second

    first, second = asyncio.run(run())

    assert first == {"waiverId": "W1"}
    assert second == {"waiverId": "W1"}
    # The working header is remembered for the next call.
    assert seen == ["sw-api-key", "x-api-key", "x-api-key"]


def test_fetch_waiver_falls_back_to_unversioned_base() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path.startswith("/v4/"):
            return httpx.Response(404, text="not here")
        return httpx.Response(200, json={"waiverId": "W2"})

    async def run() -> dict:
        client = _client(handler)
        try:
            return await client.fetch_waiver("W2")
        finally:
            await client.aclose()

    assert asyncio.run(run()) == {"waiverId": "W2"}
    assert paths == ["/v4/waivers/W2", "/waivers/W2"]


def test_list_waivers_pages_until_short_page() -> None:
    offsets: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        offsets.append(params["offset"])
        assert params["templateId"] == "T1"
        assert params["fromDts"] == "2025-01-10 00:00:00"
        start = int(params["offset"])
        count = 2 if start < 4 else 1
        return httpx.Response(200, json={"waivers": [{"waiverId": f"W{start + i}"} for i in range(count)]})

    async def run() -> list:
        client = _client(handler, page_size=2)
        try:
            return await client.list_waivers(
                "T1",
                datetime(2025, 1, 10, tzinfo=timezone.utc),
                datetime(2025, 1, 11, tzinfo=timezone.utc),
                max_pages=10,
            )
        finally:
            await client.aclose()

    waivers = asyncio.run(run())

    assert [w["waiverId"] for w in waivers] == ["W0", "W1", "W2", "W3", "W4"]
    assert offsets == ["0", "2", "4"]


def test_list_waivers_respects_page_cap() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"waivers": [{"waiverId": "a"}, {"waiverId": "b"}]})

    async def run() -> list:
        client = _client(handler, page_size=2)
        try:
            return await client.list_waivers("T1", None, None, max_pages=3)
        finally:
            await client.aclose()

    assert len(asyncio.run(run())) == 6


def test_server_error_raises_upstream_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="maintenance")

    async def run() -> None:
        client = _client(handler)
        try:
            await client.fetch_waiver("W1")
        finally:
            await client.aclose()

    with pytest.raises(WaiverUpstreamError) as excinfo:
        asyncio.run(run())
    assert excinfo.value.status_code == 503


def test_timeout_raises_timeout_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    async def run() -> None:
        client = _client(handler, timeout=0.5)
        try:
            await client.fetch_waiver("W1")
        finally:
            await client.aclose()

    with pytest.raises(WaiverUpstreamTimeoutError):
        asyncio.run(run())


def test_missing_key_raises_config_error() -> None:
    async def run() -> None:
        client = _client(lambda request: httpx.Response(200, json={}), api_key="")
        try:
            await client.fetch_waiver("W1")
        finally:
            await client.aclose()

    with pytest.raises(WaiverClientConfigError):
        asyncio.run(run())


def test_mock_client_filters_by_template_and_range() -> None:
    client = MockWaiverClient(
        [
            {"waiverId": "A", "templateId": "T1", "createdOn": "2025-01-10 10:00:00"},
            {"waiverId": "B", "templateId": "T1", "createdOn": "2025-01-08 10:00:00"},
            {"waiverId": "C", "templateId": "T2", "createdOn": "2025-01-10 10:00:00"},
        ]
    )

    async def run() -> list:
        return await client.list_waivers(
            "T1",
            datetime(2025, 1, 10, tzinfo=timezone.utc),
            datetime(2025, 1, 11, tzinfo=timezone.utc),
            max_pages=1,
        )

    assert [w["waiverId"] for w in asyncio.run(run())] == ["A"]


def test_waiver_client_factory() -> None:
    assert get_waiver_client(Settings(waiver_client="mock")).provider == "mock"
    with pytest.raises(ValueError, match="Unknown WAIVERDESK_WAIVER_CLIENT"):
        get_waiver_client(Settings(waiver_client="fax"))
