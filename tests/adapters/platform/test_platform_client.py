from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import httpx
import pytest

from fusionid.adapters.http_resilience import ResilienceConfig, ResilientClient
from fusionid.adapters.platform import PlatformAPIError, PlatformClient
from fusionid.config import PlatformConfig
from fusionid.domain.model import DirectoryIdentity, FusionRecord
from fusionid.domain.ports.persistence import FUSION_STATE_PATH
from tests.support.fusion import account, match_identity, record_settings

if TYPE_CHECKING:
    from collections.abc import Callable

BASE_URL = "https://platform.example"


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> PlatformClient:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    resilience = ResilienceConfig(name="platform", base_url=BASE_URL)
    http = ResilientClient(resilience)
    http._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
        base_url=BASE_URL, transport=httpx.MockTransport(async_handler)
    )
    config = PlatformConfig(
        base_url=BASE_URL, token="token", source_id="src-1", resilience=resilience
    )
    return PlatformClient(config, http=http)


def test_load_counters_reads_connector_state() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={"id": "src-1", "connectorAttributes": {"fusionState": {"employee": 7}}},
        )

    counters = asyncio.run(_client(handler).load_counters())

    assert counters == {"employee": 7}
    assert requests[0].method == "GET"
    assert requests[0].url.path == "/sources/src-1"


def test_patch_config_sends_json_patch() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "src-1"})

    asyncio.run(_client(handler).patch_config(FUSION_STATE_PATH, {"employee": 8}))

    request = requests[0]
    assert request.method == "PATCH"
    assert request.headers["Content-Type"] == "application/json-patch+json"
    assert json.loads(request.content) == [
        {"op": "add", "path": FUSION_STATE_PATH, "value": {"employee": 8}}
    ]


def test_create_review_posts_candidates_and_returns_reference() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"id": "r-1", "url": "https://platform.example/r/1"})

    settings = record_settings()
    reviewer = FusionRecord.from_identity(
        DirectoryIdentity(id="rev-1", name="Rita", attributes={"email": "rita@example.com"}),
        settings=settings,
    )
    reviewer.add_identity_layer(
        DirectoryIdentity(id="rev-1", name="Rita", attributes={"email": "rita@example.com"})
    )
    candidate = FusionRecord.from_identity(
        DirectoryIdentity(id="id-1", name="Ada Lovelace"), settings=settings
    )
    record = FusionRecord.from_managed_account(account("h1", name="Ada"), settings=settings)
    matches = match_identity("id-1", score=91.0)([candidate])

    reference = asyncio.run(
        _client(handler).create_review(record=record, reviewer=reviewer, candidates=matches)
    )

    assert reference == "https://platform.example/r/1"
    body = json.loads(requests[0].content)
    assert requests[0].url.path == "/reviews"
    assert body["reviewerId"] == "rev-1"
    assert body["reviewerEmail"] == "rita@example.com"
    assert body["account"]["id"] == "h1"
    assert body["account"]["sourceName"] == "HR"
    assert body["candidates"][0]["identityId"] == "id-1"
    assert body["candidates"][0]["scores"][0]["score"] == 91.0


def test_correlate_replaces_identity_of_account() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(204)

    asyncio.run(_client(handler).correlate(identity_id="id-1", account_id="h1"))

    assert requests[0].url.path == "/accounts/h1"
    assert json.loads(requests[0].content) == [
        {"op": "replace", "path": "/identityId", "value": "id-1"}
    ]


def test_error_response_raises_with_platform_message() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"detailCode": "400.1", "messages": [{"text": "Bad path"}, {"text": "Try again"}]},
        )

    with pytest.raises(PlatformAPIError, match="Bad path; Try again") as exc:
        asyncio.run(_client(handler).patch_config("/bad", 1))

    assert exc.value.code == 400


def test_unexpected_payload_raises() -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"connectorAttributes": {"fusionState": "broken"}})

    with pytest.raises(PlatformAPIError, match="Unexpected source payload"):
        asyncio.run(_client(handler).load_counters())
