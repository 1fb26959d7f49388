from __future__ import annotations

import httpx
import pytest

from intune_template_converter.auth.token_cache import AccessTokenCache, StaticTokenSource
from intune_template_converter.graph.client import GraphAPIError, GraphClient
from intune_template_converter.safety.guardian import SafetyGuardian, SafetyViolation

BASE = "https://graph.microsoft.com/beta/deviceManagement"


def _client(handler, dry_run: bool = False) -> GraphClient:
    tokens = AccessTokenCache(StaticTokenSource("token-abc"))
    return GraphClient(
        tokens,
        SafetyGuardian(dry_run=dry_run),
        transport=httpx.MockTransport(handler),
        backoff_seconds=0,
    )


@pytest.mark.asyncio
async def test_get_sends_bearer_token_and_builds_beta_url() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "p1"})

    async with _client(handler) as graph:
        data = await graph.get("deviceManagement/groupPolicyConfigurations/p1", beta=True)

    assert data == {"id": "p1"}
    assert str(seen[0].url) == f"{BASE}/groupPolicyConfigurations/p1"
    assert seen[0].headers["Authorization"] == "Bearer token-abc"


@pytest.mark.asyncio
async def test_pagination_follows_next_link() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "skiptoken" in str(request.url):
            return httpx.Response(200, json={"value": [{"id": "3"}]})
        return httpx.Response(200, json={
            "value": [{"id": "1"}, {"id": "2"}],
            "@odata.nextLink": f"{BASE}/configurationSettings?$skiptoken=abc",
        })

    async with _client(handler) as graph:
        items = await graph.get_all_pages("deviceManagement/configurationSettings", beta=True)

    assert [i["id"] for i in items] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_error_message_is_taken_from_graph_error_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": "BadRequest", "message": "Invalid setting"}})

    async with _client(handler) as graph:
        with pytest.raises(GraphAPIError) as exc_info:
            await graph.post("deviceManagement/configurationPolicies", {"name": "x"}, beta=True)

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Invalid setting"


@pytest.mark.asyncio
async def test_non_json_error_body_falls_back_to_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="gateway exploded")

    async with _client(handler) as graph:
        with pytest.raises(GraphAPIError) as exc_info:
            await graph.get("organization")

    assert exc_info.value.message == "gateway exploded"


@pytest.mark.asyncio
async def test_throttled_request_is_retried() -> None:
    responses = iter([
        httpx.Response(429, headers={"Retry-After": "0"}),
        httpx.Response(503),
        httpx.Response(200, json={"ok": True}),
    ])

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    async with _client(handler) as graph:
        data = await graph.get("organization")
        stats = graph.get_stats()

    assert data == {"ok": True}
    assert stats["throttle_events"] == 2
    assert stats["total_requests"] == 3


@pytest.mark.asyncio
async def test_unauthorized_refreshes_token_once() -> None:
    statuses = iter([401, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        return httpx.Response(status, json={} if status == 200 else {"error": {"message": "expired"}})

    async with _client(handler) as graph:
        await graph.get("organization")
        assert graph.get_stats()["token_refreshes"] == 2


@pytest.mark.asyncio
async def test_empty_success_body_is_empty_dict() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(204)

    async with _client(handler) as graph:
        result = await graph.post(
            "deviceManagement/configurationPolicies/p1/assign", {"assignments": []}, beta=True
        )

    assert result == {}


@pytest.mark.asyncio
async def test_guardian_blocks_writes_to_source_policies() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("request should never be sent")

    async with _client(handler) as graph:
        with pytest.raises(SafetyViolation):
            await graph.patch("deviceManagement/groupPolicyConfigurations/p1", {}, beta=True)


@pytest.mark.asyncio
async def test_dry_run_blocks_policy_creation() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("request should never be sent")

    async with _client(handler, dry_run=True) as graph:
        with pytest.raises(SafetyViolation):
            await graph.post("deviceManagement/configurationPolicies", {"name": "x"}, beta=True)


@pytest.mark.asyncio
async def test_non_json_success_body_is_a_graph_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    async with _client(handler) as graph:
        with pytest.raises(GraphAPIError) as exc_info:
            await graph.get("deviceManagement/configurationSettings", beta=True)

    assert exc_info.value.status_code == 200
    assert "not valid JSON" in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize("retry_after", ["Wed, 21 Oct 2015 07:28:00 GMT", "soon"])
async def test_retry_after_dates_and_garbage_still_retry(retry_after) -> None:
    responses = iter([
        httpx.Response(429, headers={"Retry-After": retry_after}),
        httpx.Response(200, json={"ok": True}),
    ])

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    async with _client(handler) as graph:
        data = await graph.get("organization")

    assert data == {"ok": True}
