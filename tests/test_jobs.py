"""Tests for the serverless function client and the jobs built on it."""

import json

import httpx
import pytest

from jobs.functions import FunctionInvocationError, FunctionsClient, make_analysis_job, make_sync_job


def client_for(handler, api_key: str = "service-key") -> FunctionsClient:
    return FunctionsClient("https://example.test/functions/v1/", api_key, transport=httpx.MockTransport(handler))


async def test_invoke_posts_json_with_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "processed": 3})

    result = await client_for(handler).invoke("batch-analyze-posts", {"limit": 3})

    assert result == {"success": True, "processed": 3}
    assert seen["url"] == "https://example.test/functions/v1/batch-analyze-posts"
    assert seen["auth"] == "Bearer service-key"
    assert seen["body"] == {"limit": 3}


async def test_no_auth_header_without_key():
    def handler(request):
        assert "authorization" not in request.headers
        return httpx.Response(200, json={})

    await client_for(handler, api_key="").invoke("ping")


async def test_http_error_raises():
    client = client_for(lambda r: httpx.Response(500, text="boom"))
    with pytest.raises(FunctionInvocationError) as exc:
        await client.invoke("batch-analyze-posts")
    assert exc.value.status_code == 500
    assert "boom" in str(exc.value)


async def test_reported_failure_raises():
    client = client_for(lambda r: httpx.Response(200, json={"success": False, "error": "quota exceeded"}))
    with pytest.raises(FunctionInvocationError, match="quota exceeded"):
        await client.invoke("batch-analyze-posts")


async def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(FunctionInvocationError, match="request failed"):
        await client_for(handler).invoke("inoreader-rss-ingestion")


async def test_non_json_body_returned_as_text():
    client = client_for(lambda r: httpx.Response(200, text="ok"))
    assert await client.invoke("ping") == "ok"


async def test_analysis_job_sends_batch_size():
    bodies = []

    def handler(request):
        bodies.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"success": True, "processed": 25})

    job = make_analysis_job(client_for(handler), "analyze")
    await job(25)
    assert bodies == [("/functions/v1/analyze", {"limit": 25})]


async def test_sync_job_propagates_failure():
    job = make_sync_job(client_for(lambda r: httpx.Response(503, text="unavailable")), "ingest")
    with pytest.raises(FunctionInvocationError):
        await job()
