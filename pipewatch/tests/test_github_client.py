"""Tests for the GitHub API client."""

import json

import httpx
import pytest
from pipewatch.src.models.run import CanonicalStatus
from pipewatch.src.services.errors import (
    UpstreamAuthError,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamUnavailable,
)
from pipewatch.src.services.github import GitHubClient

def client_for(handler):
    return GitHubClient("ghp_token", transport=httpx.MockTransport(handler))

@pytest.mark.asyncio
async def test_list_recent_runs_for_workflow(make_workflow_run):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["per_page"] = request.url.params["per_page"]
        seen["auth"] = request.headers["Authorization"]
        runs = [
            make_workflow_run(run_id=2)["workflow_run"],
            make_workflow_run(run_id=1, status="completed", conclusion="cancelled")["workflow_run"],
        ]
        return httpx.Response(200, json={"total_count": 2, "workflow_runs": runs})

    async with client_for(handler) as client:
        runs = await client.list_recent_runs("acme", "web", "101", limit=5)

    assert seen == {
        "path": "/repos/acme/web/actions/workflows/101/runs",
        "per_page": "5",
        "auth": "token ghp_token",
    }
    assert [r.external_id for r in runs] == ["2", "1"]
    assert runs[1].status == CanonicalStatus.CANCELLED

@pytest.mark.asyncio
async def test_list_recent_runs_for_repository():
    def handler(request):
        assert request.url.path == "/repos/acme/web/actions/runs"
        return httpx.Response(200, json={"workflow_runs": []})

    async with client_for(handler) as client:
        assert await client.list_recent_runs("acme", "web") == []

@pytest.mark.asyncio
async def test_register_webhook():
    def handler(request):
        assert request.method == "POST"
        assert request.url.path == "/repos/acme/web/hooks"
        body = json.loads(request.content)
        assert body["events"] == ["workflow_run"]
        assert body["config"]["url"] == "https://pipewatch.test/api/webhooks/github"
        assert body["config"]["secret"] == "s3cret"
        return httpx.Response(201, json={"id": 42})

    async with client_for(handler) as client:
        hook_id = await client.register_webhook(
            "acme", "web", "https://pipewatch.test/api/webhooks/github", secret="s3cret"
        )

    assert hook_id == "42"

@pytest.mark.parametrize("response,error", [
    (httpx.Response(429), UpstreamRateLimited),
    (httpx.Response(403, headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1714560000"}), UpstreamRateLimited),
    (httpx.Response(403), UpstreamAuthError),
    (httpx.Response(401), UpstreamAuthError),
    (httpx.Response(502), UpstreamUnavailable),
    (httpx.Response(404), UpstreamError),
])
@pytest.mark.asyncio
async def test_error_mapping(response, error):
    async with client_for(lambda request: response) as client:
        with pytest.raises(error) as exc_info:
            await client.list_recent_runs("acme", "web")

    assert exc_info.value.status_code == response.status_code

@pytest.mark.asyncio
async def test_rate_limit_reset_is_parsed():
    response = httpx.Response(403, headers={"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1714560000"})
    async with client_for(lambda request: response) as client:
        with pytest.raises(UpstreamRateLimited) as exc_info:
            await client.get_repository("acme", "web")

    assert exc_info.value.reset_at == 1714560000

@pytest.mark.asyncio
async def test_transport_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with client_for(handler) as client:
        with pytest.raises(UpstreamUnavailable):
            await client.get_repository("acme", "web")

@pytest.mark.asyncio
async def test_list_workflows():
    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/repos/acme/web/actions/workflows"
        return httpx.Response(200, json={
            "total_count": 2,
            "workflows": [
                {
                    "id": 101,
                    "name": "CI",
                    "path": ".github/workflows/ci.yml",
                    "state": "active",
                    "html_url": "https://github.com/acme/web/blob/main/.github/workflows/ci.yml",
                },
                {"id": 102, "name": "Release", "path": ".github/workflows/release.yml", "state": "disabled_manually"},
            ],
        })

    async with client_for(handler) as client:
        workflows = await client.list_workflows("acme", "web")

    assert [w["id"] for w in workflows] == ["101", "102"]
    assert workflows[0] == {
        "id": "101",
        "name": "CI",
        "path": ".github/workflows/ci.yml",
        "state": "active",
        "html_url": "https://github.com/acme/web/blob/main/.github/workflows/ci.yml",
    }
    assert workflows[1]["html_url"] is None

@pytest.mark.asyncio
async def test_list_workflows_missing_repository_is_empty():
    async with client_for(lambda request: httpx.Response(404)) as client:
        assert await client.list_workflows("acme", "gone") == []

@pytest.mark.asyncio
async def test_list_workflows_propagates_auth_errors():
    async with client_for(lambda request: httpx.Response(401)) as client:
        with pytest.raises(UpstreamAuthError):
            await client.list_workflows("acme", "web")
