"""
GitHub service for webhook validation and the Actions API.
"""

import hmac
import hashlib
import logging
import re
from typing import Optional, Dict, Any, List, Tuple

import httpx

from pipewatch.src.models.run import ObservedRun, RepositoryRef
from pipewatch.src.services.errors import (
    UpstreamError,
    UpstreamUnavailable,
    UpstreamRateLimited,
    UpstreamAuthError,
)
from pipewatch.src.services.status import normalize_status

logger = logging.getLogger(__name__)

REPOSITORY_URL_PATTERN = re.compile(r"github\.com[:/]+([^/]+)/([^/#?]+)")

def verify_signature(payload: bytes, signature: Optional[str], secret: str) -> bool:
    """Verify GitHub webhook signature."""
    if not secret:
        # Deployments without a shared secret accept unsigned deliveries
        return True
    if not signature:
        return False

    expected = "sha256=" + hmac.new(
        secret.encode(),
        payload,
        hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature)

def parse_repository_url(url: Optional[str]) -> Optional[Tuple[str, str]]:
    """Extract (owner, repo) from a GitHub repository URL."""
    if not url:
        return None
    match = REPOSITORY_URL_PATTERN.search(url.strip())
    if not match:
        return None
    owner, repo = match.groups()
    if repo.endswith(".git"):
        repo = repo[:-4]
    repo = repo.rstrip("/")
    if not owner or not repo:
        return None
    return owner, repo

def observed_run_from_api(run: Dict[str, Any]) -> ObservedRun:
    """Build an ObservedRun from a workflow run object (API listing or webhook)."""
    status = run.get("status")
    head_commit = run.get("head_commit") or {}
    html_url = run.get("html_url")
    workflow_id = run.get("workflow_id")

    return ObservedRun(
        external_id=str(run["id"]),
        status=normalize_status(status, run.get("conclusion")),
        started_at=run.get("run_started_at") or run.get("created_at"),
        completed_at=run.get("updated_at") if status == "completed" else None,
        commit_hash=run.get("head_sha"),
        commit_message=head_commit.get("message") or run.get("display_title"),
        branch=run.get("head_branch"),
        run_attempt=run.get("run_attempt") or 1,
        log_reference=f"GitHub Actions Run: {html_url}" if html_url else None,
        workflow_id=str(workflow_id) if workflow_id is not None else None,
        workflow_path=run.get("path"),
        html_url=html_url,
    )

def parse_workflow_run_event(payload: Dict[str, Any]) -> Optional[Tuple[RepositoryRef, ObservedRun]]:
    """Extract repository identity and run state from a workflow_run event."""
    run = payload.get("workflow_run")
    if not isinstance(run, dict) or run.get("id") is None:
        return None

    repo = payload.get("repository") or {}
    repository = RepositoryRef(
        name=repo.get("name", ""),
        full_name=repo.get("full_name", ""),
        html_url=repo.get("html_url"),
    )
    return repository, observed_run_from_api(run)

class GitHubClient:
    """Async client for the parts of the GitHub REST API the engine reads."""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": "pipewatch",
            },
        )

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    async def list_recent_runs(
        self,
        owner: str,
        repo: str,
        workflow_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[ObservedRun]:
        """List the most recent runs, newest first."""
        if workflow_id:
            path = f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/runs"
        else:
            path = f"/repos/{owner}/{repo}/actions/runs"

        data = await self._request("GET", path, params={"per_page": limit})
        runs = data.get("workflow_runs", [])
        return [observed_run_from_api(run) for run in runs[:limit]]

    async def get_repository(self, owner: str, repo: str) -> Dict[str, Any]:
        data = await self._request("GET", f"/repos/{owner}/{repo}")
        return {
            "id": data.get("id"),
            "name": data.get("name"),
            "full_name": data.get("full_name"),
            "html_url": data.get("html_url"),
            "default_branch": data.get("default_branch"),
            "private": data.get("private"),
        }

    async def list_workflows(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        """List the repository's Actions workflows; a repository without any returns []."""
        try:
            data = await self._request("GET", f"/repos/{owner}/{repo}/actions/workflows")
        except UpstreamError as e:
            if e.status_code == 404:
                return []
            raise
        return [
            {
                "id": str(workflow["id"]),
                "name": workflow.get("name"),
                "path": workflow.get("path"),
                "state": workflow.get("state"),
                "html_url": workflow.get("html_url"),
            }
            for workflow in data.get("workflows", [])
        ]

    async def register_webhook(
        self,
        owner: str,
        repo: str,
        callback_url: str,
        secret: Optional[str] = None,
    ) -> str:
        """Create a repository webhook for workflow_run events; returns its id."""
        config = {
            "url": callback_url,
            "content_type": "json",
            "insecure_ssl": "0",
        }
        if secret:
            config["secret"] = secret

        data = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/hooks",
            json={
                "name": "web",
                "active": True,
                "events": ["workflow_run"],
                "config": config,
            },
        )
        return str(data["id"])

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise UpstreamUnavailable(f"GitHub request {method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise self._error_for(response, method, path)
        return response.json()

    @staticmethod
    def _error_for(response: httpx.Response, method: str, path: str) -> UpstreamError:
        status = response.status_code
        message = f"GitHub {method} {path} returned {status}"

        remaining = response.headers.get("x-ratelimit-remaining")
        if status == 429 or (status == 403 and remaining == "0"):
            reset = response.headers.get("x-ratelimit-reset")
            return UpstreamRateLimited(
                message,
                status_code=status,
                reset_at=int(reset) if reset and reset.isdigit() else None,
            )
        if status in (401, 403):
            return UpstreamAuthError(message, status_code=status)
        if status >= 500:
            return UpstreamUnavailable(message, status_code=status)
        return UpstreamError(message, status_code=status)
