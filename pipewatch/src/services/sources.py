"""
Pipeline source kinds and the capabilities the engine needs from each.
"""

import posixpath
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from pipewatch.src.models.pipeline import Execution, Pipeline
from pipewatch.src.models.run import CanonicalStatus, ObservedRun, RepositoryRef, SourceKind
from pipewatch.src.services.github import GitHubClient, parse_repository_url, parse_workflow_run_event
from pipewatch.src.services.status import normalize_status

class RunSource(Protocol):
    kind: SourceKind

    def normalize_status(self, status: Optional[str], conclusion: Optional[str]) -> CanonicalStatus: ...

    async def list_recent_runs(self, pipeline: Pipeline, token: str, limit: int) -> List[ObservedRun]: ...

    def parse_webhook(self, payload: Dict[str, Any]) -> Optional[Tuple[RepositoryRef, ObservedRun]]: ...

    def matches(self, pipeline: Pipeline, repository: RepositoryRef, run: ObservedRun) -> bool: ...

    def run_url(self, pipeline: Pipeline, execution: Execution) -> Optional[str]: ...

    async def register_webhook(self, pipeline: Pipeline, token: str, callback_url: str) -> str: ...

    async def list_workflows(self, owner: str, repo: str, token: str) -> List[Dict[str, Any]]: ...

def workflow_identifiers(run: ObservedRun) -> set:
    """Values a pipeline's workflow_id may use to refer to this run's workflow."""
    identifiers = set()
    if run.workflow_id:
        identifiers.add(run.workflow_id)
    if run.workflow_path:
        # Reusable workflow paths carry a ref suffix: .github/workflows/ci.yml@refs/heads/main
        path = run.workflow_path.split("@", 1)[0]
        identifiers.add(path)
        identifiers.add(posixpath.basename(path))
    return identifiers

def resolve_locator(pipeline: Pipeline) -> Optional[Tuple[str, str]]:
    """Owner/repo for a pipeline, falling back to its repository URL."""
    if pipeline.owner and pipeline.repo:
        return pipeline.owner, pipeline.repo
    return parse_repository_url(pipeline.repository_url)

class GitHubActionsSource:
    """Hosted CI source backed by GitHub Actions workflow runs."""

    kind = SourceKind.GITHUB

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        timeout: float = 15.0,
        webhook_secret: str = "",
        client_factory: Optional[Callable[[str], GitHubClient]] = None,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self.webhook_secret = webhook_secret
        self.client_factory = client_factory or self._default_client

    def _default_client(self, token: str) -> GitHubClient:
        return GitHubClient(token, base_url=self.api_url, timeout=self.timeout)

    def normalize_status(self, status, conclusion):
        return normalize_status(status, conclusion)

    async def list_recent_runs(self, pipeline: Pipeline, token: str, limit: int) -> List[ObservedRun]:
        locator = resolve_locator(pipeline)
        if locator is None:
            raise ValueError(f"Pipeline {pipeline.name} has no resolvable GitHub repository")
        owner, repo = locator

        async with self.client_factory(token) as client:
            runs = await client.list_recent_runs(owner, repo, pipeline.workflow_id, limit)
        return [run.model_copy(update={"pipeline_id": pipeline.id}) for run in runs]

    def parse_webhook(self, payload):
        return parse_workflow_run_event(payload)

    def matches(self, pipeline: Pipeline, repository: RepositoryRef, run: ObservedRun) -> bool:
        locator = resolve_locator(pipeline)
        if locator is None:
            return False
        full_name = f"{locator[0]}/{locator[1]}".lower()
        if repository.full_name:
            if full_name != repository.full_name.lower():
                return False
        elif locator[1].lower() != repository.name.lower():
            return False

        if not pipeline.workflow_id or not (run.workflow_id or run.workflow_path):
            return True
        # Pipelines may name their workflow by numeric id or by file name
        return str(pipeline.workflow_id) in workflow_identifiers(run)

    def run_url(self, pipeline: Pipeline, execution: Execution) -> Optional[str]:
        locator = resolve_locator(pipeline)
        if locator is None or not execution.external_id:
            return None
        owner, repo = locator
        return f"https://github.com/{owner}/{repo}/actions/runs/{execution.external_id}"

    async def register_webhook(self, pipeline: Pipeline, token: str, callback_url: str) -> str:
        locator = resolve_locator(pipeline)
        if locator is None:
            raise ValueError(f"Pipeline {pipeline.name} has no resolvable GitHub repository")
        owner, repo = locator

        async with self.client_factory(token) as client:
            # Renamed repositories redirect; register against the canonical name
            repository = await client.get_repository(owner, repo)
            if repository.get("full_name") and "/" in repository["full_name"]:
                owner, repo = repository["full_name"].split("/", 1)
            return await client.register_webhook(
                owner, repo, callback_url, secret=self.webhook_secret or None
            )

    async def list_workflows(self, owner: str, repo: str, token: str) -> List[Dict[str, Any]]:
        async with self.client_factory(token) as client:
            return await client.list_workflows(owner, repo)

def build_sources(settings) -> Dict[SourceKind, RunSource]:
    return {
        SourceKind.GITHUB: GitHubActionsSource(
            api_url=settings.github_api_url,
            timeout=settings.github_timeout_seconds,
            webhook_secret=settings.github_webhook_secret,
        ),
    }
