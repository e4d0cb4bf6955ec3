"""
Wires the reconciliation components together for the HTTP layer.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import async_sessionmaker

from pipewatch.src.config import Settings
from pipewatch.src.models.pipeline import Pipeline
from pipewatch.src.models.run import RepositorySelection, SourceKind
from pipewatch.src.services.broadcaster import RealtimeBroadcaster, RedisSink
from pipewatch.src.services.credentials import CredentialStore
from pipewatch.src.services.errors import StoreUnavailable, UpstreamError
from pipewatch.src.services.github import parse_repository_url
from pipewatch.src.services.mailer import SmtpMailer
from pipewatch.src.services.notifier import NotificationDispatcher
from pipewatch.src.services.pipelines import PipelineRepository
from pipewatch.src.services.poller import PollingScheduler, PollReport
from pipewatch.src.services.reconciler import Reconciler
from pipewatch.src.services.sources import RunSource, build_sources
from pipewatch.src.services.store import ExecutionStore
from pipewatch.src.services.webhooks import WebhookIngestor, WebhookResult

logger = logging.getLogger(__name__)

@dataclass
class SelectedPipeline:
    pipeline: Pipeline
    created: bool
    synced: int = 0
    error: Optional[str] = None

def resolve_repository(
    repository_url: Optional[str] = None,
    owner: Optional[str] = None,
    repo: Optional[str] = None,
) -> Tuple[str, str]:
    if owner and repo:
        return owner, repo
    locator = parse_repository_url(repository_url)
    if locator is None:
        raise ValueError("Either owner and repo or a GitHub repository_url is required")
    return locator

class ReconciliationEngine:
    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker,
        sources: Optional[Dict[SourceKind, RunSource]] = None,
        mailer=None,
        broadcaster: Optional[RealtimeBroadcaster] = None,
        credentials: Optional[CredentialStore] = None,
    ):
        self.settings = settings
        self.sources = sources if sources is not None else build_sources(settings)
        self.mailer = mailer if mailer is not None else SmtpMailer.from_settings(settings)
        self.broadcaster = broadcaster or RealtimeBroadcaster()
        self.credentials = credentials or CredentialStore()

        self.store = ExecutionStore(session_factory)
        self.pipelines = PipelineRepository(session_factory)
        self.dispatcher = NotificationDispatcher(self.pipelines, self.mailer, self.sources)
        self.reconciler = Reconciler(self.store, self.dispatcher, self.broadcaster)
        self.webhooks = WebhookIngestor(
            self.sources[SourceKind.GITHUB],
            self.pipelines,
            self.reconciler,
            secret=settings.github_webhook_secret,
        )
        self.poller = PollingScheduler(
            self.pipelines,
            self.reconciler,
            self.credentials,
            self.sources,
            interval=settings.poll_interval_seconds,
            run_limit=settings.poll_run_limit,
        )
        self._redis_sink: Optional[RedisSink] = None

    async def apply_webhook_payload(
        self,
        body: bytes,
        signature: Optional[str],
        event: Optional[str] = None,
    ) -> WebhookResult:
        return await self.webhooks.apply_webhook_payload(body, signature, event)

    async def poll_once(self) -> Optional[PollReport]:
        return await self.poller.poll_once()

    def set_credential(self, pipeline_id: UUID, token: str):
        self.credentials.set(pipeline_id, token)

    def clear_credential(self, pipeline_id: UUID):
        self.credentials.clear(pipeline_id)

    async def register_webhook(self, pipeline_id: UUID) -> Pipeline:
        """Register an upstream webhook for a pipeline using its attached credential."""
        pipeline = await self.pipelines.get(pipeline_id)
        if pipeline is None:
            raise LookupError(f"Pipeline {pipeline_id} not found")
        token = self.credentials.get(pipeline_id)
        if not token:
            raise PermissionError(f"No credential attached to pipeline {pipeline.name}")
        if not self.settings.public_base_url:
            raise ValueError("public_base_url must be configured to register webhooks")

        source = self.sources[SourceKind(pipeline.source_kind)]
        callback_url = self.settings.public_base_url.rstrip("/") + "/api/webhooks/github"
        webhook_id = await source.register_webhook(pipeline, token, callback_url)
        logger.info(f"Registered webhook {webhook_id} for pipeline {pipeline.name}")
        return await self.pipelines.set_webhook_id(pipeline_id, webhook_id)

    async def discover_workflows(
        self,
        token: str,
        owner: str,
        repo: str,
        source_kind: SourceKind = SourceKind.GITHUB,
    ) -> List[Dict[str, Any]]:
        workflows = await self.sources[source_kind].list_workflows(owner, repo, token)
        logger.info(f"Discovered {len(workflows)} workflows in {owner}/{repo}")
        return workflows

    async def add_selected_pipelines(
        self,
        token: str,
        selections: List[RepositorySelection],
        backfill_limit: Optional[int] = None,
    ) -> List[SelectedPipeline]:
        """
        Track each selected workflow as its own pipeline and backfill its history.

        Workflows that are already tracked are reused. The token is attached to
        every selected pipeline so the poller keeps it current. A failed backfill
        is reported on that pipeline and does not stop the others.
        """
        if backfill_limit is None:
            backfill_limit = self.settings.initial_backfill_runs
        source = self.sources[SourceKind.GITHUB]

        resolved = [
            (selection, resolve_repository(selection.repository_url, selection.owner, selection.repo))
            for selection in selections
        ]

        outcomes = []
        for selection, (owner, repo) in resolved:
            for workflow in selection.workflows:
                pipeline = await self.pipelines.find_by_workflow(owner, repo, workflow.id)
                created = pipeline is None
                if created:
                    pipeline = await self.pipelines.create_pipeline(
                        name=f"{repo} - {workflow.name}",
                        repository_url=selection.repository_url,
                        owner=owner,
                        repo=repo,
                        workflow_id=workflow.id,
                        workflow_name=workflow.name,
                    )
                self.set_credential(pipeline.id, token)

                outcome = SelectedPipeline(pipeline=pipeline, created=created)
                try:
                    runs = await source.list_recent_runs(pipeline, token, backfill_limit)
                    for run in runs:
                        await self.reconciler.apply(pipeline, run)
                        outcome.synced += 1
                except (UpstreamError, StoreUnavailable) as e:
                    logger.error(f"Initial sync of pipeline {pipeline.name} failed: {e}")
                    outcome.error = str(e)
                else:
                    logger.info(f"Synced {outcome.synced} runs for pipeline {pipeline.name}")
                outcomes.append(outcome)

        return outcomes

    async def start(self):
        if self.settings.realtime_redis_enabled:
            self._redis_sink = RedisSink(self.settings.redis_url, self.settings.realtime_redis_channel)
            self._redis_token = self.broadcaster.register(self._redis_sink)
            logger.info(f"Publishing execution changes to redis channel {self.settings.realtime_redis_channel}")
        if self.settings.polling_enabled:
            self.poller.start()

    async def stop(self):
        await self.poller.stop()
        await self.reconciler.drain()
        if self._redis_sink is not None:
            self.broadcaster.unregister(self._redis_token)
            await self._redis_sink.close()
            self._redis_sink = None

    async def drain(self):
        await self.reconciler.drain()
