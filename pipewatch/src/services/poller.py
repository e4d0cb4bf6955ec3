"""
Polling scheduler - periodic backfill of runs for pipelines with a credential.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pipewatch.src.models.pipeline import Pipeline
from pipewatch.src.models.run import SourceKind
from pipewatch.src.services.credentials import CredentialStore
from pipewatch.src.services.errors import StoreUnavailable, UpstreamError, UpstreamRateLimited
from pipewatch.src.services.pipelines import PipelineRepository
from pipewatch.src.services.reconciler import Reconciler

logger = logging.getLogger(__name__)

@dataclass
class PollReport:
    started_at: datetime
    finished_at: Optional[datetime] = None
    polled: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    created: int = 0
    updated: int = 0

class PollingScheduler:
    """
    Runs one tick every ``interval`` seconds. Pipelines are processed
    sequentially within a tick and a tick never overlaps another one.
    """

    def __init__(
        self,
        pipelines: PipelineRepository,
        reconciler: Reconciler,
        credentials: CredentialStore,
        sources: Dict,
        interval: float = 30.0,
        run_limit: int = 10,
    ):
        self.pipelines = pipelines
        self.reconciler = reconciler
        self.credentials = credentials
        self.sources = sources
        self.interval = interval
        self.run_limit = run_limit

        self._tick_lock = asyncio.Lock()
        self._stopping = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[PollReport] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.is_running:
            logger.warning("Polling scheduler is already running")
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Polling scheduler started (interval: {self.interval}s)")

    async def stop(self):
        """Stop after the in-flight tick finishes, then drop credentials."""
        self._stopping.set()
        if self._task is not None:
            await self._task
            self._task = None
        # A manually triggered tick may still hold the lock
        async with self._tick_lock:
            pass
        self.credentials.clear_all()
        logger.info("Polling scheduler stopped")

    async def _loop(self):
        while not self._stopping.is_set():
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Polling tick failed")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def poll_once(self) -> Optional[PollReport]:
        """Run one tick now; returns None if a tick is already in progress."""
        if self._tick_lock.locked():
            logger.info("Polling tick already in progress, skipping")
            return None

        async with self._tick_lock:
            report = PollReport(started_at=datetime.now(timezone.utc))
            try:
                pipelines = await self.pipelines.list_active()
            except StoreUnavailable as e:
                logger.error(f"Cannot load pipelines for polling: {e}")
                report.failed["*"] = str(e)
                pipelines = []

            for pipeline in pipelines:
                await self._poll_pipeline(pipeline, report)

            report.finished_at = datetime.now(timezone.utc)
            self.last_report = report

        if report.created or report.updated:
            logger.info(f"Polling tick: {report.created} new, {report.updated} updated executions")
        return report

    async def _poll_pipeline(self, pipeline: Pipeline, report: PollReport):
        token = self.credentials.get(pipeline.id)
        if not token:
            report.skipped.append(pipeline.name)
            return

        try:
            source = self.sources.get(SourceKind(pipeline.source_kind))
        except ValueError:
            source = None
        if source is None:
            logger.warning(f"Unsupported source kind {pipeline.source_kind} for pipeline {pipeline.name}")
            report.skipped.append(pipeline.name)
            return

        try:
            runs = await source.list_recent_runs(pipeline, token, self.run_limit)
        except UpstreamRateLimited as e:
            logger.warning(f"Rate limited while polling {pipeline.name}, skipping this tick: {e}")
            report.failed[pipeline.name] = str(e)
            return
        except UpstreamError as e:
            logger.warning(f"Upstream error polling {pipeline.name}: {e}")
            report.failed[pipeline.name] = str(e)
            return
        except Exception as e:
            logger.exception(f"Failed to list runs for pipeline {pipeline.name}")
            report.failed[pipeline.name] = str(e)
            return

        report.polled.append(pipeline.name)
        for run in runs:
            try:
                result = await self.reconciler.apply(pipeline, run)
            except StoreUnavailable as e:
                logger.error(f"Store unavailable while polling {pipeline.name}: {e}")
                report.failed[pipeline.name] = str(e)
                return
            except Exception as e:
                logger.exception(f"Error processing run {run.external_id} for pipeline {pipeline.name}")
                report.failed[pipeline.name] = str(e)
                continue

            if result.created:
                report.created += 1
            elif result.changed:
                report.updated += 1

    def status(self) -> dict:
        last = self.last_report
        return {
            "running": self.is_running,
            "interval_seconds": self.interval,
            "credentials": len(self.credentials),
            "tick_in_progress": self._tick_lock.locked(),
            "last_tick": last.finished_at.isoformat() if last and last.finished_at else None,
        }
