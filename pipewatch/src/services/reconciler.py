"""
Applies observed runs to the store and fans out the resulting transitions.
"""

import asyncio
import logging
from typing import Set

from pipewatch.src.models.pipeline import Pipeline
from pipewatch.src.models.run import ChangeNotice, ObservedRun
from pipewatch.src.services.broadcaster import RealtimeBroadcaster
from pipewatch.src.services.notifier import NotificationDispatcher
from pipewatch.src.services.store import ApplyResult, ExecutionStore

logger = logging.getLogger(__name__)

class Reconciler:
    """
    Shared apply step for the webhook and polling paths.

    The store write completes before anything else happens; notification and
    broadcast run afterwards in a background task, so callers never wait on
    them and a failed write never produces a notice.
    """

    def __init__(
        self,
        store: ExecutionStore,
        dispatcher: NotificationDispatcher,
        broadcaster: RealtimeBroadcaster,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.broadcaster = broadcaster
        self._pending: Set[asyncio.Task] = set()

    async def apply(self, pipeline: Pipeline, run: ObservedRun) -> ApplyResult:
        if run.pipeline_id != pipeline.id:
            run = run.model_copy(update={"pipeline_id": pipeline.id})

        result = await self.store.upsert_by_external_id(run)

        if result.changed:
            task = asyncio.create_task(self._fan_out(pipeline, result))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        else:
            logger.debug(f"Run {run.external_id} unchanged ({result.execution.status})")

        return result

    async def _fan_out(self, pipeline: Pipeline, result: ApplyResult):
        execution = result.execution
        try:
            await self.dispatcher.dispatch(execution, result.previous_status, pipeline)
        except Exception:
            logger.exception(f"Notification dispatch failed for execution {execution.id}")

        notice = ChangeNotice(
            type="execution_created" if result.created else "execution_updated",
            pipeline_id=pipeline.id,
            execution_id=execution.id,
            status=execution.status,
        )
        try:
            await self.broadcaster.publish(notice)
        except Exception:
            logger.exception(f"Realtime broadcast failed for execution {execution.id}")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self):
        """Wait for in-flight notification and broadcast tasks."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
