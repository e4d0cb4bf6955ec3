"""
Execution store - idempotent reconciliation of observed runs into executions.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, insert, update, func
from sqlalchemy.exc import IntegrityError, OperationalError, InterfaceError
from sqlalchemy.ext.asyncio import async_sessionmaker

from pipewatch.src.models.pipeline import Execution
from pipewatch.src.models.run import CanonicalStatus, ObservedRun
from pipewatch.src.services.errors import DuplicateExecution, StoreUnavailable
from pipewatch.src.services.status import is_terminal

logger = logging.getLogger(__name__)

STORE_ERRORS = (OperationalError, InterfaceError, OSError)

@dataclass
class ApplyResult:
    execution: Execution
    previous_status: Optional[CanonicalStatus]
    created: bool

    @property
    def changed(self) -> bool:
        """True when the apply was a first observation or a status transition."""
        return self.created or self.previous_status != self.execution.status

class ExecutionStore:
    """
    Owns execution rows.

    Correctness under concurrent writers rests on the unique index over
    (pipeline_id, external_id): an upsert always attempts the insert first and
    turns a conflict into an update of the row the other writer created. Updates
    are conditional on the status they were computed from, so two writers never
    both report the same transition.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        max_insert_attempts: int = 5,
        max_update_attempts: int = 5,
    ):
        self.session_factory = session_factory
        self.max_insert_attempts = max_insert_attempts
        self.max_update_attempts = max_update_attempts

    async def upsert_by_external_id(self, run: ObservedRun) -> ApplyResult:
        if run.pipeline_id is None:
            raise ValueError("ObservedRun.pipeline_id is required")

        for attempt in range(1, self.max_insert_attempts + 1):
            try:
                return await self._insert(run)
            except DuplicateExecution:
                result = await self._update(run)
                if result is not None:
                    return result
                # Lost a build number race against a different external id
                logger.debug(
                    f"Build number collision for run {run.external_id} on pipeline "
                    f"{run.pipeline_id}, attempt {attempt}"
                )

        raise StoreUnavailable(
            f"Could not allocate a build number for run {run.external_id} "
            f"after {self.max_insert_attempts} attempts"
        )

    async def _insert(self, run: ObservedRun) -> ApplyResult:
        execution_id = uuid.uuid4()
        next_build_number = (
            select(func.coalesce(func.max(Execution.build_number), 0) + 1)
            .where(Execution.pipeline_id == run.pipeline_id)
            .scalar_subquery()
        )
        stmt = insert(Execution).values(
            id=execution_id,
            pipeline_id=run.pipeline_id,
            external_id=run.external_id,
            status=run.status.value,
            build_number=next_build_number,
            run_attempt=run.run_attempt,
            duration_seconds=run.duration_seconds,
            commit_hash=run.commit_hash,
            commit_message=run.commit_message,
            branch=run.branch,
            log_reference=run.log_reference,
            started_at=run.started_at,
            completed_at=run.completed_at,
        )

        try:
            async with self.session_factory() as session:
                try:
                    await session.execute(stmt)
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    raise DuplicateExecution(run.pipeline_id, run.external_id)

                execution = await session.get(Execution, execution_id)
        except STORE_ERRORS as e:
            raise StoreUnavailable(f"Failed to insert run {run.external_id}: {e}") from e

        logger.info(
            f"Created execution #{execution.build_number} for run {run.external_id} "
            f"({execution.status})"
        )
        return ApplyResult(execution=execution, previous_status=None, created=True)

    async def _update(self, run: ObservedRun) -> Optional[ApplyResult]:
        """
        Apply a status change as a compare-and-swap on the status read.

        Concurrent writers that read the same status race on the conditional
        UPDATE; only one matches a row; the others re-read and usually find
        the transition already applied.
        """
        for attempt in range(1, self.max_update_attempts + 1):
            try:
                async with self.session_factory() as session:
                    query = (
                        select(Execution)
                        .where(Execution.pipeline_id == run.pipeline_id)
                        .where(Execution.external_id == run.external_id)
                    )
                    execution = (await session.execute(query)).scalar_one_or_none()
                    if execution is None:
                        return None

                    current = CanonicalStatus(execution.status)
                    if current == run.status or self._is_stale(execution, run):
                        return ApplyResult(execution=execution, previous_status=current, created=False)

                    values = {
                        "status": run.status.value,
                        "duration_seconds": run.duration_seconds,
                        "completed_at": run.completed_at,
                        "run_attempt": max(execution.run_attempt or 1, run.run_attempt),
                    }
                    if run.started_at is not None:
                        values["started_at"] = run.started_at

                    stmt = (
                        update(Execution)
                        .where(Execution.id == execution.id)
                        .where(Execution.status == current.value)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    result = await session.execute(stmt)
                    if result.rowcount == 0:
                        await session.rollback()
                        logger.debug(
                            f"Run {run.external_id} changed concurrently from {current.value}, "
                            f"re-reading (attempt {attempt})"
                        )
                        continue

                    await session.commit()
                    await session.refresh(execution)
            except STORE_ERRORS as e:
                raise StoreUnavailable(f"Failed to update run {run.external_id}: {e}") from e

            if is_terminal(current) and is_terminal(run.status):
                logger.warning(
                    f"Run {run.external_id} moved between terminal states "
                    f"{current.value} -> {run.status.value}; keeping latest observation"
                )
            logger.info(
                f"Execution #{execution.build_number} (run {run.external_id}) "
                f"{current.value} -> {execution.status}"
            )
            return ApplyResult(execution=execution, previous_status=current, created=False)

        raise StoreUnavailable(
            f"Run {run.external_id} kept changing concurrently "
            f"after {self.max_update_attempts} attempts"
        )

    @staticmethod
    def _is_stale(execution: Execution, run: ObservedRun) -> bool:
        """A non-terminal report for a finished run is stale unless it is a re-run."""
        if not is_terminal(execution.status) or is_terminal(run.status):
            return False
        return run.run_attempt <= (execution.run_attempt or 1)

    async def get_by_external_id(self, pipeline_id: UUID, external_id: str) -> Optional[Execution]:
        query = (
            select(Execution)
            .where(Execution.pipeline_id == pipeline_id)
            .where(Execution.external_id == external_id)
        )
        return await self._scalar(query)

    async def get_by_id(self, execution_id: UUID) -> Optional[Execution]:
        try:
            async with self.session_factory() as session:
                return await session.get(Execution, execution_id)
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e

    async def list_by_pipeline(self, pipeline_id: UUID, limit: int = 50) -> List[Execution]:
        query = (
            select(Execution)
            .where(Execution.pipeline_id == pipeline_id)
            .order_by(Execution.build_number.desc())
            .limit(limit)
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e

    async def _scalar(self, query):
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return result.scalar_one_or_none()
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e
