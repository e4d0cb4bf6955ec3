"""
Pipeline registry and notification subscriptions.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, delete, func, or_
from sqlalchemy.exc import IntegrityError, OperationalError, InterfaceError
from sqlalchemy.ext.asyncio import async_sessionmaker

from pipewatch.src.models.pipeline import Execution, NotificationSubscription, Pipeline
from pipewatch.src.models.run import SourceKind
from pipewatch.src.services.errors import StoreUnavailable
from pipewatch.src.services.github import parse_repository_url

logger = logging.getLogger(__name__)

STORE_ERRORS = (OperationalError, InterfaceError, OSError)

class PipelineRepository:
    def __init__(self, session_factory: async_sessionmaker, max_name_attempts: int = 100):
        self.session_factory = session_factory
        self.max_name_attempts = max_name_attempts

    async def create_pipeline(
        self,
        name: str,
        repository_url: Optional[str] = None,
        owner: Optional[str] = None,
        repo: Optional[str] = None,
        workflow_id: Optional[str] = None,
        workflow_name: Optional[str] = None,
        source_kind: SourceKind = SourceKind.GITHUB,
        is_active: bool = True,
    ) -> Pipeline:
        """Create a pipeline, suffixing ' (n)' to the name until it is unique."""
        if not (owner and repo):
            locator = parse_repository_url(repository_url)
            if locator:
                owner, repo = locator
        if not repository_url and owner and repo:
            repository_url = f"https://github.com/{owner}/{repo}"

        for counter in range(self.max_name_attempts):
            candidate = name if counter == 0 else f"{name} ({counter})"
            pipeline = Pipeline(
                name=candidate,
                source_kind=SourceKind(source_kind).value,
                repository_url=repository_url,
                owner=owner,
                repo=repo,
                workflow_id=str(workflow_id) if workflow_id is not None else None,
                workflow_name=workflow_name,
                is_active=is_active,
            )
            try:
                async with self.session_factory() as session:
                    session.add(pipeline)
                    try:
                        await session.commit()
                    except IntegrityError:
                        await session.rollback()
                        continue
                    await session.refresh(pipeline)
            except STORE_ERRORS as e:
                raise StoreUnavailable(f"Failed to create pipeline {name}: {e}") from e

            logger.info(f"Created pipeline '{pipeline.name}' for {pipeline.full_name}")
            return pipeline

        raise ValueError(f"Could not find a free name for pipeline '{name}'")

    async def import_pipelines(self, configs: List[Dict[str, Any]]) -> List[Pipeline]:
        """Create pipelines from validated configs, skipping ones already tracked."""
        existing = await self.list_pipelines()
        known = {
            ((p.owner or "").lower(), (p.repo or "").lower(), p.workflow_id or "")
            for p in existing
        }

        created = []
        for config in configs:
            key = (config["owner"].lower(), config["repo"].lower(), config.get("workflow_id") or "")
            if key in known:
                continue
            pipeline = await self.create_pipeline(
                name=config["name"],
                repository_url=config.get("repository_url"),
                owner=config["owner"],
                repo=config["repo"],
                workflow_id=config.get("workflow_id"),
                workflow_name=config.get("workflow_name"),
                is_active=config.get("active", True),
            )
            known.add(key)
            created.append(pipeline)

        if created:
            logger.info(f"Imported {len(created)} pipelines")
        return created

    async def get(self, pipeline_id: UUID) -> Optional[Pipeline]:
        try:
            async with self.session_factory() as session:
                return await session.get(Pipeline, pipeline_id)
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e

    async def find_by_workflow(self, owner: str, repo: str, workflow_id: Optional[str]) -> Optional[Pipeline]:
        """Pipeline already tracking this repository workflow, if any."""
        query = (
            select(Pipeline)
            .where(func.lower(Pipeline.owner) == owner.lower())
            .where(func.lower(Pipeline.repo) == repo.lower())
        )
        if workflow_id:
            query = query.where(Pipeline.workflow_id == str(workflow_id))
        else:
            query = query.where(Pipeline.workflow_id.is_(None))
        pipelines = await self._all(query.order_by(Pipeline.created_at))
        return pipelines[0] if pipelines else None

    async def list_pipelines(self) -> List[Pipeline]:
        return await self._all(select(Pipeline).order_by(Pipeline.created_at, Pipeline.name))

    async def list_active(self) -> List[Pipeline]:
        query = (
            select(Pipeline)
            .where(Pipeline.is_active.is_(True))
            .order_by(Pipeline.created_at, Pipeline.name)
        )
        return await self._all(query)

    async def set_active(self, pipeline_id: UUID, is_active: bool) -> Optional[Pipeline]:
        return await self._update(pipeline_id, is_active=is_active)

    async def set_webhook_id(self, pipeline_id: UUID, webhook_id: str) -> Optional[Pipeline]:
        return await self._update(pipeline_id, webhook_id=webhook_id)

    async def delete_pipeline(self, pipeline_id: UUID) -> bool:
        """Delete a pipeline together with its executions and subscriptions."""
        try:
            async with self.session_factory() as session:
                await session.execute(delete(Execution).where(Execution.pipeline_id == pipeline_id))
                await session.execute(
                    delete(NotificationSubscription)
                    .where(NotificationSubscription.pipeline_id == pipeline_id)
                )
                result = await session.execute(delete(Pipeline).where(Pipeline.id == pipeline_id))
                await session.commit()
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e

        deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Deleted pipeline {pipeline_id}")
        return deleted

    async def add_subscription(
        self,
        email_address: str,
        pipeline_id: Optional[UUID] = None,
        notify_on_started: bool = True,
        notify_on_success: bool = True,
        notify_on_failure: bool = True,
        notify_on_stopped: bool = True,
    ) -> NotificationSubscription:
        subscription = NotificationSubscription(
            pipeline_id=pipeline_id,
            email_address=email_address,
            notify_on_started=notify_on_started,
            notify_on_success=notify_on_success,
            notify_on_failure=notify_on_failure,
            notify_on_stopped=notify_on_stopped,
        )
        try:
            async with self.session_factory() as session:
                session.add(subscription)
                await session.commit()
                await session.refresh(subscription)
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e
        return subscription

    async def update_subscription(self, subscription_id: UUID, **changes) -> Optional[NotificationSubscription]:
        try:
            async with self.session_factory() as session:
                subscription = await session.get(NotificationSubscription, subscription_id)
                if subscription is None:
                    return None
                for key, value in changes.items():
                    if value is not None:
                        setattr(subscription, key, value)
                await session.commit()
                await session.refresh(subscription)
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e
        return subscription

    async def remove_subscription(self, subscription_id: UUID) -> bool:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(NotificationSubscription)
                    .where(NotificationSubscription.id == subscription_id)
                )
                await session.commit()
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e
        return result.rowcount > 0

    async def list_subscriptions(self, pipeline_id: Optional[UUID] = None) -> List[NotificationSubscription]:
        """Subscriptions bound to a pipeline plus those bound to all pipelines."""
        query = select(NotificationSubscription).order_by(NotificationSubscription.created_at)
        if pipeline_id is not None:
            query = query.where(
                or_(
                    NotificationSubscription.pipeline_id == pipeline_id,
                    NotificationSubscription.pipeline_id.is_(None),
                )
            )
        return await self._all(query)

    async def _update(self, pipeline_id: UUID, **values) -> Optional[Pipeline]:
        try:
            async with self.session_factory() as session:
                pipeline = await session.get(Pipeline, pipeline_id)
                if pipeline is None:
                    return None
                for key, value in values.items():
                    setattr(pipeline, key, value)
                await session.commit()
                await session.refresh(pipeline)
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e
        return pipeline

    async def _all(self, query) -> list:
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except STORE_ERRORS as e:
            raise StoreUnavailable(str(e)) from e
