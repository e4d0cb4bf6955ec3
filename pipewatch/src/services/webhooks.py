"""
Webhook ingestion - applies upstream push notifications to the execution store.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from pipewatch.src.models.pipeline import Execution
from pipewatch.src.services.errors import InvalidPayload, InvalidSignature
from pipewatch.src.services.github import verify_signature
from pipewatch.src.services.pipelines import PipelineRepository
from pipewatch.src.services.reconciler import Reconciler
from pipewatch.src.services.sources import RunSource

logger = logging.getLogger(__name__)

@dataclass
class WebhookResult:
    accepted: bool
    execution: Optional[Execution] = None
    created: bool = False
    changed: bool = False
    reason: Optional[str] = None

class WebhookIngestor:
    def __init__(
        self,
        source: RunSource,
        pipelines: PipelineRepository,
        reconciler: Reconciler,
        secret: str = "",
    ):
        self.source = source
        self.pipelines = pipelines
        self.reconciler = reconciler
        self.secret = secret

    async def apply_webhook_payload(
        self,
        body: bytes,
        signature: Optional[str],
        event: Optional[str] = None,
    ) -> WebhookResult:
        """
        Verify, match and apply one delivery.

        Deliveries for untracked repositories or other event types are accepted
        and ignored. StoreUnavailable propagates so the sender retries.
        """
        if not verify_signature(body, signature, self.secret):
            logger.warning("Rejected webhook delivery with invalid signature")
            raise InvalidSignature("Invalid signature")

        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as e:
            raise InvalidPayload(f"Invalid JSON payload: {e}")
        if not isinstance(payload, dict):
            raise InvalidPayload("Webhook payload must be a JSON object")

        if event == "ping":
            return WebhookResult(accepted=True, reason="pong")
        if event is not None and event != "workflow_run":
            return WebhookResult(accepted=True, reason=f"Event type '{event}' not handled")

        parsed = self.source.parse_webhook(payload)
        if parsed is None:
            return WebhookResult(accepted=True, reason="No workflow run in payload")
        repository, run = parsed

        pipeline = None
        for candidate in await self.pipelines.list_active():
            if candidate.source_kind == self.source.kind.value and self.source.matches(candidate, repository, run):
                pipeline = candidate
                break

        if pipeline is None:
            logger.info(f"No pipeline configured for repository {repository.full_name or repository.name}")
            return WebhookResult(accepted=True, reason="No pipeline configured for this repository")

        result = await self.reconciler.apply(pipeline, run)
        return WebhookResult(
            accepted=True,
            execution=result.execution,
            created=result.created,
            changed=result.changed,
        )
