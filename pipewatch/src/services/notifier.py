"""
Notification dispatcher - turns status transitions into subscriber messages.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pipewatch.src.models.pipeline import Execution, NotificationSubscription, Pipeline
from pipewatch.src.models.run import CanonicalStatus, LifecycleEvent, SourceKind
from pipewatch.src.services.errors import DeliveryFailed

logger = logging.getLogger(__name__)

FAILURE_STATUSES = {CanonicalStatus.FAILURE, CanonicalStatus.TIMEOUT, CanonicalStatus.UNKNOWN}

EVENT_TITLES = {
    LifecycleEvent.STARTED.value: "Started",
    LifecycleEvent.SUCCESS.value: "Completed Successfully",
    LifecycleEvent.FAILURE.value: "Failed",
    LifecycleEvent.STOPPED.value: "Stopped",
}

def derive_event(previous: Optional[str], current: str) -> str:
    """
    Derive the lifecycle event for a transition.

    Transitions outside the started/finished framing fall back to the raw
    status name.
    """
    current = CanonicalStatus(current)
    previous = CanonicalStatus(previous) if previous is not None else None

    if previous is None and current == CanonicalStatus.RUNNING:
        return LifecycleEvent.STARTED.value
    if previous == CanonicalStatus.RUNNING:
        if current == CanonicalStatus.SUCCESS:
            return LifecycleEvent.SUCCESS.value
        if current in FAILURE_STATUSES:
            return LifecycleEvent.FAILURE.value
        if current == CanonicalStatus.CANCELLED:
            return LifecycleEvent.STOPPED.value
    return current.value

def should_notify(subscription: NotificationSubscription, event: str) -> bool:
    flags = {
        LifecycleEvent.STARTED.value: subscription.notify_on_started,
        LifecycleEvent.SUCCESS.value: subscription.notify_on_success,
        LifecycleEvent.FAILURE.value: subscription.notify_on_failure,
        LifecycleEvent.STOPPED.value: subscription.notify_on_stopped,
    }
    if event in flags:
        return bool(flags[event])
    # Raw status events have no flag of their own
    return bool(subscription.notify_on_success or subscription.notify_on_failure)

def format_duration(seconds: Optional[int]) -> str:
    if not seconds:
        return "N/A"
    if seconds > 3600:
        return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
    if seconds > 60:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds}s"

@dataclass
class DispatchReport:
    event: str
    sent: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    transport_configured: bool = True

class NotificationDispatcher:
    """
    Delivers one message per interested subscriber for an applied transition.

    Called at most once per transition and never retries, so a failed
    delivery is logged and dropped rather than risking a duplicate message.
    """

    def __init__(self, subscriptions, mailer, sources: Optional[Dict] = None):
        self.subscriptions = subscriptions
        self.mailer = mailer
        self.sources = sources or {}

    async def dispatch(
        self,
        execution: Execution,
        previous_status: Optional[str],
        pipeline: Pipeline,
    ) -> DispatchReport:
        event = derive_event(previous_status, execution.status)
        report = DispatchReport(event=event)

        subscriptions = await self.subscriptions.list_subscriptions(pipeline.id)
        if not subscriptions:
            logger.debug(f"No subscriptions for pipeline {pipeline.name}")
            return report

        subject = f"[{event.upper()}] Pipeline: {pipeline.name}"
        body = self.build_body(execution, pipeline, event)

        for subscription in subscriptions:
            address = subscription.email_address
            if not should_notify(subscription, event):
                report.skipped.append(address)
                continue

            try:
                delivered = await self.mailer.deliver(address, subject, body)
            except DeliveryFailed as e:
                logger.warning(f"Notification for {pipeline.name} not delivered: {e}")
                report.failed.append(address)
                continue
            except Exception:
                logger.exception(f"Unexpected error notifying {address} about {pipeline.name}")
                report.failed.append(address)
                continue

            if delivered:
                report.sent.append(address)
            else:
                report.transport_configured = False
                report.skipped.append(address)

        logger.info(
            f"Dispatched '{event}' for {pipeline.name} #{execution.build_number}: "
            f"{len(report.sent)} sent, {len(report.skipped)} skipped, {len(report.failed)} failed"
        )
        return report

    def build_body(self, execution: Execution, pipeline: Pipeline, event: str) -> str:
        title = EVENT_TITLES.get(event, event.capitalize())
        lines = [
            f"Pipeline {title}",
            "",
            f"Pipeline: {pipeline.name}",
            f"Event: {event}",
            f"Status: {execution.status}",
            f"Build: #{execution.build_number}",
        ]
        if event != LifecycleEvent.STARTED.value:
            lines.append(f"Execution Time: {format_duration(execution.duration_seconds)}")
        lines.append(f"Triggered By: {execution.commit_message or 'Manual trigger'}")
        if execution.branch:
            lines.append(f"Branch: {execution.branch}")
        if execution.started_at:
            lines.append(f"Started At: {execution.started_at.isoformat()}")
        if execution.completed_at and event != LifecycleEvent.STARTED.value:
            lines.append(f"Completed At: {execution.completed_at.isoformat()}")

        run_url = self.run_url(pipeline, execution)
        if run_url:
            lines.extend(["", f"View run: {run_url}"])
        return "\n".join(lines) + "\n"

    def run_url(self, pipeline: Pipeline, execution: Execution) -> Optional[str]:
        try:
            source = self.sources.get(SourceKind(pipeline.source_kind))
        except ValueError:
            return None
        if source is None:
            return None
        return source.run_url(pipeline, execution)
