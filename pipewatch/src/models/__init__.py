from pipewatch.src.models.pipeline import Pipeline, Execution, NotificationSubscription
from pipewatch.src.models.run import (
    CanonicalStatus,
    LifecycleEvent,
    SourceKind,
    RepositoryRef,
    ObservedRun,
    ChangeNotice,
    PipelineCreate,
    PipelineUpdate,
    PipelineResponse,
    ExecutionResponse,
    SubscriptionCreate,
    SubscriptionUpdate,
    SubscriptionResponse,
    CredentialRequest,
    WorkflowSummary,
    WorkflowDiscoveryRequest,
    WorkflowSelection,
    RepositorySelection,
    PipelineSelectionRequest,
    SelectedPipelineResponse,
)

__all__ = [
    "Pipeline",
    "Execution",
    "NotificationSubscription",
    "CanonicalStatus",
    "LifecycleEvent",
    "SourceKind",
    "RepositoryRef",
    "ObservedRun",
    "ChangeNotice",
    "PipelineCreate",
    "PipelineUpdate",
    "PipelineResponse",
    "ExecutionResponse",
    "SubscriptionCreate",
    "SubscriptionUpdate",
    "SubscriptionResponse",
    "CredentialRequest",
    "WorkflowSummary",
    "WorkflowDiscoveryRequest",
    "WorkflowSelection",
    "RepositorySelection",
    "PipelineSelectionRequest",
    "SelectedPipelineResponse",
]
