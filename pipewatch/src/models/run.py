import math
from pydantic import BaseModel, Field
from typing import List, Optional, Literal
from datetime import datetime
from enum import Enum
from uuid import UUID

class CanonicalStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"

class LifecycleEvent(str, Enum):
    STARTED = "started"
    SUCCESS = "success"
    FAILURE = "failure"
    STOPPED = "stopped"

class SourceKind(str, Enum):
    GITHUB = "github"

class RepositoryRef(BaseModel):
    """Repository identity carried by an upstream push notification."""
    name: str = ""
    full_name: str = ""
    html_url: Optional[str] = None

class ObservedRun(BaseModel):
    """Provider-agnostic shape of one upstream run, before reconciliation."""
    external_id: str
    pipeline_id: Optional[UUID] = None
    status: CanonicalStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    commit_hash: Optional[str] = None
    commit_message: Optional[str] = None
    branch: Optional[str] = None
    run_attempt: int = 1
    log_reference: Optional[str] = None
    workflow_id: Optional[str] = None
    workflow_path: Optional[str] = None
    html_url: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[int]:
        if self.started_at is None or self.completed_at is None:
            return None
        elapsed = (self.completed_at - self.started_at).total_seconds()
        return max(0, math.floor(elapsed))

class ChangeNotice(BaseModel):
    type: Literal["execution_created", "execution_updated"]
    pipeline_id: UUID = Field(serialization_alias="pipelineId")
    execution_id: UUID = Field(serialization_alias="executionId")
    status: CanonicalStatus

    def to_message(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

class PipelineCreate(BaseModel):
    name: str
    repository_url: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    workflow_id: Optional[str] = None
    workflow_name: Optional[str] = None
    source_kind: SourceKind = SourceKind.GITHUB

class PipelineUpdate(BaseModel):
    is_active: bool

class PipelineResponse(BaseModel):
    id: UUID
    name: str
    source_kind: str
    repository_url: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    workflow_id: Optional[str] = None
    workflow_name: Optional[str] = None
    webhook_id: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ExecutionResponse(BaseModel):
    id: UUID
    pipeline_id: UUID
    external_id: str
    status: str
    build_number: int
    run_attempt: int
    duration_seconds: Optional[int] = None
    commit_hash: Optional[str] = None
    commit_message: Optional[str] = None
    branch: Optional[str] = None
    log_reference: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class SubscriptionCreate(BaseModel):
    email_address: str
    pipeline_id: Optional[UUID] = None
    notify_on_started: bool = True
    notify_on_success: bool = True
    notify_on_failure: bool = True
    notify_on_stopped: bool = True

class SubscriptionUpdate(BaseModel):
    email_address: Optional[str] = None
    notify_on_started: Optional[bool] = None
    notify_on_success: Optional[bool] = None
    notify_on_failure: Optional[bool] = None
    notify_on_stopped: Optional[bool] = None

class SubscriptionResponse(SubscriptionCreate):
    id: UUID

    class Config:
        from_attributes = True

class CredentialRequest(BaseModel):
    token: str

class WorkflowSummary(BaseModel):
    id: str
    name: Optional[str] = None
    path: Optional[str] = None
    state: Optional[str] = None
    html_url: Optional[str] = None

class WorkflowDiscoveryRequest(BaseModel):
    token: str
    repository_url: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None

class WorkflowSelection(BaseModel):
    id: str
    name: str

class RepositorySelection(BaseModel):
    repository_url: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None
    workflows: List[WorkflowSelection]

class PipelineSelectionRequest(BaseModel):
    token: str
    repositories: List[RepositorySelection]

class SelectedPipelineResponse(BaseModel):
    pipeline: PipelineResponse
    created: bool
    synced: int = 0
    error: Optional[str] = None

    class Config:
        from_attributes = True
