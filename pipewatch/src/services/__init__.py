from pipewatch.src.services.status import normalize_status, is_terminal, TERMINAL_STATUSES
from pipewatch.src.services.github import (
    verify_signature,
    parse_repository_url,
    parse_workflow_run_event,
    GitHubClient,
)
from pipewatch.src.services.pipeline_parser import (
    parse_pipelines_config,
    parse_pipelines_dict,
    load_pipelines_file,
)
from pipewatch.src.services.errors import (
    PipewatchError,
    InvalidSignature,
    InvalidPayload,
    PipelineConfigError,
    DuplicateExecution,
    StoreUnavailable,
    UpstreamError,
    UpstreamUnavailable,
    UpstreamRateLimited,
    UpstreamAuthError,
    DeliveryFailed,
)
from pipewatch.src.services.store import ExecutionStore, ApplyResult
from pipewatch.src.services.engine import ReconciliationEngine

__all__ = [
    "normalize_status",
    "is_terminal",
    "TERMINAL_STATUSES",
    "verify_signature",
    "parse_repository_url",
    "parse_workflow_run_event",
    "GitHubClient",
    "parse_pipelines_config",
    "parse_pipelines_dict",
    "load_pipelines_file",
    "PipewatchError",
    "InvalidSignature",
    "InvalidPayload",
    "PipelineConfigError",
    "DuplicateExecution",
    "StoreUnavailable",
    "UpstreamError",
    "UpstreamUnavailable",
    "UpstreamRateLimited",
    "UpstreamAuthError",
    "DeliveryFailed",
    "ExecutionStore",
    "ApplyResult",
    "ReconciliationEngine",
]
