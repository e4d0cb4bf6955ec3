"""
Error kinds raised by the reconciliation engine.
"""

from typing import Optional

class PipewatchError(Exception):
    """Base class for engine errors."""
    pass

class InvalidSignature(PipewatchError):
    """Webhook payload signature did not match the configured secret."""
    pass

class InvalidPayload(PipewatchError):
    """Webhook body could not be decoded."""
    pass

class PipelineConfigError(PipewatchError):
    """Raised when the tracked pipelines file is invalid."""
    pass

class DuplicateExecution(PipewatchError):
    """An execution row for the same key was inserted concurrently."""

    def __init__(self, pipeline_id, external_id: str):
        super().__init__(f"Execution {external_id} already exists for pipeline {pipeline_id}")
        self.pipeline_id = pipeline_id
        self.external_id = external_id

class StoreUnavailable(PipewatchError):
    """The persistent store could not be reached."""
    pass

class UpstreamError(PipewatchError):
    """Base class for failures talking to the CI provider."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

class UpstreamUnavailable(UpstreamError):
    pass

class UpstreamRateLimited(UpstreamError):
    def __init__(self, message: str, status_code: Optional[int] = None, reset_at: Optional[int] = None):
        super().__init__(message, status_code)
        self.reset_at = reset_at

class UpstreamAuthError(UpstreamError):
    pass

class DeliveryFailed(PipewatchError):
    """A notification message could not be handed to the mail transport."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"Delivery to {address} failed: {reason}")
        self.address = address
        self.reason = reason
