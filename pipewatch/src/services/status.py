"""
Maps provider run status vocabulary onto the canonical status set.
"""

from typing import Optional

from pipewatch.src.models.run import CanonicalStatus

COMPLETED = "completed"

CONCLUSION_MAP = {
    "success": CanonicalStatus.SUCCESS,
    "failure": CanonicalStatus.FAILURE,
    "timed_out": CanonicalStatus.TIMEOUT,
    "cancelled": CanonicalStatus.CANCELLED,
    "skipped": CanonicalStatus.SKIPPED,
    "action_required": CanonicalStatus.PENDING,
}

TERMINAL_STATUSES = frozenset({
    CanonicalStatus.SUCCESS,
    CanonicalStatus.FAILURE,
    CanonicalStatus.CANCELLED,
    CanonicalStatus.SKIPPED,
    CanonicalStatus.TIMEOUT,
    CanonicalStatus.UNKNOWN,
})

def normalize_status(status: Optional[str], conclusion: Optional[str] = None) -> CanonicalStatus:
    """
    Map a (status, conclusion) pair to a canonical status.

    Every phase other than ``completed`` (queued, in_progress, pending, waiting,
    requested or anything unrecognized) counts as running. For completed runs the
    conclusion decides; unrecognized or missing conclusions map to unknown.
    """
    if (status or "").lower() != COMPLETED:
        return CanonicalStatus.RUNNING
    return CONCLUSION_MAP.get((conclusion or "").lower(), CanonicalStatus.UNKNOWN)

def is_terminal(status) -> bool:
    return CanonicalStatus(status) in TERMINAL_STATUSES
