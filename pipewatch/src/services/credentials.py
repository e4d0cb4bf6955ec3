"""
Volatile per-pipeline upstream credentials.
"""

import logging
from typing import Dict, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

class CredentialStore:
    """Keyed token store held in memory only; never written to the database."""

    def __init__(self):
        self._tokens: Dict[UUID, str] = {}

    def get(self, pipeline_id: UUID) -> Optional[str]:
        return self._tokens.get(pipeline_id)

    def set(self, pipeline_id: UUID, token: str):
        if not token:
            raise ValueError("token must be non-empty")
        self._tokens[pipeline_id] = token
        logger.info(f"Credential attached for pipeline {pipeline_id}")

    def clear(self, pipeline_id: UUID):
        if self._tokens.pop(pipeline_id, None) is not None:
            logger.info(f"Credential removed for pipeline {pipeline_id}")

    def clear_all(self):
        count = len(self._tokens)
        self._tokens.clear()
        if count:
            logger.info(f"Dropped {count} pipeline credentials")

    def __contains__(self, pipeline_id) -> bool:
        return pipeline_id in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)
