"""
Generation Job State Machine

    queued ──► running ──► completed
       │          │
       │          └──────► failed
       └──► cancelled ◄── (queued | running)

Terminal states are final. A job only enters `failed` with an error message.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from certforge.errors import ValidationError
from certforge.schemas.generation import JobStatus

logger = logging.getLogger(__name__)


VALID_TRANSITIONS: Dict[JobStatus, Set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.RUNNING, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}

TERMINAL_STATES = {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def ensure_transition(current: JobStatus, target: JobStatus) -> None:
    if not can_transition(current, target):
        raise ValidationError(
            f"Invalid job transition {current.value} -> {target.value}",
            {"from": current.value, "to": target.value},
        )


class JobTracker:
    """Owns the status of one persisted generation job"""

    def __init__(self, store, job_id: str, status: JobStatus):
        self.store = store
        self.job_id = job_id
        self.status = status

    async def _move(self, target: JobStatus, **fields: Any) -> None:
        ensure_transition(self.status, target)
        await self.store.update_job_status(self.job_id, target, **fields)
        logger.info("Job %s: %s -> %s", self.job_id, self.status.value, target.value)
        self.status = target

    async def start(self) -> None:
        await self._move(JobStatus.RUNNING)

    async def complete(self, total_certificates: int, errors: Optional[List[Dict[str, Any]]] = None) -> None:
        await self._move(JobStatus.COMPLETED, total_certificates=total_certificates, errors=errors or None)

    async def fail(
        self,
        error_message: str,
        error_kind: str,
        total_certificates: int = 0,
        errors: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        if not error_message:
            raise ValidationError("A failed job requires an error message")
        await self._move(
            JobStatus.FAILED,
            total_certificates=total_certificates,
            errors=errors or None,
            error_message=error_message,
            error_kind=error_kind,
        )

    async def cancel(self) -> None:
        await self._move(JobStatus.CANCELLED)
