"""
Bulk job progress store
In-process snapshots keyed by job id; readers always get copies
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from ..config import JOB_RETENTION_SECONDS
from ..db import utcnow
from ..models import BulkJob

logger = logging.getLogger(__name__)


class InMemoryJobStore:
    """
    Progress records for running and recently finished bulk jobs

    Only valid for a single process. Running several instances needs a shared
    store exposing the same methods.
    """

    def __init__(self, retention_seconds: int = JOB_RETENTION_SECONDS):
        self.retention_seconds = retention_seconds
        self._jobs: Dict[str, BulkJob] = {}
        self._lock = asyncio.Lock()

    async def create(self, job: BulkJob) -> None:
        async with self._lock:
            self._jobs[job.jobId] = job.model_copy(deep=True)

    async def get(self, job_id: str) -> Optional[BulkJob]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def contains(self, job_id: str) -> bool:
        async with self._lock:
            return job_id in self._jobs

    async def update(self, job: BulkJob) -> bool:
        """
        Replace the snapshot for a tracked, non-terminal job
        Returns:
            False if the job was removed or already finished
        """
        async with self._lock:
            current = self._jobs.get(job.jobId)
            if current is None or current.is_terminal:
                return False
            self._jobs[job.jobId] = job.model_copy(deep=True)
            return True

    async def delete(self, job_id: str) -> bool:
        async with self._lock:
            return self._jobs.pop(job_id, None) is not None

    async def evict_expired(self, now: Optional[datetime] = None) -> List[str]:
        """Drop terminal jobs whose completion is older than the retention window"""
        cutoff = (now or utcnow()) - timedelta(seconds=self.retention_seconds)

        async with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.is_terminal and job.completedAt is not None and job.completedAt <= cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            logger.info(f"Evicted {len(expired)} expired bulk job(s)")
        return expired
