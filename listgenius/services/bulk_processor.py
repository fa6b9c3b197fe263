"""
Bulk Job Runner
Processes a batch of CSV rows in order, one quota unit per row, and
publishes progress snapshots for polling
"""
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..config import MAX_CONCURRENT_JOBS
from ..db import utcnow
from ..errors import BATCH_FATAL_ERRORS, RowValidationError, ServiceError
from ..models import BulkJob, CSVRow, JobStatus, RowError
from .csv_parser import validate_row_fields
from .job_store import InMemoryJobStore

logger = logging.getLogger(__name__)


def validate_row(row: CSVRow) -> Optional[str]:
    """Same per-field rules as CSV parsing, for rows submitted directly to the process endpoint"""
    issues = validate_row_fields(row, row.rowNumber or 0)
    return issues[0].message if issues else None


class BulkJobRunner:
    """
    Runs bulk jobs as asyncio tasks on the current event loop

    Jobs run concurrently up to `max_concurrent_jobs`; rows inside a job are
    strictly sequential. Removing a job from the store stops it before its
    next row.
    """

    def __init__(
        self,
        store: InMemoryJobStore,
        quota_gate,
        generator,
        generations,
        max_concurrent_jobs: int = MAX_CONCURRENT_JOBS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.quota_gate = quota_gate
        self.generator = generator
        self.generations = generations
        self.clock = clock
        self._semaphore = asyncio.Semaphore(max_concurrent_jobs)
        self._tasks: Dict[str, asyncio.Task] = {}

    async def start(
        self,
        owner_id: str,
        rows: List[CSVRow],
        bulk_import_id: Optional[str] = None,
        row_indices: Optional[List[int]] = None,
    ) -> BulkJob:
        """
        Register a job and schedule it; returns before any row is processed
        Args:
            owner_id: User whose quota is consumed
            rows: Rows to process, in order
            bulk_import_id: Groups the saved generations; generated if omitted
            row_indices: Original input position of each row
        Returns:
            The job in pending state
        """
        if row_indices is None:
            row_indices = list(range(len(rows)))
        if len(row_indices) != len(rows):
            raise ValueError("row_indices must match rows")

        job = BulkJob(
            jobId=str(uuid.uuid4()),
            ownerId=owner_id,
            bulkImportId=bulk_import_id or str(uuid.uuid4()),
            totalRows=len(rows),
            startedAt=self.clock(),
        )
        await self.store.create(job)

        task = asyncio.create_task(self._run(job.jobId, list(rows), list(row_indices)))
        self._tasks[job.jobId] = task
        task.add_done_callback(lambda _: self._tasks.pop(job.jobId, None))

        logger.info(f"Bulk job {job.jobId} queued: {len(rows)} rows for {owner_id}")
        return job

    async def get_progress(self, job_id: str) -> Optional[BulkJob]:
        return await self.store.get(job_id)

    async def cleanup(self, job_id: str) -> None:
        """Forget a job; a running job stops before its next row"""
        if await self.store.delete(job_id):
            logger.info(f"Bulk job {job_id} cleaned up")

    async def wait(self, job_id: str) -> None:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.store.evict_expired(self.clock())

    async def _run(self, job_id: str, rows: List[CSVRow], row_indices: List[int]) -> None:
        async with self._semaphore:
            job = await self.store.get(job_id)
            if job is None:
                logger.info(f"Bulk job {job_id} removed before it started")
                return

            try:
                await self._process(job, rows, row_indices)
            except Exception as e:
                logger.error(f"Bulk job {job_id} crashed: {e}", exc_info=True)
                job.errors.append(RowError(rowIndex=-1, message=f"Bulk processing failed: {e}"))
                await self._finish(job, JobStatus.FAILED)

    async def _process(self, job: BulkJob, rows: List[CSVRow], row_indices: List[int]) -> None:
        for position, row in enumerate(rows):
            if not await self.store.contains(job.jobId):
                logger.info(f"Bulk job {job.jobId} cancelled after {job.processedRows} rows")
                return

            job.status = JobStatus.RUNNING
            job.currentRowIndex = position
            if not await self.store.update(job):
                return

            original_index = row_indices[position]

            try:
                await self._process_row(job, row)
                job.successfulRows += 1
            except BATCH_FATAL_ERRORS as e:
                logger.error(f"Bulk job {job.jobId} halted at row {original_index}: {e.message}")
                job.errors.append(RowError(rowIndex=-1, message=e.message))
                await self._finish(job, JobStatus.FAILED)
                return
            except ServiceError as e:
                logger.warning(f"Row {original_index} of job {job.jobId} failed: {e.message}")
                job.failedRows += 1
                job.errors.append(RowError(rowIndex=original_index, message=e.message, row=row))
            except Exception as e:
                logger.error(f"Row {original_index} of job {job.jobId} failed unexpectedly: {e}", exc_info=True)
                job.failedRows += 1
                job.errors.append(RowError(rowIndex=original_index, message=str(e) or "Unknown error", row=row))

            job.processedRows += 1
            if not await self.store.update(job):
                logger.info(f"Bulk job {job.jobId} cancelled after {job.processedRows} rows")
                return

        await self._finish(job, JobStatus.COMPLETED)

    async def _process_row(self, job: BulkJob, row: CSVRow) -> None:
        problem = validate_row(row)
        if problem:
            raise RowValidationError(problem)

        await self.quota_gate.reserve(job.ownerId, 1)
        outcome = await self.generator.generate(row)
        await self.generations.save(
            job.ownerId,
            outcome.listing,
            row,
            bulk_import_id=job.bulkImportId,
            bulk_import_date=job.startedAt,
            source="bulk",
        )

    async def _finish(self, job: BulkJob, status: JobStatus) -> None:
        job.status = status
        job.completedAt = self.clock()
        await self.store.update(job)
        logger.info(
            f"Bulk job {job.jobId} {status.value}: {job.successfulRows} succeeded, "
            f"{job.failedRows} failed of {job.totalRows}"
        )
