"""
Bulk CSV Router
Upload and preview, start a bulk job, poll it, and export saved generations
"""
import asyncio
import io
import logging
from datetime import datetime, time, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import StreamingResponse

from ..config import CSV_PREVIEW_ROWS, MAX_BULK_ROWS, MAX_CSV_SIZE_BYTES
from ..dependencies import get_current_user, get_services, require_bulk_plan
from ..errors import CSVValidationError, JobNotFound, MissingColumns, NotFound
from ..models import BulkJob, ProcessRequest, User
from ..services import Services, csv_parser
from ..utils import csv_exporter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/csv", tags=["Bulk CSV"])


def csv_response(content: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        io.BytesIO(content.encode("utf-8")),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Access-Control-Expose-Headers": "Content-Disposition",
        },
    )


def parse_date_param(value: Optional[str], name: str, end_of_day: bool = False) -> Optional[datetime]:
    """ISO date or datetime query parameter as an aware UTC datetime"""
    if not value:
        return None

    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise CSVValidationError(f"Invalid {name}. Use ISO format, e.g. 2024-01-31")

    # Bare dates cover the whole day
    if end_of_day and len(value) == 10:
        parsed = datetime.combine(parsed.date(), time.max)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


async def get_owned_job(services: Services, job_id: str, user: User) -> BulkJob:
    job = await services.runner.get_progress(job_id)
    if job is None or job.ownerId != user.id:
        raise JobNotFound("Job not found or expired")
    return job


@router.post("/upload")
async def upload_csv(
    file: UploadFile = File(...),
    user: User = Depends(require_bulk_plan),
):
    """
    Parse an uploaded CSV and return a preview

    Returns headers, the first rows, the rows ready for processing, the
    detected column mapping and per-row validation errors. Responds 400 with
    `needsMapping` when required columns cannot be detected.
    """
    # Read at most one byte past the limit
    file_content = await file.read(MAX_CSV_SIZE_BYTES + 1)
    logger.info(f"CSV upload from {user.id}: {file.filename} ({len(file_content)} bytes)")

    text_content = csv_parser.validate_upload(file.filename, file_content)
    parsed = await asyncio.to_thread(csv_parser.parse, text_content)

    mapping_errors = csv_parser.validate_column_mapping(parsed.columnMapping)
    if mapping_errors:
        raise MissingColumns(
            "Required columns not found",
            {
                "details": [issue.model_dump() for issue in mapping_errors],
                "needsMapping": True,
                "headers": [h for h in parsed.headers if h],
            },
        )

    return {
        "success": True,
        "data": {
            "headers": parsed.headers,
            "rows": [row.model_dump() for row in parsed.rows[:CSV_PREVIEW_ROWS]],
            "totalRows": len(parsed.rows),
            "readyRows": [row.model_dump() for row in parsed.readyRows],
            "columnMapping": parsed.columnMapping.model_dump(),
            "validationErrors": [issue.model_dump() for issue in parsed.validationErrors],
        },
    }


@router.post("/process")
async def process_rows(
    request: ProcessRequest,
    user: User = Depends(require_bulk_plan),
    services: Services = Depends(get_services),
):
    """
    Start a bulk job for the submitted rows

    The whole selection must fit in the remaining monthly quota; otherwise
    402 is returned and nothing runs.
    """
    if not request.rows:
        raise CSVValidationError("No rows provided for processing")

    if request.selectedRows is not None:
        selected = set(request.selectedRows)
        row_indices = [i for i in range(len(request.rows)) if i in selected]
    else:
        row_indices = list(range(len(request.rows)))

    if not row_indices:
        raise CSVValidationError("No rows selected for processing")

    if len(row_indices) > MAX_BULK_ROWS:
        raise CSVValidationError(f"A bulk job can process at most {MAX_BULK_ROWS} rows")

    usage = await services.quota.ensure_available(user.id, len(row_indices))

    rows = [request.rows[i] for i in row_indices]
    job = await services.runner.start(user.id, rows, row_indices=row_indices)

    return {
        "success": True,
        "data": {
            "jobId": job.jobId,
            "bulkImportId": job.bulkImportId,
            "totalRows": job.totalRows,
            "quota": {
                "used": usage.used,
                "limit": usage.limit,
                "remaining": usage.remaining - len(rows),
            },
        },
    }


@router.get("/process/{job_id}")
async def get_job_progress(
    job_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    job = await get_owned_job(services, job_id, user)
    return {"success": True, "data": job.to_progress()}


@router.delete("/process/{job_id}")
async def cleanup_job(
    job_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Forget a job; succeeds whether or not the job still exists"""
    job = await services.runner.get_progress(job_id)
    if job is not None and job.ownerId == user.id:
        await services.runner.cleanup(job_id)
    return {"success": True}


@router.get("/process/{job_id}/failed")
async def download_failed_rows(
    job_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Failed rows of a job as a CSV that can be fixed and uploaded again"""
    job = await get_owned_job(services, job_id, user)

    if not any(error.row is not None for error in job.errors):
        raise NotFound("No failed rows for this job")

    content = csv_exporter.failed_rows_to_csv(job.errors)
    return csv_response(content, f"listgenius-failed-{job.bulkImportId}.csv")


@router.get("/export")
async def export_generations(
    startDate: Optional[str] = Query(default=None),
    endDate: Optional[str] = Query(default=None),
    bulkImportId: Optional[str] = Query(default=None),
    source: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    start = parse_date_param(startDate, "startDate")
    end = parse_date_param(endDate, "endDate", end_of_day=True)

    if source and source not in ("bulk", "manual"):
        raise CSVValidationError("source must be 'bulk' or 'manual'")

    records = await services.generations.list_for_export(
        user.id,
        start_date=start,
        end_date=end,
        bulk_import_id=bulkImportId,
        source=source,
    )

    if not records:
        raise NotFound("No generations found for the specified criteria")

    content = csv_exporter.to_csv(records)
    filename = f"listgenius-export-{datetime.now(timezone.utc).strftime('%Y-%m-%d')}.csv"

    logger.info(f"Exported {len(records)} generations for {user.id}")
    return csv_response(content, filename)


@router.get("/template")
async def download_template():
    return csv_response(csv_exporter.template_csv(), "listgenius-template.csv")
