from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .config import (
    DEFAULT_TONE,
    DEFAULT_WORD_COUNT,
    FORBIDDEN_TAG_SYMBOLS,
    MATERIAL_COUNT,
    TAG_COUNT,
    TAG_MAX_LENGTH,
)


# ============ CSV Import Models ============
class CSVRow(BaseModel):
    productName: str = ""
    niche: Optional[str] = None
    audience: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    tone: Optional[str] = DEFAULT_TONE
    wordCount: int = DEFAULT_WORD_COUNT
    pinterestCaption: bool = False
    etsyMessage: bool = False
    rowNumber: Optional[int] = None  # 1-based data row in the uploaded file


class ColumnMapping(BaseModel):
    productName: Optional[str] = None
    niche: Optional[str] = None
    audience: Optional[str] = None
    keywords: Optional[str] = None
    tone: Optional[str] = None
    wordCount: Optional[str] = None
    pinterestCaption: Optional[str] = None
    etsyMessage: Optional[str] = None


class ValidationIssue(BaseModel):
    row: int  # 0 for file-level problems
    field: str
    message: str


class ParsedCSV(BaseModel):
    headers: List[str]
    rows: List[CSVRow]
    readyRows: List[CSVRow]
    columnMapping: ColumnMapping
    validationErrors: List[ValidationIssue]


# ============ Generation Models ============
class ListingOutput(BaseModel):
    title: str
    description: str
    tags: List[str]
    materials: List[str]
    pinterestCaption: Optional[str] = None
    etsyMessage: Optional[str] = None

    @field_validator("tags", "materials")
    @classmethod
    def check_etsy_list(cls, value: List[str], info) -> List[str]:
        expected = TAG_COUNT if info.field_name == "tags" else MATERIAL_COUNT
        if len(value) != expected:
            raise ValueError(f"{info.field_name} must have exactly {expected} entries")
        for item in value:
            if not item or len(item) > TAG_MAX_LENGTH:
                raise ValueError(f"{info.field_name} entries must be 1-{TAG_MAX_LENGTH} characters: {item!r}")
            if any(symbol in item for symbol in FORBIDDEN_TAG_SYMBOLS):
                raise ValueError(f"{info.field_name} entry contains a forbidden symbol: {item!r}")
        return value


class GenerationOutcome(BaseModel):
    listing: ListingOutput
    tokensUsed: int = 0
    model: str = ""


# ============ Bulk Job Models ============
class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED}


class RowError(BaseModel):
    rowIndex: int  # position in the original input; -1 for job-level failures
    message: str
    row: Optional[CSVRow] = None


class BulkJob(BaseModel):
    jobId: str
    ownerId: str
    bulkImportId: str
    status: JobStatus = JobStatus.PENDING
    totalRows: int
    processedRows: int = 0
    successfulRows: int = 0
    failedRows: int = 0
    currentRowIndex: Optional[int] = None
    errors: List[RowError] = Field(default_factory=list)
    startedAt: datetime
    completedAt: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def progress_percent(self) -> int:
        if self.totalRows <= 0:
            return 0
        return round(self.processedRows / self.totalRows * 100)

    def to_progress(self) -> Dict[str, Any]:
        """Shape returned by the progress poll endpoint"""
        return {
            "jobId": self.jobId,
            "bulkImportId": self.bulkImportId,
            "status": self.status.value,
            "totalRows": self.totalRows,
            "processedRows": self.processedRows,
            "successfulRows": self.successfulRows,
            "failedRows": self.failedRows,
            "currentRow": self.currentRowIndex + 1 if self.currentRowIndex is not None else None,
            "errors": [{"rowIndex": e.rowIndex, "message": e.message} for e in self.errors],
            "startedAt": self.startedAt.isoformat(),
            "completedAt": self.completedAt.isoformat() if self.completedAt else None,
            "progress": self.progress_percent(),
        }


# ============ Identity & Quota Models ============
class User(BaseModel):
    id: str
    plan: str = "free"


class QuotaUsage(BaseModel):
    used: int
    limit: Union[int, str]  # "unlimited" for paid plans
    plan: str
    remaining: int


class Reservation(BaseModel):
    used: int
    remaining: int


# ============ Export Models ============
class GenerationRecord(BaseModel):
    id: str
    title: str
    description: str
    tags: List[str]
    materials: List[str]
    tone: Optional[str] = None
    wordCount: Optional[int] = None
    bulkImportId: Optional[str] = None
    bulkImportDate: Optional[str] = None
    source: str = "manual"
    createdAt: str


# ============ Request / Response Models ============
class ProcessRequest(BaseModel):
    rows: List[CSVRow]
    selectedRows: Optional[List[int]] = None

