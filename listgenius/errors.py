"""
Service error taxonomy
Each error carries the HTTP status it maps to at the API boundary
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for errors surfaced through the success/error envelope"""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CSVValidationError(ServiceError):
    """Upload rejected before parsing (size, extension, empty content)"""
    status_code = 400


class MalformedCSV(ServiceError):
    """CSV structure could not be parsed"""
    status_code = 400


class MissingColumns(ServiceError):
    """Required logical columns did not map to any header"""
    status_code = 400


class RowValidationError(ServiceError):
    """Submitted row lacks a required field"""
    status_code = 400


class Unauthenticated(ServiceError):
    status_code = 401


class PlanRestricted(ServiceError):
    """Feature needs a higher plan"""
    status_code = 402


class QuotaExceeded(ServiceError):
    status_code = 402

    def __init__(self, message: str, used: int = 0, limit: Any = None, remaining: int = 0):
        super().__init__(message, {"quota": {"used": used, "limit": limit, "remaining": remaining}})
        self.used = used
        self.limit = limit
        self.remaining = remaining


class NotFound(ServiceError):
    status_code = 404


class JobNotFound(NotFound):
    """Unknown, expired, cleaned up, or owned by someone else"""


class ExternalServiceError(ServiceError):
    """Generation engine failed, timed out, or returned unusable output"""
    status_code = 502


class IdentityServiceError(ServiceError):
    """Identity provider unreachable or returned a server error"""
    status_code = 503


class StorageUnavailable(ServiceError):
    """Backing store failed; nothing written can be assumed confirmed"""
    status_code = 503


# Errors that stop a whole bulk job instead of a single row
BATCH_FATAL_ERRORS = (Unauthenticated, IdentityServiceError, StorageUnavailable)
