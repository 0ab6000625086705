"""
Exception hierarchy for SheetLens.

Every error carries the HTTP status and machine-readable error type the
web layer reports, so callers can raise where a problem is detected and
the boundary only has to translate.
"""

from typing import Any, Dict, Optional


class SheetLensError(Exception):
    """Base class for all expected SheetLens failures."""

    status_code = 500
    error_type = "server_error"

    def __init__(self, message: str, status_code: Optional[int] = None,
                 error_type: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "errorType": self.error_type,
        }


class InvalidRequestError(SheetLensError):
    """Missing or malformed request parameters."""
    status_code = 400
    error_type = "invalid_request"


class UnsupportedFormatError(SheetLensError):
    """File extension is not one of the supported formats."""
    status_code = 400
    error_type = "unsupported_format"


class ParseFailureError(SheetLensError):
    """File could not be read or decoded."""
    status_code = 400
    error_type = "file_processing_error"


class FileMissingError(SheetLensError):
    """File id unknown, or its content is gone from disk."""
    status_code = 404
    error_type = "file_not_found"


class FileAccessDenied(SheetLensError):
    """File belongs to another user."""
    status_code = 403
    error_type = "forbidden"


class AnalysisNotFoundError(SheetLensError):
    """No stored analysis for the requested key."""
    status_code = 404
    error_type = "analysis_not_found"


class ExportFormatError(SheetLensError):
    """Requested export format is not supported."""
    status_code = 400
    error_type = "unsupported_export_format"


class StoreError(SheetLensError):
    """Persistence layer unavailable or failed."""
    status_code = 500
    error_type = "store_error"
