"""
Failure classification for the catalog.

Every failure the pipeline or the search API can raise on purpose is a
KnownError subclass carrying a FailureKind, a user-appropriate message and
the HTTP status the API should answer with.

Failure families:
- Run-aborting: ManifestLookupError, BulkDownloadError,
  SyncAlreadyRunningError, DataIntegrityError
- Request-rejecting: SearchRequestError, PrintingNotFoundError
- Store boundary: StoreShapeError
"""

import uuid
from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input validation failures
    INVALID_INPUT = "invalid_input"
    MISSING_REQUIRED = "missing_required"

    # Resource failures
    NOT_FOUND = "not_found"

    # Upstream failures
    MANIFEST_LOOKUP = "manifest_lookup"
    EXTERNAL_API_ERROR = "external_api_error"

    # Pipeline failures
    SYNC_IN_PROGRESS = "sync_in_progress"
    DATA_INTEGRITY = "data_integrity"
    INVALID_STORE_SHAPE = "invalid_store_shape"


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the caller",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a serializable FailureDetail."""
        return FailureDetail(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class ManifestLookupError(KnownError):
    """Raised when the requested bulk dataset is not listed in the upstream manifest."""

    def __init__(self, bulk_type: str, available: list[str]):
        self.bulk_type = bulk_type
        self.available = available
        super().__init__(
            kind=FailureKind.MANIFEST_LOOKUP,
            message=f"Bulk data type '{bulk_type}' not found in upstream manifest.",
            detail=f"Available types: {', '.join(available) or 'none'}",
            suggestion="Use --list-types to see available types.",
            status_code=502,
        )


class BulkDownloadError(KnownError):
    """Raised when the manifest or the dataset cannot be fetched."""

    def __init__(self, url: str, detail: str | None = None):
        self.url = url
        super().__init__(
            kind=FailureKind.EXTERNAL_API_ERROR,
            message=f"Failed to download {url}",
            detail=detail,
            suggestion="Check connectivity and retry; nothing was written.",
            status_code=502,
        )


class SyncAlreadyRunningError(KnownError):
    """Raised when another sync run holds the run lock."""

    def __init__(self, lock_path: str, holder: str | None = None):
        self.lock_path = lock_path
        super().__init__(
            kind=FailureKind.SYNC_IN_PROGRESS,
            message="Another catalog sync is already running.",
            detail=f"Lock file {lock_path} held by pid {holder or 'unknown'}",
            suggestion="Wait for it to finish, or remove a stale lock file.",
            status_code=409,
        )


class DataIntegrityError(KnownError):
    """
    Raised when a write would violate a uniqueness invariant.

    Reconciliation exists to make this impossible, so reaching it means
    the two-key matching was bypassed. Always fatal for the run.
    """

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.DATA_INTEGRITY,
            message=message,
            detail=detail,
            status_code=500,
        )


class PrintingNotFoundError(KnownError):
    """Raised when no stored printing has the requested local id."""

    def __init__(self, local_id: uuid.UUID):
        self.local_id = local_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"Card {local_id} not found",
            status_code=404,
        )


class SearchRequestError(KnownError):
    """Raised for malformed search requests. Never clamped, always rejected."""

    def __init__(self, message: str, kind: FailureKind = FailureKind.INVALID_INPUT):
        super().__init__(kind=kind, message=message, status_code=400)


class StoreShapeError(KnownError):
    """Raised when a semi-structured column is assigned a value of the wrong shape."""

    def __init__(self, column: str, detail: str):
        self.column = column
        super().__init__(
            kind=FailureKind.INVALID_STORE_SHAPE,
            message=f"Invalid value for column '{column}'",
            detail=detail,
            status_code=500,
        )
