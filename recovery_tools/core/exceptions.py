"""
Failure taxonomy for the deduplication and clustering engines.

Per-file failures (missing files, undecodable images) are normally recorded on
the affected FileDescriptor and never abort a batch. Cancellation is the one
outcome that always propagates to the caller.
"""

from typing import Any, Optional


class RecoveryToolsError(Exception):
    """Base exception for all recovery-tools errors."""

    pass


class NotFoundError(RecoveryToolsError):
    """Raised when a source file is missing or unreadable at hash time."""

    def __init__(self, path: Any, message: Optional[str] = None) -> None:
        self.path = path
        super().__init__(message or f"File not found: {path}")


class OperationCancelledError(RecoveryToolsError):
    """Raised when a cooperative cancellation request is observed.

    Attributes:
        partial_result: Work that was fully materialized before cancellation,
            for operations that tolerate partial results (duplicate
            grouping). None for all-or-nothing operations (scene clustering).
    """

    def __init__(
        self, message: str = "Operation was cancelled", partial_result: Any = None
    ) -> None:
        self.partial_result = partial_result
        super().__init__(message)


class DecodeFailureError(RecoveryToolsError):
    """Raised when an image cannot be decoded for perceptual hashing."""

    def __init__(self, path: Any, message: str) -> None:
        self.path = path
        super().__init__(message)


class UnsupportedFileError(RecoveryToolsError):
    """Raised when a file is not eligible for the requested fingerprint kind."""

    pass
