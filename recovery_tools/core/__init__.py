"""Core types, configuration and error handling."""

from .cancellation import CancellationToken, ProgressEvent, check_cancelled
from .exceptions import (
    DecodeFailureError,
    NotFoundError,
    OperationCancelledError,
    RecoveryToolsError,
    UnsupportedFileError,
)
from .types import (
    DuplicateGroup,
    FileDescriptor,
    HashAlgorithm,
    MatchKind,
    MatchResult,
    MediaType,
    MergeRecommendation,
    PerceptualHash,
    ResolutionAction,
    SceneGroup,
    SceneGroupType,
)

__all__ = [
    "CancellationToken",
    "ProgressEvent",
    "check_cancelled",
    "DecodeFailureError",
    "NotFoundError",
    "OperationCancelledError",
    "RecoveryToolsError",
    "UnsupportedFileError",
    "DuplicateGroup",
    "FileDescriptor",
    "HashAlgorithm",
    "MatchKind",
    "MatchResult",
    "MediaType",
    "MergeRecommendation",
    "PerceptualHash",
    "ResolutionAction",
    "SceneGroup",
    "SceneGroupType",
]
