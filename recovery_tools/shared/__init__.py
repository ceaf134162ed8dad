"""
Shared utilities for recovery-tools.
"""

from .media_utils import (
    # File type detection
    IMAGE_EXTENSIONS,
    RAW_EXTENSIONS,
    VIDEO_EXTENSIONS,
    get_file_type,
    is_raw_file,
    # Corpus collection
    collect_media_files,
    # Formatting
    format_bytes,
    safe_filename,
)

__all__ = [
    # Constants
    "IMAGE_EXTENSIONS",
    "RAW_EXTENSIONS",
    "VIDEO_EXTENSIONS",
    # Functions
    "get_file_type",
    "is_raw_file",
    "collect_media_files",
    "format_bytes",
    "safe_filename",
]
