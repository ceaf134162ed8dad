"""
Media file utilities for recovery-tools.

Extension based media classification, corpus collection and the small
formatting helpers shared by the engines and the command line front end.
"""

import logging
import os
import re
from pathlib import Path
from typing import Dict, FrozenSet, List

logger = logging.getLogger(__name__)

# Camera RAW formats decoded through rawpy
RAW_EXTENSIONS: FrozenSet[str] = frozenset(
    ".raw .cr2 .cr3 .nef .arw .dng .orf .rw2 .pef .sr2 .raf".split()
)
IMAGE_EXTENSIONS: FrozenSet[str] = (
    frozenset(".jpg .jpeg .png .gif .bmp .tiff .tif .webp .heic .heif".split())
    | RAW_EXTENSIONS
)
VIDEO_EXTENSIONS: FrozenSet[str] = frozenset(
    ".mp4 .mov .avi .mkv .wmv .m4v .mpg .mpeg .3gp .mts .m2ts".split()
)

_MEDIA_TYPE_BY_SUFFIX: Dict[str, str] = {
    **{ext: "video" for ext in VIDEO_EXTENSIONS},
    **{ext: "image" for ext in IMAGE_EXTENSIONS},
}

_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
_MAX_FILENAME_LENGTH = 255
_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def is_raw_file(file_path: Path) -> bool:
    return Path(file_path).suffix.lower() in RAW_EXTENSIONS


def get_file_type(file_path: Path) -> str:
    """Classify a path as "image", "video" or "unknown" from its extension."""
    return _MEDIA_TYPE_BY_SUFFIX.get(Path(file_path).suffix.lower(), "unknown")


def format_bytes(size_bytes: int) -> str:
    """Render a byte count with two decimals in the largest fitting unit."""
    if size_bytes == 0:
        return "0 B"

    size = float(size_bytes)
    for unit in _BYTE_UNITS[:-1]:
        if size < 1024:
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} {_BYTE_UNITS[-1]}"


def safe_filename(name: str) -> str:
    """Make a suggested name usable on every common filesystem."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name).strip(". ")
    return cleaned[:_MAX_FILENAME_LENGTH] or "unnamed"


def collect_media_files(
    directory: Path,
    recursive: bool = True,
    include_videos: bool = True,
    follow_symlinks: bool = False,
) -> List[Path]:
    """
    Collect media files below a directory, in a stable sorted order.

    Hidden files and directories are skipped.

    Args:
        directory: Directory to scan
        recursive: If True, scan subdirectories recursively
        include_videos: If True, include video files as well as images
        follow_symlinks: If True, follow symbolic links

    Returns:
        Sorted list of media file paths (empty if the directory is invalid)
    """
    media_files: List[Path] = []

    if not directory.is_dir():
        logger.error(f"Not a directory: {directory}")
        return media_files

    wanted_types = {"image", "video"} if include_videos else {"image"}

    def wanted(path: Path) -> bool:
        return not path.name.startswith(".") and get_file_type(path) in wanted_types

    try:
        if recursive:
            for root, dirs, files in os.walk(directory, followlinks=follow_symlinks):
                dirs[:] = [d for d in dirs if not d.startswith(".")]
                root_path = Path(root)
                media_files.extend(root_path / f for f in files if wanted(root_path / f))
        else:
            media_files.extend(
                p for p in directory.iterdir() if p.is_file() and wanted(p)
            )
    except PermissionError as e:
        logger.error(f"Permission denied accessing {directory}: {e}")

    media_files.sort()
    logger.info(f"Found {len(media_files)} media files in {directory}")
    return media_files
