"""
Metadata extraction from images.

Reads the capture date, pixel dimensions and camera model the grouping
engines rely on. EXIF is read through Pillow; video containers are not parsed
and keep only their filesystem information.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, Optional, Sequence, Tuple

import arrow
from PIL import Image, UnidentifiedImageError

from ..core.cancellation import CancellationToken, ProgressEvent, check_cancelled
from ..core.types import FileDescriptor, MediaType, MetadataReadResult

logger = logging.getLogger(__name__)

# EXIF tag ids
TAG_MAKE = 271
TAG_MODEL = 272
TAG_DATETIME = 306
TAG_EXIF_IFD = 34665
TAG_GPS_IFD = 34853
TAG_DATETIME_ORIGINAL = 36867
TAG_DATETIME_DIGITIZED = 36868

# Most trusted first
DATE_TAGS = (TAG_DATETIME_ORIGINAL, TAG_DATETIME_DIGITIZED, TAG_DATETIME)

EXIF_DATE_FORMATS = [
    "YYYY:MM:DD HH:mm:ss",
    "YYYY:MM:DD HH:mm:ssZZ",
    "YYYY-MM-DD HH:mm:ss",
    "YYYY:MM:DD",
    "YYYY-MM-DD",
]


def parse_exif_date(date_str: str) -> Optional[datetime]:
    """
    Parse an EXIF date string.

    Returns:
        Naive datetime (wall clock as recorded by the camera), or None for
        unparseable and zeroed-out ("0000:00:00 00:00:00") values
    """
    date_str = date_str.strip().rstrip("\x00")
    if not date_str or date_str.startswith("0000"):
        return None

    for fmt in EXIF_DATE_FORMATS:
        try:
            return arrow.get(date_str, fmt, normalize_whitespace=True).naive
        except (arrow.ParserError, ValueError):
            continue

    logger.debug(f"Unparseable EXIF date: {date_str!r}")
    return None


def _camera_model(make: Optional[str], model: Optional[str]) -> Optional[str]:
    make = (make or "").strip().rstrip("\x00")
    model = (model or "").strip().rstrip("\x00")
    if make and model.lower().startswith(make.lower()):
        # Many vendors repeat the make in the model tag
        return model
    combined = f"{make} {model}".strip()
    return combined or None


class MetadataReader:
    """Extract grouping-relevant metadata from image files."""

    def read(self, path: Path, media_type: Optional[MediaType] = None) -> MetadataReadResult:
        """
        Read metadata from a file.

        Args:
            path: File to read
            media_type: Known media type; non-images yield an empty result

        Returns:
            MetadataReadResult with every field the file provides

        Raises:
            OSError: If the file is missing or unreadable
        """
        if media_type is not None and media_type != MediaType.IMAGE:
            return MetadataReadResult()

        try:
            with Image.open(path) as img:
                width, height = img.size
                tags, has_gps = self._read_exif(img, path)
        except UnidentifiedImageError:
            # Recovered fragments often fail to identify; they simply carry no metadata
            logger.debug(f"No readable image header in {path}")
            return MetadataReadResult()

        capture_date = None
        for tag in DATE_TAGS:
            value = tags.get(tag)
            if isinstance(value, str):
                capture_date = parse_exif_date(value)
                if capture_date is not None:
                    break

        camera_model = _camera_model(
            tags.get(TAG_MAKE) if isinstance(tags.get(TAG_MAKE), str) else None,
            tags.get(TAG_MODEL) if isinstance(tags.get(TAG_MODEL), str) else None,
        )

        has_metadata = capture_date is not None or camera_model is not None or has_gps

        return MetadataReadResult(
            capture_date=capture_date,
            width=width,
            height=height,
            camera_model=camera_model,
            has_metadata=has_metadata,
        )

    @staticmethod
    def _read_exif(img: Image.Image, path: Path) -> Tuple[Dict[int, object], bool]:
        # Damaged EXIF blocks raise anything from SyntaxError to struct.error
        try:
            exif = img.getexif()
            tags: Dict[int, object] = dict(exif)
            tags.update(exif.get_ifd(TAG_EXIF_IFD))
            has_gps = bool(exif.get_ifd(TAG_GPS_IFD))
        except Exception as e:
            logger.warning(f"Ignoring unreadable EXIF block in {path}: {e}")
            return {}, False
        return tags, has_gps


def populate_metadata(
    files: Sequence[FileDescriptor],
    reader: Optional[MetadataReader] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Iterator[ProgressEvent]:
    """
    Read metadata for every descriptor, yielding one event per file.

    An I/O failure is recorded in ``descriptor.error``; an unparseable file
    is logged and left without metadata. Either way the scan continues.

    Args:
        files: Corpus in its defined order
        reader: Metadata reader (a default one if None)
        cancel_token: Optional token, checked before each file

    Yields:
        ProgressEvent per file
    """
    reader = reader or MetadataReader()
    total = len(files)

    for completed, descriptor in enumerate(files, start=1):
        check_cancelled(cancel_token, "Metadata extraction was cancelled")
        try:
            result = reader.read(descriptor.path, descriptor.media_type)
        except OSError as e:
            descriptor.error = f"Error reading metadata: {e}"
            logger.warning(f"Could not read metadata from {descriptor.path}: {e}")
        except Exception as e:
            # Parser failure, not I/O: the file stays eligible for grouping
            logger.warning(f"Skipping unparseable metadata in {descriptor.path}: {e}")
        else:
            descriptor.capture_date = result.capture_date
            descriptor.width = result.width
            descriptor.height = result.height
            descriptor.camera_model = result.camera_model
            descriptor.has_metadata = result.has_metadata
            descriptor.metadata_complete = (
                result.capture_date is not None
                and result.camera_model is not None
                and result.width is not None
                and result.height is not None
            )

        yield ProgressEvent(
            phase="metadata",
            completed=completed,
            total=total,
            path=str(descriptor.path),
            error=descriptor.error,
        )
