"""
Quality scoring for selecting the best member of a group.

Scores files based on multiple factors:
- File size (larger is generally better, capped at a reference size)
- Resolution (higher is better, capped at a reference megapixel count)
- Rich metadata present
- Not a thumbnail
- File name hints ("copy" / "duplicate" penalized, "original" rewarded)

Absent dimensions contribute nothing; they are never treated as zero-sized.
"""

import logging
from typing import Sequence

from ..core.types import FileDescriptor, QualityScore

logger = logging.getLogger(__name__)

REFERENCE_SIZE_BYTES = 10 * 1024 * 1024
REFERENCE_MEGAPIXELS = 12.0

WEIGHTS = {
    "size": 0.3,
    "resolution": 0.3,
    "metadata": 0.2,
    "not_thumbnail": 0.1,
    "copy_penalty": -0.2,
    "original_bonus": 0.1,
}

COPY_MARKERS = ("copy", "duplicate")
ORIGINAL_MARKERS = ("original",)


def calculate_quality_score(descriptor: FileDescriptor) -> QualityScore:
    """
    Calculate the best-member score for a file.

    Args:
        descriptor: File to score

    Returns:
        QualityScore with individual components and the overall score
    """
    size_score = min(descriptor.file_size / REFERENCE_SIZE_BYTES, 1.0) * WEIGHTS["size"]

    resolution_score = 0.0
    megapixels = descriptor.megapixels
    if megapixels is not None:
        resolution_score = min(megapixels / REFERENCE_MEGAPIXELS, 1.0) * WEIGHTS["resolution"]

    metadata_bonus = WEIGHTS["metadata"] if descriptor.has_metadata else 0.0
    thumbnail_bonus = 0.0 if descriptor.is_thumbnail else WEIGHTS["not_thumbnail"]
    name_adjustment = _score_file_name(descriptor.file_name)

    overall = size_score + resolution_score + metadata_bonus + thumbnail_bonus + name_adjustment

    return QualityScore(
        overall=overall,
        size_score=size_score,
        resolution_score=resolution_score,
        metadata_bonus=metadata_bonus,
        thumbnail_bonus=thumbnail_bonus,
        name_adjustment=name_adjustment,
    )


def _score_file_name(file_name: str) -> float:
    name = file_name.lower()
    adjustment = 0.0
    if any(marker in name for marker in COPY_MARKERS):
        adjustment += WEIGHTS["copy_penalty"]
    if any(marker in name for marker in ORIGINAL_MARKERS):
        adjustment += WEIGHTS["original_bonus"]
    return adjustment


def select_best(files: Sequence[FileDescriptor]) -> FileDescriptor:
    """
    Select the highest scoring file.

    Ties go to the earliest file in the sequence.

    Args:
        files: Candidate files in encounter order

    Returns:
        The best file

    Raises:
        ValueError: If ``files`` is empty
    """
    if not files:
        raise ValueError("Cannot select best file from an empty list")

    best = files[0]
    best_score = calculate_quality_score(best).overall
    for candidate in files[1:]:
        score = calculate_quality_score(candidate).overall
        if score > best_score:
            best, best_score = candidate, score

    logger.debug(f"Selected {best.file_name} as best of {len(files)} (score {best_score:.3f})")
    return best
