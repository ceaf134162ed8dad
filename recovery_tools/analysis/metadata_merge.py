"""
Metadata merge recommendations for duplicate pairs.

When two copies of the same photo survive recovery, each may carry part of
the useful metadata (one kept its EXIF date, the other its original name).
The advisor ranks the pair by completeness, keeps the richer file as the
target, and proposes a consolidated record field by field. It never changes a
descriptor itself; ``apply`` is a separate, explicit step.
"""

import logging
import re
from datetime import datetime
from pathlib import PurePath
from typing import List, Optional, Tuple

from ..core.types import (
    DuplicateGroup,
    FieldRecommendation,
    FileDescriptor,
    MergedMetadata,
    MergeField,
    MergeRecommendation,
)
from ..shared.media_utils import safe_filename

logger = logging.getLogger(__name__)

# Completeness weights used to pick the target (kept) file
COMPLETENESS_WEIGHTS = {
    "capture_date": 3,
    "filesystem_date": 1,
    "camera_model": 2,
    "dimensions": 2,
    "rich_metadata": 2,
}

# Camera generated, temp and recovery tool names (case-insensitive)
GENERIC_NAME_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^IMG_",
        r"^DSC_",
        r"^DSCF",
        r"^PXL_",
        r"DCIM",
        r"image",
        r"photo",
        r"\.tmp$",
        r"copy",
        r"untitled",
        r"^f\d{6,}\.",  # PhotoRec style recovered names
    )
]

SYNTHESIZED_DATE_FORMAT = "%Y-%m-%d_%H%M%S"


def completeness_score(descriptor: FileDescriptor) -> int:
    """Weighted count of the metadata fields a file carries."""
    score = 0
    if descriptor.capture_date is not None:
        score += COMPLETENESS_WEIGHTS["capture_date"]
    if descriptor.filesystem_date is not None:
        score += COMPLETENESS_WEIGHTS["filesystem_date"]
    if descriptor.camera_model:
        score += COMPLETENESS_WEIGHTS["camera_model"]
    if descriptor.has_dimensions:
        score += COMPLETENESS_WEIGHTS["dimensions"]
    if descriptor.has_metadata:
        score += COMPLETENESS_WEIGHTS["rich_metadata"]
    return score


def is_generic_name(file_name: str) -> bool:
    """True for camera generated, temporary or recovery tool file names."""
    return any(pattern.search(file_name) for pattern in GENERIC_NAME_PATTERNS)


def _format_dimensions(width: Optional[int], height: Optional[int]) -> Optional[str]:
    if width is None or height is None:
        return None
    return f"{width} x {height}"


class MetadataMergeAdvisor:
    """Proposes a consolidated metadata record for a duplicate pair."""

    def recommend(self, a: FileDescriptor, b: FileDescriptor) -> MergeRecommendation:
        """
        Build a merge recommendation for two members of one duplicate group.

        The richer file (by ``completeness_score``) becomes the target; on a
        tie the first argument wins.

        Args:
            a: First file
            b: Second file

        Returns:
            MergeRecommendation with one FieldRecommendation per MergeField
        """
        target, source = sorted([a, b], key=completeness_score, reverse=True)

        date_rec = self._recommend_date(target, source)
        camera_rec = self._recommend_camera(target, source)
        dims_rec = self._recommend_dimensions(target, source)
        name_rec = self._recommend_file_name(
            target, source, date_rec.recommended_value, camera_rec.recommended_value
        )

        width, height = dims_rec.recommended_value or (None, None)
        merged = MergedMetadata(
            capture_date=date_rec.recommended_value,
            camera_model=camera_rec.recommended_value,
            width=width,
            height=height,
            file_name=name_rec.recommended_value or target.file_name,
        )
        merged.metadata_complete = (
            merged.capture_date is not None
            and merged.camera_model is not None
            and merged.width is not None
            and merged.height is not None
        )

        logger.debug(f"Merge {source.file_name} into {target.file_name}")
        return MergeRecommendation(
            source=source,
            target=target,
            recommendations=[date_rec, camera_rec, dims_rec, name_rec],
            merged=merged,
        )

    def recommend_for_group(self, group: DuplicateGroup) -> Optional[MergeRecommendation]:
        """
        Recommend a merge for the two most complete members of a group.

        Returns:
            None when the group has fewer than two members
        """
        if len(group.members) < 2:
            return None

        ranked = sorted(group.members, key=completeness_score, reverse=True)
        return self.recommend(ranked[0], ranked[1])

    def apply(self, merged: MergedMetadata, descriptor: FileDescriptor) -> None:
        """
        Copy the present merged values onto a descriptor.

        Absent values never overwrite existing ones. The file is not renamed;
        ``merged.file_name`` is only a suggestion for whoever organizes files.
        """
        if merged.capture_date is not None:
            descriptor.capture_date = merged.capture_date
        if merged.camera_model is not None:
            descriptor.camera_model = merged.camera_model
        if merged.width is not None and merged.height is not None:
            descriptor.width = merged.width
            descriptor.height = merged.height
        descriptor.metadata_complete = merged.metadata_complete

    def _recommend_date(
        self, target: FileDescriptor, source: FileDescriptor
    ) -> FieldRecommendation:
        # Capture date, falling back to the filesystem date
        target_date = target.effective_date
        source_date = source.effective_date

        if target_date is not None and source_date is not None:
            # Copies and conversions tend to advance the timestamp
            if target_date <= source_date:
                recommended, reason = target_date, "Using earlier date from target file"
            else:
                recommended, reason = source_date, "Using earlier date from source file"
            return FieldRecommendation(
                field=MergeField.DATE,
                source_value=source_date,
                target_value=target_date,
                recommended_value=recommended,
                reason=f"{reason} (likely original)",
                conflict=target_date != source_date,
            )

        if target_date is not None or source_date is not None:
            return FieldRecommendation(
                field=MergeField.DATE,
                source_value=source_date,
                target_value=target_date,
                recommended_value=target_date or source_date,
                reason="Using the only available date",
            )

        return FieldRecommendation(
            field=MergeField.DATE,
            reason="No date metadata available in either file",
        )

    def _recommend_camera(
        self, target: FileDescriptor, source: FileDescriptor
    ) -> FieldRecommendation:
        target_camera = target.camera_model or None
        source_camera = source.camera_model or None

        if target_camera and source_camera:
            if target_camera == source_camera:
                return FieldRecommendation(
                    field=MergeField.CAMERA_MODEL,
                    source_value=source_camera,
                    target_value=target_camera,
                    recommended_value=target_camera,
                    reason="Same camera model in both files",
                )
            # Equal length keeps the source value
            recommended = (
                target_camera if len(target_camera) > len(source_camera) else source_camera
            )
            return FieldRecommendation(
                field=MergeField.CAMERA_MODEL,
                source_value=source_camera,
                target_value=target_camera,
                recommended_value=recommended,
                reason="Using more detailed camera information",
                conflict=True,
            )

        if target_camera or source_camera:
            return FieldRecommendation(
                field=MergeField.CAMERA_MODEL,
                source_value=source_camera,
                target_value=target_camera,
                recommended_value=target_camera or source_camera,
                reason="Using the only available camera model",
            )

        return FieldRecommendation(
            field=MergeField.CAMERA_MODEL,
            reason="No camera metadata available",
        )

    def _recommend_dimensions(
        self, target: FileDescriptor, source: FileDescriptor
    ) -> FieldRecommendation:
        source_text = _format_dimensions(source.width, source.height)
        target_text = _format_dimensions(target.width, target.height)

        if target.has_dimensions and source.has_dimensions:
            tw, th = target.width, target.height
            sw, sh = source.width, source.height

            if (tw, th) == (sh, sw):
                # Swapped width/height means a rotated copy, not another image
                recommended: Tuple[int, int] = (max(tw, th), min(tw, th))
                return FieldRecommendation(
                    field=MergeField.DIMENSIONS,
                    source_value=source_text,
                    target_value=target_text,
                    recommended_value=recommended,
                    reason="Images are rotated versions, standardizing to landscape",
                    conflict=tw != th,
                )

            recommended = (tw, th) if tw * th >= sw * sh else (sw, sh)
            return FieldRecommendation(
                field=MergeField.DIMENSIONS,
                source_value=source_text,
                target_value=target_text,
                recommended_value=recommended,
                reason="Using higher resolution version",
                conflict=(tw, th) != (sw, sh),
            )

        only = target if target.has_dimensions else source
        if only.has_dimensions:
            return FieldRecommendation(
                field=MergeField.DIMENSIONS,
                source_value=source_text,
                target_value=target_text,
                recommended_value=(only.width, only.height),
                reason="Using the only available dimensions",
            )

        return FieldRecommendation(
            field=MergeField.DIMENSIONS,
            reason="No dimension metadata available",
        )

    def _recommend_file_name(
        self,
        target: FileDescriptor,
        source: FileDescriptor,
        date: Optional[datetime],
        camera: Optional[str],
    ) -> FieldRecommendation:
        target_generic = is_generic_name(target.file_name)
        source_generic = is_generic_name(source.file_name)

        recommended = target.file_name
        reason = "Keeping target file name"

        if target_generic and not source_generic:
            recommended = source.file_name
            reason = "Source file has a more meaningful name"
        elif source_generic and not target_generic:
            reason = "Target file has a more meaningful name"
        elif target_generic and source_generic and date is not None:
            recommended = self._synthesize_name(target.file_name, date, camera)
            reason = "Generated meaningful name from metadata"

        return FieldRecommendation(
            field=MergeField.FILE_NAME,
            source_value=source.file_name,
            target_value=target.file_name,
            recommended_value=recommended,
            reason=reason,
            conflict=target.file_name != source.file_name,
        )

    @staticmethod
    def _synthesize_name(target_name: str, date: datetime, camera: Optional[str]) -> str:
        words: List[str] = (camera or "").split()
        camera_short = words[0] if words else "Photo"
        name = f"{date.strftime(SYNTHESIZED_DATE_FORMAT)}_{camera_short}"
        extension = PurePath(target_name).suffix
        return safe_filename(f"{name}{extension}")
