"""
Type definitions for the deduplication and scene clustering engines.
"""

import uuid
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..shared.media_utils import get_file_type


def _new_id() -> str:
    return str(uuid.uuid4())


class MediaType(str, Enum):
    """Type of media file."""

    IMAGE = "image"
    VIDEO = "video"
    UNKNOWN = "unknown"


class HashAlgorithm(str, Enum):
    """Available perceptual hash algorithms."""

    DCT = "dct"  # Discrete cosine transform (preferred)
    AVERAGE = "average"  # Mean brightness threshold
    WAVELET = "wavelet"  # Haar DWT low band


class MatchKind(str, Enum):
    """How the members of a duplicate group were matched."""

    EXACT = "exact"
    PERCEPTUAL = "perceptual"


class ResolutionAction(str, Enum):
    """Policy chosen to resolve a duplicate group."""

    KEEP_OLDEST = "keep_oldest"
    KEEP_NEWEST = "keep_newest"
    KEEP_LARGEST = "keep_largest"
    KEEP_SELECTED = "keep_selected"
    KEEP_ALL = "keep_all"


class SceneGroupType(str, Enum):
    """Scene grouping granularity, tight to loose."""

    BURST = "burst"
    SEQUENCE = "sequence"
    EVENT = "event"


class MergeField(str, Enum):
    """Metadata fields considered by the merge advisor."""

    DATE = "date"
    CAMERA_MODEL = "camera_model"
    DIMENSIONS = "dimensions"
    FILE_NAME = "file_name"


class PerceptualHash(BaseModel):
    """64-bit visual fingerprint plus fingerprints of the rotated image.

    ``rotations`` holds the hashes of the image rotated 90, 180 and 270
    degrees clockwise, in that order.
    """

    model_config = ConfigDict(frozen=True)

    base: int
    rotations: Tuple[int, int, int]

    @property
    def hex(self) -> str:
        return f"{self.base:016x}"


class MatchResult(BaseModel):
    """Outcome of comparing two perceptual hashes."""

    matched: bool
    distance: int
    rotation: int = 0  # clockwise degrees turning B into A, in (-180, 180]


class FileDescriptor(BaseModel):
    """One scanned media file."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=_new_id)
    path: Path
    file_name: str
    file_size: int = 0
    media_type: MediaType = MediaType.UNKNOWN

    # Fingerprints
    sha256_hash: Optional[str] = None
    perceptual_hash: Optional[PerceptualHash] = None

    # Timestamps
    capture_date: Optional[datetime] = None
    filesystem_date: Optional[datetime] = None

    # Metadata from the external reader
    width: Optional[int] = None
    height: Optional[int] = None
    camera_model: Optional[str] = None
    has_metadata: bool = False
    metadata_complete: bool = False

    # Classification
    is_thumbnail: bool = False
    suggested_rotation: Optional[int] = None

    # Group membership
    duplicate_group_id: Optional[str] = None
    scene_group_id: Optional[str] = None

    # Excludes the file from grouping entirely
    error: Optional[str] = None
    # Image could not be decoded for visual matching; exact grouping still applies
    decode_error: Optional[str] = None

    @classmethod
    def from_path(cls, path: Path, media_type: Optional[MediaType] = None) -> "FileDescriptor":
        """Build a descriptor from filesystem information alone."""
        path = Path(path).absolute()
        stat = path.stat()
        return cls(
            path=path,
            file_name=path.name,
            file_size=stat.st_size,
            media_type=media_type or MediaType(get_file_type(path)),
            filesystem_date=datetime.fromtimestamp(stat.st_mtime),
        )

    @property
    def effective_date(self) -> Optional[datetime]:
        """Capture date, falling back to the filesystem date."""
        if self.capture_date is not None:
            return self.capture_date
        return self.filesystem_date

    @property
    def folder(self) -> Path:
        return self.path.parent

    @property
    def has_dimensions(self) -> bool:
        return self.width is not None and self.height is not None

    @property
    def megapixels(self) -> Optional[float]:
        if not self.has_dimensions:
            return None
        return (self.width * self.height) / 1_000_000


class DuplicateGroup(BaseModel):
    """Files sharing an identical or perceptually equivalent fingerprint."""

    id: str = Field(default_factory=_new_id)
    match_kind: MatchKind
    fingerprint: str
    file_size: int = 0
    members: List[FileDescriptor] = Field(default_factory=list)
    is_resolved: bool = False
    resolution_action: Optional[ResolutionAction] = None
    keep_file_id: Optional[str] = None

    @property
    def file_count(self) -> int:
        return len(self.members)

    @property
    def member_ids(self) -> List[str]:
        return [m.id for m in self.members]

    @property
    def is_dissolved(self) -> bool:
        """A group with at most one member left no longer holds duplicates."""
        return len(self.members) <= 1

    @property
    def oldest_file(self) -> Optional[FileDescriptor]:
        dated = [m for m in self.members if m.effective_date is not None]
        if not dated:
            return self.members[0] if self.members else None
        return min(dated, key=lambda m: m.effective_date)

    @property
    def newest_file(self) -> Optional[FileDescriptor]:
        dated = [m for m in self.members if m.effective_date is not None]
        if not dated:
            return self.members[0] if self.members else None
        return max(dated, key=lambda m: m.effective_date)

    @property
    def largest_file(self) -> Optional[FileDescriptor]:
        if not self.members:
            return None
        return max(self.members, key=lambda m: m.file_size)

    @property
    def potential_space_saved(self) -> int:
        if len(self.members) < 2:
            return 0
        return self.file_size * (len(self.members) - 1)

    def resolve(
        self, action: ResolutionAction, selected_id: Optional[str] = None
    ) -> Optional[str]:
        """Record a resolution policy and the member it keeps.

        Args:
            action: Resolution policy
            selected_id: Member to keep, required for KEEP_SELECTED

        Returns:
            Id of the member to keep (None for KEEP_ALL)

        Raises:
            ValueError: If KEEP_SELECTED names a non-member
        """
        keep: Optional[FileDescriptor]
        if action == ResolutionAction.KEEP_OLDEST:
            keep = self.oldest_file
        elif action == ResolutionAction.KEEP_NEWEST:
            keep = self.newest_file
        elif action == ResolutionAction.KEEP_LARGEST:
            keep = self.largest_file
        elif action == ResolutionAction.KEEP_SELECTED:
            keep = next((m for m in self.members if m.id == selected_id), None)
            if keep is None:
                raise ValueError(f"File {selected_id} is not a member of group {self.id}")
        else:
            keep = None

        self.resolution_action = action
        self.keep_file_id = keep.id if keep else None
        self.is_resolved = True
        return self.keep_file_id

    def remove_member(self, file_id: str) -> bool:
        """Remove a member and clear its membership.

        Returns:
            True if the group still holds duplicates afterwards
        """
        for idx, member in enumerate(self.members):
            if member.id == file_id:
                member.duplicate_group_id = None
                del self.members[idx]
                break

        if self.is_dissolved:
            for member in self.members:
                member.duplicate_group_id = None
        return not self.is_dissolved


class SceneGroup(BaseModel):
    """Files judged to depict the same capture event."""

    id: str = Field(default_factory=_new_id)
    group_type: SceneGroupType
    members: List[FileDescriptor] = Field(default_factory=list)
    best_file_id: Optional[str] = None
    time_span_seconds: float = 0.0
    location: Optional[str] = None

    @property
    def file_count(self) -> int:
        return len(self.members)

    @property
    def member_ids(self) -> List[str]:
        return [m.id for m in self.members]

    @property
    def best_file(self) -> Optional[FileDescriptor]:
        for member in self.members:
            if member.id == self.best_file_id:
                return member
        return self.members[0] if self.members else None

    @property
    def total_size(self) -> int:
        return sum(m.file_size for m in self.members)

    @property
    def potential_space_saved(self) -> int:
        if len(self.members) < 2:
            return 0
        best = self.best_file
        return self.total_size - (best.file_size if best else 0)

    @property
    def formatted_time_span(self) -> str:
        span = self.time_span_seconds
        if span < 1:
            return "< 1 second"
        elif span < 60:
            return f"{int(span)} seconds"
        elif span < 3600:
            return f"{int(span / 60)} minutes"
        elif span < 86400:
            return f"{span / 3600:.1f} hours"
        return f"{span / 86400:.1f} days"


class QualityScore(BaseModel):
    """Best-member score components for one file."""

    overall: float = 0.0
    size_score: float = 0.0
    resolution_score: float = 0.0
    metadata_bonus: float = 0.0
    thumbnail_bonus: float = 0.0
    name_adjustment: float = 0.0


class FieldRecommendation(BaseModel):
    """Recommendation for a single metadata field."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    field: MergeField
    source_value: Any = None
    target_value: Any = None
    recommended_value: Any = None  # None means unavailable
    reason: str
    conflict: bool = False

    @property
    def is_available(self) -> bool:
        return self.recommended_value is not None


class MergedMetadata(BaseModel):
    """Consolidated metadata record proposed for the kept file."""

    capture_date: Optional[datetime] = None
    camera_model: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    file_name: str
    metadata_complete: bool = False


class MergeRecommendation(BaseModel):
    """Field-by-field merge proposal for one duplicate pair."""

    source: FileDescriptor
    target: FileDescriptor
    recommendations: List[FieldRecommendation] = Field(default_factory=list)
    merged: MergedMetadata

    def get(self, field: MergeField) -> Optional[FieldRecommendation]:
        for rec in self.recommendations:
            if rec.field == field:
                return rec
        return None


class MetadataReadResult(BaseModel):
    """Fields produced by the metadata reader for one file."""

    capture_date: Optional[datetime] = None
    width: Optional[int] = None
    height: Optional[int] = None
    camera_model: Optional[str] = None
    has_metadata: bool = False
