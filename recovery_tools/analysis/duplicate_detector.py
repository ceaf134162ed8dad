"""
Duplicate detection system.

Partitions a fingerprinted corpus into disjoint duplicate groups:
1. Exact duplicates (same SHA-256)
2. Perceptual duplicates (rotation-aware perceptual hash within threshold)

Exact matches always win: a file placed in an exact group is never
reconsidered by the perceptual pass.
"""

import logging
import uuid
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set

from ..core.cancellation import CancellationToken
from ..core.config import Settings
from ..core.config import settings as default_settings
from ..core.exceptions import OperationCancelledError
from ..core.types import DuplicateGroup, FileDescriptor, MatchKind, MediaType
from .fingerprinter import CorpusFingerprinter
from .perceptual_hash import matches

logger = logging.getLogger(__name__)


class DuplicateGroupingEngine:
    """Groups exact and perceptual duplicates in corpus order."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """
        Initialize the grouping engine.

        Args:
            settings: Configuration override (duplicate_threshold is used)
        """
        self.settings = settings or default_settings

    @property
    def threshold(self) -> int:
        return self.settings.duplicate_threshold

    def find_duplicates(
        self,
        files: Sequence[FileDescriptor],
        cancel_token: Optional[CancellationToken] = None,
        enable_visual_matching: bool = True,
    ) -> List[DuplicateGroup]:
        """
        Detect duplicate groups in an already fingerprinted corpus.

        Descriptors carrying an error or lacking a SHA-256 are skipped. Group
        membership is written back to the members.

        Args:
            files: Corpus in its defined order
            cancel_token: Optional cooperative cancellation token
            enable_visual_matching: Run the perceptual pass after the exact one

        Returns:
            Duplicate groups, exact groups first, each in discovery order

        Raises:
            OperationCancelledError: With the groups found so far as
                ``partial_result``
        """
        logger.info(f"Starting duplicate detection over {len(files)} files")

        eligible = [f for f in files if f.error is None and f.sha256_hash]
        skipped = len(files) - len(eligible)
        if skipped:
            logger.info(f"Skipping {skipped} files without a usable fingerprint")

        groups: List[DuplicateGroup] = []
        consumed: Set[str] = set()

        self._find_exact_duplicates(eligible, groups, consumed, cancel_token)
        exact_count = len(groups)
        logger.info(f"Found {exact_count} exact duplicate groups")

        if enable_visual_matching:
            self._find_perceptual_duplicates(eligible, groups, consumed, cancel_token)
            logger.info(f"Found {len(groups) - exact_count} perceptual duplicate groups")

        return groups

    def detect(
        self,
        files: Sequence[FileDescriptor],
        fingerprinter: Optional[CorpusFingerprinter] = None,
        cancel_token: Optional[CancellationToken] = None,
        enable_visual_matching: bool = True,
    ) -> List[DuplicateGroup]:
        """Fingerprint the corpus, then group it."""
        if fingerprinter is None:
            fingerprinter = CorpusFingerprinter(
                enable_visual_matching=enable_visual_matching, settings=self.settings
            )
        fingerprinter.run_all(files, cancel_token)
        return self.find_duplicates(files, cancel_token, enable_visual_matching)

    def _find_exact_duplicates(
        self,
        files: List[FileDescriptor],
        groups: List[DuplicateGroup],
        consumed: Set[str],
        cancel_token: Optional[CancellationToken],
    ) -> None:
        by_checksum: Dict[str, List[FileDescriptor]] = defaultdict(list)
        for descriptor in files:
            self._check_cancelled(cancel_token, groups)
            by_checksum[descriptor.sha256_hash].append(descriptor)

        for checksum, members in by_checksum.items():
            if len(members) < 2:
                continue
            group = DuplicateGroup(
                match_kind=MatchKind.EXACT,
                fingerprint=checksum,
                file_size=members[0].file_size,
                members=members,
            )
            self._materialize(group, groups, consumed)

    def _find_perceptual_duplicates(
        self,
        files: List[FileDescriptor],
        groups: List[DuplicateGroup],
        consumed: Set[str],
        cancel_token: Optional[CancellationToken],
    ) -> None:
        candidates = [
            f
            for f in files
            if f.media_type == MediaType.IMAGE
            and f.perceptual_hash is not None
            and f.id not in consumed
        ]

        for i, anchor in enumerate(candidates):
            self._check_cancelled(cancel_token, groups)
            if anchor.id in consumed:
                continue

            members = [anchor]
            rotations: Dict[str, int] = {}
            for other in candidates[i + 1 :]:
                if other.id in consumed:
                    continue
                # Compared against the anchor only, never chained
                result = matches(anchor.perceptual_hash, other.perceptual_hash, self.threshold)
                if result.matched:
                    members.append(other)
                    if result.rotation:
                        # Clockwise turn that aligns the member with the anchor
                        rotations[other.id] = result.rotation

            if len(members) < 2:
                continue

            for member in members[1:]:
                if member.id in rotations:
                    member.suggested_rotation = rotations[member.id]

            group = DuplicateGroup(
                match_kind=MatchKind.PERCEPTUAL,
                fingerprint=f"perceptual_{uuid.uuid4()}",
                file_size=anchor.file_size,
                members=members,
            )
            self._materialize(group, groups, consumed)

    @staticmethod
    def _materialize(
        group: DuplicateGroup, groups: List[DuplicateGroup], consumed: Set[str]
    ) -> None:
        for member in group.members:
            member.duplicate_group_id = group.id
            consumed.add(member.id)
        groups.append(group)
        logger.debug(
            f"{group.match_kind.value} group {group.id[:8]} with {group.file_count} files"
        )

    @staticmethod
    def _check_cancelled(
        cancel_token: Optional[CancellationToken], groups: List[DuplicateGroup]
    ) -> None:
        if cancel_token is not None and cancel_token.is_cancelled:
            logger.info(f"Duplicate detection cancelled after {len(groups)} groups")
            raise OperationCancelledError(
                "Duplicate detection was cancelled", partial_result=list(groups)
            )
