"""Scene detection for bursts, sequences and events.

Groups files that depict the same capture moment using three passes over a
shared "consumed" set, tight to loose:

1. Burst: consecutive dated files no more than ``burst_gap_seconds`` apart.
2. Sequence: files within ``sequence_gap_seconds`` of an anchor that also
   look alike (rotation-aware perceptual match at the loose scene threshold).
3. Event: remaining files of one folder whose consecutive gaps stay within
   ``event_gap_seconds``.

A file taken by an earlier pass is never reconsidered by a later one. Files
without any date are left out of every pass. The whole run is all-or-nothing:
cancellation discards every group and leaves the descriptors untouched.
"""

import logging
from collections import OrderedDict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

from ..core.cancellation import CancellationToken, check_cancelled
from ..core.config import Settings
from ..core.config import settings as default_settings
from ..core.types import FileDescriptor, SceneGroup, SceneGroupType
from .perceptual_hash import matches
from .quality_scorer import select_best

logger = logging.getLogger(__name__)

_CANCEL_MESSAGE = "Scene detection was cancelled"


def _sort_key(descriptor: FileDescriptor):
    date = descriptor.effective_date
    # Undated files sort after every dated file
    return (date is None, date or datetime.min)


def _seconds_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds()


class SceneClusteringEngine:
    """Detects burst, sequence and event groups in a corpus."""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize the scene detector.

        Args:
            settings: Configuration override (gaps, minimum sizes and the
                scene similarity threshold are read from it)
        """
        self.settings = settings or default_settings

    def detect_scenes(
        self,
        files: Sequence[FileDescriptor],
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[SceneGroup]:
        """Detect scene groups in a corpus.

        Args:
            files: Corpus (sorted internally by capture date, falling back to
                the filesystem date)
            cancel_token: Optional token, checked between passes and per file

        Returns:
            Burst groups, then sequence groups, then event groups

        Raises:
            OperationCancelledError: If cancelled; no partial groups are kept
        """
        ordered = sorted(files, key=_sort_key)
        dated = [f for f in ordered if f.effective_date is not None]
        logger.info(
            f"Detecting scenes in {len(files)} files ({len(files) - len(dated)} undated)"
        )

        consumed: Set[str] = set()

        check_cancelled(cancel_token, _CANCEL_MESSAGE)
        bursts = self._detect_bursts(dated, consumed, cancel_token)

        check_cancelled(cancel_token, _CANCEL_MESSAGE)
        sequences = self._detect_sequences(dated, consumed, cancel_token)

        check_cancelled(cancel_token, _CANCEL_MESSAGE)
        events = self._detect_events(dated, consumed, cancel_token)

        check_cancelled(cancel_token, _CANCEL_MESSAGE)
        groups = bursts + sequences + events

        # Only touch the descriptors once every pass has completed
        for group in groups:
            for member in group.members:
                member.scene_group_id = group.id

        logger.info(
            f"Detected {len(bursts)} bursts, {len(sequences)} sequences, "
            f"{len(events)} events"
        )
        return groups

    def _detect_bursts(
        self,
        files: List[FileDescriptor],
        consumed: Set[str],
        cancel_token: Optional[CancellationToken],
    ) -> List[SceneGroup]:
        groups: List[SceneGroup] = []
        current: List[FileDescriptor] = []
        last_date: Optional[datetime] = None

        for descriptor in files:
            check_cancelled(cancel_token, _CANCEL_MESSAGE)
            date = descriptor.effective_date

            gap = None if last_date is None else _seconds_between(last_date, date)
            if gap is not None and gap <= self.settings.burst_gap_seconds:
                current.append(descriptor)
            else:
                self._close_cluster(
                    current, SceneGroupType.BURST, self.settings.burst_min_size, groups, consumed
                )
                current = [descriptor]
            last_date = date

        self._close_cluster(
            current, SceneGroupType.BURST, self.settings.burst_min_size, groups, consumed
        )
        return groups

    def _detect_sequences(
        self,
        files: List[FileDescriptor],
        consumed: Set[str],
        cancel_token: Optional[CancellationToken],
    ) -> List[SceneGroup]:
        groups: List[SceneGroup] = []
        remaining = [f for f in files if f.id not in consumed]
        threshold = self.settings.scene_similarity_threshold

        for i, anchor in enumerate(remaining):
            check_cancelled(cancel_token, _CANCEL_MESSAGE)
            if anchor.id in consumed or anchor.perceptual_hash is None:
                continue

            members = [anchor]
            for other in remaining[i + 1 :]:
                if other.id in consumed or other.perceptual_hash is None:
                    continue
                gap = abs(_seconds_between(anchor.effective_date, other.effective_date))
                if gap > self.settings.sequence_gap_seconds:
                    continue
                if matches(anchor.perceptual_hash, other.perceptual_hash, threshold).matched:
                    members.append(other)

            self._close_cluster(
                members, SceneGroupType.SEQUENCE, self.settings.sequence_min_size, groups, consumed
            )

        return groups

    def _detect_events(
        self,
        files: List[FileDescriptor],
        consumed: Set[str],
        cancel_token: Optional[CancellationToken],
    ) -> List[SceneGroup]:
        groups: List[SceneGroup] = []
        min_size = self.settings.event_min_size

        # Buckets in first-seen order keep the output deterministic
        by_folder: Dict[Path, List[FileDescriptor]] = OrderedDict()
        for descriptor in files:
            if descriptor.id not in consumed:
                by_folder.setdefault(descriptor.folder, []).append(descriptor)

        for folder, folder_files in by_folder.items():
            if len(folder_files) < min_size:
                continue

            current: List[FileDescriptor] = []
            last_date: Optional[datetime] = None
            for descriptor in folder_files:
                check_cancelled(cancel_token, _CANCEL_MESSAGE)
                date = descriptor.effective_date
                if last_date is not None and (
                    _seconds_between(last_date, date) > self.settings.event_gap_seconds
                ):
                    self._close_cluster(
                        current, SceneGroupType.EVENT, min_size, groups, consumed, folder.name
                    )
                    current = []
                current.append(descriptor)
                last_date = date

            self._close_cluster(
                current, SceneGroupType.EVENT, min_size, groups, consumed, folder.name
            )

        return groups

    def _close_cluster(
        self,
        members: List[FileDescriptor],
        group_type: SceneGroupType,
        min_size: int,
        groups: List[SceneGroup],
        consumed: Set[str],
        location: Optional[str] = None,
    ) -> None:
        if len(members) < min_size:
            return

        dates = [m.effective_date for m in members]
        group = SceneGroup(
            group_type=group_type,
            members=list(members),
            best_file_id=select_best(members).id,
            time_span_seconds=_seconds_between(min(dates), max(dates)),
            location=location,
        )
        consumed.update(m.id for m in members)
        groups.append(group)
        logger.debug(f"{group_type.value} group of {len(members)} files")
