"""
Tests for exact and perceptual duplicate grouping.
"""

import shutil
from itertools import combinations
from pathlib import Path

import pytest
from PIL import Image

from recovery_tools.analysis.duplicate_detector import DuplicateGroupingEngine
from recovery_tools.analysis.fingerprinter import CorpusFingerprinter
from recovery_tools.core.cancellation import CancellationToken
from recovery_tools.core.config import Settings
from recovery_tools.core.exceptions import OperationCancelledError
from recovery_tools.core.types import FileDescriptor, MatchKind, MediaType, PerceptualHash


def _assert_disjoint(groups) -> None:
    for g1, g2 in combinations(groups, 2):
        assert not set(g1.member_ids) & set(g2.member_ids)


class TestExactDuplicates:
    """Tests for the exact (SHA-256) pass."""

    def test_partition_by_checksum(self, make_descriptor) -> None:
        """Test files sharing a checksum are grouped, singletons are not."""
        a = make_descriptor("a.jpg", sha256_hash="aa", file_size=100, scene=None)
        b = make_descriptor("b.jpg", sha256_hash="aa", file_size=100, scene=None)
        c = make_descriptor("c.jpg", sha256_hash="cc", scene=None)

        groups = DuplicateGroupingEngine().find_duplicates([a, b, c])

        assert len(groups) == 1
        group = groups[0]
        assert group.match_kind == MatchKind.EXACT
        assert group.fingerprint == "aa"
        assert group.member_ids == [a.id, b.id]
        assert group.file_size == 100
        assert a.duplicate_group_id == group.id
        assert c.duplicate_group_id is None

    def test_errored_and_unhashed_files_skipped(self, make_descriptor) -> None:
        """Test descriptors with errors or no checksum never join a group."""
        a = make_descriptor("a.jpg", sha256_hash="aa", scene=None)
        b = make_descriptor("b.jpg", sha256_hash="aa", scene=None, error="Read failed")
        c = make_descriptor("c.jpg", scene=None)

        assert DuplicateGroupingEngine().find_duplicates([a, b, c]) == []

    def test_exact_wins_over_perceptual(self, make_descriptor) -> None:
        """Test a file in an exact group is not reconsidered visually."""
        a = make_descriptor("a.jpg", sha256_hash="aa", scene=1)
        b = make_descriptor("b.jpg", sha256_hash="aa", scene=1)
        c = make_descriptor("c.jpg", sha256_hash="cc", scene=1)
        d = make_descriptor("d.jpg", sha256_hash="dd", scene=1)

        groups = DuplicateGroupingEngine().find_duplicates([a, b, c, d])

        assert [g.match_kind for g in groups] == [MatchKind.EXACT, MatchKind.PERCEPTUAL]
        assert groups[1].member_ids == [c.id, d.id]
        _assert_disjoint(groups)


class TestPerceptualDuplicates:
    """Tests for the anchor based perceptual pass."""

    def test_anchor_semantics_not_transitive(self, make_descriptor) -> None:
        """Test grouping compares against the anchor only.

        B and C are each 4 bits from the anchor but 8 bits from each other;
        both still join the anchor's group. D is 12 bits from the anchor and
        stays out.
        """
        far = (1 << 64) - 1

        def phash(value: int) -> PerceptualHash:
            return PerceptualHash(base=value, rotations=(far, far, far))

        anchor = make_descriptor("a.jpg", sha256_hash="1", perceptual_hash=phash(0))
        b = make_descriptor("b.jpg", sha256_hash="2", perceptual_hash=phash(0x0F))
        c = make_descriptor("c.jpg", sha256_hash="3", perceptual_hash=phash(0xF0))
        d = make_descriptor("d.jpg", sha256_hash="4", perceptual_hash=phash(0xFF00F0))

        groups = DuplicateGroupingEngine().find_duplicates([anchor, b, c, d])

        assert len(groups) == 1
        assert groups[0].member_ids == [anchor.id, b.id, c.id]
        assert groups[0].fingerprint.startswith("perceptual_")
        assert d.duplicate_group_id is None

    def test_only_images_with_hashes(self, make_descriptor) -> None:
        """Test videos and undecoded images are excluded from the visual pass."""
        a = make_descriptor("a.jpg", sha256_hash="1", scene=2)
        b = make_descriptor("b.mp4", sha256_hash="2", scene=2, media_type=MediaType.VIDEO)
        c = make_descriptor("c.jpg", sha256_hash="3", scene=None)

        assert DuplicateGroupingEngine().find_duplicates([a, b, c]) == []

    def test_visual_matching_can_be_disabled(self, make_descriptor) -> None:
        a = make_descriptor("a.jpg", sha256_hash="1", scene=2)
        b = make_descriptor("b.jpg", sha256_hash="2", scene=2)

        engine = DuplicateGroupingEngine()
        assert engine.find_duplicates([a, b], enable_visual_matching=False) == []

    def test_threshold_from_settings(self, make_descriptor) -> None:
        """Test the duplicate threshold comes from the settings."""
        a = make_descriptor("a.jpg", sha256_hash="1", scene=0)
        b = make_descriptor("b.jpg", sha256_hash="2", scene=1)  # 16 bits apart

        assert DuplicateGroupingEngine().find_duplicates([a, b]) == []

        loose = DuplicateGroupingEngine(Settings(duplicate_threshold=16))
        assert len(loose.find_duplicates([a, b])) == 1

    def test_groups_are_disjoint_and_never_singletons(self, make_descriptor) -> None:
        """Test a mixed corpus yields disjoint groups of at least two."""
        files = [
            make_descriptor(f"{i:02d}.jpg", sha256_hash=str(i % 5), scene=i % 3)
            for i in range(15)
        ]

        groups = DuplicateGroupingEngine().find_duplicates(files)

        assert groups
        assert all(g.file_count >= 2 for g in groups)
        _assert_disjoint(groups)
        for group in groups:
            for member in group.members:
                assert member.duplicate_group_id == group.id

    def test_cancellation_keeps_partial_groups(self, make_descriptor) -> None:
        """Test cancellation surfaces the groups materialized so far."""
        files = [
            make_descriptor("a.jpg", sha256_hash="1"),
            make_descriptor("b.jpg", sha256_hash="1"),
        ]
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledError) as exc_info:
            DuplicateGroupingEngine().find_duplicates(files, token)

        assert exc_info.value.partial_result == []


class TestEndToEnd:
    """Fingerprint real files and group them."""

    def test_three_identical_files_one_exact_group(self, save_texture, tmp_path: Path) -> None:
        """Test three byte-identical files form exactly one exact group of three."""
        original = save_texture("original.jpg", seed=21, quality=90)
        shutil.copy(original, tmp_path / "copy_1.jpg")
        shutil.copy(original, tmp_path / "copy_2.jpg")
        files = [FileDescriptor.from_path(p) for p in sorted(tmp_path.glob("*.jpg"))]

        groups = DuplicateGroupingEngine().detect(files, CorpusFingerprinter(max_workers=2))

        assert len(groups) == 1
        assert groups[0].match_kind == MatchKind.EXACT
        assert groups[0].file_count == 3

    def test_rotated_copy_one_perceptual_group(self, save_texture) -> None:
        """Test a 90 degree rotated re-encode forms one perceptual group."""
        source = save_texture("a_source.png", seed=22)
        rotated = save_texture("b_rotated.png", seed=22, transpose=Image.Transpose.ROTATE_270)
        unrelated = save_texture("c_other.png", seed=23)
        files = [FileDescriptor.from_path(p) for p in (source, rotated, unrelated)]

        groups = DuplicateGroupingEngine().detect(files)

        assert len(groups) == 1
        group = groups[0]
        assert group.match_kind == MatchKind.PERCEPTUAL
        assert group.member_ids == [files[0].id, files[1].id]
        # Turning the rotated copy 90 degrees counter-clockwise restores the source
        assert files[1].suggested_rotation == -90
        assert files[0].suggested_rotation is None
