"""
Tests for rotation-aware perceptual hashing.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
from PIL import Image

from recovery_tools.analysis.perceptual_hash import (
    HASH_BITS,
    PerceptualHashEngine,
    average_hash,
    dct_hash,
    hamming_distance,
    is_potential_thumbnail,
    matches,
    similarity_score,
    wavelet_hash,
)
from recovery_tools.core.exceptions import UnsupportedFileError
from recovery_tools.core.types import (
    FileDescriptor,
    HashAlgorithm,
    MediaType,
    PerceptualHash,
)


class TestHammingDistance:
    """Tests for hamming_distance and similarity_score."""

    def test_identical(self) -> None:
        """Test identical hashes have zero distance."""
        assert hamming_distance(0xDEADBEEF, 0xDEADBEEF) == 0

    def test_all_bits_differ(self) -> None:
        """Test complementary 64-bit hashes differ in every bit."""
        assert hamming_distance(0, (1 << 64) - 1) == 64

    def test_single_bit(self) -> None:
        """Test a single differing bit."""
        assert hamming_distance(0b1000, 0b0000) == 1

    def test_similarity_score(self) -> None:
        """Test similarity percentages at the extremes."""
        assert similarity_score(5, 5) == 100.0
        assert similarity_score(0, (1 << 64) - 1) == 0.0


class TestHashAlgorithms:
    """Tests for the individual hash functions."""

    def test_dct_hash_fits_in_63_bits(self, texture_image) -> None:
        """Test the DCT hash never sets the bit after the 63 AC coefficients."""
        value = dct_hash(texture_image(3))
        assert 0 <= value < (1 << 63)

    def test_dct_hash_is_deterministic(self, texture_image) -> None:
        """Test hashing the same image twice gives the same value."""
        assert dct_hash(texture_image(4)) == dct_hash(texture_image(4))

    def test_dct_hash_ignores_brightness_and_contrast(self, texture_image) -> None:
        """Test a global brightness and contrast change barely moves the DCT hash."""
        img = texture_image(5).convert("L")
        adjusted = img.point(lambda p: p // 2 + 60)

        assert hamming_distance(dct_hash(img), dct_hash(adjusted)) <= 5

    def test_flat_images_hash_alike(self) -> None:
        """Test featureless images of different brightness hash identically."""
        dark = Image.new("L", (64, 64), 40)
        light = Image.new("L", (64, 64), 200)

        assert dct_hash(dark) == dct_hash(light)

    def test_different_images_differ(self, texture_image) -> None:
        """Test unrelated textures are far apart."""
        distance = hamming_distance(dct_hash(texture_image(1)), dct_hash(texture_image(2)))
        assert distance > 10

    def test_average_and_wavelet_hashes(self, texture_image) -> None:
        """Test the fallback algorithms produce 64-bit values."""
        img = texture_image(6)
        for fn in (average_hash, wavelet_hash):
            value = fn(img)
            assert 0 <= value < (1 << HASH_BITS)
            assert fn(img) == value


class TestMatches:
    """Tests for the rotation-aware comparison."""

    def test_reflexive_at_zero_threshold(self, texture_image) -> None:
        """Test an image hashed twice matches itself at threshold 0."""
        engine = PerceptualHashEngine()
        a = engine.compute_from_image(texture_image(7))
        b = engine.compute_from_image(texture_image(7))

        result = matches(a, b, 0)

        assert result.matched
        assert result.distance == 0
        assert result.rotation == 0

    @pytest.mark.parametrize(
        "transpose, expected",
        [
            (Image.Transpose.ROTATE_270, 90),  # 90 degrees clockwise
            (Image.Transpose.ROTATE_180, 180),
            (Image.Transpose.ROTATE_90, -90),  # 270 degrees clockwise
        ],
    )
    def test_rotation_reported_clockwise(self, texture_image, transpose, expected) -> None:
        """Test a rotated copy matches and reports the applied rotation."""
        engine = PerceptualHashEngine()
        source = texture_image(8)
        original = engine.compute_from_image(source)
        rotated = engine.compute_from_image(source.transpose(transpose))

        result = matches(rotated, original, 5)

        assert result.matched
        assert result.distance == 0
        assert result.rotation == expected

    def test_rotation_sign_depends_on_argument_order(self, texture_image) -> None:
        """Test swapping the arguments flips the reported direction."""
        engine = PerceptualHashEngine()
        source = texture_image(9)
        original = engine.compute_from_image(source)
        rotated = engine.compute_from_image(source.transpose(Image.Transpose.ROTATE_270))

        assert matches(rotated, original, 5).rotation == 90
        assert matches(original, rotated, 5).rotation == -90

    def test_rotation_hashes_are_not_compared_with_each_other(self) -> None:
        """Test agreeing rotation hashes alone never produce a match."""
        shared = 0xFF << 8
        a = PerceptualHash(base=0xFF, rotations=(shared, shared, shared))
        b = PerceptualHash(base=0xFF << 16, rotations=(shared, shared, shared))

        result = matches(a, b, 5)

        assert not result.matched
        assert result.rotation == 0

    def test_threshold_boundary(self) -> None:
        """Test a distance equal to the threshold still matches."""
        far = (1 << 64) - 1
        a = PerceptualHash(base=0b11111, rotations=(far, far, far))
        b = PerceptualHash(base=0, rotations=(far, far, far))

        assert matches(a, b, 5).matched
        assert not matches(a, b, 4).matched


class TestThumbnailClassification:
    """Tests for is_potential_thumbnail."""

    def test_small_image_is_thumbnail(self) -> None:
        assert is_potential_thumbnail("IMG_0001.jpg", (160, 120))

    def test_large_image_is_not_thumbnail(self) -> None:
        assert not is_potential_thumbnail("IMG_0001.jpg", (4000, 3000))

    def test_name_marker(self) -> None:
        """Test thumbnail markers in the name win regardless of size."""
        assert is_potential_thumbnail("IMG_0001_thumb.jpg", (4000, 3000))
        assert is_potential_thumbnail("Thumbnail-0003.png", None)

    def test_unknown_size(self) -> None:
        assert not is_potential_thumbnail("IMG_0001.jpg", None)


class TestPerceptualHashEngine:
    """Tests for file based fingerprinting."""

    def test_compute_png(self, save_texture) -> None:
        """Test fingerprinting a lossless file matches the in-memory hash."""
        path = save_texture("a.png", seed=10)
        engine = PerceptualHashEngine()

        phash = engine.compute(path)

        assert phash is not None
        assert len(phash.rotations) == 3
        assert phash == engine.compute_from_image(Image.open(path))

    def test_jpeg_reencode_stays_close(self, save_texture) -> None:
        """Test a high quality JPEG re-encode stays within the duplicate threshold."""
        png = save_texture("a.png", seed=11)
        jpg = save_texture("a.jpg", seed=11, quality=95)
        engine = PerceptualHashEngine()

        assert matches(engine.compute(png), engine.compute(jpg), 5).matched

    def test_undecodable_file_returns_none(self, tmp_path: Path) -> None:
        """Test a corrupt image yields no fingerprint and is tracked."""
        path = tmp_path / "broken.jpg"
        path.write_bytes(b"not really a jpeg")
        engine = PerceptualHashEngine()

        assert engine.compute(path) is None
        assert len(engine.corruption) == 1
        assert engine.corruption.get_report()["total"] == 1

    def test_decoder_raising_non_oserror_is_recorded(self, save_texture) -> None:
        """Test a decoder crash of any type is tracked instead of propagating."""
        path = save_texture("odd.bmp", seed=16)
        engine = PerceptualHashEngine()

        with patch(
            "recovery_tools.analysis.perceptual_hash.Image.open",
            side_effect=OverflowError("signed integer is greater than maximum"),
        ):
            details = engine.compute_details(path, MediaType.IMAGE)

        assert details.perceptual_hash is None
        assert "OverflowError" in details.decode_error
        assert engine.corruption.get_report()["total"] == 1

    def test_hashing_failure_is_recorded(self, save_texture) -> None:
        """Test an error inside the hash step leaves the file without a fingerprint."""
        path = save_texture("a.png", seed=17)
        engine = PerceptualHashEngine()

        with patch.object(
            PerceptualHashEngine, "compute_from_image", side_effect=ZeroDivisionError("x")
        ):
            details = engine.compute_details(path, MediaType.IMAGE)

        assert details.perceptual_hash is None
        assert details.size == (256, 256)
        assert details.decode_error.startswith("hashing:")
        assert len(engine.corruption) == 1

    def test_video_is_unsupported(self, tmp_path: Path) -> None:
        """Test non-image media raise UnsupportedFileError."""
        path = tmp_path / "clip.mp4"
        path.write_bytes(b"\x00\x00\x00\x18ftypmp42")

        with pytest.raises(UnsupportedFileError):
            PerceptualHashEngine().compute(path)

    def test_results_are_cached(self, save_texture) -> None:
        """Test repeated calls reuse the cached decode."""
        path = save_texture("a.png", seed=12)
        engine = PerceptualHashEngine()
        first = engine.compute(path)

        path.write_bytes(b"garbage now")

        assert engine.compute(path) == first
        engine.clear_cache()
        assert engine.compute(path) is None

    def test_fingerprint_sets_descriptor_fields(self, save_texture) -> None:
        """Test fingerprinting a descriptor records hash and thumbnail flag."""
        path = save_texture("small.png", seed=13, size=(200, 150))
        descriptor = FileDescriptor.from_path(path)

        PerceptualHashEngine().fingerprint(descriptor)

        assert descriptor.perceptual_hash is not None
        assert descriptor.is_thumbnail

    @pytest.mark.parametrize("algorithm", list(HashAlgorithm))
    def test_every_algorithm_detects_rotation(self, texture_image, algorithm) -> None:
        """Test rotation matching works for all algorithms."""
        engine = PerceptualHashEngine(algorithm=algorithm)
        source = texture_image(14)
        original = engine.compute_from_image(source)
        rotated = engine.compute_from_image(source.transpose(Image.Transpose.ROTATE_180))

        result = matches(rotated, original, 0)

        assert result.matched
        assert result.rotation == 180

    def test_media_type_override(self, save_texture) -> None:
        """Test an explicit media type bypasses extension detection."""
        path = save_texture("a.png", seed=15)

        with pytest.raises(UnsupportedFileError):
            PerceptualHashEngine().compute(path, MediaType.VIDEO)
