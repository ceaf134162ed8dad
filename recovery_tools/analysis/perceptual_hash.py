"""
Rotation-aware perceptual hashing for duplicate image detection.

Every image gets four 64-bit fingerprints: the base orientation and the image
rotated 90, 180 and 270 degrees clockwise. Rotated duplicates are recognized by
comparing one image's rotation fingerprints against the other's base
fingerprint, so candidates never need rotating at comparison time.

Implements three hashing algorithms over a luminance grid:
- DCT (pHash): low-frequency cosine coefficients, DC term dropped, thresholded
  against their mean. Robust to brightness shifts and compression noise.
- Average (aHash): 8x8 grid thresholded against mean brightness. Faster but
  less noise tolerant.
- Wavelet (wHash): Haar DWT approximation band thresholded against its median.
"""

import logging
import math
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pywt
from PIL import Image, ImageFile, ImageOps

from ..core.exceptions import DecodeFailureError, UnsupportedFileError
from ..core.types import (
    FileDescriptor,
    HashAlgorithm,
    MatchResult,
    MediaType,
    PerceptualHash,
)
from ..shared.media_utils import get_file_type, is_raw_file

# Recovered images are frequently huge scans or partially written files
Image.MAX_IMAGE_PIXELS = None
ImageFile.LOAD_TRUNCATED_IMAGES = True

logger = logging.getLogger(__name__)

try:
    from pillow_heif import register_heif_opener

    register_heif_opener()
except ImportError:
    logger.debug("pillow-heif not installed, HEIC files will not be decoded")

HASH_BITS = 64
# Longest side of the working copy every orientation is derived from
WORKING_SIZE = 256
DCT_GRID = 32
DCT_LOW_FREQ = 8

# Clockwise angles encoded by PerceptualHash.rotations, with the matching
# PIL transposes (PIL's ROTATE_* constants turn counter-clockwise).
ROTATION_ANGLES: Tuple[int, int, int] = (90, 180, 270)
_CLOCKWISE_TRANSPOSE = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}

THUMBNAIL_NAME_MARKERS = ("thumb", "thumbnail", "_tn.", "-tn.")


class CorruptionSeverity(str, Enum):
    """Severity levels for decode failures."""

    MINOR = "minor"  # Truncated but mostly readable
    MODERATE = "moderate"  # Broken data stream or partial corruption
    SEVERE = "severe"  # Completely unreadable or unsupported format


class CorruptionTracker:
    """Records files that could not be decoded during one hashing session."""

    def __init__(self) -> None:
        self.corrupted_files: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def add(self, file_path: Path, error_message: str, severity: CorruptionSeverity) -> None:
        with self._lock:
            self.corrupted_files.append(
                {"path": str(file_path), "error": error_message, "severity": severity}
            )

    def get_report(self) -> Dict[str, Any]:
        """Generate a corruption report grouped by severity."""
        with self._lock:
            files = list(self.corrupted_files)

        by_severity: Dict[CorruptionSeverity, int] = {}
        for entry in files:
            by_severity[entry["severity"]] = by_severity.get(entry["severity"], 0) + 1

        return {"total": len(files), "by_severity": by_severity, "files": files}

    def clear(self) -> None:
        with self._lock:
            self.corrupted_files.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self.corrupted_files)


def _classify_error(error: Exception) -> CorruptionSeverity:
    message = str(error).lower()
    if "truncated" in message:
        return CorruptionSeverity.MINOR
    if "broken data stream" in message:
        return CorruptionSeverity.MODERATE
    return CorruptionSeverity.SEVERE


def _dct_matrix(n: int) -> np.ndarray:
    """Orthonormal DCT-II basis, so that ``M @ x @ M.T`` is the 2-D DCT."""
    k = np.arange(n).reshape(-1, 1)
    i = np.arange(n).reshape(1, -1)
    matrix = np.cos(np.pi * (2 * i + 1) * k / (2 * n)) * math.sqrt(2.0 / n)
    matrix[0, :] /= math.sqrt(2.0)
    return matrix


_DCT_BASIS = _dct_matrix(DCT_GRID)


def _bits_to_int(bits: Sequence[bool]) -> int:
    """Pack booleans into an int, bit ``i`` taken from ``bits[i]``."""
    value = 0
    for i, bit in enumerate(bits[:HASH_BITS]):
        if bit:
            value |= 1 << i
    return value


def dct_hash(image: Image.Image) -> int:
    """
    Calculate the DCT hash of a luminance image.

    The image is resized to a 32x32 grid, transformed with a 2-D DCT-II, and
    the top-left 8x8 low-frequency block minus the DC (average brightness)
    coefficient is thresholded against its mean. Bit 63 is always zero.

    Args:
        image: PIL image (converted to "L" if needed)

    Returns:
        Fingerprint as an int
    """
    grid = image.convert("L").resize((DCT_GRID, DCT_GRID), Image.Resampling.LANCZOS)
    pixels = np.asarray(grid, dtype=np.float64)
    coeffs = _DCT_BASIS @ pixels @ _DCT_BASIS.T
    # Rounding keeps flat images from hashing float noise
    low = np.round(coeffs[:DCT_LOW_FREQ, :DCT_LOW_FREQ].flatten()[1:], 6)
    return _bits_to_int(list(low > low.mean()))


def average_hash(image: Image.Image) -> int:
    """
    Calculate the average hash of an image.

    Compares each pixel of an 8x8 luminance grid to the average brightness.
    Less robust than the DCT hash but cheaper to compute.
    """
    grid = image.convert("L").resize((8, 8), Image.Resampling.LANCZOS)
    pixels = np.asarray(grid, dtype=np.float64).flatten()
    return _bits_to_int(list(pixels > pixels.mean()))


def wavelet_hash(image: Image.Image, mode: str = "haar") -> int:
    """
    Calculate the wavelet hash of an image.

    A 16x16 luminance grid is decomposed with a single level 2-D DWT; the 8x8
    approximation (LL) band is thresholded against its median.
    """
    grid = image.convert("L").resize((16, 16), Image.Resampling.LANCZOS)
    pixels = np.asarray(grid, dtype=np.float32) / 255.0
    ll, _details = pywt.dwt2(pixels, mode)
    ll_flat = ll.flatten()
    return _bits_to_int(list(ll_flat > np.median(ll_flat)))


_HASH_FUNCTIONS = {
    HashAlgorithm.DCT: dct_hash,
    HashAlgorithm.AVERAGE: average_hash,
    HashAlgorithm.WAVELET: wavelet_hash,
}


def hamming_distance(hash1: int, hash2: int) -> int:
    """
    Number of differing bits between two 64-bit fingerprints.

    Similarity guide for 64-bit hashes:
    - 0-5: Duplicates, rotated or re-encoded copies
    - 6-12: Same scene, slightly different frame
    - 13+: Likely different images
    """
    return bin((hash1 ^ hash2) & ((1 << HASH_BITS) - 1)).count("1")


def similarity_score(hash1: int, hash2: int) -> float:
    """Similarity percentage (100 = identical) between two fingerprints."""
    return (1 - hamming_distance(hash1, hash2) / HASH_BITS) * 100


def _normalize_rotation(degrees: int) -> int:
    """Map an angle into (-180, 180]."""
    degrees %= 360
    if degrees > 180:
        degrees -= 360
    return degrees


def matches(a: PerceptualHash, b: PerceptualHash, threshold: int) -> MatchResult:
    """
    Test whether two images are perceptual duplicates.

    A and B match if their base fingerprints are within ``threshold``, or if
    any rotation fingerprint of either image is within ``threshold`` of the
    other image's base fingerprint. Rotation fingerprints are never compared
    with each other: two rotated variants agreeing says nothing about the
    originals and leads to transitive false positives.

    Args:
        a: First image's fingerprints
        b: Second image's fingerprints
        threshold: Maximum Hamming distance

    Returns:
        MatchResult. ``rotation`` is the clockwise angle (in (-180, 180])
        that turns B into A, 0 when the base fingerprints matched.
    """
    base_distance = hamming_distance(a.base, b.base)
    if base_distance <= threshold:
        return MatchResult(matched=True, distance=base_distance, rotation=0)

    # (distance, rotation) candidates in a fixed order: A's rotations, then B's
    candidates: List[Tuple[int, int]] = []
    for angle, rotated in zip(ROTATION_ANGLES, a.rotations):
        # A turned clockwise by angle looks like B, so B turned by -angle is A
        candidates.append((hamming_distance(rotated, b.base), _normalize_rotation(-angle)))
    for angle, rotated in zip(ROTATION_ANGLES, b.rotations):
        candidates.append((hamming_distance(rotated, a.base), _normalize_rotation(angle)))

    best_distance, best_rotation = candidates[0]
    for distance, rotation in candidates[1:]:
        if distance < best_distance:
            best_distance, best_rotation = distance, rotation

    if best_distance <= threshold:
        return MatchResult(matched=True, distance=best_distance, rotation=best_rotation)
    return MatchResult(
        matched=False, distance=min(base_distance, best_distance), rotation=0
    )


def is_potential_thumbnail(
    file_name: str, size: Optional[Tuple[int, int]], max_dimension: int = 320
) -> bool:
    """
    Classify a file as an embedded/cached thumbnail rather than a real photo.

    Args:
        file_name: Display name of the file
        size: Decoded (width, height), if known
        max_dimension: Longest side at or below which an image is a thumbnail

    Returns:
        True for thumbnail-sized images or names carrying a thumbnail marker
    """
    lowered = file_name.lower()
    if any(marker in lowered for marker in THUMBNAIL_NAME_MARKERS):
        return True
    if size is None:
        return False
    return max(size) <= max_dimension


class ImageFingerprint(NamedTuple):
    """Outcome of decoding and hashing one image file."""

    perceptual_hash: Optional[PerceptualHash] = None
    size: Optional[Tuple[int, int]] = None
    decode_error: Optional[str] = None


class PerceptualHashEngine:
    """Computes and compares rotation-aware fingerprints.

    Decoded results are cached per path for one scan session. The cache is
    private to the instance and guarded by a lock, so one engine may be
    shared by the fingerprinting worker threads.
    """

    def __init__(
        self,
        algorithm: HashAlgorithm = HashAlgorithm.DCT,
        thumbnail_max_dimension: int = 320,
    ) -> None:
        """
        Initialize the engine.

        Args:
            algorithm: Hash algorithm applied to every orientation
            thumbnail_max_dimension: Longest side treated as thumbnail-sized
        """
        self.algorithm = HashAlgorithm(algorithm)
        self.thumbnail_max_dimension = thumbnail_max_dimension
        self.corruption = CorruptionTracker()
        self._hash_fn = _HASH_FUNCTIONS[self.algorithm]
        self._cache: Dict[str, ImageFingerprint] = {}
        self._lock = threading.Lock()

    def compute_from_image(self, image: Image.Image) -> PerceptualHash:
        """
        Fingerprint an already decoded image in all four orientations.

        The image is first reduced (aspect preserved) to a small working copy;
        each orientation is produced by geometrically rotating that copy and
        re-hashing it.
        """
        working = ImageOps.contain(image.convert("L"), (WORKING_SIZE, WORKING_SIZE))
        base = self._hash_fn(working)
        rotations = tuple(
            self._hash_fn(working.transpose(_CLOCKWISE_TRANSPOSE[angle]))
            for angle in ROTATION_ANGLES
        )
        return PerceptualHash(base=base, rotations=rotations)

    def compute(
        self, path: Path, media_type: Optional[MediaType] = None
    ) -> Optional[PerceptualHash]:
        """
        Fingerprint an image file.

        Args:
            path: Image file
            media_type: Known media type (detected from the extension if None)

        Returns:
            PerceptualHash, or None if the file could not be decoded

        Raises:
            UnsupportedFileError: If the file is not an image
        """
        return self.compute_details(Path(path), media_type).perceptual_hash

    def fingerprint(self, descriptor: FileDescriptor) -> Optional[PerceptualHash]:
        """
        Fingerprint a descriptor in place.

        Sets ``perceptual_hash``, ``decode_error`` and the thumbnail
        classification. A decode failure leaves the descriptor without a
        perceptual hash; it still takes part in exact-hash grouping.
        """
        details = self.compute_details(descriptor.path, descriptor.media_type)
        descriptor.perceptual_hash = details.perceptual_hash
        descriptor.decode_error = details.decode_error
        descriptor.is_thumbnail = is_potential_thumbnail(
            descriptor.file_name, details.size, self.thumbnail_max_dimension
        )
        return details.perceptual_hash

    def matches(self, a: PerceptualHash, b: PerceptualHash, threshold: int) -> MatchResult:
        return matches(a, b, threshold)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
        self.corruption.clear()

    def compute_details(
        self, path: Path, media_type: Optional[MediaType]
    ) -> ImageFingerprint:
        """
        Decode and fingerprint an image, never raising for a bad file.

        Any failure while decoding or hashing is recorded in the corruption
        tracker and reported through ``decode_error``.

        Raises:
            UnsupportedFileError: If the file is not an image
        """
        if media_type is None:
            media_type = MediaType(get_file_type(path))
        if media_type != MediaType.IMAGE:
            raise UnsupportedFileError(f"Not an image, cannot fingerprint visually: {path}")

        key = str(path)
        with self._lock:
            if key in self._cache:
                return self._cache[key]

        try:
            image = self._load_image(path)
        except DecodeFailureError as e:
            severity = _classify_error(e)
            self.corruption.add(path, str(e), severity)
            log_level = logging.ERROR if severity == CorruptionSeverity.SEVERE else logging.WARNING
            logger.log(log_level, f"Error loading image {path} for hashing: {e}")
            result = ImageFingerprint(decode_error=str(e))
        else:
            try:
                result = ImageFingerprint(self.compute_from_image(image), image.size)
            except Exception as e:
                self.corruption.add(path, f"hashing: {e}", CorruptionSeverity.MODERATE)
                logger.warning(f"Error computing perceptual hash for {path}: {e}")
                result = ImageFingerprint(size=image.size, decode_error=f"hashing: {e}")
            finally:
                image.close()

        with self._lock:
            self._cache[key] = result
        return result

    def _load_image(self, image_path: Path) -> Image.Image:
        """
        Decode an image for hashing.

        RAW files go through rawpy when it is installed; everything else
        (including HEIC with pillow-heif registered) through Pillow. Decoders
        raise far more than OSError on damaged input, so every failure is
        reported as DecodeFailureError.
        """
        try:
            if is_raw_file(image_path):
                return self._load_raw(image_path)

            with Image.open(image_path) as img:
                img.load()
                if img.mode not in ("RGB", "L"):
                    return img.convert("RGB")
                return img.copy()

        except DecodeFailureError:
            raise
        except Exception as e:
            raise DecodeFailureError(image_path, f"{type(e).__name__}: {e}") from e

    def _load_raw(self, raw_path: Path) -> Image.Image:
        try:
            import rawpy
        except ImportError:
            raise DecodeFailureError(raw_path, "rawpy not installed, cannot decode RAW file")

        with rawpy.imread(str(raw_path)) as raw:
            rgb = raw.postprocess(
                use_camera_wb=True,
                half_size=True,
                no_auto_bright=True,
                output_bps=8,
            )
        return Image.fromarray(rgb)
