"""
Pytest configuration and fixtures for recovery_tools tests.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

import numpy as np
import pytest
from PIL import Image

from recovery_tools.core.types import FileDescriptor, MediaType, PerceptualHash


def _texture(seed: int, size=(256, 256)) -> Image.Image:
    """Smooth but asymmetric test image: random 8x8 blocks upscaled bilinearly."""
    rng = np.random.RandomState(seed)
    blocks = rng.randint(0, 256, size=(8, 8)).astype(np.uint8)
    return Image.fromarray(blocks).resize(size, Image.Resampling.BILINEAR).convert("RGB")


@pytest.fixture
def texture_image() -> Callable[..., Image.Image]:
    """Factory for deterministic textured images."""
    return _texture


@pytest.fixture
def save_texture(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a textured image to tmp_path and returning its path."""

    def _save(
        name: str,
        seed: int = 1,
        size=(256, 256),
        transpose: Optional[Image.Transpose] = None,
        **save_kwargs,
    ) -> Path:
        img = _texture(seed, size)
        if transpose is not None:
            img = img.transpose(transpose)
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        img.save(path, **save_kwargs)
        return path

    return _save


def _block_hash(k: int) -> PerceptualHash:
    """Hash whose set bits are byte k; distinct k are 16 bits apart."""
    value = 0xFF << (8 * k)
    return PerceptualHash(base=value, rotations=(value, value, value))


@pytest.fixture
def block_hash() -> Callable[[int], PerceptualHash]:
    return _block_hash


@pytest.fixture
def make_descriptor() -> Callable[..., FileDescriptor]:
    """Factory for in-memory descriptors (no file on disk)."""

    def _make(
        name: str,
        folder: str = "/photos/trip",
        seconds: Optional[float] = 0.0,
        scene: Optional[int] = 0,
        **fields,
    ) -> FileDescriptor:
        base = datetime(2023, 6, 1, 12, 0, 0)
        fields.setdefault("media_type", MediaType.IMAGE)
        fields.setdefault("file_size", 1024)
        if seconds is not None:
            fields.setdefault("capture_date", base + timedelta(seconds=seconds))
        if scene is not None:
            fields.setdefault("perceptual_hash", _block_hash(scene))
        return FileDescriptor(path=Path(folder) / name, file_name=name, **fields)

    return _make
