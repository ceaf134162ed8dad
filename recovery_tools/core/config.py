"""Engine configuration."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import HashAlgorithm


class Settings(BaseSettings):
    """Thresholds and tuning knobs, overridable from ``RECOVERY_*`` env vars."""

    # Exact hashing
    hash_chunk_size: int = Field(default=64 * 1024, gt=0)

    # Perceptual hashing. Duplicate detection uses a strict Hamming threshold,
    # scene clustering a looser one; both go through the same comparison.
    hash_algorithm: HashAlgorithm = HashAlgorithm.DCT
    duplicate_threshold: int = Field(default=5, ge=0, le=64)
    scene_similarity_threshold: int = Field(default=12, ge=0, le=64)
    thumbnail_max_dimension: int = Field(default=320, gt=0)

    # Scene clustering
    burst_gap_seconds: float = 2.0
    burst_min_size: int = Field(default=3, ge=2)
    sequence_gap_seconds: float = 30.0
    sequence_min_size: int = Field(default=2, ge=2)
    event_gap_seconds: float = 3600.0
    event_min_size: int = Field(default=5, ge=2)

    # Fingerprinting pool size (None = derived from CPU count)
    max_workers: Optional[int] = Field(default=None, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="RECOVERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Global settings instance
settings = Settings()
