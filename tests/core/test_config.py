"""
Tests for engine configuration.
"""

import pytest
from pydantic import ValidationError

from recovery_tools.core.config import Settings
from recovery_tools.core.types import HashAlgorithm


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        """Test the documented default thresholds."""
        settings = Settings(_env_file=None)

        assert settings.duplicate_threshold == 5
        assert settings.scene_similarity_threshold == 12
        assert settings.hash_algorithm == HashAlgorithm.DCT
        assert settings.burst_gap_seconds == 2.0
        assert settings.burst_min_size == 3
        assert settings.sequence_gap_seconds == 30.0
        assert settings.sequence_min_size == 2
        assert settings.event_gap_seconds == 3600.0
        assert settings.event_min_size == 5
        assert settings.max_workers is None

    def test_environment_override(self, monkeypatch) -> None:
        """Test RECOVERY_* environment variables override defaults."""
        monkeypatch.setenv("RECOVERY_DUPLICATE_THRESHOLD", "8")
        monkeypatch.setenv("RECOVERY_HASH_ALGORITHM", "wavelet")

        settings = Settings(_env_file=None)

        assert settings.duplicate_threshold == 8
        assert settings.hash_algorithm == HashAlgorithm.WAVELET

    def test_invalid_environment_value(self, monkeypatch) -> None:
        monkeypatch.setenv("RECOVERY_DUPLICATE_THRESHOLD", "65")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    @pytest.mark.parametrize(
        "field, value",
        [
            ("scene_similarity_threshold", -1),
            ("hash_chunk_size", 0),
            ("burst_min_size", 1),
            ("max_workers", 0),
        ],
    )
    def test_invalid_values(self, field: str, value: int) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_model_copy_override(self) -> None:
        """Test per-run overrides leave the base settings unchanged."""
        base = Settings(_env_file=None)

        override = base.model_copy(update={"duplicate_threshold": 10})

        assert override.duplicate_threshold == 10
        assert base.duplicate_threshold == 5
