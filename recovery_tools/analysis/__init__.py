"""Analysis engines: fingerprinting, duplicate grouping and scene clustering."""

from .content_hash import ContentHasher
from .duplicate_detector import DuplicateGroupingEngine
from .fingerprinter import CorpusFingerprinter
from .metadata import MetadataReader, populate_metadata
from .metadata_merge import MetadataMergeAdvisor
from .perceptual_hash import PerceptualHashEngine, hamming_distance, matches
from .quality_scorer import calculate_quality_score, select_best
from .scene_detector import SceneClusteringEngine

__all__ = [
    "ContentHasher",
    "CorpusFingerprinter",
    "DuplicateGroupingEngine",
    "MetadataMergeAdvisor",
    "MetadataReader",
    "PerceptualHashEngine",
    "SceneClusteringEngine",
    "calculate_quality_score",
    "hamming_distance",
    "matches",
    "populate_metadata",
    "select_best",
]
