"""
Corpus-wide fingerprinting.

Exact and perceptual fingerprints are independent per file, so they are
computed on a thread pool. Results are applied to the descriptors in corpus
order and reported as lazily produced progress events. Grouping only starts
once the whole corpus has been fingerprinted.
"""

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

from ..core.cancellation import CancellationToken, ProgressEvent, check_cancelled
from ..core.config import Settings
from ..core.config import settings as default_settings
from ..core.exceptions import NotFoundError
from ..core.types import FileDescriptor, MediaType, PerceptualHash
from .content_hash import ContentHasher
from .perceptual_hash import PerceptualHashEngine, is_potential_thumbnail

logger = logging.getLogger(__name__)


@dataclass
class _FileResult:
    sha256_hash: Optional[str] = None
    perceptual_hash: Optional[PerceptualHash] = None
    size: Optional[Tuple[int, int]] = None
    visual: bool = False
    decode_error: Optional[str] = None
    error: Optional[str] = None


def default_worker_count() -> int:
    """I/O bound work, so oversubscribe the CPUs a little."""
    return min((os.cpu_count() or 4) * 2, 16)


class CorpusFingerprinter:
    """Populates sha256 and perceptual fingerprints for a whole corpus."""

    def __init__(
        self,
        content_hasher: Optional[ContentHasher] = None,
        perceptual_engine: Optional[PerceptualHashEngine] = None,
        max_workers: Optional[int] = None,
        enable_visual_matching: bool = True,
        settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize the fingerprinter.

        Args:
            content_hasher: Exact hasher (a new one per instance if None)
            perceptual_engine: Perceptual engine (a new one per instance if None)
            max_workers: Thread pool size (from settings, else CPU based)
            enable_visual_matching: Compute perceptual hashes for images
            settings: Configuration override
        """
        self.settings = settings or default_settings
        self.content_hasher = content_hasher or ContentHasher(self.settings.hash_chunk_size)
        self.perceptual_engine = perceptual_engine or PerceptualHashEngine(
            self.settings.hash_algorithm, self.settings.thumbnail_max_dimension
        )
        self.max_workers = max_workers or self.settings.max_workers or default_worker_count()
        self.enable_visual_matching = enable_visual_matching

    def run(
        self,
        files: Sequence[FileDescriptor],
        cancel_token: Optional[CancellationToken] = None,
    ) -> Iterator[ProgressEvent]:
        """
        Fingerprint every descriptor, yielding one event per finished file.

        Per-file failures are recorded in ``descriptor.error`` and the batch
        continues. On cancellation, files not yet started are skipped, files
        in flight are allowed to finish, and OperationCancelledError is
        raised.

        Args:
            files: Corpus in its defined order
            cancel_token: Optional cooperative cancellation token

        Yields:
            ProgressEvent for each file, in corpus order
        """
        total = len(files)
        logger.info(f"Fingerprinting {total} files with {self.max_workers} workers")

        executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="fingerprint"
        )
        futures: List[Future] = []
        try:
            futures = [
                executor.submit(self._process_file, descriptor, cancel_token)
                for descriptor in files
            ]

            for completed, (descriptor, future) in enumerate(zip(files, futures), start=1):
                result = future.result()
                self._apply(descriptor, result)
                # The file itself finished; stop before reporting further work
                check_cancelled(cancel_token, "Fingerprinting was cancelled")

                yield ProgressEvent(
                    phase="fingerprint",
                    completed=completed,
                    total=total,
                    path=str(descriptor.path),
                    error=descriptor.error,
                )
        finally:
            for future in futures:
                future.cancel()
            executor.shutdown(wait=True)

        failed = sum(1 for f in files if f.error)
        undecodable = sum(1 for f in files if f.decode_error)
        logger.info(
            f"Fingerprinted {total - failed} files, {failed} failed, "
            f"{undecodable} without a visual fingerprint"
        )

    def run_all(
        self,
        files: Sequence[FileDescriptor],
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[FileDescriptor]:
        """Drain ``run`` and return the corpus."""
        for _event in self.run(files, cancel_token):
            pass
        return list(files)

    def _process_file(
        self, descriptor: FileDescriptor, cancel_token: Optional[CancellationToken]
    ) -> _FileResult:
        check_cancelled(cancel_token, "Fingerprinting was cancelled")

        result = _FileResult()
        try:
            result.sha256_hash = self.content_hasher.compute(descriptor.path, cancel_token)
        except NotFoundError as e:
            result.error = str(e)
            return result
        except OSError as e:
            result.error = f"Error reading file: {e}"
            return result

        if self.enable_visual_matching and descriptor.media_type == MediaType.IMAGE:
            result.visual = True
            details = self.perceptual_engine.compute_details(
                descriptor.path, descriptor.media_type
            )
            result.perceptual_hash, result.size, result.decode_error = details
        return result

    def _apply(self, descriptor: FileDescriptor, result: _FileResult) -> None:
        if result.error is not None:
            descriptor.error = result.error
            logger.warning(f"Skipping {descriptor.path}: {result.error}")
            return

        descriptor.sha256_hash = result.sha256_hash
        if result.visual:
            descriptor.perceptual_hash = result.perceptual_hash
            descriptor.decode_error = result.decode_error
            descriptor.is_thumbnail = is_potential_thumbnail(
                descriptor.file_name,
                result.size,
                self.perceptual_engine.thumbnail_max_dimension,
            )

