"""
Exact-match content fingerprints.

Files are streamed through SHA-256 in fixed-size chunks so memory use stays
bounded regardless of file size. Digests are memoized per path for the
lifetime of one hasher instance (one scan session).
"""

import hashlib
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

from ..core.cancellation import CancellationToken, check_cancelled
from ..core.exceptions import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class ContentHasher:
    """Streaming SHA-256 hasher with a per-session cache."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        """
        Initialize the hasher.

        Args:
            chunk_size: Bytes read per chunk (and per cancellation check)
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    def compute(
        self, path: Path, cancel_token: Optional[CancellationToken] = None
    ) -> str:
        """
        Compute the SHA-256 digest of a file.

        Args:
            path: File to hash
            cancel_token: Optional token, checked once per chunk

        Returns:
            64 character lowercase hex digest

        Raises:
            NotFoundError: If the path is not a readable regular file
            OperationCancelledError: If cancellation was requested mid-stream
        """
        key = str(path)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        path = Path(path)
        if not path.is_file():
            raise NotFoundError(path)

        hash_obj = hashlib.sha256()
        try:
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(self.chunk_size), b""):
                    check_cancelled(cancel_token, f"Hashing cancelled at {path}")
                    hash_obj.update(chunk)
        except (FileNotFoundError, PermissionError, IsADirectoryError) as e:
            raise NotFoundError(path, f"Cannot read {path}: {e}") from e

        digest = hash_obj.hexdigest()
        with self._lock:
            self._cache[key] = digest

        logger.debug(f"sha256 {digest[:12]}... for {path}")
        return digest

    def cached(self, path: Path) -> Optional[str]:
        """Return the memoized digest for ``path`` without touching the disk."""
        with self._lock:
            return self._cache.get(str(path))

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
