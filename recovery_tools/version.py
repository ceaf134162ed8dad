"""Version reporting for recovery-tools.

The version shown to users combines the package version with the short git
revision of the checkout, which matters when comparing scan reports produced
by development builds.
"""

import subprocess
from pathlib import Path
from typing import Optional

__version__ = "0.3.0"

_REPO_ROOT = Path(__file__).resolve().parent.parent


def get_git_hash(repo_dir: Optional[Path] = None) -> Optional[str]:
    """Return the short (7 char) commit hash of the checkout, if any.

    Args:
        repo_dir: Directory to query (defaults to the package's parent)

    Returns:
        Short git hash, or None outside a git checkout or without git.
    """
    try:
        completed = subprocess.run(
            ["git", "rev-parse", "--short=7", "HEAD"],
            cwd=repo_dir or _REPO_ROOT,
            capture_output=True,
            text=True,
            check=True,
            timeout=2,
        )
    except (
        subprocess.CalledProcessError,
        subprocess.TimeoutExpired,
        FileNotFoundError,
    ):
        return None

    revision = completed.stdout.strip()
    return revision or None


def get_version_string() -> str:
    """Version string such as ``0.3.0`` or ``0.3.0 (git:abc1234)``."""
    revision = get_git_hash()
    if revision is None:
        return __version__
    return f"{__version__} (git:{revision})"
