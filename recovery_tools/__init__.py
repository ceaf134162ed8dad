"""
recovery-tools: deduplication and scene clustering for recovered photo libraries.
"""

from .version import __version__

__all__ = ["__version__"]
