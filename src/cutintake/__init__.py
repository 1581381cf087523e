"""cutintake – normalisation pipeline for cut-panel part lists."""

from ._version import __version__

__all__ = [
    "__version__",
    "cli",
    "config",
    "extraction",
    "utils",
]
