"""Shiny hunt tracker.

Read-only bridge from counter and image files on disk to small JSON endpoints.
"""

from __future__ import annotations

from .errors import (
    ConfigLoadError,
    SectionDisabledError,
    SourceInvalidError,
    SourceNotConfiguredError,
    SourceNotFoundError,
    TrackerError,
)

__all__ = [
    "ConfigLoadError",
    "SectionDisabledError",
    "SourceInvalidError",
    "SourceNotConfiguredError",
    "SourceNotFoundError",
    "TrackerError",
]
