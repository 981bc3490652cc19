"""Public error types for the shiny hunt tracker."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for all tracker errors."""


class ConfigLoadError(TrackerError):
    """Raised when the configuration file cannot be read, parsed or validated."""


class SourceNotConfiguredError(TrackerError):
    """Raised when an endpoint's backing path is missing from the configuration."""


class SourceNotFoundError(TrackerError):
    """Raised when a configured file does not exist on disk."""


class SourceInvalidError(TrackerError, ValueError):
    """Raised when a source cannot be read or its content fails validation."""


class SectionDisabledError(TrackerError):
    """Raised when a feature section is switched off in the configuration."""
