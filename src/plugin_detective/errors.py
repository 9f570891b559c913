"""Exceptions raised inside the diagnostic pipeline.

None of these escape ``Detective.diagnose``: they are converted to issues at
the analyzer, detector and orchestrator boundaries.
"""
from __future__ import annotations


class DetectiveError(Exception):
    """Base class for plugin detective failures."""


class ProjectValidationError(DetectiveError):
    """The target directory is not a Flutter project."""


class ManifestError(DetectiveError):
    """pubspec.yaml exists but cannot be read or parsed."""


class ScanTimeoutError(DetectiveError):
    """The scan did not finish within ``max_scan_duration``."""
