"""
Flutter Plugin Detective

Finds the usual causes of MissingPluginException in a Flutter project:
plugins declared in pubspec.yaml that never made it into a platform's
generated registrant, missing build configuration, and runtime failures
recorded in Flutter's log files.
"""
from __future__ import annotations

__version__ = "0.1.0"

from .config import DetectiveConfig
from .detective import Detective
from .models import (
    DiagnosticResult,
    DiagnosticStatus,
    Issue,
    IssueSeverity,
    IssueType,
    ResolutionAction,
    ResolutionStep,
)
from .resolution import generate_guide

__all__ = [
    "__version__",
    "Detective",
    "DetectiveConfig",
    "DiagnosticResult",
    "DiagnosticStatus",
    "Issue",
    "IssueSeverity",
    "IssueType",
    "ResolutionAction",
    "ResolutionStep",
    "generate_guide",
]
