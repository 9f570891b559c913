"""Scan configuration."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .constants import SUPPORTED_PLATFORMS


@dataclass(frozen=True)
class DetectiveConfig:
    """Read-only settings threaded through one scan.

    ``max_scan_duration`` is in seconds; ``None`` disables the deadline.
    ``log_directory`` replaces Flutter's conventional log directory, mostly
    useful for CI and tests.
    """

    enable_runtime_detection: bool = True
    enable_static_analysis: bool = True
    enable_resolution_guides: bool = True
    performance_mode: bool = False
    max_scan_duration: Optional[float] = 30.0
    include_platforms: Tuple[str, ...] = SUPPORTED_PLATFORMS
    exclude_plugins: Tuple[str, ...] = ()
    verbose_logging: bool = False
    log_directory: Optional[Path] = None

    def __post_init__(self) -> None:
        # Accept any iterable from callers but store tuples
        object.__setattr__(self, "include_platforms", tuple(self.include_platforms))
        object.__setattr__(self, "exclude_plugins", tuple(self.exclude_plugins))
        unknown = [p for p in self.include_platforms if p not in SUPPORTED_PLATFORMS]
        if unknown:
            raise ValueError(
                f"Unsupported platform(s): {', '.join(unknown)}. "
                f"Expected any of: {', '.join(SUPPORTED_PLATFORMS)}"
            )
        if self.max_scan_duration is not None and self.max_scan_duration <= 0:
            raise ValueError("max_scan_duration must be positive or None")
        if self.log_directory is not None and not isinstance(self.log_directory, Path):
            object.__setattr__(self, "log_directory", Path(self.log_directory))
