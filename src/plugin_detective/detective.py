"""
Plugin Detective - Orchestrator

Runs one diagnostic scan: validates the project, runs static analysis and
log detection side by side, then merges, deduplicates and annotates the
findings into a DiagnosticResult.
"""
from __future__ import annotations

import json
import logging
import time
import traceback
from concurrent.futures import Future, ThreadPoolExecutor, wait
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from . import __version__
from .analysis import StaticAnalyzer, parse_manifest_plugins
from .config import DetectiveConfig
from .constants import (
    DART_VERSION_COMMAND,
    DART_VERSION_PATTERN,
    DIAGNOSTIC_SCAN_SENTINEL,
    FLUTTER_MANIFEST_MARKER,
    FLUTTER_VERSION_COMMAND,
    MANIFEST_FILE,
    RUNTIME_DETECTOR_SENTINEL,
    STATIC_ANALYZER_SENTINEL,
    UNKNOWN_VERSION,
)
from .errors import ManifestError, ProjectValidationError, ScanTimeoutError
from .models import (
    DiagnosticResult,
    DiagnosticStatus,
    Issue,
    IssueSeverity,
    IssueType,
    deduplicate_issues,
    determine_status,
    truncate_to_ms,
)
from .resolution import generate_guide
from .runtime import IssueBroadcaster, RuntimeDetector, closed_broadcaster
from .utils import run_command

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "plugin_detective"

ToolchainProbe = Callable[[Path], Dict[str, str]]


class ScanPhase(str, Enum):
    NOT_STARTED = "not_started"
    VALIDATING = "validating"
    ANALYZING = "analyzing"
    AGGREGATING = "aggregating"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Detective:
    """Entry point for diagnosing MissingPluginException causes in a project.

    ``toolchain_probe`` reports the Flutter and Dart versions; it defaults to
    asking the installed ``flutter``/``dart`` executables.
    """

    def __init__(
        self,
        config: Optional[DetectiveConfig] = None,
        static_analyzer: Optional[StaticAnalyzer] = None,
        runtime_detector: Optional[RuntimeDetector] = None,
        toolchain_probe: Optional[ToolchainProbe] = None,
    ) -> None:
        self.config = config or DetectiveConfig()
        self.static_analyzer = static_analyzer or StaticAnalyzer()
        self.runtime_detector = runtime_detector or RuntimeDetector(self.config)
        self.toolchain_probe = toolchain_probe or probe_toolchain

    def diagnose(
        self,
        project_path: Optional[Union[str, Path]] = None,
        include_resolutions: bool = True,
    ) -> DiagnosticResult:
        """Scan ``project_path`` (default: the working directory).

        Never raises: a scan that cannot complete returns a ``failed`` result
        holding a single ``diagnostic_scan`` issue.
        """
        with _package_log_level(logging.DEBUG if self.config.verbose_logging else None):
            return self._diagnose(project_path, include_resolutions)

    def _diagnose(
        self,
        project_path: Optional[Union[str, Path]],
        include_resolutions: bool,
    ) -> DiagnosticResult:
        started = time.monotonic()
        timestamp = datetime.now(timezone.utc)
        root = Path(project_path) if project_path is not None else Path.cwd()
        phase = ScanPhase.NOT_STARTED
        try:
            phase = self._enter(ScanPhase.VALIDATING, root)
            validate_project(root)
            scanned_plugins = self._scanned_plugins(root)

            phase = self._enter(ScanPhase.ANALYZING, root)
            static_issues, runtime_issues = self._run_pipelines(root)

            phase = self._enter(ScanPhase.AGGREGATING, root)
            issues = deduplicate_issues(static_issues + runtime_issues)
            if include_resolutions and self.config.enable_resolution_guides:
                issues = _attach_guides(issues)
            status = determine_status(issues)
            # Outside max_scan_duration; an unavailable toolchain is "Unknown"
            toolchain = self._probe_toolchain(root)
        except Exception as exc:
            failed_in = phase
            self._enter(ScanPhase.FAILED, root)
            logger.warning("Diagnostic scan of %s failed: %s", root, exc)
            return DiagnosticResult(
                status=DiagnosticStatus.FAILED,
                issues=[
                    Issue(
                        plugin_name=DIAGNOSTIC_SCAN_SENTINEL,
                        issue_type=IssueType.INITIALIZATION_FAILURE,
                        severity=IssueSeverity.CRITICAL,
                        description=f"Diagnostic scan failed: {exc}",
                        affected_platforms=list(self.config.include_platforms),
                        detected_at=timestamp,
                        stack_trace=traceback.format_exc(),
                        additional_context={"error": str(exc), "phase": failed_in.value},
                    )
                ],
                scanned_plugins=[],
                scan_duration=_elapsed(started),
                scan_timestamp=timestamp,
                project_path=str(root),
                additional_metadata=self._metadata(),
            )

        self._enter(ScanPhase.SUCCEEDED, root)
        return DiagnosticResult(
            status=status,
            issues=issues,
            scanned_plugins=scanned_plugins,
            scan_duration=_elapsed(started),
            scan_timestamp=timestamp,
            project_path=str(root),
            flutter_version=toolchain.get("flutter_version"),
            dart_version=toolchain.get("dart_version"),
            additional_metadata=self._metadata(),
        )

    def monitor_runtime(self) -> IssueBroadcaster:
        if not self.config.enable_runtime_detection:
            return closed_broadcaster()
        return self.runtime_detector.monitor()

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _enter(self, phase: ScanPhase, root: Path) -> ScanPhase:
        logger.debug("Scan of %s: %s", root, phase.value)
        return phase

    def _scanned_plugins(self, root: Path) -> List[str]:
        # An unparseable manifest is reported by the analyzer itself
        try:
            declared = parse_manifest_plugins(root)
        except ManifestError as exc:
            logger.debug("Cannot list plugins for %s: %s", root, exc)
            return []
        excluded = set(self.config.exclude_plugins)
        return [name for name in declared if name not in excluded]

    def _probe_toolchain(self, root: Path) -> Dict[str, str]:
        try:
            toolchain = self.toolchain_probe(root)
        except Exception as exc:
            logger.warning("Toolchain probe failed for %s: %s", root, exc)
            toolchain = {}
        return {
            "flutter_version": toolchain.get("flutter_version") or UNKNOWN_VERSION,
            "dart_version": toolchain.get("dart_version") or UNKNOWN_VERSION,
        }

    def _run_pipelines(self, root: Path) -> Tuple[List[Issue], List[Issue]]:
        # The deadline covers the analyzer and the detector only
        started = time.monotonic()
        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="plugin-detective")
        try:
            static_future: Optional[Future] = None
            runtime_future: Optional[Future] = None
            if self.config.enable_static_analysis:
                static_future = pool.submit(self._run_static_analysis, root)
            if self.config.enable_runtime_detection:
                runtime_future = pool.submit(self._run_runtime_detection, root)
            futures = [f for f in (static_future, runtime_future) if f is not None]
            if futures:
                timeout = None
                if self.config.max_scan_duration is not None:
                    timeout = max(0.0, self.config.max_scan_duration - (time.monotonic() - started))
                _, pending = wait(futures, timeout=timeout)
                if pending:
                    raise ScanTimeoutError(
                        f"Scan did not finish within {self.config.max_scan_duration:g} seconds"
                    )
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        static_issues = static_future.result() if static_future is not None else []
        runtime_issues = runtime_future.result() if runtime_future is not None else []
        return static_issues, runtime_issues

    def _run_static_analysis(self, root: Path) -> List[Issue]:
        try:
            return self.static_analyzer.analyze(
                root,
                include_platforms=self.config.include_platforms,
                exclude_plugins=self.config.exclude_plugins,
            )
        except Exception as exc:
            logger.warning("Static analyzer raised for %s: %s", root, exc)
            return [
                _pipeline_failure(
                    STATIC_ANALYZER_SENTINEL,
                    IssueSeverity.HIGH,
                    f"Static analysis failed: {exc}",
                    list(self.config.include_platforms),
                    exc,
                )
            ]

    def _run_runtime_detection(self, root: Path) -> List[Issue]:
        try:
            return self.runtime_detector.detect(
                root,
                include_platforms=self.config.include_platforms,
                exclude_plugins=self.config.exclude_plugins,
            )
        except Exception as exc:
            logger.warning("Runtime detector raised for %s: %s", root, exc)
            return [
                _pipeline_failure(
                    RUNTIME_DETECTOR_SENTINEL,
                    IssueSeverity.MEDIUM,
                    f"Runtime detection failed: {exc}",
                    list(self.config.include_platforms),
                    exc,
                )
            ]

    def _metadata(self) -> Dict[str, Any]:
        return {
            "tool_version": __version__,
            "platforms": list(self.config.include_platforms),
            "excluded_plugins": list(self.config.exclude_plugins),
            "static_analysis": self.config.enable_static_analysis,
            "runtime_detection": self.config.enable_runtime_detection,
            "performance_mode": self.config.performance_mode,
        }


def validate_project(root: Path) -> None:
    """Raise ProjectValidationError unless ``root`` holds a Flutter manifest."""
    manifest = root / MANIFEST_FILE
    if not manifest.is_file():
        raise ProjectValidationError(
            f"No {MANIFEST_FILE} found at {root}. "
            "Please ensure you are running this from a Flutter project directory."
        )
    content = manifest.read_text(encoding="utf-8", errors="replace")
    if FLUTTER_MANIFEST_MARKER not in content:
        raise ProjectValidationError(
            f"The {MANIFEST_FILE} at {root} does not appear to be a Flutter project."
        )


def probe_toolchain(project_root: Path) -> Dict[str, str]:
    """Flutter and Dart versions reported by the installed tools."""
    flutter_version = UNKNOWN_VERSION
    dart_version = UNKNOWN_VERSION
    machine = run_command(list(FLUTTER_VERSION_COMMAND), cwd=project_root)
    if machine:
        info = _parse_machine_output(machine)
        flutter_version = str(info.get("frameworkVersion") or UNKNOWN_VERSION)
        dart_version = str(info.get("dartSdkVersion") or UNKNOWN_VERSION)
    if dart_version == UNKNOWN_VERSION:
        output = run_command(list(DART_VERSION_COMMAND))
        match = DART_VERSION_PATTERN.search(output or "")
        if match:
            dart_version = match.group(1)
    return {"flutter_version": flutter_version, "dart_version": dart_version}


def _parse_machine_output(output: str) -> Dict[str, Any]:
    # flutter may print lock/upgrade notices ahead of the JSON document
    start = output.find("{")
    if start < 0:
        return {}
    try:
        data = json.loads(output[start:])
    except json.JSONDecodeError:
        logger.debug("Unparseable flutter --version --machine output")
        return {}
    return data if isinstance(data, dict) else {}


def _attach_guides(issues: List[Issue]) -> List[Issue]:
    resolved: List[Issue] = []
    for issue in issues:
        try:
            resolved.append(issue.with_resolution_steps(generate_guide(issue)))
        except Exception as exc:
            logger.warning(
                "Failed to generate resolution guide for %s: %s", issue.plugin_name, exc
            )
            resolved.append(issue)
    return resolved


def _pipeline_failure(
    sentinel: str,
    severity: IssueSeverity,
    description: str,
    platforms: List[str],
    exc: Exception,
) -> Issue:
    return Issue(
        plugin_name=sentinel,
        issue_type=IssueType.INITIALIZATION_FAILURE,
        severity=severity,
        description=description,
        affected_platforms=platforms,
        detected_at=datetime.now(timezone.utc),
        additional_context={"error": str(exc)},
    )


@contextmanager
def _package_log_level(level: Optional[int]) -> Iterator[None]:
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    previous = package_logger.level
    if level is not None:
        package_logger.setLevel(level)
    try:
        yield
    finally:
        package_logger.setLevel(previous)


def _elapsed(started: float) -> timedelta:
    return truncate_to_ms(timedelta(seconds=time.monotonic() - started))
