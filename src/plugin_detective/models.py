"""
Issue and result model shared by the analyzer, the log detector, the
resolution guide generator and the reporting layer.

The ``to_dict`` / ``from_dict`` pairs define the JSON exchange format
described by ``schema_v1.json``.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class IssueSeverity(str, Enum):
    """Triage level, ordered from most to least severe."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = (
    IssueSeverity.CRITICAL,
    IssueSeverity.HIGH,
    IssueSeverity.MEDIUM,
    IssueSeverity.LOW,
)


class IssueType(str, Enum):
    MISSING_REGISTRATION = "missing_registration"
    MISSING_DECLARATION = "missing_declaration"
    VERSION_MISMATCH = "version_mismatch"
    PLATFORM_CONFIG_MISSING = "platform_config_missing"
    INITIALIZATION_FAILURE = "initialization_failure"
    METHOD_CHANNEL_NOT_FOUND = "method_channel_not_found"
    DEPENDENCIES_MISSING = "dependencies_missing"
    BUILD_CONFIG_ISSUE = "build_config_issue"


class DiagnosticStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"
    FAILED = "failed"


class ResolutionAction(str, Enum):
    RUN_COMMAND = "run_command"
    CREATE_FILE = "create_file"
    MODIFY_FILE = "modify_file"
    DELETE_FILE = "delete_file"
    SHOW_INFO = "show_info"
    OPEN_URL = "open_url"


@dataclass(frozen=True)
class ResolutionStep:
    """One remediation action.

    ``command`` carries the shell command for ``run_command`` steps and the
    URL for ``open_url`` steps; ``file_path``/``file_content`` are used by the
    file actions.
    """

    title: str
    description: str
    action: ResolutionAction
    command: Optional[str] = None
    file_path: Optional[str] = None
    file_content: Optional[str] = None
    is_optional: bool = False
    platform: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "action": self.action.value,
            "command": self.command,
            "file_path": self.file_path,
            "file_content": self.file_content,
            "is_optional": self.is_optional,
            "platform": self.platform,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolutionStep":
        return cls(
            title=data["title"],
            description=data["description"],
            action=ResolutionAction(data["action"]),
            command=data.get("command"),
            file_path=data.get("file_path"),
            file_content=data.get("file_content"),
            is_optional=bool(data.get("is_optional", False)),
            platform=data.get("platform"),
        )


@dataclass(frozen=True)
class Issue:
    """A single detected problem.

    ``plugin_name`` is either a declared plugin or a sentinel such as
    ``android_registrant`` for project-level findings. Issues are never
    modified after creation; ``with_resolution_steps`` returns a copy.
    """

    plugin_name: str
    issue_type: IssueType
    severity: IssueSeverity
    description: str
    affected_platforms: List[str]
    detected_at: Optional[datetime] = None
    stack_trace: Optional[str] = None
    additional_context: Dict[str, Any] = field(default_factory=dict)
    resolution_steps: Optional[List[ResolutionStep]] = None

    @property
    def dedup_key(self) -> Tuple[str, IssueType, str]:
        # Severity and platforms are not part of the identity
        return (self.plugin_name, self.issue_type, self.description)

    def with_resolution_steps(self, steps: List[ResolutionStep]) -> "Issue":
        return replace(self, resolution_steps=list(steps))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plugin_name": self.plugin_name,
            "issue_type": self.issue_type.value,
            "severity": self.severity.value,
            "description": self.description,
            "affected_platforms": list(self.affected_platforms),
            "detected_at": self.detected_at.isoformat() if self.detected_at else None,
            "stack_trace": self.stack_trace,
            "additional_context": dict(self.additional_context),
            "resolution_steps": (
                [step.to_dict() for step in self.resolution_steps]
                if self.resolution_steps is not None
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        detected_at = data.get("detected_at")
        steps = data.get("resolution_steps")
        return cls(
            plugin_name=data["plugin_name"],
            issue_type=IssueType(data["issue_type"]),
            severity=IssueSeverity(data["severity"]),
            description=data["description"],
            affected_platforms=list(data["affected_platforms"]),
            detected_at=datetime.fromisoformat(detected_at) if detected_at else None,
            stack_trace=data.get("stack_trace"),
            additional_context=dict(data.get("additional_context") or {}),
            resolution_steps=(
                [ResolutionStep.from_dict(step) for step in steps]
                if steps is not None
                else None
            ),
        )


@dataclass(frozen=True)
class DiagnosticResult:
    """Aggregated outcome of one ``Detective.diagnose`` call."""

    status: DiagnosticStatus
    issues: List[Issue]
    scanned_plugins: List[str]
    scan_duration: timedelta
    scan_timestamp: Optional[datetime] = None
    project_path: Optional[str] = None
    flutter_version: Optional[str] = None
    dart_version: Optional[str] = None
    additional_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_issues(self) -> bool:
        return bool(self.issues)

    @property
    def has_critical_issues(self) -> bool:
        return any(issue.severity is IssueSeverity.CRITICAL for issue in self.issues)

    @property
    def issues_by_severity(self) -> Dict[IssueSeverity, List[Issue]]:
        """Issues grouped by severity, most severe group first."""
        grouped: Dict[IssueSeverity, List[Issue]] = {}
        for severity in _SEVERITY_ORDER:
            matching = [issue for issue in self.issues if issue.severity is severity]
            if matching:
                grouped[severity] = matching
        return grouped

    @property
    def issues_by_plugin(self) -> Dict[str, List[Issue]]:
        grouped: Dict[str, List[Issue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.plugin_name, []).append(issue)
        return grouped

    @property
    def issues_by_type(self) -> Dict[IssueType, List[Issue]]:
        grouped: Dict[IssueType, List[Issue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.issue_type, []).append(issue)
        return grouped

    @property
    def summary(self) -> str:
        if not self.issues:
            return f"All {len(self.scanned_plugins)} plugins are properly configured."
        parts = [
            f"{len(issues)} {severity.value}"
            for severity, issues in self.issues_by_severity.items()
        ]
        return f"Found {len(self.issues)} issues: {', '.join(parts)} priority."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "issues": [issue.to_dict() for issue in self.issues],
            "scanned_plugins": list(self.scanned_plugins),
            "scan_duration_ms": _duration_to_ms(self.scan_duration),
            "scan_timestamp": self.scan_timestamp.isoformat() if self.scan_timestamp else None,
            "project_path": self.project_path,
            "flutter_version": self.flutter_version,
            "dart_version": self.dart_version,
            "additional_metadata": dict(self.additional_metadata),
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiagnosticResult":
        timestamp = data.get("scan_timestamp")
        return cls(
            status=DiagnosticStatus(data["status"]),
            issues=[Issue.from_dict(item) for item in data["issues"]],
            scanned_plugins=list(data["scanned_plugins"]),
            scan_duration=timedelta(milliseconds=int(data["scan_duration_ms"])),
            scan_timestamp=datetime.fromisoformat(timestamp) if timestamp else None,
            project_path=data.get("project_path"),
            flutter_version=data.get("flutter_version"),
            dart_version=data.get("dart_version"),
            additional_metadata=dict(data.get("additional_metadata") or {}),
        )


def _duration_to_ms(duration: timedelta) -> int:
    return duration // timedelta(milliseconds=1)


def truncate_to_ms(duration: timedelta) -> timedelta:
    """Drop sub-millisecond precision so the JSON round trip is exact."""
    return timedelta(milliseconds=_duration_to_ms(duration))


def deduplicate_issues(issues: List[Issue]) -> List[Issue]:
    """Keep the first issue for every ``dedup_key``, preserving order."""
    seen = set()
    unique: List[Issue] = []
    for issue in issues:
        key = issue.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(issue)
    return unique


def determine_status(issues: List[Issue]) -> DiagnosticStatus:
    if not issues:
        return DiagnosticStatus.HEALTHY
    if any(
        issue.severity in (IssueSeverity.CRITICAL, IssueSeverity.HIGH)
        for issue in issues
    ):
        return DiagnosticStatus.ERROR
    return DiagnosticStatus.WARNING
