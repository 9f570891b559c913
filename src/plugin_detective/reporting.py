from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from .models import (
    DiagnosticResult,
    DiagnosticStatus,
    Issue,
    IssueSeverity,
    ResolutionAction,
    ResolutionStep,
)
from .utils import redact_home

JSON_REPORT_NAME = "plugin_detective.json"
MARKDOWN_REPORT_NAME = "plugin_detective_report.md"

STATUS_EMOJI = {
    DiagnosticStatus.HEALTHY: "✅",
    DiagnosticStatus.WARNING: "⚠️",
    DiagnosticStatus.ERROR: "❌",
    DiagnosticStatus.FAILED: "💥",
}

SEVERITY_EMOJI = {
    IssueSeverity.CRITICAL: "🚨",
    IssueSeverity.HIGH: "❌",
    IssueSeverity.MEDIUM: "⚠️",
    IssueSeverity.LOW: "ℹ️",
}


def render_console(result: DiagnosticResult, show_fix: bool = True, verbose: bool = False) -> str:
    lines: List[str] = []
    lines.append("🔍 Flutter Plugin Diagnostic Results")
    lines.append("=" * 50)
    lines.append("📊 Summary:")
    lines.append(f"  Status: {STATUS_EMOJI[result.status]} {result.status.value.upper()}")
    lines.append(f"  Scanned plugins: {len(result.scanned_plugins)}")
    lines.append(f"  Issues found: {len(result.issues)}")
    lines.append(f"  Scan duration: {_duration_ms(result)}ms")
    if verbose:
        lines.append(f"  Project path: {_display_path(result.project_path)}")
        lines.append(f"  Flutter version: {result.flutter_version or 'Unknown'}")
        lines.append(f"  Dart version: {result.dart_version or 'Unknown'}")
    lines.append("")

    if not result.issues:
        lines.append("✅ All plugins are properly configured!")
        return "\n".join(lines) + "\n"

    for severity, issues in result.issues_by_severity.items():
        lines.append(
            f"{SEVERITY_EMOJI[severity]} {severity.value.upper()} ISSUES ({len(issues)}):"
        )
        for issue in issues:
            lines.append(f"  • {issue.plugin_name}")
            lines.append(f"    {issue.description}")
            if issue.affected_platforms:
                lines.append(f"    Platforms: {', '.join(issue.affected_platforms)}")
            if verbose and issue.stack_trace:
                lines.append("    Stack trace:")
                for frame in issue.stack_trace.splitlines():
                    lines.append(f"      {frame.strip()}")
            steps = _steps_for(issue) if show_fix else []
            if steps:
                lines.append("    💡 Resolution:")
                for index, step in enumerate(steps, start=1):
                    suffix = " (optional)" if step.is_optional else ""
                    lines.append(f"       {index}. {step.title}{suffix}")
                    if step.command:
                        label = "Open" if step.action is ResolutionAction.OPEN_URL else "Run"
                        lines.append(f"          {label}: {step.command}")
                    elif step.file_path:
                        lines.append(f"          Edit: {step.file_path}")
            lines.append("")

    if show_fix:
        lines.append("💡 Run with --no-fix to hide resolution guides")
    else:
        lines.append("💡 Run with --fix to show resolution guides")
    return "\n".join(lines) + "\n"


def render_json(result: DiagnosticResult) -> str:
    return json.dumps(result.to_dict(), indent=2, sort_keys=True, ensure_ascii=False)


def render_markdown(result: DiagnosticResult, show_fix: bool = True) -> str:
    lines: List[str] = []
    lines.append("# Flutter Plugin Diagnostic Report")
    lines.append("")
    lines.append("## Summary")
    lines.append("")
    lines.append("| Metric | Value |")
    lines.append("|--------|-------|")
    lines.append(f"| Status | {result.status.value.upper()} |")
    lines.append(f"| Scanned Plugins | {len(result.scanned_plugins)} |")
    lines.append(f"| Issues Found | {len(result.issues)} |")
    lines.append(f"| Scan Duration | {_duration_ms(result)}ms |")
    if result.project_path:
        lines.append(f"| Project | `{_display_path(result.project_path)}` |")
    if result.flutter_version:
        lines.append(f"| Flutter | {result.flutter_version} |")
    if result.dart_version:
        lines.append(f"| Dart | {result.dart_version} |")
    lines.append("")
    lines.append(result.summary)
    lines.append("")

    if not result.issues:
        lines.append("✅ **All plugins are properly configured!**")
        return "\n".join(lines) + "\n"

    for severity, issues in result.issues_by_severity.items():
        lines.append(f"## {severity.value.upper()} Issues ({len(issues)})")
        lines.append("")
        for issue in issues:
            lines.append(f"### {issue.plugin_name}")
            lines.append("")
            lines.append(f"**Description:** {issue.description}")
            lines.append("")
            if issue.affected_platforms:
                lines.append(f"**Affected Platforms:** {', '.join(issue.affected_platforms)}")
                lines.append("")
            steps = _steps_for(issue) if show_fix else []
            if steps:
                lines.append("**Resolution Steps:**")
                lines.append("")
                for index, step in enumerate(steps, start=1):
                    optional = " _(optional)_" if step.is_optional else ""
                    lines.append(f"{index}. **{step.title}**{optional}")
                    lines.append(f"   {step.description}")
                    if step.command:
                        lines.append("   ```bash")
                        lines.append(f"   {step.command}")
                        lines.append("   ```")
                    if step.file_path:
                        lines.append(f"   File: `{step.file_path}`")
                    lines.append("")
    return "\n".join(lines).rstrip("\n") + "\n"


def write_json_report(output_dir: Path, result: DiagnosticResult) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / JSON_REPORT_NAME
    with output_path.open("w", encoding="utf-8") as fp:
        json.dump(result.to_dict(), fp, indent=2, sort_keys=True, ensure_ascii=False)
        fp.write("\n")
    return output_path


def write_markdown_report(
    output_dir: Path, result: DiagnosticResult, show_fix: bool = True
) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    report_path = output_dir / MARKDOWN_REPORT_NAME
    report_path.write_text(render_markdown(result, show_fix), encoding="utf-8")
    return report_path


def exit_code_for(result: DiagnosticResult) -> int:
    return 0 if result.status is DiagnosticStatus.HEALTHY else 1


def _steps_for(issue: Issue) -> List[ResolutionStep]:
    # Guides are attached by Detective.diagnose; none attached means none shown
    return issue.resolution_steps or []


def _duration_ms(result: DiagnosticResult) -> int:
    return result.scan_duration // timedelta(milliseconds=1)


def _display_path(path: Optional[str]) -> str:
    return redact_home(path) if path else "n/a"
