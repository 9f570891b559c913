"""
Tests for reporting.py - Console, JSON and markdown output structure.

These tests verify that the renderers group issues by severity, show or
hide resolution guides, and that the written report files are well formed.
"""

import json
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import jsonschema

from plugin_detective.models import (
    DiagnosticResult,
    DiagnosticStatus,
    Issue,
    IssueSeverity,
    IssueType,
    ResolutionAction,
    ResolutionStep,
)
from plugin_detective.reporting import (
    JSON_REPORT_NAME,
    MARKDOWN_REPORT_NAME,
    exit_code_for,
    render_console,
    render_json,
    render_markdown,
    write_json_report,
    write_markdown_report,
)


SCHEMA_PATH = Path(__file__).resolve().parent.parent / "schema_v1.json"


def _create_result(issues=None, status=None) -> DiagnosticResult:
    issues = issues if issues is not None else [
        Issue(
            plugin_name="android_registrant",
            issue_type=IssueType.MISSING_REGISTRATION,
            severity=IssueSeverity.CRITICAL,
            description="GeneratedPluginRegistrant.java is missing for Android platform",
            affected_platforms=["android"],
            detected_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            stack_trace="#0 main (package:demo/main.dart:1:1)",
        ),
        Issue(
            plugin_name="dependency_management",
            issue_type=IssueType.DEPENDENCIES_MISSING,
            severity=IssueSeverity.MEDIUM,
            description='pubspec.lock file is missing. Run "flutter pub get" to resolve dependencies.',
            affected_platforms=["all"],
            resolution_steps=[
                ResolutionStep(
                    title="Get Dependencies",
                    description="Download the packages listed in pubspec.yaml",
                    action=ResolutionAction.RUN_COMMAND,
                    command="flutter pub get",
                ),
                ResolutionStep(
                    title="Read the docs",
                    description="Dependency management",
                    action=ResolutionAction.OPEN_URL,
                    command="https://dart.dev/tools/pub/cmd/pub-get",
                    is_optional=True,
                ),
            ],
        ),
    ]
    if status is None:
        status = DiagnosticStatus.ERROR if issues else DiagnosticStatus.HEALTHY
    return DiagnosticResult(
        status=status,
        issues=issues,
        scanned_plugins=["camera"],
        scan_duration=timedelta(milliseconds=42),
        scan_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        project_path="/work/demo",
        flutter_version="3.22.0",
        dart_version="3.4.0",
        additional_metadata={"tool_version": "0.1.0"},
    )


# =============================================================================
# CONSOLE
# =============================================================================


class TestRenderConsole:
    """Tests for the human-readable console report."""

    def test_summary_block(self):
        output = render_console(_create_result())
        assert output.startswith("🔍 Flutter Plugin Diagnostic Results\n")
        assert "  Status: ❌ ERROR" in output
        assert "  Scanned plugins: 1" in output
        assert "  Issues found: 2" in output
        assert "  Scan duration: 42ms" in output

    def test_groups_most_severe_first(self):
        output = render_console(_create_result())
        assert output.index("🚨 CRITICAL ISSUES (1):") < output.index("⚠️ MEDIUM ISSUES (1):")
        assert "HIGH ISSUES" not in output

    def test_resolution_steps_shown(self):
        output = render_console(_create_result())
        assert "    💡 Resolution:" in output
        assert "       1. Get Dependencies" in output
        assert "          Run: flutter pub get" in output
        assert "       2. Read the docs (optional)" in output
        assert "          Open: https://dart.dev/tools/pub/cmd/pub-get" in output
        assert output.rstrip().endswith("💡 Run with --no-fix to hide resolution guides")

    def test_issue_without_steps_renders_no_guide(self, monkeypatch):
        def broken_guide(issue):
            raise KeyError(issue.issue_type)

        monkeypatch.setattr("plugin_detective.resolution.generate_guide", broken_guide)
        output = render_console(_create_result())
        report = render_markdown(_create_result())
        # Only the dependency issue carries steps
        assert output.count("💡 Resolution:") == 1
        assert "flutter clean" not in output
        assert report.count("**Resolution Steps:**") == 1

    def test_no_fix_hides_guides(self):
        output = render_console(_create_result(), show_fix=False)
        assert "Resolution:" not in output
        assert output.rstrip().endswith("💡 Run with --fix to show resolution guides")

    def test_verbose_adds_versions_and_stack_traces(self):
        quiet = render_console(_create_result())
        verbose = render_console(_create_result(), verbose=True)
        assert "Flutter version" not in quiet
        assert "  Flutter version: 3.22.0" in verbose
        assert "  Dart version: 3.4.0" in verbose
        assert "    Stack trace:" in verbose
        assert "      #0 main (package:demo/main.dart:1:1)" in verbose

    def test_healthy(self):
        output = render_console(_create_result(issues=[]))
        assert "  Status: ✅ HEALTHY" in output
        assert output.rstrip().endswith("✅ All plugins are properly configured!")


# =============================================================================
# JSON
# =============================================================================


class TestRenderJson:
    """Tests for the JSON exchange format."""

    def test_sorted_and_indented(self):
        text = render_json(_create_result())
        data = json.loads(text)
        assert list(data) == sorted(data)
        assert text.startswith('{\n  "additional_metadata"')
        assert data["scan_duration_ms"] == 42
        assert data["issues"][0]["resolution_steps"] is None
        assert data["summary"] == "Found 2 issues: 1 critical, 1 medium priority."

    def test_matches_schema(self):
        schema = json.loads(SCHEMA_PATH.read_text())
        jsonschema.validate(instance=json.loads(render_json(_create_result())), schema=schema)

    def test_round_trip(self):
        result = _create_result()
        assert DiagnosticResult.from_dict(json.loads(render_json(result))) == result


# =============================================================================
# MARKDOWN
# =============================================================================


class TestRenderMarkdown:
    """Tests for the markdown report."""

    def test_structure(self):
        report = render_markdown(_create_result())
        assert report.startswith("# Flutter Plugin Diagnostic Report\n")
        assert "| Metric | Value |" in report
        assert "| Status | ERROR |" in report
        assert "| Scan Duration | 42ms |" in report
        assert "| Flutter | 3.22.0 |" in report
        assert "Found 2 issues: 1 critical, 1 medium priority." in report
        assert "## CRITICAL Issues (1)" in report
        assert "### dependency_management" in report
        assert "**Affected Platforms:** all" in report

    def test_commands_in_bash_blocks(self):
        report = render_markdown(_create_result())
        assert "   ```bash\n   flutter pub get\n   ```" in report
        assert "2. **Read the docs** _(optional)_" in report

    def test_no_fix(self):
        report = render_markdown(_create_result(), show_fix=False)
        assert "**Resolution Steps:**" not in report
        assert "```bash" not in report

    def test_healthy(self):
        report = render_markdown(_create_result(issues=[]))
        assert "All 1 plugins are properly configured." in report
        assert report.endswith("✅ **All plugins are properly configured!**\n")

    def test_single_trailing_newline(self):
        assert not render_markdown(_create_result()).endswith("\n\n")


# =============================================================================
# FILES AND EXIT CODES
# =============================================================================


class TestWriteReports:
    """Tests for the report files."""

    def test_json_report(self):
        tmpdir = Path(tempfile.mkdtemp())
        try:
            output_dir = tmpdir / "reports" / "nested"
            path = write_json_report(output_dir, _create_result())
            assert path == output_dir / JSON_REPORT_NAME
            text = path.read_text(encoding="utf-8")
            assert text.endswith("}\n")
            assert json.loads(text)["status"] == "error"
        finally:
            shutil.rmtree(tmpdir)

    def test_markdown_report(self):
        tmpdir = Path(tempfile.mkdtemp())
        try:
            path = write_markdown_report(tmpdir, _create_result(), show_fix=False)
            assert path.name == MARKDOWN_REPORT_NAME
            assert path.read_text(encoding="utf-8") == render_markdown(_create_result(), show_fix=False)
        finally:
            shutil.rmtree(tmpdir)


class TestExitCode:
    """Tests for exit_code_for."""

    def test_healthy_is_zero(self):
        assert exit_code_for(_create_result(issues=[])) == 0

    def test_anything_else_is_one(self):
        for status in (DiagnosticStatus.WARNING, DiagnosticStatus.ERROR, DiagnosticStatus.FAILED):
            assert exit_code_for(_create_result(status=status)) == 1
