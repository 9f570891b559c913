"""
Tests for analysis.py - Manifest parsing, registrant extraction and the
per-platform static checks.

These tests build small Flutter project trees on disk and verify the
issues the analyzer derives from them.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Dict

import pytest

from plugin_detective.analysis import (
    StaticAnalyzer,
    declared_plugins,
    extract_registered_plugins,
    is_likely_plugin,
    load_manifest,
    parse_manifest_plugins,
)
from plugin_detective.errors import ManifestError, ProjectValidationError
from plugin_detective.models import IssueSeverity, IssueType


CAMERA_PUBSPEC = """\
name: demo
dependencies:
  flutter:
    sdk: flutter
  camera: ^0.10.0
flutter:
  uses-material-design: true
"""

ANDROID_REGISTRANT = "android/app/src/main/java/io/flutter/plugins/GeneratedPluginRegistrant.java"
IOS_REGISTRANT = "ios/Runner/GeneratedPluginRegistrant.m"


def _write_project(root: Path, files: Dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def _pubspec(*dependencies: str, dev: tuple = ()) -> str:
    lines = ["name: demo", "dependencies:", "  flutter:", "    sdk: flutter"]
    lines.extend(f"  {name}: any" for name in dependencies)
    if dev:
        lines.append("dev_dependencies:")
        lines.extend(f"  {name}: any" for name in dev)
    lines.append("flutter:")
    lines.append("  uses-material-design: true")
    return "\n".join(lines) + "\n"


# =============================================================================
# MANIFEST PARSING
# =============================================================================


class TestDeclaredPlugins:
    """Tests for declared_plugins / parse_manifest_plugins."""

    def test_skips_sdk_dependencies(self):
        manifest = {"dependencies": {"flutter": {"sdk": "flutter"}, "cupertino_icons": "^1.0", "camera": "any"}}
        assert declared_plugins(manifest) == ["camera"]

    def test_dev_dependencies_only_when_plugin_like(self):
        manifest = {
            "dependencies": {"http": "any"},
            "dev_dependencies": {
                "flutter_test": {"sdk": "flutter"},
                "mock_plugin": "any",
                "geolocator": "any",
                "build_runner": "any",
            },
        }
        assert declared_plugins(manifest) == ["http", "mock_plugin", "geolocator"]

    def test_duplicates_dropped_keeping_first(self):
        manifest = {"dependencies": {"camera": "any"}, "dev_dependencies": {"camera": "any"}}
        assert declared_plugins(manifest) == ["camera"]

    def test_empty_sections(self):
        assert declared_plugins({"dependencies": None}) == []
        assert declared_plugins({}) == []

    def test_non_mapping_section_rejected(self):
        with pytest.raises(ManifestError):
            declared_plugins({"dependencies": ["camera"]})

    def test_parse_from_disk(self, tmp_path):
        _write_project(tmp_path, {"pubspec.yaml": _pubspec("camera", "url_launcher")})
        assert parse_manifest_plugins(tmp_path) == ["camera", "url_launcher"]

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(ProjectValidationError):
            load_manifest(tmp_path)

    def test_invalid_yaml(self, tmp_path):
        _write_project(tmp_path, {"pubspec.yaml": "dependencies: [unclosed\n"})
        with pytest.raises(ManifestError, match="Invalid YAML"):
            load_manifest(tmp_path)

    def test_non_mapping_document(self, tmp_path):
        _write_project(tmp_path, {"pubspec.yaml": "- just\n- a list\n"})
        with pytest.raises(ManifestError, match="mapping"):
            load_manifest(tmp_path)

    def test_is_likely_plugin(self):
        assert is_likely_plugin("my_plugin")
        assert is_likely_plugin("pluginator")
        assert is_likely_plugin("shared_preferences")
        assert not is_likely_plugin("build_runner")


# =============================================================================
# REGISTRANT EXTRACTION
# =============================================================================


class TestExtractRegisteredPlugins:
    """Tests for extract_registered_plugins."""

    def test_objc_imports(self):
        content = (
            '#import "GeneratedPluginRegistrant.h"\n'
            "#import <camera/CameraPlugin.h>\n"
            "#import <url_launcher_ios/FLTURLLauncherPlugin.h>\n"
        )
        assert extract_registered_plugins(content) == ["camera", "url_launcher_ios"]

    def test_module_imports(self):
        assert extract_registered_plugins("@import camera;\n@import path_provider;") == [
            "camera",
            "path_provider",
        ]

    def test_registrar_for(self):
        content = 'registry.registrarFor("FLTCameraPlugin")'
        assert extract_registered_plugins(content) == ["FLTCameraPlugin"]

    def test_register_call(self):
        assert extract_registered_plugins("CameraPlugin.registerWith(registry);") == ["Camera"]

    def test_union_in_pattern_order(self):
        content = "@import camera;\nCameraPlugin.registerWith(r);\n#import <camera/CameraPlugin.h>\n"
        assert extract_registered_plugins(content) == ["Camera", "camera"]

    def test_no_matches(self):
        assert extract_registered_plugins("// empty registrant") == []


# =============================================================================
# STATIC ANALYZER
# =============================================================================


class TestStaticAnalyzerScenario:
    """The canonical camera project with no registrants and no lock file."""

    def test_three_issues(self):
        tmp = Path(tempfile.mkdtemp())
        try:
            _write_project(tmp, {"pubspec.yaml": CAMERA_PUBSPEC})
            issues = StaticAnalyzer().analyze(tmp)

            assert [(i.plugin_name, i.severity) for i in issues] == [
                ("android_registrant", IssueSeverity.CRITICAL),
                ("ios_registrant", IssueSeverity.CRITICAL),
                ("dependency_management", IssueSeverity.MEDIUM),
            ]
            assert issues[0].issue_type is IssueType.MISSING_REGISTRATION
            assert issues[0].affected_platforms == ["android"]
            assert ANDROID_REGISTRANT in issues[0].description
            assert issues[1].additional_context["expected_path"] == IOS_REGISTRANT
            assert issues[2].issue_type is IssueType.DEPENDENCIES_MISSING
            assert issues[2].affected_platforms == ["all"]
            assert "flutter pub get" in issues[2].description
        finally:
            shutil.rmtree(tmp, ignore_errors=True)


class TestStaticAnalyzer:
    """Tests for StaticAnalyzer.analyze."""

    def test_registered_plugin_has_no_issue(self, tmp_path):
        _write_project(tmp_path, {
            "pubspec.yaml": CAMERA_PUBSPEC,
            "pubspec.lock": "",
            IOS_REGISTRANT: "#import <camera/CameraPlugin.h>\n",
        })
        assert StaticAnalyzer().analyze(tmp_path, include_platforms=["ios"]) == []

    def test_unregistered_plugin_is_high(self, tmp_path):
        _write_project(tmp_path, {
            "pubspec.yaml": _pubspec("camera", "url_launcher"),
            "pubspec.lock": "",
            IOS_REGISTRANT: "#import <camera/CameraPlugin.h>\n",
        })
        issues = StaticAnalyzer().analyze(tmp_path, include_platforms=["ios"])
        assert len(issues) == 1
        issue = issues[0]
        assert issue.plugin_name == "url_launcher"
        assert issue.severity is IssueSeverity.HIGH
        assert issue.description == (
            "Plugin url_launcher is declared in pubspec.yaml but not registered for iOS"
        )
        assert issue.additional_context["registered_plugins"] == ["camera"]

    def test_pure_dart_packages_not_flagged(self, tmp_path):
        _write_project(tmp_path, {
            "pubspec.yaml": _pubspec("provider", "http", "camera"),
            "pubspec.lock": "",
            ANDROID_REGISTRANT: "// nothing registered\n",
        })
        issues = StaticAnalyzer().analyze(tmp_path, include_platforms=["android"])
        assert [i.plugin_name for i in issues] == ["camera"]

    def test_excluded_plugins_removed_before_checks(self, tmp_path):
        _write_project(tmp_path, {"pubspec.yaml": CAMERA_PUBSPEC, "pubspec.lock": ""})
        issues = StaticAnalyzer().analyze(tmp_path, exclude_plugins=["camera"])
        assert issues == []

    def test_platform_filter(self, tmp_path):
        _write_project(tmp_path, {"pubspec.yaml": CAMERA_PUBSPEC, "pubspec.lock": ""})
        issues = StaticAnalyzer().analyze(tmp_path, include_platforms=["android"])
        assert [i.plugin_name for i in issues] == ["android_registrant"]

    def test_lock_file_checked_regardless_of_platform_filter(self, tmp_path):
        _write_project(tmp_path, {"pubspec.yaml": CAMERA_PUBSPEC})
        issues = StaticAnalyzer().analyze(tmp_path, include_platforms=["web"])
        assert [i.plugin_name for i in issues] == ["dependency_management"]

    def test_desktop_registrant_only_when_platform_directory_exists(self, tmp_path):
        _write_project(tmp_path, {
            "pubspec.yaml": CAMERA_PUBSPEC,
            "pubspec.lock": "",
            "windows/CMakeLists.txt": "",
        })
        issues = StaticAnalyzer().analyze(tmp_path, include_platforms=["windows", "linux"])
        assert [i.plugin_name for i in issues] == ["windows_registrant"]
        assert "generated_plugin_registrant.cc is missing for Windows" in issues[0].description

    def test_web_script_plugin_missing_from_index(self, tmp_path):
        _write_project(tmp_path, {
            "pubspec.yaml": _pubspec("firebase_core_web", "google_maps_flutter_web"),
            "pubspec.lock": "",
            "web/index.html": "<script src='google_maps_flutter_web.js'></script>",
        })
        issues = StaticAnalyzer().analyze(tmp_path, include_platforms=["web"])
        assert len(issues) == 1
        assert issues[0].plugin_name == "firebase_core_web"
        assert issues[0].issue_type is IssueType.PLATFORM_CONFIG_MISSING
        assert issues[0].severity is IssueSeverity.MEDIUM
        assert issues[0].description == (
            "Plugin firebase_core_web may require script import in web/index.html"
        )

    def test_missing_index_html_is_silent(self, tmp_path):
        _write_project(tmp_path, {"pubspec.yaml": _pubspec("firebase_core_web"), "pubspec.lock": ""})
        assert StaticAnalyzer().analyze(tmp_path, include_platforms=["web"]) == []

    def test_android_build_gradle_without_application_plugin(self, tmp_path):
        _write_project(tmp_path, {
            "pubspec.yaml": _pubspec(),
            "pubspec.lock": "",
            "android/app/build.gradle": "plugins {\n    id 'com.android.library'\n}\n",
        })
        issues = StaticAnalyzer().analyze(tmp_path, include_platforms=["android"])
        assert [(i.plugin_name, i.issue_type) for i in issues] == [
            ("android_build", IssueType.BUILD_CONFIG_ISSUE)
        ]

    def test_android_build_gradle_with_application_plugin(self, tmp_path):
        _write_project(tmp_path, {
            "pubspec.yaml": _pubspec(),
            "pubspec.lock": "",
            "android/app/build.gradle": "apply plugin: 'com.android.application'\n",
        })
        assert StaticAnalyzer().analyze(tmp_path, include_platforms=["android"]) == []

    def test_podfile_needs_frameworks_for_swift_plugins(self, tmp_path):
        _write_project(tmp_path, {
            "pubspec.yaml": CAMERA_PUBSPEC,
            "pubspec.lock": "",
            IOS_REGISTRANT: "#import <camera/CameraPlugin.h>\n",
            "ios/Podfile": "platform :ios, '12.0'\n",
        })
        issues = StaticAnalyzer().analyze(tmp_path, include_platforms=["ios"])
        assert [i.plugin_name for i in issues] == ["ios_build"]
        assert issues[0].severity is IssueSeverity.MEDIUM

    def test_podfile_without_swift_plugins_is_fine(self, tmp_path):
        _write_project(tmp_path, {
            "pubspec.yaml": _pubspec("url_launcher"),
            "pubspec.lock": "",
            IOS_REGISTRANT: "@import url_launcher;\n",
            "ios/Podfile": "platform :ios, '12.0'\n",
        })
        assert StaticAnalyzer().analyze(tmp_path, include_platforms=["ios"]) == []

    def test_no_plugins_no_registrant_issue(self, tmp_path):
        _write_project(tmp_path, {"pubspec.yaml": _pubspec(), "pubspec.lock": ""})
        assert StaticAnalyzer().analyze(tmp_path) == []


class TestStaticAnalyzerFailures:
    """Failure modes are reported as a single issue, never raised."""

    def test_missing_manifest_is_critical(self, tmp_path):
        issues = StaticAnalyzer().analyze(tmp_path)
        assert len(issues) == 1
        assert issues[0].plugin_name == "project_structure"
        assert issues[0].issue_type is IssueType.INITIALIZATION_FAILURE
        assert issues[0].severity is IssueSeverity.CRITICAL
        assert issues[0].affected_platforms == ["all"]

    def test_nonexistent_directory(self, tmp_path):
        issues = StaticAnalyzer().analyze(tmp_path / "missing")
        assert [i.plugin_name for i in issues] == ["project_structure"]

    def test_invalid_manifest_is_high(self, tmp_path):
        _write_project(tmp_path, {"pubspec.yaml": "dependencies: [unclosed\n"})
        issues = StaticAnalyzer().analyze(tmp_path, include_platforms=["android", "ios"])
        assert len(issues) == 1
        assert issues[0].plugin_name == "static_analyzer"
        assert issues[0].severity is IssueSeverity.HIGH
        assert issues[0].description.startswith("Static analysis failed:")
        assert issues[0].affected_platforms == ["android", "ios"]

    def test_unreadable_registrant_discards_partial_results(self, tmp_path, monkeypatch):
        _write_project(tmp_path, {
            "pubspec.yaml": CAMERA_PUBSPEC,
            IOS_REGISTRANT: "#import <camera/CameraPlugin.h>\n",
        })
        original_read_text = Path.read_text

        def guarded_read_text(self, *args, **kwargs):
            if self.suffix == ".m":
                raise PermissionError("denied")
            return original_read_text(self, *args, **kwargs)

        monkeypatch.setattr(Path, "read_text", guarded_read_text)
        issues = StaticAnalyzer().analyze(tmp_path)
        assert len(issues) == 1
        assert issues[0].plugin_name == "static_analyzer"
        assert "denied" in issues[0].description
