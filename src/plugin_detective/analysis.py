"""
Plugin Detective - Static Analysis Module

Cross-references the plugins declared in pubspec.yaml with what each
platform's generated plugin registrant actually wires up, and checks the
build files that commonly break plugin registration.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Set

import yaml

from .constants import (
    ALL_PLATFORMS,
    ANDROID_APPLICATION_PLUGIN_DIRECTIVE,
    ANDROID_BUILD_GRADLE,
    ANDROID_BUILD_SENTINEL,
    DEPENDENCY_SENTINEL,
    IOS_BUILD_SENTINEL,
    IOS_PODFILE,
    KNOWN_PLUGINS,
    LOCK_FILE,
    MANIFEST_FILE,
    OPT_IN_PLATFORMS,
    PLATFORM_DISPLAY_NAMES,
    PODFILE_FRAMEWORKS_DIRECTIVE,
    PROJECT_STRUCTURE_SENTINEL,
    PURE_DART_PACKAGES,
    REGISTRANT_FILE_NAMES,
    REGISTRANT_PATHS,
    REGISTRANT_PATTERNS,
    SDK_DEPENDENCIES,
    STATIC_ANALYZER_SENTINEL,
    SUPPORTED_PLATFORMS,
    SWIFT_PLUGINS,
    WEB_INDEX_HTML,
    WEB_SCRIPT_PLUGINS,
    registrant_sentinel,
)
from .errors import ManifestError, ProjectValidationError
from .models import Issue, IssueSeverity, IssueType
from .utils import relative_path

logger = logging.getLogger(__name__)


@dataclass
class AnalysisContext:
    root: Path
    plugins: List[str]
    files_read: Set[Path] = field(default_factory=set)

    def record_read(self, path: Path) -> None:
        self.files_read.add(path.resolve())

    def project_file(self, parts: Sequence[str]) -> Path:
        return self.root.joinpath(*parts)


class StaticAnalyzer:
    """Analyzes Flutter project files for plugin registration problems."""

    def analyze(
        self,
        project_path: Path,
        include_platforms: Iterable[str] = SUPPORTED_PLATFORMS,
        exclude_plugins: Iterable[str] = (),
    ) -> List[Issue]:
        """Return every static finding for the project.

        Expected failure modes never raise: a missing manifest becomes one
        critical issue, anything else unexpected becomes one high issue and
        no partial results are returned.
        """
        root = Path(project_path)
        platforms = list(include_platforms)
        excluded = set(exclude_plugins)
        try:
            declared = parse_manifest_plugins(root)
        except ProjectValidationError as exc:
            return [_manifest_missing_issue(root, str(exc))]
        except Exception as exc:
            logger.warning("Static analysis failed for %s: %s", root, exc)
            return [_analyzer_failure_issue(platforms, exc)]

        ctx = AnalysisContext(
            root=root,
            plugins=[name for name in declared if name not in excluded],
        )
        try:
            issues: List[Issue] = []
            for platform in platforms:
                issues.extend(_analyze_platform(ctx, platform))
            issues.extend(_analyze_version_mismatches(ctx))
            issues.extend(_analyze_dependencies(ctx))
        except Exception as exc:
            logger.warning("Static analysis failed for %s: %s", root, exc)
            return [_analyzer_failure_issue(platforms, exc)]

        logger.debug(
            "Static analysis of %s read %d files and found %d issues",
            root,
            len(ctx.files_read),
            len(issues),
        )
        return issues


# =============================================================================
# MANIFEST
# =============================================================================


def load_manifest(project_root: Path) -> Dict[str, Any]:
    """Parse pubspec.yaml into a mapping.

    Raises:
        ProjectValidationError: pubspec.yaml does not exist.
        ManifestError: the file cannot be read or is not a YAML mapping.
    """
    manifest_path = Path(project_root) / MANIFEST_FILE
    if not manifest_path.is_file():
        raise ProjectValidationError(f"{MANIFEST_FILE} not found at {project_root}")
    try:
        content = manifest_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestError(f"Cannot read {MANIFEST_FILE}: {exc}") from exc
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ManifestError(f"Invalid YAML syntax in {MANIFEST_FILE}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ManifestError(
            f"{MANIFEST_FILE} must be a YAML mapping, got {type(data).__name__}"
        )
    return data


def declared_plugins(manifest: Dict[str, Any]) -> List[str]:
    """Plugins from ``dependencies`` plus plugin-like ``dev_dependencies``."""
    plugins: List[str] = []
    for name in _section_names(manifest, "dependencies"):
        if name not in SDK_DEPENDENCIES:
            plugins.append(name)
    for name in _section_names(manifest, "dev_dependencies"):
        if is_likely_plugin(name):
            plugins.append(name)
    return list(dict.fromkeys(plugins))


def parse_manifest_plugins(project_root: Path) -> List[str]:
    return declared_plugins(load_manifest(project_root))


def is_likely_plugin(name: str) -> bool:
    return "plugin" in name or name.endswith("_plugin") or name in KNOWN_PLUGINS


def _section_names(manifest: Dict[str, Any], section: str) -> List[str]:
    entries = manifest.get(section)
    if entries is None:
        return []
    if not isinstance(entries, dict):
        raise ManifestError(f"'{section}' in {MANIFEST_FILE} must be a mapping")
    return [str(name) for name in entries]


# =============================================================================
# REGISTRANTS
# =============================================================================


def extract_registered_plugins(content: str) -> List[str]:
    """Plugin names referenced by a generated registrant, in discovery order."""
    plugins: List[str] = []
    for pattern in REGISTRANT_PATTERNS:
        for match in pattern.finditer(content):
            name = match.group(1)
            if name and name not in plugins:
                plugins.append(name)
    return plugins


def requires_registration(plugin: str) -> bool:
    return plugin not in PURE_DART_PACKAGES


def _analyze_platform(ctx: AnalysisContext, platform: str) -> List[Issue]:
    if platform == "web":
        return _analyze_web(ctx)
    if platform not in REGISTRANT_PATHS:
        logger.debug("No registrant check for platform %s", platform)
        return []
    issues = _analyze_registrant(ctx, platform)
    if platform == "android":
        issues.extend(_analyze_build_gradle(ctx))
    elif platform == "ios":
        issues.extend(_analyze_podfile(ctx))
    return issues


def _analyze_registrant(ctx: AnalysisContext, platform: str) -> List[Issue]:
    registrant = ctx.project_file(REGISTRANT_PATHS[platform])
    display = PLATFORM_DISPLAY_NAMES[platform]
    file_name = REGISTRANT_FILE_NAMES[platform]
    rel = relative_path(registrant, ctx.root)

    if not registrant.is_file():
        if not ctx.plugins:
            return []
        if platform in OPT_IN_PLATFORMS and not (ctx.root / platform).is_dir():
            logger.debug("Project has no %s directory; skipping registrant", platform)
            return []
        return [
            Issue(
                plugin_name=registrant_sentinel(platform),
                issue_type=IssueType.MISSING_REGISTRATION,
                severity=IssueSeverity.CRITICAL,
                description=(
                    f"{file_name} is missing for {display} platform (expected at {rel})"
                ),
                affected_platforms=[platform],
                detected_at=_now(),
                additional_context={
                    "expected_path": rel,
                    "declared_plugins": list(ctx.plugins),
                },
            )
        ]

    registered = extract_registered_plugins(_read_text(ctx, registrant))
    issues: List[Issue] = []
    for plugin in ctx.plugins:
        if plugin in registered or not requires_registration(plugin):
            continue
        issues.append(
            Issue(
                plugin_name=plugin,
                issue_type=IssueType.MISSING_REGISTRATION,
                severity=IssueSeverity.HIGH,
                description=(
                    f"Plugin {plugin} is declared in {MANIFEST_FILE} "
                    f"but not registered for {display}"
                ),
                affected_platforms=[platform],
                detected_at=_now(),
                additional_context={
                    "registrant_file": rel,
                    "registered_plugins": registered,
                },
            )
        )
    return issues


def _analyze_web(ctx: AnalysisContext) -> List[Issue]:
    index = ctx.project_file(WEB_INDEX_HTML)
    if not index.is_file():
        return []
    content = _read_text(ctx, index)
    issues: List[Issue] = []
    for plugin in ctx.plugins:
        if plugin in WEB_SCRIPT_PLUGINS and plugin not in content:
            issues.append(
                Issue(
                    plugin_name=plugin,
                    issue_type=IssueType.PLATFORM_CONFIG_MISSING,
                    severity=IssueSeverity.MEDIUM,
                    description=f"Plugin {plugin} may require script import in web/index.html",
                    affected_platforms=["web"],
                    detected_at=_now(),
                )
            )
    return issues


# =============================================================================
# BUILD CONFIGURATION
# =============================================================================


def _analyze_build_gradle(ctx: AnalysisContext) -> List[Issue]:
    gradle = ctx.project_file(ANDROID_BUILD_GRADLE)
    if not gradle.is_file():
        return []
    if ANDROID_APPLICATION_PLUGIN_DIRECTIVE in _read_text(ctx, gradle):
        return []
    return [
        Issue(
            plugin_name=ANDROID_BUILD_SENTINEL,
            issue_type=IssueType.BUILD_CONFIG_ISSUE,
            severity=IssueSeverity.MEDIUM,
            description="Android application plugin not applied in build.gradle",
            affected_platforms=["android"],
            detected_at=_now(),
        )
    ]


def _analyze_podfile(ctx: AnalysisContext) -> List[Issue]:
    podfile = ctx.project_file(IOS_PODFILE)
    if not podfile.is_file():
        return []
    if PODFILE_FRAMEWORKS_DIRECTIVE in _read_text(ctx, podfile):
        return []
    if not any(plugin in SWIFT_PLUGINS for plugin in ctx.plugins):
        return []
    return [
        Issue(
            plugin_name=IOS_BUILD_SENTINEL,
            issue_type=IssueType.BUILD_CONFIG_ISSUE,
            severity=IssueSeverity.MEDIUM,
            description="use_frameworks! may be required for Swift plugins in Podfile",
            affected_platforms=["ios"],
            detected_at=_now(),
        )
    ]


# =============================================================================
# DEPENDENCIES
# =============================================================================


def _analyze_version_mismatches(ctx: AnalysisContext) -> List[Issue]:
    # Extension point: comparing pubspec.lock against per-platform version
    # constraints is not implemented, so this never reports anything.
    return []


def _analyze_dependencies(ctx: AnalysisContext) -> List[Issue]:
    if (ctx.root / LOCK_FILE).is_file():
        return []
    return [
        Issue(
            plugin_name=DEPENDENCY_SENTINEL,
            issue_type=IssueType.DEPENDENCIES_MISSING,
            severity=IssueSeverity.MEDIUM,
            description=(
                f'{LOCK_FILE} file is missing. Run "flutter pub get" to resolve dependencies.'
            ),
            affected_platforms=[ALL_PLATFORMS],
            detected_at=_now(),
        )
    ]


# =============================================================================
# HELPERS
# =============================================================================


def _manifest_missing_issue(root: Path, reason: str) -> Issue:
    return Issue(
        plugin_name=PROJECT_STRUCTURE_SENTINEL,
        issue_type=IssueType.INITIALIZATION_FAILURE,
        severity=IssueSeverity.CRITICAL,
        description=f"{reason}. This is not a valid Flutter project.",
        affected_platforms=[ALL_PLATFORMS],
        detected_at=_now(),
        additional_context={"project_path": str(root)},
    )


def _analyzer_failure_issue(platforms: List[str], exc: Exception) -> Issue:
    return Issue(
        plugin_name=STATIC_ANALYZER_SENTINEL,
        issue_type=IssueType.INITIALIZATION_FAILURE,
        severity=IssueSeverity.HIGH,
        description=f"Static analysis failed: {exc}",
        affected_platforms=list(platforms),
        detected_at=_now(),
        additional_context={"error": str(exc), "error_type": type(exc).__name__},
    )


def _read_text(ctx: AnalysisContext, path: Path) -> str:
    try:
        data = path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        data = path.read_text(encoding="latin-1", errors="ignore")
    ctx.record_read(path)
    return data


def _now() -> datetime:
    return datetime.now(timezone.utc)

