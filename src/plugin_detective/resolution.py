"""
Plugin Detective - Resolution Guides

Turns an Issue into an ordered list of ResolutionSteps. Generation is pure:
the same issue always yields the same steps.
"""
from __future__ import annotations

from typing import Callable, Dict, List

from .constants import MANIFEST_FILE, PUB_DEV_PACKAGE_URL
from .models import Issue, IssueType, ResolutionAction, ResolutionStep

_GET_DEPENDENCIES = ResolutionStep(
    title="Get Dependencies",
    description="Fetch and resolve all project dependencies",
    action=ResolutionAction.RUN_COMMAND,
    command="flutter pub get",
)


def generate_guide(issue: Issue) -> List[ResolutionStep]:
    """Return the resolution steps for ``issue`` in the order to apply them."""
    return _GUIDE_BUILDERS[issue.issue_type](issue)


# =============================================================================
# PER ISSUE TYPE
# =============================================================================


def _missing_registration_guide(issue: Issue) -> List[ResolutionStep]:
    steps = [
        ResolutionStep(
            title="Clean Flutter Project",
            description="Clean the Flutter project to remove any cached build artifacts",
            action=ResolutionAction.RUN_COMMAND,
            command="flutter clean",
        ),
        _GET_DEPENDENCIES,
    ]
    for platform in issue.affected_platforms:
        steps.extend(_regenerate_registrant_steps(platform))
    steps.append(
        ResolutionStep(
            title="Rebuild Project",
            description="Rebuild the project to regenerate plugin registrations",
            action=ResolutionAction.RUN_COMMAND,
            command="flutter build apk --debug",
            is_optional=True,
        )
    )
    return steps


def _missing_declaration_guide(issue: Issue) -> List[ResolutionStep]:
    return [
        ResolutionStep(
            title=f"Add Plugin to {MANIFEST_FILE}",
            description=f"Add the {issue.plugin_name} plugin to your {MANIFEST_FILE} dependencies",
            action=ResolutionAction.MODIFY_FILE,
            file_path=MANIFEST_FILE,
            file_content=(
                "dependencies:\n"
                "  flutter:\n"
                "    sdk: flutter\n"
                f"  {issue.plugin_name}: ^latest_version  # Add this line\n"
            ),
        ),
        ResolutionStep(
            title="Get Dependencies",
            description="Run flutter pub get to install the new dependency",
            action=ResolutionAction.RUN_COMMAND,
            command="flutter pub get",
        ),
    ]


def _version_mismatch_guide(issue: Issue) -> List[ResolutionStep]:
    return [
        ResolutionStep(
            title="Check Plugin Versions",
            description="Check the current versions of your plugins",
            action=ResolutionAction.RUN_COMMAND,
            command="flutter pub deps",
        ),
        ResolutionStep(
            title="Update Plugin Version",
            description=f"Update {issue.plugin_name} to the latest compatible version",
            action=ResolutionAction.MODIFY_FILE,
            file_path=MANIFEST_FILE,
            file_content=f"# Update the version constraint for {issue.plugin_name}",
        ),
        ResolutionStep(
            title="Upgrade Dependencies",
            description="Upgrade all dependencies to their latest versions",
            action=ResolutionAction.RUN_COMMAND,
            command="flutter pub upgrade",
        ),
    ]


def _platform_config_guide(issue: Issue) -> List[ResolutionStep]:
    steps: List[ResolutionStep] = []
    for platform in issue.affected_platforms:
        builder = _PLATFORM_CONFIG_BUILDERS.get(platform)
        if builder is not None:
            steps.extend(builder(issue))
    return steps


def _initialization_failure_guide(issue: Issue) -> List[ResolutionStep]:
    return [
        ResolutionStep(
            title="Check Plugin Documentation",
            description="Review the plugin documentation for initialization requirements",
            action=ResolutionAction.OPEN_URL,
            command=PUB_DEV_PACKAGE_URL + issue.plugin_name,
        ),
        ResolutionStep(
            title="Verify Plugin Setup",
            description="Ensure the plugin is properly set up according to its documentation",
            action=ResolutionAction.SHOW_INFO,
        ),
        ResolutionStep(
            title="Check for Required Permissions",
            description="Verify that all required permissions are declared",
            action=ResolutionAction.SHOW_INFO,
        ),
        ResolutionStep(
            title="Restart Application",
            description="Completely restart the application after making changes",
            action=ResolutionAction.RUN_COMMAND,
            command="flutter run",
        ),
    ]


def _method_channel_guide(issue: Issue) -> List[ResolutionStep]:
    return [
        ResolutionStep(
            title="Hot Restart Application",
            description="Perform a hot restart to reload plugin registrations",
            action=ResolutionAction.RUN_COMMAND,
            command="flutter run --hot",
        ),
        ResolutionStep(
            title="Check Plugin Registration",
            description="Verify that the plugin is properly registered for your target platform",
            action=ResolutionAction.SHOW_INFO,
        ),
        ResolutionStep(
            title="Verify Plugin Support",
            description=f"Check if {issue.plugin_name} supports your target platform",
            action=ResolutionAction.OPEN_URL,
            command=PUB_DEV_PACKAGE_URL + issue.plugin_name,
        ),
    ]


def _dependencies_guide(issue: Issue) -> List[ResolutionStep]:
    return [
        ResolutionStep(
            title="Install Dependencies",
            description="Install all project dependencies",
            action=ResolutionAction.RUN_COMMAND,
            command="flutter pub get",
        ),
        ResolutionStep(
            title="Check Dependency Conflicts",
            description="Check for any dependency conflicts",
            action=ResolutionAction.RUN_COMMAND,
            command="flutter pub deps",
        ),
        ResolutionStep(
            title="Resolve Conflicts",
            description=f"If conflicts exist, update {MANIFEST_FILE} to resolve them",
            action=ResolutionAction.SHOW_INFO,
        ),
    ]


def _build_config_guide(issue: Issue) -> List[ResolutionStep]:
    steps: List[ResolutionStep] = []
    for platform in issue.affected_platforms:
        if platform == "android":
            steps.append(
                ResolutionStep(
                    title="Check Android Build Configuration",
                    description="Verify Android build.gradle configuration",
                    action=ResolutionAction.SHOW_INFO,
                    platform="android",
                )
            )
        elif platform == "ios":
            steps.append(
                ResolutionStep(
                    title="Check iOS Build Configuration",
                    description="Verify iOS Podfile and project settings",
                    action=ResolutionAction.SHOW_INFO,
                    platform="ios",
                )
            )
    return steps


# =============================================================================
# PER PLATFORM
# =============================================================================


def _regenerate_registrant_steps(platform: str) -> List[ResolutionStep]:
    if platform == "android":
        return [
            ResolutionStep(
                title="Regenerate Android Plugin Registration",
                description="Force regeneration of Android plugin registrant",
                action=ResolutionAction.RUN_COMMAND,
                command="flutter build apk --debug",
                platform="android",
            )
        ]
    if platform == "ios":
        return [
            ResolutionStep(
                title="Update iOS Pods",
                description="Update iOS CocoaPods dependencies",
                action=ResolutionAction.RUN_COMMAND,
                command="cd ios && pod install --repo-update",
                platform="ios",
            )
        ]
    if platform == "web":
        return [
            ResolutionStep(
                title="Build for Web",
                description="Build the project for web to ensure web plugins are registered",
                action=ResolutionAction.RUN_COMMAND,
                command="flutter build web",
                platform="web",
            )
        ]
    return []


def _android_config_steps(issue: Issue) -> List[ResolutionStep]:
    return [
        ResolutionStep(
            title="Check Android Permissions",
            description=f"Add required permissions for {issue.plugin_name} to AndroidManifest.xml",
            action=ResolutionAction.MODIFY_FILE,
            file_path="android/app/src/main/AndroidManifest.xml",
            file_content=f"<!-- Add required permissions for {issue.plugin_name} -->",
            platform="android",
        ),
        ResolutionStep(
            title="Update Gradle Configuration",
            description="Ensure proper Gradle configuration for plugin compatibility",
            action=ResolutionAction.SHOW_INFO,
            platform="android",
        ),
    ]


def _ios_config_steps(issue: Issue) -> List[ResolutionStep]:
    return [
        ResolutionStep(
            title="Check iOS Permissions",
            description=f"Add required permissions for {issue.plugin_name} to Info.plist",
            action=ResolutionAction.MODIFY_FILE,
            file_path="ios/Runner/Info.plist",
            file_content=f"<!-- Add required permissions for {issue.plugin_name} -->",
            platform="ios",
        ),
        ResolutionStep(
            title="Update Podfile",
            description="Ensure proper Podfile configuration for plugin compatibility",
            action=ResolutionAction.SHOW_INFO,
            platform="ios",
        ),
    ]


def _web_config_steps(issue: Issue) -> List[ResolutionStep]:
    return [
        ResolutionStep(
            title="Add Web Plugin Script",
            description=f"Add required script imports for {issue.plugin_name} to web/index.html",
            action=ResolutionAction.MODIFY_FILE,
            file_path="web/index.html",
            file_content=f"<!-- Add script imports for {issue.plugin_name} -->",
            platform="web",
        )
    ]


def _desktop_support_steps(platform: str, display: str) -> Callable[[Issue], List[ResolutionStep]]:
    def build(issue: Issue) -> List[ResolutionStep]:
        return [
            ResolutionStep(
                title=f"Check {display} Plugin Support",
                description=f"Verify that the plugin supports {display} platform",
                action=ResolutionAction.SHOW_INFO,
                platform=platform,
            )
        ]

    return build


_PLATFORM_CONFIG_BUILDERS: Dict[str, Callable[[Issue], List[ResolutionStep]]] = {
    "android": _android_config_steps,
    "ios": _ios_config_steps,
    "web": _web_config_steps,
    "windows": _desktop_support_steps("windows", "Windows"),
    "macos": _desktop_support_steps("macos", "macOS"),
    "linux": _desktop_support_steps("linux", "Linux"),
}

_GUIDE_BUILDERS: Dict[IssueType, Callable[[Issue], List[ResolutionStep]]] = {
    IssueType.MISSING_REGISTRATION: _missing_registration_guide,
    IssueType.MISSING_DECLARATION: _missing_declaration_guide,
    IssueType.VERSION_MISMATCH: _version_mismatch_guide,
    IssueType.PLATFORM_CONFIG_MISSING: _platform_config_guide,
    IssueType.INITIALIZATION_FAILURE: _initialization_failure_guide,
    IssueType.METHOD_CHANNEL_NOT_FOUND: _method_channel_guide,
    IssueType.DEPENDENCIES_MISSING: _dependencies_guide,
    IssueType.BUILD_CONFIG_ISSUE: _build_config_guide,
}

_UNHANDLED = set(IssueType) - set(_GUIDE_BUILDERS)
if _UNHANDLED:
    raise ImportError(
        "No resolution guide for issue type(s): "
        + ", ".join(sorted(t.value for t in _UNHANDLED))
    )
