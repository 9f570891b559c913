"""
Flutter project layout, plugin catalogues and log signatures.

This module contains every file location, regex and allow-list used to
cross-reference pubspec.yaml against the generated plugin registrants and
to recognise plugin failures in Flutter log output.

Reference: https://docs.flutter.dev/packages-and-plugins/developing-packages
"""
from __future__ import annotations

import re

# =============================================================================
# PLATFORMS
# =============================================================================
SUPPORTED_PLATFORMS = ("android", "ios", "web", "windows", "macos", "linux")

# Sentinel platform tags
ALL_PLATFORMS = "all"
UNKNOWN_PLATFORM = "unknown"

# Desktop platforms are opt-in per project (flutter create --platforms=...),
# so their registrant is only expected once the platform directory exists.
OPT_IN_PLATFORMS = frozenset({"windows", "macos", "linux"})

# =============================================================================
# PROJECT FILES
# =============================================================================
MANIFEST_FILE = "pubspec.yaml"
LOCK_FILE = "pubspec.lock"

# The manifest of a Flutter app always carries a top-level "flutter:" section
FLUTTER_MANIFEST_MARKER = "flutter:"

# Generated registrant per platform, relative to the project root
REGISTRANT_PATHS = {
    "android": (
        "android", "app", "src", "main", "java", "io", "flutter", "plugins",
        "GeneratedPluginRegistrant.java",
    ),
    "ios": ("ios", "Runner", "GeneratedPluginRegistrant.m"),
    "macos": ("macos", "Flutter", "GeneratedPluginRegistrant.swift"),
    "windows": ("windows", "flutter", "generated_plugin_registrant.cc"),
    "linux": ("linux", "flutter", "generated_plugin_registrant.cc"),
}

REGISTRANT_FILE_NAMES = {
    platform: parts[-1] for platform, parts in REGISTRANT_PATHS.items()
}

PLATFORM_DISPLAY_NAMES = {
    "android": "Android",
    "ios": "iOS",
    "web": "Web",
    "windows": "Windows",
    "macos": "macOS",
    "linux": "Linux",
}

ANDROID_BUILD_GRADLE = ("android", "app", "build.gradle")
IOS_PODFILE = ("ios", "Podfile")
WEB_INDEX_HTML = ("web", "index.html")

# =============================================================================
# SENTINEL PLUGIN NAMES
# =============================================================================
# Used where an issue is about the project rather than one declared plugin
PROJECT_STRUCTURE_SENTINEL = "project_structure"
STATIC_ANALYZER_SENTINEL = "static_analyzer"
RUNTIME_DETECTOR_SENTINEL = "runtime_detector"
DIAGNOSTIC_SCAN_SENTINEL = "diagnostic_scan"
DEPENDENCY_SENTINEL = "dependency_management"
ANDROID_BUILD_SENTINEL = "android_build"
IOS_BUILD_SENTINEL = "ios_build"
UNKNOWN_PLUGIN_SENTINEL = "unknown_plugin"


def registrant_sentinel(platform: str) -> str:
    return f"{platform}_registrant"


# =============================================================================
# MANIFEST PARSING
# =============================================================================
# Entries under "dependencies" that are part of the SDK, not plugins
SDK_DEPENDENCIES = frozenset({"flutter", "cupertino_icons"})

# dev_dependencies that are plugins even though the name does not say so
KNOWN_PLUGINS = frozenset({
    "camera",
    "geolocator",
    "shared_preferences",
    "url_launcher",
    "image_picker",
    "firebase_core",
    "firebase_auth",
    "cloud_firestore",
    "firebase_messaging",
    "firebase_analytics",
    "google_maps_flutter",
    "webview_flutter",
    "video_player",
    "audioplayers",
    "flutter_local_notifications",
    "permission_handler",
    "device_info_plus",
    "package_info_plus",
    "connectivity_plus",
    "battery_plus",
    "sensors_plus",
})

# Pure Dart packages: no native side, never appear in a registrant
PURE_DART_PACKAGES = frozenset({
    "provider",
    "riverpod",
    "bloc",
    "flutter_bloc",
    "get",
    "dio",
    "http",
    "json_annotation",
    "freezed_annotation",
    "equatable",
    "dartz",
    "rxdart",
    "intl",
    "flutter_localizations",
})

# Plugins whose iOS implementation is written in Swift
SWIFT_PLUGINS = frozenset({
    "camera",
    "image_picker",
    "video_player",
})

# Web implementations that need a <script> tag in web/index.html
WEB_SCRIPT_PLUGINS = frozenset({
    "google_maps_flutter_web",
    "firebase_core_web",
    "firebase_auth_web",
})

# =============================================================================
# REGISTRANT PATTERNS
# =============================================================================
# Ordered; the first capture group of every match is a registered plugin.
# Java:  CameraPlugin.registerWith(...)
# ObjC:  [registry registrarFor("FLTCameraPlugin")], #import <camera/...>
# Swift: @import camera;
REGISTRANT_PATTERNS = (
    re.compile(r"(\w+)Plugin\.register"),
    re.compile(r'registry\.registrarFor\("(\w+)"\)'),
    re.compile(r"#import <(\w+)/"),
    re.compile(r"@import (\w+);"),
)

# =============================================================================
# BUILD CONFIGURATION
# =============================================================================
ANDROID_APPLICATION_PLUGIN_DIRECTIVE = "apply plugin: 'com.android.application'"
PODFILE_FRAMEWORKS_DIRECTIVE = "use_frameworks!"

# =============================================================================
# LOG SIGNATURES
# =============================================================================
LOG_FILE_SUFFIX = ".log"

# Number of log files read in performance mode (most recent first)
PERFORMANCE_MODE_LOG_LIMIT = 5

MISSING_PLUGIN_EXCEPTION = "MissingPluginException"
PLATFORM_EXCEPTION = "PlatformException"
NO_IMPLEMENTATION_FOUND = "No implementation found for method"

MISSING_PLUGIN_CHANNEL_PATTERN = re.compile(
    r"No implementation found for method (\w+) on channel (\S+)"
)
NO_IMPLEMENTATION_METHOD_PATTERN = re.compile(
    r"No implementation found for method (\w+)"
)

# Generic plugin-name heuristic for free-form log lines; first match wins
PLUGIN_NAME_PATTERNS = (
    re.compile(r"(\w+)Plugin"),
    re.compile(r"plugin\.(\w+)"),
    re.compile(r"(\w+)_plugin"),
    re.compile(r"com\.(\w+)\.(\w+)"),
)

PLUGIN_RELATED_KEYWORDS = (
    "plugin",
    "Plugin",
    "channel",
    "method",
    "implementation",
    "registrant",
)

# Substrings that attribute a log line to a platform
PLATFORM_LOG_HINTS = (
    ("android", ("android", "Android")),
    ("ios", ("ios", "iOS")),
    ("web", ("web", "Web")),
    ("windows", ("windows", "Windows")),
    ("macos", ("macos", "macOS")),
    ("linux", ("linux", "Linux")),
)

STACK_FRAME_PREFIXES = ("at ", "#")
MAX_STACK_TRACE_LINES = 20

# Stripped from a captured channel name: "...on channel foo)"
CHANNEL_TRAILING_PUNCTUATION = ")]},;:."

# =============================================================================
# RUNTIME MONITORING
# =============================================================================
DEFAULT_MAX_ISSUE_HISTORY = 100

# =============================================================================
# DOCUMENTATION
# =============================================================================
PUB_DEV_PACKAGE_URL = "https://pub.dev/packages/"

# =============================================================================
# TOOLCHAIN
# =============================================================================
FLUTTER_VERSION_COMMAND = ("flutter", "--version", "--machine")
DART_VERSION_COMMAND = ("dart", "--version")
UNKNOWN_VERSION = "Unknown"

# "Dart SDK version: 3.4.1 (stable) ..."
DART_VERSION_PATTERN = re.compile(r"Dart SDK version:\s*(\S+)")
