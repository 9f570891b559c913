"""
Plugin Detective - Runtime Detection Module

Scans Flutter tool logs for MissingPluginException and related plugin
failures, and fans out issues found in live log lines to asyncio
subscribers.
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Set

from .config import DetectiveConfig
from .constants import (
    CHANNEL_TRAILING_PUNCTUATION,
    DEFAULT_MAX_ISSUE_HISTORY,
    LOG_FILE_SUFFIX,
    MAX_STACK_TRACE_LINES,
    MISSING_PLUGIN_CHANNEL_PATTERN,
    MISSING_PLUGIN_EXCEPTION,
    NO_IMPLEMENTATION_FOUND,
    NO_IMPLEMENTATION_METHOD_PATTERN,
    PERFORMANCE_MODE_LOG_LIMIT,
    PLATFORM_EXCEPTION,
    PLATFORM_LOG_HINTS,
    PLUGIN_NAME_PATTERNS,
    PLUGIN_RELATED_KEYWORDS,
    RUNTIME_DETECTOR_SENTINEL,
    STACK_FRAME_PREFIXES,
    SUPPORTED_PLATFORMS,
    UNKNOWN_PLATFORM,
    UNKNOWN_PLUGIN_SENTINEL,
)
from .models import Issue, IssueSeverity, IssueType

logger = logging.getLogger(__name__)


def default_log_directory() -> Path:
    """Where the Flutter tool writes its logs on this machine."""
    if sys.platform == "win32":
        return Path(os.environ.get("APPDATA", "")) / "flutter" / "logs"
    return Path.home() / ".flutter" / "logs"


class RuntimeDetector:
    """Detects plugin failures recorded in Flutter log output."""

    def __init__(
        self,
        config: Optional[DetectiveConfig] = None,
        max_issue_history: int = DEFAULT_MAX_ISSUE_HISTORY,
    ) -> None:
        self.config = config or DetectiveConfig()
        self._history: Deque[Issue] = deque(maxlen=max_issue_history)
        self._broadcaster = IssueBroadcaster()

    @property
    def log_directory(self) -> Path:
        return self.config.log_directory or default_log_directory()

    @property
    def detected_issues(self) -> List[Issue]:
        """Issues published through ``ingest_log_line``, oldest first."""
        return list(self._history)

    def detect(
        self,
        project_path: Path,
        include_platforms: Iterable[str] = SUPPORTED_PLATFORMS,
        exclude_plugins: Iterable[str] = (),
    ) -> List[Issue]:
        platforms = list(include_platforms)
        excluded = set(exclude_plugins)
        try:
            return self._analyze_log_files(excluded)
        except Exception as exc:
            logger.warning("Runtime detection failed for %s: %s", project_path, exc)
            return [
                Issue(
                    plugin_name=RUNTIME_DETECTOR_SENTINEL,
                    issue_type=IssueType.INITIALIZATION_FAILURE,
                    severity=IssueSeverity.MEDIUM,
                    description=f"Runtime detection failed: {exc}",
                    affected_platforms=platforms,
                    detected_at=_now(),
                    additional_context={"error": str(exc)},
                )
            ]

    def log_files(self) -> List[Path]:
        """Log files to scan, in name order."""
        directory = self.log_directory
        if not directory.is_dir():
            logger.debug("Log directory %s does not exist", directory)
            return []
        files = [
            path for path in directory.iterdir()
            if path.is_file() and path.name.endswith(LOG_FILE_SUFFIX)
        ]
        if self.config.performance_mode:
            files.sort(key=lambda path: path.stat().st_mtime, reverse=True)
            files = files[:PERFORMANCE_MODE_LOG_LIMIT]
        return sorted(files, key=lambda path: path.name)

    def _analyze_log_files(self, excluded: Set[str]) -> List[Issue]:
        issues: List[Issue] = []
        for log_file in self.log_files():
            try:
                content = log_file.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.debug("Skipping unreadable log %s: %s", log_file, exc)
                continue
            issues.extend(parse_log_content(content, excluded))
        return issues

    def monitor(self) -> "IssueBroadcaster":
        return self._broadcaster

    def ingest_log_line(self, line: str) -> List[Issue]:
        """Parse one live log line and publish whatever it reveals."""
        issues = parse_log_content(line, self.config.exclude_plugins)
        for issue in issues:
            self._history.append(issue)
            self._broadcaster.publish(issue)
        return issues

    async def follow_logs(self, poll_interval: float = 1.0) -> None:
        """Feed lines appended to the log directory into ``ingest_log_line``.

        Only output written after the call starts is considered. Runs until
        cancelled.
        """
        offsets: Dict[Path, int] = {}
        for path in self.log_files():
            offsets[path] = path.stat().st_size
        while True:
            for path in self.log_files():
                for line in _read_new_lines(path, offsets):
                    self.ingest_log_line(line)
            await asyncio.sleep(poll_interval)

    def dispose(self) -> None:
        self._broadcaster.close()


def _read_new_lines(path: Path, offsets: Dict[Path, int]) -> List[str]:
    """Complete lines written to ``path`` since its recorded offset.

    A file shorter than its offset was truncated or rewritten and is read
    again from the start. A trailing line without a newline stays unread
    until it is completed.
    """
    start = offsets.get(path, 0)
    try:
        if path.stat().st_size < start:
            logger.debug("%s shrank; following it from the start", path)
            start = 0
        with path.open("rb") as handle:
            handle.seek(start)
            chunk = handle.read()
    except OSError as exc:
        logger.debug("Cannot follow %s: %s", path, exc)
        return []
    end = chunk.rfind(b"\n") + 1
    offsets[path] = start + end
    return chunk[:end].decode("utf-8", errors="replace").splitlines()


# =============================================================================
# LOG PARSING
# =============================================================================


def parse_log_content(content: str, exclude_plugins: Iterable[str] = ()) -> List[Issue]:
    """Every plugin issue recognised in a block of log text.

    A line can match more than one signature and then yields one issue per
    signature.
    """
    excluded = set(exclude_plugins)
    lines = content.splitlines()
    issues: List[Issue] = []
    for index, line in enumerate(lines):
        candidates: List[Optional[Issue]] = []
        if MISSING_PLUGIN_EXCEPTION in line:
            candidates.append(_parse_missing_plugin_exception(line, lines, index))
        if PLATFORM_EXCEPTION in line and is_plugin_related(line):
            candidates.append(_parse_platform_exception(line))
        if NO_IMPLEMENTATION_FOUND in line:
            candidates.append(_parse_method_channel_error(line))
        for issue in candidates:
            if issue is not None and issue.plugin_name not in excluded:
                issues.append(issue)
    return issues


def _parse_missing_plugin_exception(
    line: str, lines: List[str], index: int
) -> Optional[Issue]:
    match = MISSING_PLUGIN_CHANNEL_PATTERN.search(line)
    if match is None:
        return None
    method = match.group(1)
    channel = match.group(2).rstrip(CHANNEL_TRAILING_PUNCTUATION) or match.group(2)
    frames = _collect_stack_frames(lines, index)
    return Issue(
        plugin_name=plugin_name_from_channel(channel),
        issue_type=IssueType.MISSING_REGISTRATION,
        severity=IssueSeverity.CRITICAL,
        description=(
            f"{MISSING_PLUGIN_EXCEPTION}: No implementation found for method "
            f"{method} on channel {channel}"
        ),
        affected_platforms=detect_platforms(line),
        detected_at=_now(),
        stack_trace="\n".join(frames) if frames else None,
        additional_context={"method": method, "channel": channel, "log_line": line},
    )


def _parse_platform_exception(line: str) -> Optional[Issue]:
    plugin_name = plugin_name_from_line(line)
    if not plugin_name:
        return None
    return Issue(
        plugin_name=plugin_name,
        issue_type=IssueType.INITIALIZATION_FAILURE,
        severity=IssueSeverity.HIGH,
        description=f"{PLATFORM_EXCEPTION} occurred in plugin {plugin_name}",
        affected_platforms=detect_platforms(line),
        detected_at=_now(),
        additional_context={"log_line": line},
    )


def _parse_method_channel_error(line: str) -> Optional[Issue]:
    match = NO_IMPLEMENTATION_METHOD_PATTERN.search(line)
    if match is None:
        return None
    method = match.group(1)
    return Issue(
        plugin_name=plugin_name_from_line(line) or UNKNOWN_PLUGIN_SENTINEL,
        issue_type=IssueType.METHOD_CHANNEL_NOT_FOUND,
        severity=IssueSeverity.HIGH,
        description=f"{NO_IMPLEMENTATION_FOUND} {method}",
        affected_platforms=detect_platforms(line),
        detected_at=_now(),
        additional_context={"method": method, "log_line": line},
    )


def _collect_stack_frames(lines: List[str], index: int) -> List[str]:
    frames: List[str] = []
    for line in lines[index + 1:index + 1 + MAX_STACK_TRACE_LINES]:
        if line.strip().startswith(STACK_FRAME_PREFIXES):
            frames.append(line)
        elif frames:
            break
    return frames


def plugin_name_from_channel(channel: str) -> str:
    """``plugins.flutter.io/camera`` -> ``plugins.flutter.io``; ``a.b.c`` -> ``c``."""
    if "/" in channel:
        return channel.split("/")[0]
    if "." in channel:
        return channel.split(".")[-1]
    return channel


def plugin_name_from_line(line: str) -> str:
    for pattern in PLUGIN_NAME_PATTERNS:
        match = pattern.search(line)
        if match:
            return next((group for group in match.groups() if group), "")
    return ""


def detect_platforms(line: str) -> List[str]:
    platforms = [
        platform
        for platform, hints in PLATFORM_LOG_HINTS
        if any(hint in line for hint in hints)
    ]
    return platforms or [UNKNOWN_PLATFORM]


def is_plugin_related(line: str) -> bool:
    return any(keyword in line for keyword in PLUGIN_RELATED_KEYWORDS)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# BROADCAST
# =============================================================================

_END = object()


class Subscription:
    """One subscriber's view of an ``IssueBroadcaster``.

    Iterate with ``async for``. Must be created from a running event loop.
    Issues already queued when the subscription ends are still delivered.
    """

    def __init__(self, broadcaster: "IssueBroadcaster") -> None:
        self._broadcaster = broadcaster
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cancelled = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Issue:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            self._finished = True
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._broadcaster._discard(self)
        self._queue.put_nowait(_END)

    def _deliver(self, issue: Issue) -> None:
        self._queue.put_nowait(issue)


class IssueBroadcaster:
    """Fans issues out to every live ``Subscription`` on one event loop."""

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, duration: Optional[float] = None) -> Subscription:
        """Start a subscription, optionally ending it after ``duration`` seconds.

        Subscribing to a closed broadcaster yields a subscription that is
        already finished.
        """
        subscription = Subscription(self)
        if self._closed:
            subscription.cancel()
            return subscription
        self._subscriptions.append(subscription)
        if duration is not None:
            loop = asyncio.get_running_loop()
            subscription._timer = loop.call_later(duration, subscription.cancel)
        return subscription

    def publish(self, issue: Issue) -> None:
        if self._closed:
            logger.debug("Dropping issue for %s: broadcaster closed", issue.plugin_name)
            return
        for subscription in list(self._subscriptions):
            subscription._deliver(issue)

    def close(self) -> None:
        self._closed = True
        for subscription in list(self._subscriptions):
            subscription.cancel()

    def _discard(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)


def closed_broadcaster() -> IssueBroadcaster:
    broadcaster = IssueBroadcaster()
    broadcaster.close()
    return broadcaster
