from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


def run_command(
    args: List[str], cwd: Optional[Path] = None, timeout: float = 20.0
) -> Optional[str]:
    """Run a toolchain command and return its stripped stdout.

    Returns None when the tool is missing, exits non-zero or times out.
    """
    try:
        completed = subprocess.run(
            args,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Command %s unavailable: %s", args[0], exc)
        return None
    if completed.returncode != 0:
        logger.debug("Command %s exited with %d", args[0], completed.returncode)
        return None
    # `dart --version` historically printed to stderr
    output = completed.stdout.strip() or completed.stderr.strip()
    return output or None


def relative_path(path: Path, root: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return path.as_posix()


def redact_home(value: str) -> str:
    home = str(Path.home())
    if home and home != "/" and value.startswith(home):
        return "~" + value[len(home):]
    return value
