"""
Shared CLI runner helper.

Runs a tool inside the project's environment and propagates its exit code,
so every wrapper behaves the same under ``uv run`` and plain virtualenvs.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence

SOURCE_DIRS = ("querykit", "tests", "cli")


def run(cmd: Sequence[str]) -> None:
    """
    Run a command and exit with its return code.

    Args:
        cmd: Command and arguments to execute

    Example:
        >>> run([sys.executable, "-m", "pytest", "-q"])
    """
    result = subprocess.run(cmd)
    raise SystemExit(result.returncode)
