"""CLI wrapper: Run the test suite (in-memory SQLite, no external services)."""

from __future__ import annotations

import sys

from cli._runner import run


def main() -> None:
    run([sys.executable, "-m", "pytest", "-q", *sys.argv[1:]])
