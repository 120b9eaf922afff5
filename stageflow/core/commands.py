"""
Platform launch wrappers for desktop tools.

macOS application bundles are started through ``open -a`` (``-W`` waits for
the app to quit); detached Windows launches go through ``start``; everything
else runs the executable directly.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .models import RunMode


def platform_name(platform: Optional[str]) -> str:
    p = (platform or sys.platform).lower()
    if p.startswith("darwin") or p == "macos":
        return "macos"
    if p.startswith("win"):
        return "windows"
    return "linux"


def build_launch_command(
    executable: str,
    args: Sequence[str] = (),
    mode: RunMode = RunMode.BLOCKING_EXIT,
    platform: Optional[str] = None,
) -> List[str]:
    """Return the argv that launches ``executable`` with ``args`` on ``platform``."""
    exe = str(executable).strip().strip("'\"")
    if not exe:
        raise ValueError("executable path is empty")
    args = [str(a) for a in args]
    osname = platform_name(platform)
    if osname == "macos" and exe.rstrip("/").endswith(".app"):
        wait = ["-W"] if mode == RunMode.BLOCKING_EXIT else []
        return ["open", *wait, "-a", exe.rstrip("/"), *args]
    if osname == "windows" and mode == RunMode.POLL_FOR_ARTIFACTS:
        # empty title argument (rendered as ""), otherwise start treats a quoted path as the title
        return ["cmd", "/c", "start", "", exe, *args]
    return [exe, *args]


def require_app_bundle(executable: str, platform: Optional[str] = None) -> None:
    """On macOS desktop tools must be given as the .app bundle."""
    if platform_name(platform) == "macos" and not str(executable).rstrip("/").endswith(".app"):
        raise ValueError(f"please use the .app application: {executable}")


def tool_path(folder: str, name: str, platform: Optional[str] = None) -> str:
    """Path of a command-line tool inside an install folder (adds .exe on Windows)."""
    if platform_name(platform) == "windows" and not name.lower().endswith(".exe"):
        name += ".exe"
    return str(Path(folder) / name)
