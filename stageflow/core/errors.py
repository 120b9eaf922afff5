"""
Exception types raised by the run core.

Fatal categories (InvalidSpec, StagingNotClear, LaunchFailed,
DirectoryUnavailable, ProcessFailed) stop a run; HarvestError is recorded per
artifact. Timeouts and cancellation are outcome states, not exceptions.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence


class StageflowError(Exception):
    """Base class for all run errors."""

    fatal = True


class InvalidSpec(StageflowError):
    """Malformed RunSpec; raised before anything is launched."""


class StagingNotClear(StageflowError):
    def __init__(self, directory: Path, unexpected: Sequence[str]):
        self.directory = Path(directory)
        self.unexpected: List[str] = list(unexpected)
        shown = ", ".join(self.unexpected[:5])
        more = f" (+{len(self.unexpected) - 5} more)" if len(self.unexpected) > 5 else ""
        super().__init__(f"staging directory {self.directory} is not clear: {shown}{more}")


class LaunchFailed(StageflowError):
    def __init__(self, command_line: str, reason: str = ""):
        self.command_line = command_line
        self.reason = reason
        msg = f"could not launch: {command_line}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class DirectoryUnavailable(StageflowError):
    def __init__(self, directory: Path, reason: str = ""):
        self.directory = Path(directory)
        self.reason = reason
        msg = f"staging directory unavailable: {self.directory}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class ProcessFailed(StageflowError):
    def __init__(self, exit_code: int, command_line: str = "", step: Optional[str] = None):
        self.exit_code = exit_code
        self.command_line = command_line
        self.step = step
        where = f" at step '{step}'" if step else ""
        super().__init__(f"external tool failed{where} with exit code {exit_code}")


class HarvestError(StageflowError):
    fatal = False

    def __init__(self, path: Path, reason: str = ""):
        self.path = Path(path)
        self.reason = reason
        msg = f"harvest failed for {self.path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
