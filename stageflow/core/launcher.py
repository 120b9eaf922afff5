"""
ProcessLauncher: start an external command either to completion (blocking)
or detached in its own session (poll mode).
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .errors import LaunchFailed, ProcessFailed
from .models import Command, RunMode

logger = logging.getLogger(__name__)

# shell conventions for "cannot execute" / "command not found"
NOT_EXEC = 126
NOT_FOUND = 127


def command_line(cmd: Command) -> str:
    return " ".join(shlex.quote(str(x)) for x in cmd) if isinstance(cmd, list) else cmd


@dataclass
class LaunchHandle:
    command_line: str
    mode: RunMode
    started_at: float
    exit_code: Optional[int] = None
    process: Optional[subprocess.Popen] = None


class ProcessLauncher:
    def launch(
        self,
        command: Command,
        mode: RunMode,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        *,
        quiet: bool = False,
    ) -> LaunchHandle:
        """Start ``command``.

        Blocking mode returns after the process exits, with ``exit_code`` set.
        Poll mode returns as soon as the OS has created the process.
        Raises LaunchFailed when the process cannot be created.
        """
        cmd_repr = command_line(command)
        shell = not isinstance(command, list)
        popen_kwargs: Dict[str, Any] = {
            "cwd": str(cwd) if cwd else None,
            "env": self._merged_env(env),
            "stdin": subprocess.DEVNULL,
            "shell": shell,
        }
        if quiet:
            popen_kwargs.update({"stdout": subprocess.DEVNULL, "stderr": subprocess.DEVNULL})
        logger.debug(f"launch cmd={cmd_repr} cwd={cwd} mode={mode.value} quiet={quiet}")
        started = time.time()
        if mode == RunMode.BLOCKING_EXIT:
            try:
                res = subprocess.run(command, **popen_kwargs)
            except OSError as ex:
                logger.error(f"Launch failed: {cmd_repr}: {ex}")
                raise LaunchFailed(cmd_repr, str(ex)) from ex
            if shell and res.returncode in (NOT_EXEC, NOT_FOUND):
                reason = "command not found" if res.returncode == NOT_FOUND else "permission denied"
                logger.error(f"Launch failed: {cmd_repr}: {reason}")
                raise LaunchFailed(cmd_repr, reason)
            logger.info(f"Process finished rc={res.returncode}: {cmd_repr}")
            return LaunchHandle(cmd_repr, mode, started, exit_code=res.returncode)
        # Detached: own session so the tool outlives us and signals hit the whole group
        popen_kwargs["start_new_session"] = True
        try:
            proc = subprocess.Popen(command, **popen_kwargs)
        except OSError as ex:
            logger.error(f"Launch failed: {cmd_repr}: {ex}")
            raise LaunchFailed(cmd_repr, str(ex)) from ex
        logger.info(f"Process started pid={proc.pid}: {cmd_repr}")
        return LaunchHandle(cmd_repr, mode, started, process=proc)

    def run_steps(
        self,
        commands: Sequence[Command],
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        *,
        success_codes: Sequence[int] = (0,),
        quiet: bool = False,
    ) -> None:
        """Run blocking steps in order; stop at the first failing step."""
        for i, cmd in enumerate(commands, start=1):
            step = _step_name(cmd, i)
            logger.info(f"Step {i}/{len(commands)}: {step}")
            handle = self.launch(cmd, RunMode.BLOCKING_EXIT, cwd=cwd, env=env, quiet=quiet)
            if handle.exit_code not in success_codes:
                raise ProcessFailed(handle.exit_code, handle.command_line, step=step)

    @staticmethod
    def _merged_env(extra: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if not extra:
            return None
        env = os.environ.copy()
        env.update(extra)
        return env


def _step_name(cmd: Command, index: int) -> str:
    if isinstance(cmd, list):
        return Path(str(cmd[0])).name
    parts = cmd.split()
    return Path(parts[0]).name if parts else f"step{index}"
