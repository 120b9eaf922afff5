"""
Staging directory inspection.

Helpers over the working folder shared with the external tool:
pre-flight emptiness check, single-pass artifact matching, and copying
inputs in and intermediates out.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import DirectoryUnavailable
from .models import ArtifactMatcher

logger = logging.getLogger(__name__)

HIDDEN_PREFIX = "."


def _entries(directory: Path) -> List[str]:
    try:
        with os.scandir(directory) as it:
            return sorted(e.name for e in it)
    except OSError as ex:
        raise DirectoryUnavailable(directory, str(ex)) from ex


class StagingArea:
    """Inspection of one staging directory; holds no state between calls."""

    def check_empty(
        self,
        directory: Path,
        allowlist: Iterable[str] = (),
        required: Iterable[str] = (),
    ) -> Tuple[bool, List[str]]:
        """Return (clear, unexpected_entries).

        Hidden entries and allow-listed names are ignored. Required names that
        are absent are reported as ``missing:<name>``.
        """
        directory = Path(directory)
        allowed = set(allowlist)
        names = _entries(directory)
        unexpected: List[str] = []
        for name in names:
            if name.startswith(HIDDEN_PREFIX) or name in allowed:
                continue
            unexpected.append(name)
        present = set(names)
        for name in required:
            if name not in present:
                unexpected.append(f"missing:{name}")
        if unexpected:
            logger.info(f"Staging {directory} not clear: {unexpected}")
        return (not unexpected), unexpected

    def list_matching(
        self,
        directory: Path,
        matchers: Sequence[ArtifactMatcher],
        satisfied: Optional[Mapping[int, Path]] = None,
        exclude: Iterable[str] = (),
    ) -> Dict[int, Optional[Path]]:
        """Map every matcher index to a resolved path, or None when absent.

        Entries already claimed in ``satisfied`` are carried over and never
        offered to another matcher. Names in ``exclude`` (staged inputs,
        intermediates) are never offered at all.
        """
        directory = Path(directory)
        found: Dict[int, Optional[Path]] = {i: None for i in range(len(matchers))}
        claimed = set(exclude)
        for idx, path in (satisfied or {}).items():
            found[idx] = Path(path)
            claimed.add(Path(path).name)
        for name in _entries(directory):
            if name.startswith(HIDDEN_PREFIX) or name in claimed:
                continue
            for idx, matcher in enumerate(matchers):
                if found[idx] is not None or not matcher.matches(name):
                    continue
                path = directory / name
                if not matcher.is_ready(path):
                    logger.debug(f"{name} matches #{idx} but is not ready yet")
                    continue
                found[idx] = path
                claimed.add(name)
                break
        return found

    def has_sentinel(self, directory: Path, name: Optional[str]) -> bool:
        if not name:
            return False
        return (Path(directory) / name).exists()

    def write_sentinel(self, directory: Path, name: str) -> Path:
        path = Path(directory) / name
        path.write_text("stop\n")
        logger.info(f"Wrote stop sentinel {path}")
        return path

    def stage_in(self, directory: Path, files: Iterable[Path]) -> List[Path]:
        """Copy input files into the staging directory; returns the copies."""
        directory = Path(directory)
        copies: List[Path] = []
        for src in files:
            dest = directory / Path(src).name
            try:
                shutil.copy2(src, dest)
            except OSError as ex:
                self.remove(directory, [p.name for p in copies])
                raise DirectoryUnavailable(directory, f"cannot stage {src}: {ex}") from ex
            copies.append(dest)
        if copies:
            logger.info(f"Staged {len(copies)} file(s) into {directory}")
        return copies

    def remove(self, directory: Path, names: Iterable[str]) -> None:
        """Delete staged copies and intermediates; failures are logged only."""
        directory = Path(directory)
        for name in names:
            path = directory / name
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as ex:
                logger.warning(f"Could not remove {path}: {ex}")
            else:
                logger.debug(f"Removed {path}")
