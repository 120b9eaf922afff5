"""
File management utilities: moving harvested artifacts next to their sources.
"""

import shutil
import json
from pathlib import Path
from typing import Callable, Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

MovedCallback = Callable[[Path, Path], None]


class FileManager:
    """Utilities for file and directory management."""

    @staticmethod
    def ensure_directory(path: Path) -> Path:
        """Ensure directory exists, create if necessary."""
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def unique_target(path: Path, limit: int = 99) -> Path:
        """Return ``path`` or the first free ``<stem>_NN<suffix>`` sibling.

        Raises FileExistsError when all ``limit`` alternatives are taken.
        """
        path = Path(path)
        if not path.exists():
            return path
        width = max(2, len(str(limit)))
        for n in range(1, limit + 1):
            candidate = path.with_name(f"{path.stem}_{n:0{width}d}{path.suffix}")
            if not candidate.exists():
                return candidate
        raise FileExistsError(f"No free name for {path} after {limit} attempts")

    @staticmethod
    def move_file(src: Path, dest_dir: Path) -> Path:
        """Move ``src`` into ``dest_dir`` without overwriting; returns the new path."""
        src = Path(src)
        dest_dir = FileManager.ensure_directory(dest_dir)
        target = FileManager.unique_target(dest_dir / src.name)
        shutil.move(str(src), str(target))
        logger.info(f"Moved {src} to {target}")
        return target

    @staticmethod
    def make_move_harvester(dest_dir: Path, on_moved: Optional[MovedCallback] = None) -> Callable[[Path], bool]:
        """Build a harvest callable that moves each artifact into ``dest_dir``.

        Errors propagate so the run records them against the artifact.
        """
        def harvest(path: Path) -> bool:
            target = FileManager.move_file(path, dest_dir)
            if on_moved is not None:
                on_moved(Path(path), target)
            return True

        return harvest

    @staticmethod
    def save_json(data: Dict[str, Any], file_path: Path):
        """Save data as JSON file."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, 'w') as f:
            json.dump(data, f, indent=2)
