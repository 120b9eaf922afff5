"""
Utility modules for stageflow.

Helpers for moving harvested files and for logging setup.
"""

from .file_management import FileManager
from .logging_config import setup_logging

__all__ = [
    "FileManager",
    "setup_logging",
]
