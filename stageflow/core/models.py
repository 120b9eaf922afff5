"""
Pydantic models for run input (RunSpec, ArtifactMatcher) and dataclasses for
run output (RunResult, CompletedArtifact).
"""

from __future__ import annotations

import fnmatch
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import HarvestError, LaunchFailed, StageflowError


class RunMode(str, Enum):
    BLOCKING_EXIT = "blocking"
    POLL_FOR_ARTIFACTS = "poll"


class CompletionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    PROCESS_FAILED = "process_failed"
    # fatal error before or during detection (staging, launch, directory)
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self not in (CompletionState.IDLE, CompletionState.RUNNING)


Command = Union[List[str], str]


class ArtifactMatcher(BaseModel):
    """Predicate over a filename: exact name, suffix list or glob, plus a size floor."""

    name: Optional[str] = None
    suffixes: List[str] = Field(default_factory=list)
    glob: Optional[str] = None
    min_size: int = 1
    # collected when present, never reported as missing
    optional: bool = False

    @field_validator("min_size")
    @classmethod
    def size_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("min_size must be >= 0")
        return v

    @model_validator(mode="after")
    def one_rule(self) -> "ArtifactMatcher":
        rules = [bool(self.name), bool(self.suffixes), bool(self.glob)]
        if sum(rules) != 1:
            raise ValueError("matcher needs exactly one of name, suffixes, glob")
        if any(not s for s in self.suffixes):
            raise ValueError("suffixes must not contain empty strings")
        return self

    @classmethod
    def exact(cls, name: str, min_size: int = 1, optional: bool = False) -> "ArtifactMatcher":
        return cls(name=name, min_size=min_size, optional=optional)

    @classmethod
    def suffix(cls, *suffixes: str, min_size: int = 1, optional: bool = False) -> "ArtifactMatcher":
        return cls(suffixes=list(suffixes), min_size=min_size, optional=optional)

    @classmethod
    def pattern(cls, glob: str, min_size: int = 1, optional: bool = False) -> "ArtifactMatcher":
        return cls(glob=glob, min_size=min_size, optional=optional)

    def matches(self, filename: str) -> bool:
        if self.name:
            return filename == self.name
        if self.suffixes:
            return any(filename.endswith(s) for s in self.suffixes)
        return fnmatch.fnmatchcase(filename, self.glob or "")

    def is_ready(self, path: Path) -> bool:
        # zero-byte (or undersized) files are still being written
        try:
            st = Path(path).stat()
        except OSError:
            return False
        return st.st_size >= self.min_size

    def describe(self) -> str:
        if self.name:
            return self.name
        if self.suffixes:
            return "*" + "|".join(self.suffixes)
        return self.glob or ""


class RunSpec(BaseModel):
    command: Command
    working_dir: Path
    mode: RunMode = RunMode.BLOCKING_EXIT
    expected_artifacts: List[ArtifactMatcher] = Field(default_factory=list)
    per_item_timeout: float = 300.0
    poll_interval: float = 10.0
    pre_commands: List[Command] = Field(default_factory=list)
    success_codes: List[int] = Field(default_factory=lambda: [0])
    check_staging: bool = True
    staging_allow: List[str] = Field(default_factory=list)
    staging_require: List[str] = Field(default_factory=list)
    sentinel: Optional[str] = "stopjob"
    settle_time: float = 0.0
    env: Dict[str, str] = Field(default_factory=dict)
    quiet: bool = False
    stage_files: List[Path] = Field(default_factory=list)
    cleanup_files: List[str] = Field(default_factory=list)

    @field_validator("command")
    @classmethod
    def command_non_empty(cls, v: Command) -> Command:
        if isinstance(v, str):
            if not v.strip():
                raise ValueError("command must not be empty")
        elif not v or not str(v[0]).strip():
            raise ValueError("command must not be empty")
        return v

    @field_validator("per_item_timeout", "settle_time")
    @classmethod
    def duration_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("durations must be >= 0")
        return v

    @field_validator("poll_interval")
    @classmethod
    def interval_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll_interval must be > 0")
        return v

    @field_validator("success_codes")
    @classmethod
    def codes_present(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("success_codes must not be empty")
        return v

    @model_validator(mode="after")
    def mode_needs_artifacts(self) -> "RunSpec":
        if self.mode == RunMode.POLL_FOR_ARTIFACTS and all(m.optional for m in self.expected_artifacts):
            raise ValueError("poll mode requires at least one non-optional expected artifact")
        return self


@dataclass
class CompletedArtifact:
    matcher_index: int
    path: Path
    discovered_at: float
    harvested: bool = False
    harvest_error: Optional[HarvestError] = None


@dataclass
class RunResult:
    state: CompletionState = CompletionState.IDLE
    launch_error: Optional[LaunchFailed] = None
    error: Optional[StageflowError] = None
    exit_code: Optional[int] = None
    completed_artifacts: List[CompletedArtifact] = field(default_factory=list)
    timed_out_matchers: Set[int] = field(default_factory=set)
    missing_matchers: Set[int] = field(default_factory=set)
    # not collected because a fatal error stopped the run
    abandoned_matchers: Set[int] = field(default_factory=set)
    cancelled: bool = False
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def harvest_errors(self) -> List[HarvestError]:
        return [a.harvest_error for a in self.completed_artifacts if a.harvest_error is not None]

    @property
    def harvested(self) -> List[CompletedArtifact]:
        return [a for a in self.completed_artifacts if a.harvested]

    @property
    def succeeded(self) -> bool:
        """True only for a fully satisfied run with every harvest successful."""
        return (
            self.state == CompletionState.SATISFIED
            and self.launch_error is None
            and self.error is None
            and not self.missing_matchers
            and not self.harvest_errors
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "launch_error": str(self.launch_error) if self.launch_error else None,
            "error": str(self.error) if self.error else None,
            "exit_code": self.exit_code,
            "cancelled": self.cancelled,
            "completed_artifacts": [
                {
                    "matcher_index": a.matcher_index,
                    "path": str(a.path),
                    "discovered_at": a.discovered_at,
                    "harvested": a.harvested,
                    "harvest_error": str(a.harvest_error) if a.harvest_error else None,
                }
                for a in self.completed_artifacts
            ],
            "timed_out_matchers": sorted(self.timed_out_matchers),
            "missing_matchers": sorted(self.missing_matchers),
            "abandoned_matchers": sorted(self.abandoned_matchers),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }
