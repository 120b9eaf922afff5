"""
Base interface for tool adapters.

An adapter turns a ToolConfig and a list of input files into a RunSpec the
RunCoordinator can execute. Harvesting is left to the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from stageflow.core.configuration import ToolConfig
from stageflow.core.models import ArtifactMatcher, RunMode, RunSpec


def matchers_from_config(entries: Sequence[Dict[str, Any]], inputs: Sequence[Path]) -> List[ArtifactMatcher]:
    """Build matchers from config entries.

    Entries with ``per_input: true`` are expanded once per input file with
    ``{stem}`` and ``{name}`` substituted; the expansion is ordered by input.
    """
    fixed = [e for e in entries if not e.get("per_input")]
    templated = [e for e in entries if e.get("per_input")]
    matchers = [ArtifactMatcher(**_matcher_fields(e)) for e in fixed]
    for src in inputs:
        src = Path(src)
        for entry in templated:
            fields = _matcher_fields(entry)
            for key in ("name", "glob"):
                if fields.get(key):
                    fields[key] = fields[key].format(stem=src.stem, name=src.name)
            if fields.get("suffixes"):
                fields["suffixes"] = [s.format(stem=src.stem, name=src.name) for s in fields["suffixes"]]
            matchers.append(ArtifactMatcher(**fields))
    return matchers


def _matcher_fields(entry: Dict[str, Any]) -> Dict[str, Any]:
    fields = {k: entry[k] for k in ("name", "glob", "min_size", "optional") if k in entry}
    if "suffixes" in entry:
        suffixes = entry["suffixes"]
        fields["suffixes"] = [suffixes] if isinstance(suffixes, str) else list(suffixes)
    return fields


class ToolAdapter(ABC):
    """Build run specs for one kind of external tool."""

    name: str = ""

    def __init__(self, platform: Optional[str] = None):
        self.platform = platform

    @abstractmethod
    def build_spec(self, config: ToolConfig, inputs: Sequence[Path]) -> RunSpec:
        """Return the RunSpec that processes ``inputs`` with ``config``."""
        raise NotImplementedError

    def destination(self, config: ToolConfig, inputs: Sequence[Path]) -> Path:
        """Where harvested artifacts belong: next to the first input."""
        return Path(inputs[0]).resolve().parent

    def staging_rules(self, config: ToolConfig) -> Tuple[List[str], List[str]]:
        """(allowed, required) names for the pre-flight staging check."""
        return list(config.allow), list(config.require)

    def harvest_in_place(self, config: ToolConfig) -> bool:
        """True when the tool writes results to their final place already."""
        return False

    def matchers(self, config: ToolConfig, inputs: Sequence[Path],
                 default: Sequence[ArtifactMatcher] = ()) -> List[ArtifactMatcher]:
        if config.artifacts:
            return matchers_from_config(config.artifacts, inputs)
        return list(default)

    def base_fields(self, config: ToolConfig) -> Dict[str, Any]:
        """RunSpec fields shared by every adapter."""
        allow, require = self.staging_rules(config)
        return {
            "working_dir": config.staging_dir,
            "poll_interval": config.poll_interval,
            "per_item_timeout": config.timeout_seconds,
            "success_codes": config.success_codes,
            "sentinel": config.sentinel,
            "staging_allow": allow,
            "staging_require": require,
        }

    @staticmethod
    def require_inputs(inputs: Sequence[Path], minimum: int = 1) -> List[Path]:
        files = [Path(p) for p in inputs]
        if len(files) < minimum:
            raise ValueError(f"at least {minimum} input file(s) required, got {len(files)}")
        missing = [str(p) for p in files if not p.is_file()]
        if missing:
            raise FileNotFoundError(f"input file(s) not found: {', '.join(missing)}")
        return files

    def mode(self, config: ToolConfig, default: RunMode) -> RunMode:
        return config.mode or default
