"""
Generic adapter driven entirely by configuration.

``args`` may use the placeholders ``{inputs}`` (expands to every input path),
``{staging}`` and ``{first}``.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from stageflow.core.commands import build_launch_command
from stageflow.core.configuration import ToolConfig
from stageflow.core.models import RunMode, RunSpec

from .base import ToolAdapter


def expand_args(args: Sequence[str], inputs: Sequence[Path], staging: Path) -> List[str]:
    out: List[str] = []
    for arg in args:
        if arg == "{inputs}":
            out.extend(str(p) for p in inputs)
        else:
            out.append(arg.format(staging=staging, first=inputs[0] if inputs else ""))
    return out


class CustomAdapter(ToolAdapter):
    name = "custom"

    def build_spec(self, config: ToolConfig, inputs: Sequence[Path]) -> RunSpec:
        files = self.require_inputs(inputs)
        mode = self.mode(config, RunMode.BLOCKING_EXIT)
        args = config.args or ["{inputs}"]
        fields = self.base_fields(config)
        if config.settle_time is not None:
            fields["settle_time"] = config.settle_time
        return RunSpec(
            command=build_launch_command(
                config.executable, expand_args(args, files, config.staging_dir), mode, self.platform
            ),
            mode=mode,
            expected_artifacts=self.matchers(config, files),
            check_staging=bool(config.options.get("check_staging", True)),
            stage_files=files if config.options.get("stage_inputs") else [],
            **fields,
        )
