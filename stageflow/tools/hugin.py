"""
Hugin panorama adapter.

Runs the Hugin command-line chain in the staging folder: control points,
optimisation and remapping as pre-commands, then enblend as the main
command producing ``<last stem>-<count>-huginpano.tif``.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from stageflow.core.commands import tool_path
from stageflow.core.configuration import ToolConfig
from stageflow.core.models import ArtifactMatcher, RunMode, RunSpec

from .base import ToolAdapter

PROJECT = "project"


def panorama_name(inputs: Sequence[Path]) -> str:
    return f"{Path(inputs[-1]).stem}-{len(inputs)}-huginpano.tif"


def remapped_names(count: int) -> List[str]:
    """nona writes one remapped image per input: project0000.tif, project0001.tif, ..."""
    return [f"{PROJECT}{i:04d}.tif" for i in range(count)]


class HuginAdapter(ToolAdapter):
    name = "hugin"

    def tools_dir(self, config: ToolConfig) -> str:
        if config.tools_dir:
            return config.tools_dir
        return str(Path(config.executable).parent)

    def tool(self, config: ToolConfig, name: str) -> str:
        return tool_path(self.tools_dir(config), name, self.platform)

    def pipeline(self, config: ToolConfig, inputs: Sequence[Path]) -> List[List[str]]:
        """Commands run before blending, in order."""
        staging = Path(config.staging_dir)
        pto = str(staging / f"{PROJECT}.pto")
        staged = [str(staging / Path(p).name) for p in inputs]
        return [
            [self.tool(config, "pto_gen"), *staged, "-o", pto],
            [self.tool(config, "cpfind"), "-o", pto, "--multirow", "--celeste", pto],
            [self.tool(config, "cpclean"), "-o", pto, pto],
            [self.tool(config, "linefind"), "-o", pto, pto],
            [self.tool(config, "autooptimiser"), "-a", "-m", "-l", "-s", "-o", pto, pto],
            [self.tool(config, "pano_modify"), "--canvas=AUTO", "--crop=AUTO", "-o", pto, pto],
            [self.tool(config, "nona"), "-m", "TIFF_m", "-o", str(staging / PROJECT), pto],
        ]

    def build_spec(self, config: ToolConfig, inputs: Sequence[Path]) -> RunSpec:
        files = self.require_inputs(inputs, minimum=2)
        staging = Path(config.staging_dir)
        output = panorama_name(files)
        remapped = remapped_names(len(files))
        enblend = [
            self.tool(config, "enblend"), *config.args,
            "-o", str(staging / output),
            *[str(staging / name) for name in remapped],
        ]
        return RunSpec(
            command=enblend,
            mode=RunMode.BLOCKING_EXIT,
            expected_artifacts=self.matchers(config, files, [ArtifactMatcher.exact(output)]),
            pre_commands=self.pipeline(config, files),
            stage_files=files,
            cleanup_files=[f"{PROJECT}.pto", *remapped],
            **self.base_fields(config),
        )
