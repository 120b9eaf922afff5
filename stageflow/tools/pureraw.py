"""
DxO PureRAW adapter.

Version 3 runs to completion and writes results beside each RAW file.
Versions 4 and 5 hand the work to a background process that keeps running,
so completion is detected by polling the staging folder for one output per
input; the timeout is reset every time another image shows up.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from stageflow.core.commands import build_launch_command, require_app_bundle
from stageflow.core.configuration import ToolConfig
from stageflow.core.models import ArtifactMatcher, RunMode, RunSpec

from .base import ToolAdapter

logger = logging.getLogger(__name__)

V3_SUFFIXES = [
    "_DxO_DeepPRIMEXD.dng", "_DxO_DeepPRIME.dng",
    "_DxO_DeepPRIMEXD.tif", "_DxO_DeepPRIME.tif",
    "_DxO_DeepPRIMEXD.jpg", "_DxO_DeepPRIME.jpg",
]
V45_SUFFIXES = [
    "-DxO_DeepPRIMEXD.dng", "-DxO_DeepPRIME.dng",
    "-DxO_DeepPRIME XD2s.dng", "-DxO_DeepPRIME XD2s_XD.dng",
    "-DxO_DeepPRIME XD3 X-Trans.dng",
]
# seconds to let DxO finish writing a file that has just appeared
SETTLE_SECONDS = 5.0


def detect_version(executable: str) -> str:
    """Guess the major version from the executable name (e.g. 'PureRAW 4.app')."""
    name = Path(str(executable).rstrip("/")).name
    for version in ("5", "4", "3"):
        if version in name:
            return version
    raise ValueError(f"cannot tell the DxO PureRAW version from '{name}'; set 'version' in the configuration")


class PureRawAdapter(ToolAdapter):
    name = "pureraw"

    def version(self, config: ToolConfig) -> str:
        version = config.version or detect_version(config.executable)
        if version not in ("3", "4", "5"):
            raise ValueError(f"unsupported DxO PureRAW version: {version}")
        return version

    def harvest_in_place(self, config: ToolConfig) -> bool:
        return self.version(config) == "3"

    def build_spec(self, config: ToolConfig, inputs: Sequence[Path]) -> RunSpec:
        files = self.require_inputs(inputs)
        require_app_bundle(config.executable, self.platform)
        version = self.version(config)
        logger.info(f"DxO PureRAW v{version}: {len(files)} image(s)")
        if version == "3":
            return self._spec_v3(config, files)
        return self._spec_v45(config, files)

    def _spec_v3(self, config: ToolConfig, files: List[Path]) -> RunSpec:
        folders = {p.resolve().parent for p in files}
        if len(folders) > 1:
            raise ValueError("DxO PureRAW 3 writes beside the RAW files; select images from one folder")
        folder = folders.pop()
        # v3 names outputs <stem>-<ext><suffix>, e.g. IMG_1-CR2_DxO_DeepPRIME.dng
        default = [
            ArtifactMatcher.suffix(*[f"{p.stem}-{p.suffix.lstrip('.')}{s}" for s in V3_SUFFIXES])
            for p in files
        ]
        fields = self.base_fields(config)
        fields.update(
            working_dir=folder,
            check_staging=False,
            sentinel=None,
        )
        return RunSpec(
            command=build_launch_command(
                config.executable, [*config.args, *map(str, files)], RunMode.BLOCKING_EXIT, self.platform
            ),
            mode=self.mode(config, RunMode.BLOCKING_EXIT),
            expected_artifacts=self.matchers(config, files, default),
            **fields,
        )

    def _spec_v45(self, config: ToolConfig, files: List[Path]) -> RunSpec:
        default = [
            ArtifactMatcher.suffix(*[f"{p.stem}{s}" for s in V45_SUFFIXES])
            for p in files
        ]
        settle = SETTLE_SECONDS if config.settle_time is None else config.settle_time
        return RunSpec(
            command=build_launch_command(
                config.executable, [*config.args, *map(str, files)], RunMode.POLL_FOR_ARTIFACTS, self.platform
            ),
            mode=self.mode(config, RunMode.POLL_FOR_ARTIFACTS),
            expected_artifacts=self.matchers(config, files, default),
            settle_time=settle,
            **self.base_fields(config),
        )
