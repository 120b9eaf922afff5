"""
Zerene Stacker adapter.

Zerene runs a batch script (ZereneBatch.xml) over every image in the staging
folder and exits. The folder must hold nothing but the batch script before
the inputs are copied in. Every tif left in the folder after the run is a
result; at least one is expected.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Sequence, Tuple

from stageflow.core.commands import build_launch_command, platform_name
from stageflow.core.configuration import ToolConfig
from stageflow.core.models import ArtifactMatcher, RunMode, RunSpec

from .base import ToolAdapter

BATCH_FILE = "ZereneBatch.xml"
# one output per stacking method (PMax, DMap, retouched), whatever the batch names them
MAX_OUTPUTS = 3
MAIN_CLASS = "com.zerenesystems.stacker.gui.MainFrame"
MAC_JARS = (
    "ZereneStacker.jar", "jai_codec.jar", "jdom.jar", "jai_core.jar",
    "metadata-extractor-2.4.0-beta-1.jar", "jai_imageio.jar", "jdk10hooks.jar",
)


class ZereneAdapter(ToolAdapter):
    name = "zerene"

    def staging_rules(self, config: ToolConfig) -> Tuple[List[str], List[str]]:
        return sorted({BATCH_FILE, *config.allow}), sorted({BATCH_FILE, *config.require})

    def java_command(self, config: ToolConfig) -> List[str]:
        """Start the bundled JRE directly (options.java_folder), as Zerene's batch API documents."""
        java_folder = Path(config.options["java_folder"])
        java = str(java_folder / "jre" / "bin" / "java")
        cmd = [java]
        license_folder = config.options.get("license_folder")
        if license_folder:
            cmd.append(f"-Dlaunchcmddir={license_folder}")
        if config.options.get("max_heap"):
            cmd.append(f"-Xmx{config.options['max_heap']}")
        osname = platform_name(self.platform)
        if osname == "macos":
            cmd += [
                "-Xdock:name=ZereneStacker",
                f"-Xdock:icon={java_folder.parent / 'ZereneEurydice.icns'}",
                "-Dapple.laf.useScreenMenuBar=true",
                "-classpath", ":".join(str(java_folder / jar) for jar in MAC_JARS),
            ]
        else:
            sep = ";" if osname == "windows" else os.pathsep
            cmd += [
                "-DjavaBits=64bitJava",
                "-classpath", sep.join([str(java_folder / "ZereneStacker.jar"), str(java_folder / "JREextensions" / "*")]),
            ]
        cmd += [MAIN_CLASS, "-noSplashScreen", "-leaveLastBatchProjectOpen"]
        return cmd

    def build_spec(self, config: ToolConfig, inputs: Sequence[Path]) -> RunSpec:
        files = self.require_inputs(inputs, minimum=2)
        staging = str(config.staging_dir)
        if config.options.get("java_folder"):
            command = [*self.java_command(config), *config.args, staging]
        else:
            command = build_launch_command(config.executable, [*config.args, staging], RunMode.BLOCKING_EXIT, self.platform)
        default = [ArtifactMatcher.pattern("*.tif")]
        default += [ArtifactMatcher.pattern("*.tif", optional=True) for _ in range(MAX_OUTPUTS - 1)]
        fields = self.base_fields(config)
        fields.update(sentinel=None)
        return RunSpec(
            command=command,
            mode=self.mode(config, RunMode.BLOCKING_EXIT),
            expected_artifacts=self.matchers(config, files, default),
            stage_files=files,
            **fields,
        )
