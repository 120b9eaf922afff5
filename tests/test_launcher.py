import sys
from pathlib import Path

import pytest

from stageflow.core.errors import LaunchFailed, ProcessFailed
from stageflow.core.launcher import ProcessLauncher, command_line
from stageflow.core.models import RunMode

PY = sys.executable


def test_blocking_reports_exit_code(tmp_path):
    launcher = ProcessLauncher()
    h = launcher.launch([PY, "-c", "import sys; sys.exit(3)"], RunMode.BLOCKING_EXIT, cwd=tmp_path, quiet=True)
    assert h.exit_code == 3
    assert h.process is None


def test_blocking_runs_in_cwd_with_env(tmp_path):
    launcher = ProcessLauncher()
    code = "import os, pathlib; pathlib.Path('out.txt').write_text(os.environ['STAGEFLOW_TEST'])"
    h = launcher.launch([PY, "-c", code], RunMode.BLOCKING_EXIT, cwd=tmp_path, env={"STAGEFLOW_TEST": "hello"})
    assert h.exit_code == 0
    assert (tmp_path / "out.txt").read_text() == "hello"


def test_missing_executable_is_launch_failure(tmp_path):
    launcher = ProcessLauncher()
    with pytest.raises(LaunchFailed) as ei:
        launcher.launch([str(tmp_path / "no-such-tool")], RunMode.BLOCKING_EXIT, cwd=tmp_path)
    assert "no-such-tool" in ei.value.command_line
    with pytest.raises(LaunchFailed):
        launcher.launch([str(tmp_path / "no-such-tool")], RunMode.POLL_FOR_ARTIFACTS, cwd=tmp_path)


@pytest.mark.skipif(sys.platform.startswith("win"), reason="posix shell exit codes")
def test_shell_command_not_found_is_launch_failure(tmp_path):
    launcher = ProcessLauncher()
    with pytest.raises(LaunchFailed) as ei:
        launcher.launch("definitely-not-a-command-xyz", RunMode.BLOCKING_EXIT, cwd=tmp_path, quiet=True)
    assert ei.value.reason == "command not found"


def test_poll_returns_before_exit(tmp_path):
    launcher = ProcessLauncher()
    h = launcher.launch([PY, "-c", "import time; time.sleep(0.3)"], RunMode.POLL_FOR_ARTIFACTS, cwd=tmp_path)
    try:
        assert h.exit_code is None
        assert h.process is not None and h.process.poll() is None
    finally:
        h.process.wait(timeout=10)


def test_run_steps_stops_at_first_failure(tmp_path):
    launcher = ProcessLauncher()
    steps = [
        [PY, "-c", "open('one', 'w').write('1')"],
        [PY, "-c", "import sys; sys.exit(2)"],
        [PY, "-c", "open('three', 'w').write('3')"],
    ]
    with pytest.raises(ProcessFailed) as ei:
        launcher.run_steps(steps, cwd=tmp_path, quiet=True)
    assert ei.value.exit_code == 2
    assert ei.value.step == Path(PY).name
    assert (tmp_path / "one").exists()
    assert not (tmp_path / "three").exists()


def test_command_line_quotes_arguments():
    assert command_line(["enblend", "-o", "my pano.tif"]) == "enblend -o 'my pano.tif'"
    assert command_line("open -a Tool") == "open -a Tool"
