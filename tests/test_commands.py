import pytest

from stageflow.core.commands import build_launch_command, require_app_bundle, tool_path
from stageflow.core.models import RunMode


def test_macos_app_bundle_uses_open():
    app = "/Applications/DxO PureRAW 4.app"
    assert build_launch_command(app, ["a.NEF"], RunMode.BLOCKING_EXIT, platform="darwin") == [
        "open", "-W", "-a", app, "a.NEF"
    ]
    # detached: no -W, otherwise open would wait for the background app
    assert build_launch_command(app + "/", ["a.NEF"], RunMode.POLL_FOR_ARTIFACTS, platform="darwin") == [
        "open", "-a", app, "a.NEF"
    ]


def test_windows_detached_uses_start():
    exe = r"C:\Program Files\DxO\PureRAW.exe"
    cmd = build_launch_command(exe, ["a.NEF"], RunMode.POLL_FOR_ARTIFACTS, platform="win32")
    assert cmd == ["cmd", "/c", "start", "", exe, "a.NEF"]
    assert build_launch_command(exe, ["a.NEF"], RunMode.BLOCKING_EXIT, platform="win32") == [exe, "a.NEF"]


def test_linux_runs_directly_and_strips_quotes():
    assert build_launch_command("'/usr/bin/enblend'", ["-o", "x.tif"], platform="linux") == [
        "/usr/bin/enblend", "-o", "x.tif"
    ]
    with pytest.raises(ValueError):
        build_launch_command("  ", [], platform="linux")


def test_require_app_bundle():
    require_app_bundle("/Applications/Tool.app", platform="darwin")
    require_app_bundle("/usr/bin/tool", platform="linux")
    with pytest.raises(ValueError, match=".app"):
        require_app_bundle("/Applications/Tool", platform="darwin")


def test_tool_path():
    assert tool_path("/opt/hugin/bin", "nona", platform="linux") == "/opt/hugin/bin/nona"
    assert tool_path("C:/Hugin/bin", "nona", platform="win32").endswith("nona.exe")
