import threading

import pytest

from stageflow.core.detector import CompletionDetector
from stageflow.core.errors import DirectoryUnavailable, ProcessFailed
from stageflow.core.launcher import LaunchHandle
from stageflow.core.models import ArtifactMatcher, CompletionState, RunMode, RunSpec


class FakeClock:
    """Monotonic clock whose sleep advances time and fires scheduled actions."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []
        self._events = []

    def __call__(self):
        return self.now

    def at(self, t, action):
        self._events.append((t, action))
        self._events.sort(key=lambda e: e[0])

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds
        while self._events and self._events[0][0] <= self.now:
            _, action = self._events.pop(0)
            action()


def _poll_spec(tmp_path, **kw):
    fields = dict(
        command=["tool"],
        working_dir=tmp_path,
        mode=RunMode.POLL_FOR_ARTIFACTS,
        expected_artifacts=[ArtifactMatcher.suffix("-a.tif"), ArtifactMatcher.suffix("-b.tif")],
        poll_interval=1,
        per_item_timeout=5,
    )
    fields.update(kw)
    return RunSpec(**fields)


def _writer(path):
    return lambda: path.write_bytes(b"image")


def _detector(clock, **kw):
    return CompletionDetector(clock=clock, sleep=clock.sleep, **kw)


def test_poll_satisfied_when_all_artifacts_appear(tmp_path):
    clock = FakeClock()
    clock.at(2, _writer(tmp_path / "img-a.tif"))
    clock.at(3, _writer(tmp_path / "img-b.tif"))
    det = _detector(clock).poll(_poll_spec(tmp_path))
    assert det.state == CompletionState.SATISFIED
    assert det.found == {0: tmp_path / "img-a.tif", 1: tmp_path / "img-b.tif"}
    assert det.unsatisfied == set()
    assert clock.now <= 4


def test_poll_times_out_after_last_progress(tmp_path):
    clock = FakeClock()
    clock.at(2, _writer(tmp_path / "img-a.tif"))
    det = _detector(clock).poll(_poll_spec(tmp_path))
    assert det.state == CompletionState.TIMED_OUT
    assert clock.now == 7
    assert det.found == {0: tmp_path / "img-a.tif"}
    assert det.unsatisfied == {1}


def test_each_new_artifact_resets_timeout(tmp_path):
    clock = FakeClock()
    spec = _poll_spec(
        tmp_path,
        expected_artifacts=[ArtifactMatcher.suffix(f"-{c}.tif") for c in "abc"],
        per_item_timeout=3,
    )
    clock.at(2, _writer(tmp_path / "x-a.tif"))
    clock.at(5, _writer(tmp_path / "x-b.tif"))
    clock.at(8, _writer(tmp_path / "x-c.tif"))
    det = _detector(clock).poll(spec)
    # total wait exceeds the per-item timeout, but no gap does
    assert det.state == CompletionState.SATISFIED
    assert clock.now == 8


def test_zero_timeout_gives_up_on_first_empty_poll(tmp_path):
    clock = FakeClock()
    det = _detector(clock).poll(_poll_spec(tmp_path, per_item_timeout=0))
    assert det.state == CompletionState.TIMED_OUT
    assert clock.now == 1
    assert det.unsatisfied == {0, 1}


def test_cancel_flag_stops_polling_with_partial_results(tmp_path):
    clock = FakeClock()
    cancel = threading.Event()
    clock.at(1, _writer(tmp_path / "img-a.tif"))
    clock.at(3, cancel.set)
    det = _detector(clock, cancel_event=cancel).poll(_poll_spec(tmp_path))
    assert det.state == CompletionState.CANCELLED
    assert clock.now == 3
    assert det.found == {0: tmp_path / "img-a.tif"}
    assert det.unsatisfied == {1}


def test_sentinel_file_cancels(tmp_path):
    clock = FakeClock()
    clock.at(2, _writer(tmp_path / "stopjob"))
    det = _detector(clock).poll(_poll_spec(tmp_path))
    assert det.state == CompletionState.CANCELLED
    assert clock.now == 2


def test_settle_time_waits_before_accepting(tmp_path):
    clock = FakeClock()
    clock.at(1, _writer(tmp_path / "img-a.tif"))
    clock.at(1, _writer(tmp_path / "img-b.tif"))
    det = _detector(clock).poll(_poll_spec(tmp_path, settle_time=5))
    assert det.state == CompletionState.SATISFIED
    assert clock.sleeps == [1, 5]


def test_progress_callback(tmp_path):
    clock = FakeClock()
    seen = []
    clock.at(2, _writer(tmp_path / "img-a.tif"))
    clock.at(3, _writer(tmp_path / "img-b.tif"))
    _detector(clock, on_progress=lambda *a: seen.append(a)).poll(_poll_spec(tmp_path))
    assert seen == [(0, 2, 1), (1, 2, 0), (2, 2, 0)]


def test_directory_vanishing_propagates(tmp_path):
    clock = FakeClock()
    stage = tmp_path / "stage"
    stage.mkdir()
    clock.at(2, stage.rmdir)
    with pytest.raises(DirectoryUnavailable):
        _detector(clock).poll(_poll_spec(stage))


def test_wait_for_exit_success_collects_artifacts(tmp_path):
    (tmp_path / "img-a.tif").write_bytes(b"x")
    spec = RunSpec(
        command=["tool"],
        working_dir=tmp_path,
        expected_artifacts=[ArtifactMatcher.suffix("-a.tif"), ArtifactMatcher.suffix("-b.tif")],
    )
    handle = LaunchHandle("tool", RunMode.BLOCKING_EXIT, 0.0, exit_code=0)
    det = CompletionDetector().wait_for_exit(handle, spec)
    assert det.state == CompletionState.SATISFIED
    assert det.found == {0: tmp_path / "img-a.tif"}
    assert det.unsatisfied == {1}
    assert det.error is None


def test_wait_for_exit_failure(tmp_path):
    spec = RunSpec(command=["tool"], working_dir=tmp_path, success_codes=[0, 1])
    det = CompletionDetector().wait_for_exit(LaunchHandle("tool", RunMode.BLOCKING_EXIT, 0.0, exit_code=1), spec)
    assert det.state == CompletionState.SATISFIED
    det = CompletionDetector().wait_for_exit(LaunchHandle("tool", RunMode.BLOCKING_EXIT, 0.0, exit_code=4), spec)
    assert det.state == CompletionState.PROCESS_FAILED
    assert isinstance(det.error, ProcessFailed)
    assert det.exit_code == 4
