"""
RunCoordinator: validate, pre-flight, launch, detect, harvest.

Public API:
  - RunCoordinator(launcher=None, staging=None, *, clock=..., sleep=..., on_progress=...)
  - start(spec: RunSpec | dict, harvest: Callable[[Path], bool | None]) -> RunResult
  - cancel() -> None
  - state (property)
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from .detector import CompletionDetector, Detection, ProgressCallback
from .errors import DirectoryUnavailable, HarvestError, InvalidSpec, LaunchFailed, ProcessFailed, StagingNotClear
from .launcher import ProcessLauncher
from .models import CompletedArtifact, CompletionState, RunMode, RunResult, RunSpec
from .staging import StagingArea

logger = logging.getLogger(__name__)

Harvest = Callable[[Path], Optional[bool]]


def validate_spec(spec: Union[RunSpec, Dict[str, Any]]) -> RunSpec:
    """Return a validated RunSpec or raise InvalidSpec."""
    try:
        if isinstance(spec, RunSpec):
            # re-run validators; the instance may have been mutated or model_construct'ed
            return RunSpec.model_validate(spec.model_dump())
        return RunSpec.model_validate(spec)
    except ValidationError as ex:
        raise InvalidSpec(str(ex)) from ex


class RunCoordinator:
    def __init__(
        self,
        launcher: Optional[ProcessLauncher] = None,
        staging: Optional[StagingArea] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.launcher = launcher or ProcessLauncher()
        self.staging = staging or StagingArea()
        self._clock = clock
        self._sleep = sleep
        self._on_progress = on_progress
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._state = CompletionState.IDLE

    @property
    def state(self) -> CompletionState:
        with self._lock:
            return self._state

    def _set_state(self, state: CompletionState) -> None:
        with self._lock:
            self._state = state

    def cancel(self) -> None:
        """Request cancellation; idempotent and a no-op once the run is terminal."""
        with self._lock:
            if self._state.terminal:
                logger.debug("cancel() ignored: run already finished")
                return
            if not self._cancel.is_set():
                logger.info("Cancel requested")
            self._cancel.set()

    def start(self, spec: Union[RunSpec, Dict[str, Any]], harvest: Harvest) -> RunResult:
        spec = validate_spec(spec)
        with self._lock:
            if self._state == CompletionState.RUNNING:
                raise RuntimeError("a run is already in progress on this coordinator")
            if self._state.terminal:
                # fresh flag for a new run; a cancel raised while idle is kept
                self._cancel = threading.Event()
            self._state = CompletionState.RUNNING
        result = RunResult(state=CompletionState.RUNNING)
        logger.info(f"Run started: mode={spec.mode.value} dir={spec.working_dir} artifacts={len(spec.expected_artifacts)}")
        try:
            return self._run(spec, harvest, result)
        finally:
            result.finished_at = time.time()
            self._set_state(result.state)
            logger.info(
                f"Run finished: state={result.state.value} harvested={len(result.harvested)}"
                f"/{len(result.completed_artifacts)} timed_out={sorted(result.timed_out_matchers)}"
            )

    def _run(self, spec: RunSpec, harvest: Harvest, result: RunResult) -> RunResult:
        # 1) Pre-flight
        if spec.check_staging:
            try:
                clear, unexpected = self.staging.check_empty(
                    spec.working_dir, spec.staging_allow, spec.staging_require
                )
            except DirectoryUnavailable as ex:
                return self._fail(spec, result, ex)
            if not clear:
                return self._fail(spec, result, StagingNotClear(spec.working_dir, unexpected))
        if self._cancel.is_set():
            logger.info("Run cancelled before launch")
            result.state = CompletionState.CANCELLED
            result.cancelled = True
            result.timed_out_matchers = set(range(len(spec.expected_artifacts)))
            return result

        try:
            staged = self.staging.stage_in(spec.working_dir, spec.stage_files)
        except DirectoryUnavailable as ex:
            return self._fail(spec, result, ex)
        leftovers = [p.name for p in staged] + list(spec.cleanup_files)
        try:
            return self._launch_and_collect(spec, harvest, result, leftovers)
        finally:
            self.staging.remove(spec.working_dir, leftovers)

    def _launch_and_collect(self, spec: RunSpec, harvest: Harvest, result: RunResult, leftovers) -> RunResult:
        # 2) Launch
        try:
            if spec.pre_commands:
                self.launcher.run_steps(
                    spec.pre_commands, cwd=spec.working_dir, env=spec.env,
                    success_codes=spec.success_codes, quiet=spec.quiet,
                )
            handle = self.launcher.launch(
                spec.command, spec.mode, cwd=spec.working_dir, env=spec.env, quiet=spec.quiet
            )
        except LaunchFailed as ex:
            logger.error(f"Launch failed: {ex}")
            result.launch_error = ex
            result.state = CompletionState.FAILED
            result.abandoned_matchers = set(range(len(spec.expected_artifacts)))
            return result
        except ProcessFailed as ex:
            result.exit_code = ex.exit_code
            return self._fail(spec, result, ex, CompletionState.PROCESS_FAILED)
        if spec.mode == RunMode.BLOCKING_EXIT:
            # the tool is gone; drop inputs and intermediates before collecting
            self.staging.remove(spec.working_dir, leftovers)

        # 3) Detect
        detector = CompletionDetector(
            self.staging,
            cancel_event=self._cancel,
            clock=self._clock,
            sleep=self._sleep,
            on_progress=self._on_progress,
        )
        try:
            if spec.mode == RunMode.BLOCKING_EXIT:
                det = detector.wait_for_exit(handle, spec, exclude=leftovers)
            else:
                det = detector.poll(spec, exclude=leftovers)
        except DirectoryUnavailable as ex:
            return self._fail(spec, result, ex)
        self._apply_detection(spec, det, result)
        if det.error is not None:
            return result

        # 4) Harvest in matcher order
        for art in result.completed_artifacts:
            self._harvest_one(harvest, art)
        return result

    def _apply_detection(self, spec: RunSpec, det: Detection, result: RunResult) -> None:
        result.state = det.state
        result.exit_code = det.exit_code
        result.error = det.error
        result.cancelled = det.state == CompletionState.CANCELLED
        if det.error is not None:
            result.abandoned_matchers = set(range(len(spec.expected_artifacts)))
        elif spec.mode == RunMode.BLOCKING_EXIT:
            result.missing_matchers = set(det.unsatisfied)
        else:
            result.timed_out_matchers = set(det.unsatisfied)
        result.completed_artifacts = [
            CompletedArtifact(matcher_index=i, path=det.found[i], discovered_at=det.discovered_at.get(i, time.time()))
            for i in sorted(det.found)
        ]

    @staticmethod
    def _harvest_one(harvest: Harvest, art: CompletedArtifact) -> None:
        try:
            ok = harvest(art.path)
        except Exception as ex:
            logger.error(f"Harvest failed for {art.path}: {ex}")
            art.harvest_error = HarvestError(art.path, str(ex))
            return
        if ok is False:
            logger.error(f"Harvest reported failure for {art.path}")
            art.harvest_error = HarvestError(art.path, "harvest reported failure")
            return
        art.harvested = True
        logger.info(f"Harvested {art.path.name}")

    @staticmethod
    def _fail(spec: RunSpec, result: RunResult, error, state: CompletionState = CompletionState.FAILED) -> RunResult:
        """Record a fatal error; nothing is collected, so every matcher is abandoned."""
        logger.error(f"Run aborted: {error}")
        result.error = error
        result.state = state
        result.completed_artifacts = []
        result.abandoned_matchers = set(range(len(spec.expected_artifacts)))
        return result
