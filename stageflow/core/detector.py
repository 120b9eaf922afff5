"""
CompletionDetector: decide when a launched tool is done.

Blocking mode: done when the process returned; success is judged by exit code.
Poll mode: done when every expected artifact is present in the staging
directory, the run is cancelled (flag or sentinel file), or no new artifact
has appeared for ``per_item_timeout`` seconds. Every new artifact resets the
timeout clock; partial results survive a timeout.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Sequence, Set

from .errors import ProcessFailed, StageflowError
from .launcher import LaunchHandle
from .models import ArtifactMatcher, CompletionState, RunSpec
from .staging import StagingArea

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, float], None]


@dataclass
class Detection:
    state: CompletionState
    found: Dict[int, Path] = field(default_factory=dict)
    discovered_at: Dict[int, float] = field(default_factory=dict)
    unsatisfied: Set[int] = field(default_factory=set)
    exit_code: Optional[int] = None
    error: Optional[StageflowError] = None


class CompletionDetector:
    def __init__(
        self,
        staging: Optional[StagingArea] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.staging = staging or StagingArea()
        self.cancel_event = cancel_event or threading.Event()
        self._clock = clock
        # Default sleep wakes early on cancel, bounding latency to one interval
        self._sleep = sleep or self.cancel_event.wait
        self._on_progress = on_progress
        self.state = CompletionState.IDLE

    def wait_for_exit(self, handle: LaunchHandle, spec: RunSpec, exclude: Iterable[str] = ()) -> Detection:
        """Classify a finished blocking launch and collect whatever it produced."""
        self.state = CompletionState.RUNNING
        code = handle.exit_code
        if code not in spec.success_codes:
            logger.warning(f"Tool exited with rc={code}: {handle.command_line}")
            return self._finish(Detection(
                state=CompletionState.PROCESS_FAILED,
                exit_code=code,
                error=ProcessFailed(code if code is not None else -1, handle.command_line),
            ))
        det = Detection(state=CompletionState.SATISFIED, exit_code=code)
        if spec.expected_artifacts:
            found = self.staging.list_matching(spec.working_dir, spec.expected_artifacts, exclude=exclude)
            now = time.time()
            for idx, path in found.items():
                if path is None:
                    if not spec.expected_artifacts[idx].optional:
                        det.unsatisfied.add(idx)
                else:
                    det.found[idx] = path
                    det.discovered_at[idx] = now
            if det.unsatisfied:
                logger.warning(f"{len(det.unsatisfied)} expected artifact(s) not produced")
        return self._finish(det)

    def poll(self, spec: RunSpec, exclude: Iterable[str] = ()) -> Detection:
        """Poll the staging directory until satisfied, cancelled or timed out.

        Optional matchers are waited for like the others, but a timeout with
        only optional ones outstanding still counts as satisfied. Names in
        ``exclude`` are never matched. DirectoryUnavailable propagates to the
        caller.
        """
        self.state = CompletionState.RUNNING
        matchers = spec.expected_artifacts
        total = len(matchers)
        exclude = set(exclude)
        found: Dict[int, Path] = {}
        discovered: Dict[int, float] = {}
        last_progress = self._clock()
        while True:
            self._sleep(spec.poll_interval)
            if self.cancel_event.is_set():
                logger.info("Cancellation requested; stopping poll")
                return self._finish(self._partial(CompletionState.CANCELLED, found, discovered, matchers))
            if self.staging.has_sentinel(spec.working_dir, spec.sentinel):
                logger.info(f"Sentinel '{spec.sentinel}' found in {spec.working_dir}; stopping poll")
                return self._finish(self._partial(CompletionState.CANCELLED, found, discovered, matchers))

            current = self.staging.list_matching(spec.working_dir, matchers, found, exclude)
            new = {i: p for i, p in current.items() if p is not None and i not in found}
            if new:
                if spec.settle_time > 0:
                    # give the tool time to finish writing before accepting
                    self._sleep(spec.settle_time)
                    if self.cancel_event.is_set():
                        logger.info("Cancellation requested while settling; stopping poll")
                        return self._finish(self._partial(CompletionState.CANCELLED, found, discovered, matchers))
                stamp = time.time()
                for idx, path in new.items():
                    logger.info(f"Found artifact #{idx}: {path.name}")
                    found[idx] = path
                    discovered[idx] = stamp
                last_progress = self._clock()

            idle = self._clock() - last_progress
            if self._on_progress:
                self._on_progress(len(found), total, idle)
            if len(found) == total:
                return self._finish(self._partial(CompletionState.SATISFIED, found, discovered, matchers))
            if idle >= spec.per_item_timeout:
                logger.warning(
                    f"No new artifact for {idle:.0f}s; giving up with {len(found)} of {total} found"
                )
                det = self._partial(CompletionState.TIMED_OUT, found, discovered, matchers, skip_optional=True)
                if not det.unsatisfied:
                    det.state = CompletionState.SATISFIED
                return self._finish(det)

    @staticmethod
    def _partial(
        state: CompletionState,
        found: Dict[int, Path],
        discovered: Dict[int, float],
        matchers: Sequence[ArtifactMatcher],
        skip_optional: bool = False,
    ) -> Detection:
        return Detection(
            state=state,
            found=dict(found),
            discovered_at=dict(discovered),
            unsatisfied={
                i for i, m in enumerate(matchers)
                if i not in found and not (skip_optional and m.optional)
            },
        )

    def _finish(self, det: Detection) -> Detection:
        self.state = det.state
        return det
