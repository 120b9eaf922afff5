"""
Error classification and reporting for finished runs.

Turns a RunResult into a list of ErrorReport entries with a category,
severity and user-facing suggestions, so callers can decide what to surface.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import DirectoryUnavailable, HarvestError, ProcessFailed, StagingNotClear
from .models import RunResult

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Categories of run problems."""
    INVALID_SPEC = "invalid_spec"
    STAGING_NOT_CLEAR = "staging_not_clear"
    LAUNCH_FAILED = "launch_failed"
    DIRECTORY_UNAVAILABLE = "directory_unavailable"
    PROCESS_FAILED = "process_failed"
    TIMED_OUT = "timed_out"
    MISSING_ARTIFACT = "missing_artifact"
    HARVEST_ERROR = "harvest_error"
    CANCELLED = "cancelled"


class ErrorSeverity(Enum):
    """Severity levels for reports."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorReport:
    """One reportable problem from a run."""
    error_id: str
    category: ErrorCategory
    severity: ErrorSeverity
    description: str
    timestamp: float = field(default_factory=time.time)
    tool: Optional[str] = None
    exit_code: Optional[int] = None
    subject: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)

    @property
    def fatal(self) -> bool:
        return self.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL)


_SUGGESTIONS: Dict[ErrorCategory, List[str]] = {
    ErrorCategory.STAGING_NOT_CLEAR: [
        "Empty the staging folder (hidden files may stay)",
        "Make sure no other run is using the same staging folder",
    ],
    ErrorCategory.LAUNCH_FAILED: [
        "Check the executable path in the configuration",
        "Check the file is executable",
    ],
    ErrorCategory.DIRECTORY_UNAVAILABLE: [
        "Check the staging folder still exists and is readable",
        "Check the volume is mounted",
    ],
    ErrorCategory.TIMED_OUT: [
        "Increase the timeout in the configuration",
        "Check the tool's output folder is the staging folder",
    ],
    ErrorCategory.MISSING_ARTIFACT: [
        "Check the tool's output naming matches the expected artifacts",
    ],
    ErrorCategory.HARVEST_ERROR: [
        "Check the destination folder is writable",
        "Move the file manually from the staging folder",
    ],
}


class ErrorHandler:
    """Classify problems in a RunResult and keep simple statistics."""

    def __init__(self):
        self.reports: List[ErrorReport] = []

    def analyze_result(self, result: RunResult, tool: Optional[str] = None,
                       matcher_names: Optional[List[str]] = None) -> List[ErrorReport]:
        """
        Build error reports for everything that went wrong in a run.

        Args:
            result: Finished run
            tool: Tool name for context
            matcher_names: Human-readable matcher descriptions, indexed like expected_artifacts

        Returns:
            Reports, fatal problems first
        """
        names = matcher_names or []
        out: List[ErrorReport] = []

        def label(idx: int) -> str:
            return names[idx] if idx < len(names) else f"artifact #{idx}"

        if result.launch_error is not None:
            out.append(self._report(ErrorCategory.LAUNCH_FAILED, ErrorSeverity.CRITICAL,
                                    str(result.launch_error), tool,
                                    subject=result.launch_error.command_line))
        err = result.error
        if isinstance(err, StagingNotClear):
            out.append(self._report(ErrorCategory.STAGING_NOT_CLEAR, ErrorSeverity.HIGH, str(err), tool,
                                    subject=str(err.directory)))
        elif isinstance(err, DirectoryUnavailable):
            out.append(self._report(ErrorCategory.DIRECTORY_UNAVAILABLE, ErrorSeverity.CRITICAL, str(err), tool,
                                    subject=str(err.directory)))
        elif isinstance(err, ProcessFailed):
            rep = self._report(ErrorCategory.PROCESS_FAILED, ErrorSeverity.HIGH, str(err), tool,
                               subject=err.step)
            rep.exit_code = err.exit_code
            self._classify_by_exit_code(rep)
            out.append(rep)
        elif err is not None:
            out.append(self._report(ErrorCategory.INVALID_SPEC, ErrorSeverity.HIGH, str(err), tool))
        if out and result.abandoned_matchers:
            abandoned = ", ".join(label(i) for i in sorted(result.abandoned_matchers))
            out[-1].description += f"; not collected: {abandoned}"

        for idx in sorted(result.timed_out_matchers):
            if result.cancelled:
                continue
            out.append(self._report(ErrorCategory.TIMED_OUT, ErrorSeverity.MEDIUM,
                                    f"{label(idx)} did not appear before the timeout", tool,
                                    subject=label(idx)))
        for idx in sorted(result.missing_matchers):
            out.append(self._report(ErrorCategory.MISSING_ARTIFACT, ErrorSeverity.MEDIUM,
                                    f"{label(idx)} was not produced", tool, subject=label(idx)))
        for herr in result.harvest_errors:
            out.append(self._harvest_report(herr, tool))
        if result.cancelled:
            pending = ", ".join(label(i) for i in sorted(result.timed_out_matchers)) or "none"
            out.append(self._report(ErrorCategory.CANCELLED, ErrorSeverity.LOW,
                                    f"run cancelled; not collected: {pending}", tool))

        self.reports.extend(out)
        for rep in out:
            log = logger.error if rep.fatal else logger.warning
            log(f"{rep.category.value}: {rep.description}")
        return out

    def _harvest_report(self, herr: HarvestError, tool: Optional[str]) -> ErrorReport:
        return self._report(ErrorCategory.HARVEST_ERROR, ErrorSeverity.MEDIUM, str(herr), tool,
                            subject=str(herr.path))

    def _report(self, category: ErrorCategory, severity: ErrorSeverity, description: str,
                tool: Optional[str], subject: Optional[str] = None) -> ErrorReport:
        error_id = f"{category.value}_{len(self.reports)}_{int(time.time() * 1000)}"
        return ErrorReport(
            error_id=error_id,
            category=category,
            severity=severity,
            description=description,
            tool=tool,
            subject=subject,
            suggestions=list(_SUGGESTIONS.get(category, [])),
        )

    def _classify_by_exit_code(self, report: ErrorReport):
        """Refine a process failure from its exit code."""
        code = report.exit_code
        if code in (126, 127):
            report.severity = ErrorSeverity.CRITICAL
            report.suggestions.append("The command could not be run; check the executable path")
        elif code == 137:
            report.suggestions.append("Process killed (likely out of memory)")
        elif code == 139:
            report.suggestions.append("Segmentation fault in the external tool")
        elif code is not None and code < 0:
            report.suggestions.append(f"Process terminated by signal {-code}")
        else:
            report.suggestions.append("Check the external tool's own log for details")

    def summary(self, reports: Optional[List[ErrorReport]] = None) -> Dict[str, Any]:
        """Counts by category and severity."""
        reports = self.reports if reports is None else reports
        by_category: Dict[str, int] = {}
        by_severity: Dict[str, int] = {}
        for rep in reports:
            by_category[rep.category.value] = by_category.get(rep.category.value, 0) + 1
            by_severity[rep.severity.value] = by_severity.get(rep.severity.value, 0) + 1
        return {
            "total": len(reports),
            "by_category": by_category,
            "by_severity": by_severity,
            "fatal": sum(1 for r in reports if r.fatal),
        }
