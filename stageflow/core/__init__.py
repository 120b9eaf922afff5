"""
Core modules for launching external tools and harvesting what they produce.
"""

from .errors import (
    StageflowError, InvalidSpec, StagingNotClear, LaunchFailed,
    DirectoryUnavailable, ProcessFailed, HarvestError,
)
from .models import (
    RunMode, CompletionState, ArtifactMatcher, RunSpec,
    CompletedArtifact, RunResult,
)
from .staging import StagingArea
from .launcher import ProcessLauncher, LaunchHandle
from .detector import CompletionDetector, Detection
from .coordinator import RunCoordinator, validate_spec
from .configuration import ToolConfig, StageflowConfiguration, ConfigurationLoader, ConfigurationManager
from .error_handler import ErrorHandler, ErrorReport, ErrorCategory, ErrorSeverity

__all__ = [
    "StageflowError",
    "InvalidSpec",
    "StagingNotClear",
    "LaunchFailed",
    "DirectoryUnavailable",
    "ProcessFailed",
    "HarvestError",
    "RunMode",
    "CompletionState",
    "ArtifactMatcher",
    "RunSpec",
    "CompletedArtifact",
    "RunResult",
    "StagingArea",
    "ProcessLauncher",
    "LaunchHandle",
    "CompletionDetector",
    "Detection",
    "RunCoordinator",
    "validate_spec",
    "ToolConfig",
    "StageflowConfiguration",
    "ConfigurationLoader",
    "ConfigurationManager",
    "ErrorHandler",
    "ErrorReport",
    "ErrorCategory",
    "ErrorSeverity",
]
