"""Staged solution build orchestration."""

__version__ = "0.1.0"

from .errors import (
    BuildError,
    CycleDetectedError,
    DuplicateTargetError,
    ExternalToolFailure,
    GraphError,
    TargetExecutionError,
    TimeoutExceeded,
    UnknownTargetError,
)
from .graph import RunReport, Target, TargetGraph, TargetOutcome
from .layout import BuildLayout, StagingPhase, phase_dir
from .pipeline import BuildContext, build_graph, resolve_target_name
from .process import FailurePolicy, ProcessOutcome, ProcessResult, ToolRunner
from .settings import BuildSettings, FailurePolicies, load_settings
from .versioning import VersionDescriptor, compute_version

__all__ = [
    "__version__",
    "BuildError",
    "GraphError",
    "CycleDetectedError",
    "DuplicateTargetError",
    "UnknownTargetError",
    "ExternalToolFailure",
    "TimeoutExceeded",
    "TargetExecutionError",
    "Target",
    "TargetGraph",
    "TargetOutcome",
    "RunReport",
    "BuildLayout",
    "StagingPhase",
    "phase_dir",
    "BuildContext",
    "build_graph",
    "resolve_target_name",
    "FailurePolicy",
    "ProcessOutcome",
    "ProcessResult",
    "ToolRunner",
    "BuildSettings",
    "FailurePolicies",
    "load_settings",
    "VersionDescriptor",
    "compute_version",
]
