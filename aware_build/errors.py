"""Exception taxonomy shared by the target graph, tool runner and pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .graph import RunReport
    from .process import ProcessResult


class BuildError(RuntimeError):
    """Base class for every error raised by aware-build."""


class GraphError(BuildError):
    """Raised when the target graph cannot be defined or resolved."""


class DuplicateTargetError(GraphError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Target '{name}' already registered.")
        self.name = name


class UnknownTargetError(GraphError):
    def __init__(self, name: str, required_by: Optional[str] = None, available: Sequence[str] = ()) -> None:
        if required_by:
            message = f"Unknown target '{name}' (required by '{required_by}')."
        else:
            message = f"Unknown target '{name}'."
        if available:
            message += f" Available targets: {', '.join(sorted(available))}."
        super().__init__(message)
        self.name = name
        self.required_by = required_by


class CycleDetectedError(GraphError):
    def __init__(self, cycle: Sequence[str]) -> None:
        super().__init__(f"Dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = list(cycle)


class ExternalToolFailure(BuildError):
    """Raised when an external process fails under a hard failure policy."""

    def __init__(self, message: str, result: Optional["ProcessResult"] = None) -> None:
        super().__init__(message)
        self.result = result

    @property
    def exit_code(self) -> Optional[int]:
        return self.result.exit_code if self.result is not None else None


class TimeoutExceeded(ExternalToolFailure):
    def __init__(self, executable: str, timeout: float, result: Optional["ProcessResult"] = None) -> None:
        super().__init__(f"{executable} did not exit within {timeout:g}s and was killed.", result)
        self.executable = executable
        self.timeout = timeout


class TargetExecutionError(BuildError):
    """Wraps a hard failure with the name of the target that raised it."""

    def __init__(self, target: str, cause: BaseException, report: Optional["RunReport"] = None) -> None:
        super().__init__(f"Target '{target}' failed: {cause}")
        self.target = target
        self.cause = cause
        self.report = report
