"""Target graph: registration, dependency resolution and single-pass execution."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from .errors import CycleDetectedError, DuplicateTargetError, TargetExecutionError, UnknownTargetError

logger = logging.getLogger(__name__)

Action = Callable[[], None]
Guard = Callable[[], bool]

STATUS_SUCCEEDED = "succeeded"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"


def _noop() -> None:
    return None


@dataclass(frozen=True)
class Target:
    name: str
    action: Action = _noop
    depends_on: Sequence[str] = ()
    guard: Optional[Guard] = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Target name cannot be empty.")
        if isinstance(self.depends_on, str):
            raise TypeError(f"Target '{self.name}' depends_on must be a sequence of names, not a string.")
        object.__setattr__(self, "depends_on", tuple(self.depends_on))

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "depends_on": list(self.depends_on),
            "guarded": self.guard is not None,
        }


@dataclass
class TargetOutcome:
    name: str
    status: str
    duration: float = 0.0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "name": self.name,
            "status": self.status,
            "duration": round(self.duration, 3),
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass
class RunReport:
    terminal: str
    plan: List[str]
    outcomes: List[TargetOutcome] = field(default_factory=list)

    @property
    def executed(self) -> List[str]:
        return [outcome.name for outcome in self.outcomes if outcome.status == STATUS_SUCCEEDED]

    @property
    def skipped(self) -> List[str]:
        return [outcome.name for outcome in self.outcomes if outcome.status == STATUS_SKIPPED]

    @property
    def succeeded(self) -> bool:
        return all(outcome.status != STATUS_FAILED for outcome in self.outcomes)

    def to_dict(self) -> dict[str, object]:
        return {
            "terminal": self.terminal,
            "plan": list(self.plan),
            "status": "ok" if self.succeeded else "failed",
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


class TargetGraph:
    """Holds named targets and runs the dependency closure of a terminal target.

    Resolution is a depth-first walk over declared dependencies, visited left to
    right, so the resulting order is deterministic for a given registration.
    Each target runs at most once per ``run`` call; completion state does not
    survive between calls.
    """

    def __init__(self, targets: Iterable[Target] = ()) -> None:
        self._targets: Dict[str, Target] = {}
        for target in targets:
            self.register(target)

    def register(self, target: Target) -> Target:
        if target.name in self._targets:
            raise DuplicateTargetError(target.name)
        self._targets[target.name] = target
        return target

    def get(self, name: str) -> Target:
        try:
            return self._targets[name]
        except KeyError:
            raise UnknownTargetError(name, available=list(self._targets)) from None

    def names(self) -> List[str]:
        return list(self._targets)

    def describe(self) -> List[dict[str, object]]:
        return [target.to_dict() for target in self._targets.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets.values())

    def resolve(self, terminal: str) -> List[str]:
        if terminal not in self._targets:
            raise UnknownTargetError(terminal, available=list(self._targets))

        order: List[str] = []
        resolved: Set[str] = set()
        path: List[str] = []
        frames: List[Tuple[str, Iterator[str]]] = []

        def enter(name: str, required_by: Optional[str]) -> None:
            target = self._targets.get(name)
            if target is None:
                raise UnknownTargetError(name, required_by=required_by)
            path.append(name)
            frames.append((name, iter(target.depends_on)))

        # Iterative depth-first walk; ``path`` holds the targets still being resolved.
        enter(terminal, None)
        while frames:
            name, pending = frames[-1]
            dependency = next(pending, None)
            if dependency is None:
                frames.pop()
                path.pop()
                resolved.add(name)
                order.append(name)
            elif dependency in path:
                raise CycleDetectedError(path[path.index(dependency):] + [dependency])
            elif dependency not in resolved:
                enter(dependency, name)
        return order

    def validate(self) -> None:
        """Resolve every registered target, surfacing unknown names and cycles."""

        for name in self._targets:
            self.resolve(name)

    def run(self, terminal: str) -> RunReport:
        plan = self.resolve(terminal)
        report = RunReport(terminal=terminal, plan=plan)
        logger.info("Running target '%s' (%s)", terminal, " -> ".join(plan))

        for name in plan:
            target = self._targets[name]
            started = time.perf_counter()
            try:
                if target.guard is not None and not target.guard():
                    logger.info("Skipping target '%s' (guard not satisfied)", name)
                    report.outcomes.append(TargetOutcome(name=name, status=STATUS_SKIPPED))
                    continue
                logger.info("> %s", name)
                target.action()
            except Exception as exc:
                duration = time.perf_counter() - started
                report.outcomes.append(
                    TargetOutcome(name=name, status=STATUS_FAILED, duration=duration, error=str(exc))
                )
                logger.error("Target '%s' failed after %.2fs: %s", name, duration, exc)
                raise TargetExecutionError(name, exc, report) from exc
            duration = time.perf_counter() - started
            report.outcomes.append(TargetOutcome(name=name, status=STATUS_SUCCEEDED, duration=duration))
            logger.debug("Target '%s' finished in %.2fs", name, duration)

        return report
