"""Scoped execution of external build tools with exit-code classification."""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .errors import ExternalToolFailure, TimeoutExceeded

logger = logging.getLogger(__name__)

Arguments = Union[str, Sequence[Union[str, Path]]]


class FailurePolicy(str, Enum):
    """How a call site treats a non-zero exit code."""

    SOFT = "soft"
    HARD = "hard"


class ProcessOutcome(str, Enum):
    SUCCESS = "success"
    SOFT_FAILURE = "soft-failure"
    HARD_FAILURE = "hard-failure"


@dataclass
class ProcessResult:
    executable: str
    arguments: List[str]
    working_dir: Path
    exit_code: int
    outcome: ProcessOutcome
    output: str = ""
    duration: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is ProcessOutcome.SUCCESS

    @property
    def command(self) -> List[str]:
        return [self.executable, *self.arguments]

    def to_dict(self) -> Dict[str, object]:
        return {
            "command": self.command,
            "working_dir": str(self.working_dir),
            "exit_code": self.exit_code,
            "outcome": self.outcome.value,
            "duration": round(self.duration, 3),
        }


def split_arguments(arguments: Arguments) -> List[str]:
    if isinstance(arguments, str):
        return shlex.split(arguments)
    return [str(argument) for argument in arguments]


def classify(exit_code: int, policy: FailurePolicy) -> ProcessOutcome:
    if exit_code == 0:
        return ProcessOutcome.SUCCESS
    if policy is FailurePolicy.SOFT:
        return ProcessOutcome.SOFT_FAILURE
    return ProcessOutcome.HARD_FAILURE


@dataclass
class ToolRunner:
    """Launches external tools and waits for them to exit.

    ``launcher`` is prepended to every command (for example ``mono`` when the
    tools are Windows executables). ``timeout`` applies to every call unless a
    call passes its own.
    """

    timeout: Optional[float] = None
    launcher: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    history: List[ProcessResult] = field(default_factory=list)

    def run(
        self,
        executable: Union[str, Path],
        arguments: Arguments,
        working_dir: Union[str, Path],
        *,
        policy: FailurePolicy = FailurePolicy.HARD,
        timeout: Optional[float] = None,
        label: Optional[str] = None,
    ) -> ProcessResult:
        args = split_arguments(arguments)
        command = [str(executable), *args]
        if self.launcher:
            command = [*shlex.split(self.launcher), *command]
        cwd = Path(working_dir)
        effective_timeout = timeout if timeout is not None else self.timeout
        name = label or Path(str(executable)).name

        env = os.environ.copy()
        env.update(self.env)

        logger.info("$ %s", shlex.join(command))
        logger.debug("  (cwd: %s, timeout: %s)", cwd, effective_timeout)
        started = time.perf_counter()
        try:
            with subprocess.Popen(
                command,
                cwd=str(cwd),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            ) as proc:
                try:
                    output, _ = proc.communicate(timeout=effective_timeout)
                except subprocess.TimeoutExpired:
                    proc.kill()
                    output, _ = proc.communicate()
                    result = ProcessResult(
                        executable=str(executable),
                        arguments=args,
                        working_dir=cwd,
                        exit_code=proc.returncode,
                        outcome=ProcessOutcome.HARD_FAILURE,
                        output=output or "",
                        duration=time.perf_counter() - started,
                    )
                    self.history.append(result)
                    raise TimeoutExceeded(name, effective_timeout, result) from None
                except BaseException:
                    proc.kill()
                    proc.wait()
                    raise
                exit_code = proc.returncode
        except (FileNotFoundError, PermissionError) as exc:
            raise ExternalToolFailure(f"Unable to start {name}: {exc}") from exc

        result = ProcessResult(
            executable=str(executable),
            arguments=args,
            working_dir=cwd,
            exit_code=exit_code,
            outcome=classify(exit_code, policy),
            output=output or "",
            duration=time.perf_counter() - started,
        )
        self.history.append(result)
        for line in result.output.splitlines():
            logger.debug("  %s", line)

        if result.outcome is ProcessOutcome.SOFT_FAILURE:
            logger.warning("%s exited with code %s; continuing.", name, exit_code)
        elif result.outcome is ProcessOutcome.HARD_FAILURE:
            tail = "\n".join(result.output.strip().splitlines()[-20:])
            message = f"{name} exited with code {exit_code}."
            if tail:
                message += f"\n{tail}"
            raise ExternalToolFailure(message, result)
        return result
