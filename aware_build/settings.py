"""Build settings resolved from defaults, ``aware-build.yaml`` and CLI overrides."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field

from .process import FailurePolicy

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "aware-build.yaml"
DEFAULT_DISTRIBUTION_ENV = "DlLocalPackages"
DEFAULT_NUGET_URL = "https://dist.nuget.org/win-x86-commandline/latest/nuget.exe"
# Values of the CI variable that still mean a local build.
_FALSE_VALUES = frozenset({"", "0", "false", "no", "off"})


class FailurePolicies(BaseModel):
    """Per call site handling of non-zero tool exit codes."""

    check_tools: FailurePolicy = FailurePolicy.SOFT
    restore: FailurePolicy = FailurePolicy.SOFT
    compile: FailurePolicy = FailurePolicy.HARD
    merge: FailurePolicy = FailurePolicy.SOFT
    package: FailurePolicy = FailurePolicy.HARD
    archive: FailurePolicy = FailurePolicy.SOFT

    model_config = ConfigDict(extra="forbid")


class BuildSettings(BaseModel):
    root_dir: Path = Field(default_factory=Path.cwd)
    project_name: str = "Simcha"
    solution: str = Field(default="src/Simcha.sln", description="Solution path relative to the root.")
    main_assembly: Optional[str] = Field(
        default=None,
        description="Executable produced by the compiler; defaults to '<project_name>.exe'.",
    )
    configuration: str = "Release"
    build_counter: int = Field(default=0, ge=0)
    is_local_build: bool = True
    msbuild: str = "msbuild"
    nuget_url: str = DEFAULT_NUGET_URL
    tool_launcher: Optional[str] = None
    tool_timeout: Optional[float] = Field(default=None, gt=0)
    distribution_env: str = DEFAULT_DISTRIBUTION_ENV
    copy_zip_to_feed: bool = False
    failure_policies: FailurePolicies = Field(default_factory=FailurePolicies)

    model_config = ConfigDict(extra="forbid")

    @property
    def main_assembly_name(self) -> str:
        return self.main_assembly or f"{self.project_name}.exe"

    @property
    def solution_path(self) -> Path:
        path = Path(self.solution)
        return path if path.is_absolute() else Path(self.root_dir) / path


def read_settings_file(path: Path) -> Dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a mapping (got {type(data).__name__}).")
    return data


def load_settings(
    root_dir: Path,
    *,
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BuildSettings:
    """Merge the settings file (if any) with explicit overrides.

    ``is_local_build`` defaults to ``False`` when a ``CI`` variable is present.
    Overrides whose value is ``None`` are ignored so that unset CLI flags keep
    the file or default value.
    """

    root = Path(root_dir).resolve()
    source = config_path if config_path is not None else root / SETTINGS_FILENAME
    payload: Dict[str, Any] = {}
    if config_path is not None or source.exists():
        payload.update(read_settings_file(source))
        logger.debug("Loaded settings from %s", source)

    env = os.environ if environ is None else environ
    payload.setdefault("is_local_build", env.get("CI", "").strip().lower() in _FALSE_VALUES)

    for key, value in (overrides or {}).items():
        if value is not None:
            payload[key] = value
    payload["root_dir"] = root
    return BuildSettings.model_validate(payload)
