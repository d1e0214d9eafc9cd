"""Well-known directories of a build root and the staging phase layout."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .settings import BuildSettings


class StagingPhase(str, Enum):
    BUILD = "build"
    MERGE = "merge"
    READY = "ready"
    NUGET = "nuget"
    ZIP = "zip"
    SCAFFOLD = "nuget-scaffold"


def phase_dir(root: Path, phase: StagingPhase, project_name: str) -> Path:
    """Return ``root/<phase>/<project_name>``; performs no filesystem access."""

    return Path(root) / phase.value / project_name


@dataclass(frozen=True)
class BuildLayout:
    root_dir: Path
    project_name: str

    @classmethod
    def from_settings(cls, settings: "BuildSettings") -> "BuildLayout":
        return cls(root_dir=Path(settings.root_dir).resolve(), project_name=settings.project_name)

    @property
    def source_dir(self) -> Path:
        return self.root_dir / "src"

    @property
    def tools_dir(self) -> Path:
        return self.root_dir / "tools"

    @property
    def artifacts_dir(self) -> Path:
        return self.root_dir / "_artifacts"

    @property
    def dev_dir(self) -> Path:
        return self.root_dir / "_dev"

    @property
    def temp_root(self) -> Path:
        return self.root_dir / ".tmp" / "build"

    @property
    def resources_dir(self) -> Path:
        return self.source_dir / "build" / "_res"

    @property
    def config_resources_dir(self) -> Path:
        return self.resources_dir / "config"

    @property
    def nuspec_dir(self) -> Path:
        return self.resources_dir / "nuget"

    @property
    def tools_manifest(self) -> Path:
        return self.tools_dir / "packages.config"

    @property
    def nuget_path(self) -> Path:
        return self.tools_dir / "nuget" / "nuget.exe"

    @property
    def libz_path(self) -> Path:
        return self.tools_dir / "LibZ.Tool" / "tools" / "libz.exe"

    @property
    def seven_zip_path(self) -> Path:
        return self.tools_dir / "7-Zip.CommandLine" / "tools" / "7za.exe"

    @property
    def standalone_app_dir(self) -> Path:
        return self.dev_dir / "app.standalone"

    def phase(self, phase: StagingPhase) -> Path:
        return phase_dir(self.temp_root, phase, self.project_name)
