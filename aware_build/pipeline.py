"""Build target definitions wired into a linear target graph."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Optional

from requests import Session

from .fs import (
    FileExistsPolicy,
    clear_directory,
    copy_directory,
    copy_file,
    ensure_clean_directory,
    ensure_directory,
    glob_files,
)
from .graph import Target, TargetGraph
from .layout import BuildLayout, StagingPhase
from .naming import to_kebab_case
from .process import ToolRunner
from .settings import BuildSettings
from .toolchain import download_if_missing
from .versioning import VersionDescriptor

logger = logging.getLogger(__name__)

DEFAULT_TARGET = "publish"

# Legacy CamelCase target names, matched after kebab-case normalisation.
TARGET_ALIASES: Dict[str, str] = {
    "abc-version-target": "version",
    "marge": "merge",
    "copy-to-ready": "stage",
    "make-nuget": "package",
    "make-zip": "archive",
    "publish-local": "publish",
}


@dataclass
class BuildContext:
    settings: BuildSettings
    version: VersionDescriptor
    runner: ToolRunner
    layout: Optional[BuildLayout] = None
    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)
    http_session: Optional[Session] = None
    cpu_count: int = field(default_factory=lambda: os.cpu_count() or 1)
    artifacts: Dict[str, List[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.layout is None:
            self.layout = BuildLayout.from_settings(self.settings)

    @property
    def artifact_basename(self) -> str:
        return to_kebab_case(self.settings.project_name)

    def phase(self, phase: StagingPhase) -> Path:
        return self.layout.phase(phase)

    def record(self, kind: str, paths: List[Path]) -> None:
        self.artifacts.setdefault(kind, []).extend(str(path) for path in paths)


@contextmanager
def log_block(title: str) -> Iterator[None]:
    logger.info("[%s]", title)
    try:
        yield
    finally:
        logger.debug("[/%s]", title)


def resolve_target_name(name: str) -> str:
    """Map a user supplied target name (any casing, legacy aliases) to its id."""

    key = to_kebab_case(name)
    return TARGET_ALIASES.get(key, key)


def distribution_root(context: BuildContext) -> Optional[Path]:
    value = context.environ.get(context.settings.distribution_env, "")
    value = value.strip()
    return Path(value) if value else None


def show_version(context: BuildContext) -> None:
    logger.info(context.version.informational_version)


def information(context: BuildContext) -> None:
    settings = context.settings
    logger.info("Host: %s", "local" if settings.is_local_build else "server")
    logger.info("Configuration: %s", settings.configuration)
    logger.info("Version: %s", context.version.sem_version)
    logger.info("Version: %s", context.version.informational_version)
    context.runner.env["NUGET_EXE"] = str(context.layout.nuget_path)


def check_tools(context: BuildContext) -> None:
    layout = context.layout
    download_if_missing(
        context.settings.nuget_url,
        layout.nuget_path,
        label="Nuget",
        session=context.http_session,
    )
    context.runner.run(
        layout.nuget_path,
        ["install", layout.tools_manifest, "-OutputDirectory", layout.tools_dir, "-ExcludeVersion"],
        layout.source_dir,
        policy=context.settings.failure_policies.check_tools,
        label="nuget install",
    )


def clean(context: BuildContext) -> None:
    layout = context.layout
    ensure_directory(layout.temp_root)
    clear_directory(layout.temp_root)
    ensure_clean_directory(layout.artifacts_dir)


def restore(context: BuildContext) -> None:
    layout = context.layout
    context.runner.run(
        layout.nuget_path,
        ["restore", context.settings.solution_path],
        layout.source_dir,
        policy=context.settings.failure_policies.restore,
        label="nuget restore",
    )


def compile_solution(context: BuildContext) -> None:
    settings = context.settings
    version = context.version
    build_out = ensure_directory(context.phase(StagingPhase.BUILD))
    context.runner.run(
        settings.msbuild,
        [
            settings.solution_path,
            "/t:Rebuild",
            f"/p:OutDir={build_out}{os.sep}",
            f"/p:Configuration={settings.configuration}",
            f"/p:AssemblyVersion={version.assembly_version}",
            f"/p:FileVersion={version.file_version}",
            f"/p:InformationalVersion={version.informational_version}",
            "/verbosity:quiet",
            f"/maxcpucount:{context.cpu_count}",
            f"/nodeReuse:{'true' if settings.is_local_build else 'false'}",
        ],
        context.layout.source_dir,
        policy=settings.failure_policies.compile,
        label="msbuild",
    )


def merge(context: BuildContext) -> None:
    build_out = context.phase(StagingPhase.BUILD)
    merge_out = ensure_directory(context.phase(StagingPhase.MERGE))
    copy_directory(build_out, merge_out)
    context.runner.run(
        context.layout.libz_path,
        ["inject-dll", "--assembly", context.settings.main_assembly_name, "--include", "*.dll", "--move"],
        merge_out,
        policy=context.settings.failure_policies.merge,
        label="libz",
    )


def stage(context: BuildContext) -> None:
    merge_out = context.phase(StagingPhase.MERGE)
    ready_out = ensure_directory(context.phase(StagingPhase.READY))

    merged = merge_out / context.settings.main_assembly_name
    if not merged.is_file():
        raise FileNotFoundError(f"Merged executable not found: {merged}")

    staged: List[Path] = []
    executable = ready_out / f"{context.artifact_basename}.exe"
    if copy_file(merged, executable, FileExistsPolicy.SKIP):
        staged.append(executable)
    for config_file in glob_files(context.layout.config_resources_dir, "*.json"):
        destination = ready_out / config_file.name
        if copy_file(config_file, destination, FileExistsPolicy.SKIP):
            staged.append(destination)
    logger.info("Staged %d file(s) into %s", len(staged), ready_out)
    context.record("ready", staged)


def package(context: BuildContext) -> None:
    settings = context.settings
    ready_out = ensure_directory(context.phase(StagingPhase.READY))
    nuget_out = ensure_directory(context.phase(StagingPhase.NUGET))
    scaffold_dir = ensure_directory(context.phase(StagingPhase.SCAFFOLD))
    copy_directory(ready_out, ensure_directory(scaffold_dir / "tools"))

    manifests = glob_files(context.layout.nuspec_dir, "*.nuspec")
    if not manifests:
        logger.warning("No package manifests found in %s", context.layout.nuspec_dir)
    for manifest in manifests:
        context.runner.run(
            context.layout.nuget_path,
            [
                "pack",
                manifest,
                "-Version",
                context.version.package_version,
                "-Properties",
                f"Configuration={settings.configuration};currentyear={context.version.captured_at.year}",
                "-BasePath",
                scaffold_dir,
                "-OutputDirectory",
                nuget_out,
                "-NoPackageAnalysis",
            ],
            context.layout.source_dir,
            policy=settings.failure_policies.package,
            label=f"nuget pack {manifest.name}",
        )
    context.record("packages", glob_files(nuget_out, "*.nupkg"))


def archive(context: BuildContext) -> None:
    ready_out = ensure_directory(context.phase(StagingPhase.READY))
    zip_out = ensure_directory(context.phase(StagingPhase.ZIP))
    zip_path = zip_out / f"{context.artifact_basename}.{context.version.sem_version}.zip"
    context.runner.run(
        context.layout.seven_zip_path,
        ["a", zip_path, "*"],
        ready_out,
        policy=context.settings.failure_policies.archive,
        label="7za",
    )
    if zip_path.exists():
        context.record("archive", [zip_path])


def publish(context: BuildContext) -> None:
    root = distribution_root(context)
    if root is None:
        raise RuntimeError(f"Environment variable '{context.settings.distribution_env}' is not set.")

    with log_block("Local packages"):
        feed_dir = root / context.artifact_basename
        archives = glob_files(context.phase(StagingPhase.ZIP), "**/*")
        if context.settings.copy_zip_to_feed:
            ensure_directory(feed_dir)
            copied: List[Path] = []
            for path in archives:
                if copy_file(path, feed_dir / path.name, FileExistsPolicy.SKIP):
                    copied.append(feed_dir / path.name)
            context.record("feed", copied)
        else:
            for path in archives:
                logger.info("Feed copy disabled; not publishing %s to %s", path.name, feed_dir)

    with log_block("App; app.standalone"):
        standalone = ensure_directory(context.layout.standalone_app_dir)
        published: List[Path] = []
        for executable in glob_files(context.phase(StagingPhase.READY), "**/*.exe"):
            destination = standalone / executable.name
            copy_file(executable, destination, FileExistsPolicy.OVERWRITE)
            published.append(destination)
        context.record("standalone", published)


def _bind(action: Callable[[BuildContext], None], context: BuildContext) -> Callable[[], None]:
    return partial(action, context)


def build_graph(context: BuildContext) -> TargetGraph:
    """Register the build targets for ``context`` and validate the wiring."""

    graph = TargetGraph()
    graph.register(Target("version", _bind(show_version, context), description="Print the informational version."))
    chain = [
        ("information", information, "Log host, configuration and version."),
        ("check-tools", check_tools, "Download nuget and restore build tool packages."),
        ("clean", clean, "Empty the temporary build root and artifacts directory."),
        ("restore", restore, "Restore solution packages."),
        ("compile", compile_solution, "Rebuild the solution into the build phase."),
        ("merge", merge, "Inline dependency assemblies into the main executable."),
        ("stage", stage, "Copy the executable and configuration into the ready phase."),
        ("package", package, "Pack one package per manifest template."),
        ("archive", archive, "Zip the ready phase."),
    ]
    previous: Optional[str] = None
    for name, action, description in chain:
        graph.register(
            Target(name, _bind(action, context), depends_on=(previous,) if previous else (), description=description)
        )
        previous = name
    graph.register(
        Target(
            "publish",
            _bind(publish, context),
            depends_on=(previous,),
            guard=lambda: distribution_root(context) is not None,
            description="Copy outputs to the local distribution root.",
        )
    )
    graph.validate()
    return graph
