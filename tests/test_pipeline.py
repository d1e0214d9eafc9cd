from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterator, List

import pytest

from aware_build.errors import TargetExecutionError
from aware_build.graph import TargetGraph
from aware_build.layout import StagingPhase
from aware_build.pipeline import build_graph, resolve_target_name, stage
from aware_build.toolchain import DownloadError

from conftest import FakeRunner, default_effects, snapshot

CHAIN = [
    "information",
    "check-tools",
    "clean",
    "restore",
    "compile",
    "merge",
    "stage",
    "package",
    "archive",
    "publish",
]


class _FakeResponse:
    def __init__(self, chunks: List[bytes], status_code: int = 200) -> None:
        self.chunks = chunks
        self.status_code = status_code

    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            from requests import HTTPError

            raise HTTPError(f"{self.status_code} error")

    def iter_content(self, chunk_size: int) -> Iterator[bytes]:
        return iter(self.chunks)


class _FakeSession:
    def __init__(self, response: _FakeResponse) -> None:
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, stream: bool, timeout: float) -> _FakeResponse:
        self.calls.append({"url": url, "stream": stream, "timeout": timeout})
        return self.response


def test_graph_wiring(make_context) -> None:
    graph = build_graph(make_context())
    assert graph.resolve("publish") == CHAIN
    assert graph.resolve("version") == ["version"]
    assert graph.get("publish").guard is not None


@pytest.mark.parametrize(
    "name, expected",
    [
        ("PublishLocal", "publish"),
        ("CopyToReady", "stage"),
        ("MakeNuget", "package"),
        ("MakeZip", "archive"),
        ("Marge", "merge"),
        ("CheckTools", "check-tools"),
        ("AbcVersionTarget", "version"),
        ("compile", "compile"),
    ],
)
def test_resolve_target_name(name: str, expected: str) -> None:
    assert resolve_target_name(name) == expected


def test_full_run_produces_artifacts(make_context, fake_runner: FakeRunner, build_root: Path, tmp_path: Path) -> None:
    feed_root = tmp_path / "local-packages"
    context = make_context(environ={"DlLocalPackages": str(feed_root)})
    report = build_graph(context).run("publish")

    assert report.executed == CHAIN
    assert fake_runner.labels == [
        "nuget install",
        "nuget restore",
        "msbuild",
        "libz",
        "nuget pack simcha.nuspec",
        "7za",
    ]
    ready = context.phase(StagingPhase.READY)
    assert sorted(path.name for path in ready.iterdir()) == ["appsettings.json", "logging.json", "simcha.exe"]
    assert (ready / "simcha.exe").read_bytes() == b"MZ-simcha"
    assert not list(context.phase(StagingPhase.MERGE).glob("*.dll"))
    assert (context.phase(StagingPhase.SCAFFOLD) / "tools" / "simcha.exe").exists()
    assert (context.phase(StagingPhase.NUGET) / "simcha.2026.1017.7.nupkg").exists()
    zip_path = context.phase(StagingPhase.ZIP) / "simcha.2026.1017.7.zip"
    assert zip_path.exists()
    assert (build_root / "_dev" / "app.standalone" / "simcha.exe").read_bytes() == b"MZ-simcha"
    assert not feed_root.exists()
    assert context.artifacts["archive"] == [str(zip_path)]
    assert context.runner.env["NUGET_EXE"] == str(context.layout.nuget_path)


def test_compile_stamps_single_version(make_context, fake_runner: FakeRunner) -> None:
    context = make_context()
    build_graph(context).run("compile")

    _, args, cwd = fake_runner.calls[-1]
    assert cwd == context.layout.source_dir
    assert args[0] == str(context.settings.solution_path)
    assert "/t:Rebuild" in args
    assert "/p:Configuration=Release" in args
    assert "/p:AssemblyVersion=2026.1017.7.0" in args
    assert "/p:FileVersion=2026.1017.7.0" in args
    assert "/p:InformationalVersion=2026.1017.7+20261017T093005Z" in args
    assert "/maxcpucount:4" in args


def test_package_uses_package_version_and_capture_year(make_context, fake_runner: FakeRunner) -> None:
    context = make_context(configuration="Debug")
    build_graph(context).run("package")

    label, args, _ = fake_runner.calls[-1]
    assert label == "nuget pack simcha.nuspec"
    assert args[args.index("-Version") + 1] == "2026.1017.7"
    assert args[args.index("-Properties") + 1] == "Configuration=Debug;currentyear=2026"
    assert args[args.index("-BasePath") + 1] == str(context.phase(StagingPhase.SCAFFOLD))
    assert "-NoPackageAnalysis" in args


def test_clean_removes_stale_artifacts(make_context) -> None:
    context = make_context()
    stale = context.phase(StagingPhase.READY) / "old.exe"
    stale.parent.mkdir(parents=True)
    stale.write_bytes(b"stale")
    artifacts = context.layout.artifacts_dir
    artifacts.mkdir()
    (artifacts / "old.zip").write_bytes(b"stale")

    build_graph(context).run("clean")

    assert context.layout.temp_root.is_dir()
    assert list(context.layout.temp_root.iterdir()) == []
    assert artifacts.is_dir()
    assert list(artifacts.iterdir()) == []


def test_stage_skips_existing_destination(make_context) -> None:
    context = make_context()
    build_graph(context).run("merge")
    ready = context.phase(StagingPhase.READY)
    ready.mkdir(parents=True)
    (ready / "appsettings.json").write_bytes(b"hand-edited")

    stage(context)

    assert (ready / "appsettings.json").read_bytes() == b"hand-edited"
    assert (ready / "logging.json").exists()
    assert (ready / "simcha.exe").exists()
    assert str(ready / "appsettings.json") not in context.artifacts["ready"]


def test_stage_requires_merged_executable(make_context) -> None:
    context = make_context(runner=FakeRunner())
    with pytest.raises(TargetExecutionError) as excinfo:
        build_graph(context).run("stage")
    assert excinfo.value.target == "stage"
    assert isinstance(excinfo.value.cause, FileNotFoundError)


def test_publish_without_distribution_root_is_noop(make_context, build_root: Path) -> None:
    context = make_context(environ={})
    graph = build_graph(context)
    graph.run("archive")
    before = snapshot(build_root)

    isolated = TargetGraph([replace(graph.get("publish"), depends_on=())])
    report = isolated.run("publish")

    assert report.succeeded
    assert report.skipped == ["publish"]
    assert snapshot(build_root) == before


def test_full_run_without_distribution_root_skips_publish(make_context, build_root: Path) -> None:
    report = build_graph(make_context(environ={"DlLocalPackages": "   "})).run("publish")
    assert report.skipped == ["publish"]
    assert report.executed == CHAIN[:-1]
    assert not (build_root / "_dev").exists()


def test_publish_copies_zip_to_feed_when_enabled(make_context, tmp_path: Path) -> None:
    feed_root = tmp_path / "feed"
    context = make_context(environ={"PkgRoot": str(feed_root)}, distribution_env="PkgRoot", copy_zip_to_feed=True)
    build_graph(context).run("publish")
    assert (feed_root / "simcha" / "simcha.2026.1017.7.zip").read_bytes() == b"PK-zip"


def test_soft_restore_failure_continues(make_context) -> None:
    runner = FakeRunner(effects=default_effects(), exit_codes={"nuget restore": 1})
    report = build_graph(make_context(runner=runner)).run("archive")
    assert report.succeeded
    assert runner.labels[-1] == "7za"


def test_hard_compile_failure_stops_pipeline(make_context) -> None:
    runner = FakeRunner(effects=default_effects(), exit_codes={"msbuild": 1})
    context = make_context(runner=runner)
    with pytest.raises(TargetExecutionError) as excinfo:
        build_graph(context).run("publish")
    assert excinfo.value.target == "compile"
    assert runner.labels == ["nuget install", "nuget restore", "msbuild"]
    assert not context.phase(StagingPhase.MERGE).exists()


def test_restore_policy_can_be_made_hard(make_context) -> None:
    runner = FakeRunner(effects=default_effects(), exit_codes={"nuget restore": 1})
    context = make_context(runner=runner, failure_policies={"restore": "hard"})
    with pytest.raises(TargetExecutionError) as excinfo:
        build_graph(context).run("compile")
    assert excinfo.value.target == "restore"
    assert "msbuild" not in runner.labels


def test_check_tools_downloads_missing_nuget(make_context, fake_runner: FakeRunner) -> None:
    session = _FakeSession(_FakeResponse([b"MZ", b"-downloaded"]))
    context = make_context()
    context.http_session = session
    context.layout.nuget_path.unlink()

    build_graph(context).run("check-tools")

    assert context.layout.nuget_path.read_bytes() == b"MZ-downloaded"
    assert session.calls[0]["url"] == context.settings.nuget_url
    assert fake_runner.labels == ["nuget install"]


def test_check_tools_download_failure_is_hard(make_context, fake_runner: FakeRunner) -> None:
    context = make_context()
    context.http_session = _FakeSession(_FakeResponse([], status_code=404))
    context.layout.nuget_path.unlink()

    with pytest.raises(TargetExecutionError) as excinfo:
        build_graph(context).run("check-tools")

    assert isinstance(excinfo.value.cause, DownloadError)
    assert not context.layout.nuget_path.exists()
    assert not context.layout.nuget_path.with_name("nuget.exe.part").exists()
    assert fake_runner.labels == []
