from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from aware_build.errors import ExternalToolFailure
from aware_build.pipeline import BuildContext
from aware_build.process import FailurePolicy, ProcessOutcome, ProcessResult, ToolRunner, classify, split_arguments
from aware_build.settings import BuildSettings
from aware_build.versioning import VersionDescriptor, compute_version

CAPTURED_AT = datetime(2026, 10, 17, 9, 30, 5, tzinfo=timezone.utc)

Effect = Callable[[List[str], Path], None]


class FakeRunner(ToolRunner):
    """Records tool invocations and simulates their filesystem effects."""

    def __init__(self, effects: Optional[Dict[str, Effect]] = None, exit_codes: Optional[Dict[str, int]] = None) -> None:
        super().__init__()
        self.calls: List[Tuple[str, List[str], Path]] = []
        self.effects = effects or {}
        self.exit_codes = exit_codes or {}

    @property
    def labels(self) -> List[str]:
        return [label for label, _, _ in self.calls]

    def run(self, executable, arguments, working_dir, *, policy=FailurePolicy.HARD, timeout=None, label=None):
        args = split_arguments(arguments)
        name = label or Path(str(executable)).name
        cwd = Path(working_dir)
        self.calls.append((name, args, cwd))
        exit_code = self.exit_codes.get(name, 0)
        effect = self.effects.get(name)
        if effect is not None and exit_code == 0:
            effect(args, cwd)
        result = ProcessResult(
            executable=str(executable),
            arguments=args,
            working_dir=cwd,
            exit_code=exit_code,
            outcome=classify(exit_code, policy),
        )
        self.history.append(result)
        if result.outcome is ProcessOutcome.HARD_FAILURE:
            raise ExternalToolFailure(f"{name} exited with code {exit_code}.", result)
        return result


def _option(args: List[str], flag: str) -> str:
    return args[args.index(flag) + 1]


def _fake_msbuild(args: List[str], cwd: Path) -> None:
    out_dir = Path(next(arg for arg in args if arg.startswith("/p:OutDir=")).split("=", 1)[1])
    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / "Simcha.exe").write_bytes(b"MZ-simcha")
    (out_dir / "Newtonsoft.Json.dll").write_bytes(b"MZ-dep")


def _fake_libz(args: List[str], cwd: Path) -> None:
    for dll in cwd.glob("*.dll"):
        dll.unlink()


def _fake_pack(args: List[str], cwd: Path) -> None:
    out_dir = Path(_option(args, "-OutputDirectory"))
    manifest = Path(args[1])
    (out_dir / f"{manifest.stem}.{_option(args, '-Version')}.nupkg").write_bytes(b"PK-nupkg")


def _fake_7za(args: List[str], cwd: Path) -> None:
    Path(args[1]).write_bytes(b"PK-zip")


def default_effects() -> Dict[str, Effect]:
    return {
        "msbuild": _fake_msbuild,
        "libz": _fake_libz,
        "nuget pack simcha.nuspec": _fake_pack,
        "7za": _fake_7za,
    }


def snapshot(root: Path) -> Dict[str, bytes]:
    return {
        str(path.relative_to(root)): path.read_bytes() if path.is_file() else b"<dir>"
        for path in sorted(root.rglob("*"))
    }


@pytest.fixture()
def captured_at() -> datetime:
    return CAPTURED_AT


@pytest.fixture()
def version() -> VersionDescriptor:
    return compute_version(7, CAPTURED_AT)


@pytest.fixture()
def build_root(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    resources = root / "src" / "build" / "_res"
    (resources / "config").mkdir(parents=True)
    (resources / "nuget").mkdir(parents=True)
    (resources / "config" / "appsettings.json").write_text('{"feed": "local"}\n', encoding="utf-8")
    (resources / "config" / "logging.json").write_text('{"level": "info"}\n', encoding="utf-8")
    (resources / "nuget" / "simcha.nuspec").write_text("<package />\n", encoding="utf-8")
    (root / "src" / "Simcha.sln").write_text("\n", encoding="utf-8")
    nuget = root / "tools" / "nuget" / "nuget.exe"
    nuget.parent.mkdir(parents=True)
    nuget.write_bytes(b"MZ-nuget")
    (root / "tools" / "packages.config").write_text("<packages />\n", encoding="utf-8")
    return root


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner(effects=default_effects())


@pytest.fixture()
def make_context(build_root: Path, version: VersionDescriptor, fake_runner: FakeRunner):
    def _make(
        environ: Optional[Dict[str, str]] = None,
        runner: Optional[ToolRunner] = None,
        **settings_values: object,
    ) -> BuildContext:
        settings = BuildSettings(root_dir=build_root, **settings_values)
        return BuildContext(
            settings=settings,
            version=version,
            runner=runner or fake_runner,
            environ=environ if environ is not None else {},
            cpu_count=4,
        )

    return _make
