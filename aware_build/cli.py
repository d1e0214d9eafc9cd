from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .errors import GraphError, TargetExecutionError
from .graph import TargetGraph
from .pipeline import DEFAULT_TARGET, BuildContext, build_graph, resolve_target_name
from .process import ToolRunner
from .settings import BuildSettings, load_settings
from .versioning import VersionDescriptor, compute_version

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="aware-build", description="Staged solution build orchestrator")
    parser.add_argument("target", nargs="?", default=DEFAULT_TARGET, help=f"Terminal target (default: {DEFAULT_TARGET})")
    parser.add_argument("--build-counter", type=int, help="Build counter supplied by the CI server")
    parser.add_argument("--configuration", help="Build configuration (default: Release)")
    parser.add_argument("--root", default=".", help="Repository root containing src/ and tools/")
    parser.add_argument("--config", help="Settings file (default: <root>/aware-build.yaml when present)")
    parser.add_argument("--timeout", type=float, help="Per tool invocation timeout in seconds")
    parser.add_argument("--launcher", help="Command prefix for tool executables, e.g. 'mono'")
    parser.add_argument("--list", action="store_true", help="List registered targets and exit")
    parser.add_argument("--plan", action="store_true", help="Print the resolved target order and exit")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def _load_local_env(root: Path) -> None:
    env_file = root / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)


def create_context(settings: BuildSettings, version: VersionDescriptor) -> BuildContext:
    runner = ToolRunner(timeout=settings.tool_timeout, launcher=settings.tool_launcher)
    return BuildContext(settings=settings, version=version, runner=runner)


def main(argv: list[str] | None = None, *, captured_at: Optional[datetime] = None) -> int:
    # Captured once per process; every target sees the same version.
    captured = captured_at or datetime.now(timezone.utc)

    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    root = Path(args.root).resolve()
    _load_local_env(root)

    overrides: Dict[str, object] = {
        "build_counter": args.build_counter,
        "configuration": args.configuration,
        "tool_timeout": args.timeout,
        "tool_launcher": args.launcher,
    }
    try:
        settings = load_settings(
            root,
            config_path=Path(args.config) if args.config else None,
            overrides=overrides,
        )
        version = compute_version(settings.build_counter, captured)
    except (ValidationError, ValueError, OSError) as exc:
        print(f"Invalid build settings: {exc}", file=sys.stderr)
        return EXIT_USAGE

    context = create_context(settings, version)
    try:
        graph = build_graph(context)
    except GraphError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE

    if args.list:
        print(json.dumps(graph.describe(), indent=2))
        return EXIT_OK

    target = resolve_target_name(args.target)
    if args.plan:
        return _print_plan(graph, target)

    try:
        report = graph.run(target)
    except GraphError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE
    except TargetExecutionError as exc:
        payload = {
            "target": target,
            "status": "failed",
            "failed_target": exc.target,
            "error": str(exc.cause),
            "version": version.to_dict(),
            "report": exc.report.to_dict() if exc.report else None,
        }
        print(json.dumps(payload, indent=2))
        logger.error("Build failed at '%s'; phase directories may be partial, re-run from 'clean'.", exc.target)
        return EXIT_FAILED

    payload = {
        "target": target,
        "status": "ok",
        "version": version.to_dict(),
        "report": report.to_dict(),
        "artifacts": context.artifacts,
    }
    print(json.dumps(payload, indent=2))
    return EXIT_OK


def _print_plan(graph: TargetGraph, target: str) -> int:
    try:
        plan = graph.resolve(target)
    except GraphError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE
    print(json.dumps({"target": target, "plan": plan}, indent=2))
    return EXIT_OK


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
