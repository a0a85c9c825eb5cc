"""Command line interface for the Java project environment tool."""
from __future__ import annotations

from argparse import REMAINDER, ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable, List
import os
import sys

from . import __version__
from .command_runner import SubprocessCommandRunner
from .config_loader import ProjectLayout
from .configure import (
    COMMAND_USAGES,
    CREATED_RECORDS,
    ProjectConfigurator,
    created_asset_lines,
    describe_lines,
    environment_lines,
    export_script,
    read_created_record,
    teardown_script,
)
from .console import Console
from .environment import find_project_directory
from .lifecycle import CommandRegistry, Lifecycle, TeardownScope
from .pipeline import COVERAGE_FLAG, PACKAGE_LIBS_FLAGS, PipelineRunner


def _add_modifier_arguments(parser: ArgumentParser) -> None:
    parser.add_argument("--coverage", action="store_true", help="Attach the coverage agent to run-tests")
    parser.add_argument(
        *PACKAGE_LIBS_FLAGS,
        dest="package_libs",
        action="store_true",
        help="Bundle the dependency jars into the package",
    )


def _pipeline_tokens(args: Namespace) -> List[str]:
    """Leading modifiers parsed as options, followed by the stage tokens."""
    tokens: List[str] = []
    if args.coverage:
        tokens.append(COVERAGE_FLAG)
    if args.package_libs:
        tokens.append(PACKAGE_LIBS_FLAGS[0])
    return tokens + list(args.tokens)


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="javaenv", description="Java project environment and build pipeline")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    configure_parser = subparsers.add_parser("configure", help="Discover the project and set up its environment")
    configure_parser.add_argument("-v", "--verbose", action="store_true", help="Show discovered assets")
    configure_parser.add_argument("-e", "--environment", action="store_true", help="Show values of environment variables")
    configure_parser.add_argument(
        "--export",
        action="store_true",
        help="Print shell exports and functions for eval; the summary goes to stderr",
    )

    run_parser = subparsers.add_parser("run", help="Execute stages (mk)")
    run_parser.add_argument("--show", action="store_true", help="Show instructions without executing them")
    _add_modifier_arguments(run_parser)
    run_parser.add_argument("tokens", nargs=REMAINDER, help="stage [args] stage [args] ...")

    show_parser = subparsers.add_parser("show", help="Show stage instructions")
    _add_modifier_arguments(show_parser)
    show_parser.add_argument("tokens", nargs=REMAINDER, help="stage [args] stage [args] ...")

    teardown_parser = subparsers.add_parser("teardown", help="Remove created variables and files (wipe)")
    teardown_parser.add_argument("-a", "--all", action="store_true", help="Include project files and functions")
    teardown_parser.add_argument(
        "--export",
        action="store_true",
        help="Print unset statements for eval; the summary goes to stderr",
    )

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    workspace = Path.cwd()

    try:
        if args.command == "configure":
            return _handle_configure(args, workspace)
        if args.command == "run":
            return _handle_pipeline(_pipeline_tokens(args), workspace, preview_only=args.show)
        if args.command == "show":
            return _handle_pipeline(_pipeline_tokens(args), workspace, preview_only=True)
        if args.command == "teardown":
            return _handle_teardown(args, workspace)
    except (KeyError, ValueError, TypeError) as exc:
        print(f"Error: {exc}")
        return 2
    raise ValueError(f"Unknown command: {args.command}")


def _print_lines(lines: List[str], *, to_stderr: bool) -> None:
    stream = sys.stderr if to_stderr else sys.stdout
    for line in lines:
        print(line, file=stream)


def _handle_configure(args: Namespace, workspace: Path) -> int:
    environment = dict(os.environ)
    console = Console("debug" if args.verbose else "info", stream=sys.stderr if args.export else None)
    configurator = ProjectConfigurator(
        environment=environment,
        console=console,
        runner=SubprocessCommandRunner(),
    )
    result = configurator.configure(workspace)

    if args.verbose:
        _print_lines(["discovered project assets:", *describe_lines(result.descriptor)], to_stderr=args.export)
    if args.environment:
        _print_lines(environment_lines(environment, result.descriptor.separator), to_stderr=args.export)
    _print_lines(created_asset_lines(result), to_stderr=args.export)
    if args.export:
        sys.stdout.write(export_script(result))
    return 0


def _handle_pipeline(tokens: List[str], workspace: Path, *, preview_only: bool) -> int:
    if "--show" in tokens:
        preview_only = True
        tokens = [token for token in tokens if token != "--show"]
    runner = SubprocessCommandRunner()
    configurator = ProjectConfigurator(
        environment=dict(os.environ),
        console=Console("error"),
        runner=runner,
    )
    descriptor = configurator.discover(workspace)
    result = PipelineRunner(descriptor, runner).run(tokens, preview_only=preview_only)
    return result.returncode


def _handle_teardown(args: Namespace, workspace: Path) -> int:
    environment = dict(os.environ)
    project_dir = find_project_directory(workspace)
    layout = ProjectLayout.load(project_dir)
    scope = TeardownScope.ALL if args.all else TeardownScope.CREATED

    # the calling shell keeps the record exported by ``configure --export``
    log = read_created_record(environment)
    registry = CommandRegistry()
    if args.export:
        for name, usage in COMMAND_USAGES.items():
            registry.register(name, lambda *_: 0, usage=usage)

    lifecycle = Lifecycle(
        project_dir=project_dir,
        environment=environment,
        log=log,
        registry=registry,
        build_outputs=(layout.target, layout.logs),
        links=(layout.libs,),
    )
    report = lifecycle.teardown(scope)
    _print_lines(report.lines(), to_stderr=args.export)
    if args.export:
        records = [name for name in CREATED_RECORDS if name in environment]
        sys.stdout.write(teardown_script(report, records=records))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
