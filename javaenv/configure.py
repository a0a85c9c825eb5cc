"""Configuration pass: discovery, path sets, descriptor files and commands."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, MutableMapping, Sequence, TextIO
import os
import shlex

from .command_runner import CommandRunner, SubprocessCommandRunner
from .config_loader import ProjectLayout
from .console import Console
from .descriptors import DescriptorWriter
from .environment import ProjectDescriptor, discover_project, find_project_directory, link_dependency_root
from .lifecycle import CommandRegistry, CreatedAssetLog, Lifecycle, TeardownReport, TeardownScope
from .pathsets import EXECUTION_CLASSPATH, MANAGED_VARIABLES, MODULE_PATH, TEST_CLASSPATH, PathSetAssembler
from .pipeline import PipelineRunner


COMMAND_USAGES: Dict[str, str] = {
    "show": "show cmd [args] cmd [args] ...",
    "mk": "mk [--show] cmd [args] cmd [args] ...",
    "wipe": "wipe [--all|-a]",
}

SHELL_FUNCTIONS: Dict[str, str] = {
    "show": 'typeset -f show >/dev/null || show() { javaenv show "$@"; }',
    "mk": 'typeset -f mk >/dev/null || mk() { javaenv run "$@"; }',
    "wipe": 'typeset -f wipe >/dev/null || wipe() { eval "$(javaenv teardown --export "$@")"; }',
}

# Kept in the calling shell by ``configure --export`` for ``teardown``.
CREATED_VARIABLES_RECORD = "JAVAENV_CREATED_VARIABLES"
CREATED_FILES_RECORD = "JAVAENV_CREATED_FILES"
CREATED_RECORDS = (CREATED_VARIABLES_RECORD, CREATED_FILES_RECORD)


@dataclass(slots=True)
class ConfigurationResult:
    descriptor: ProjectDescriptor
    log: CreatedAssetLog
    registry: CommandRegistry
    environment: MutableMapping[str, str]
    created_files: List[Path] = field(default_factory=list)

    def lifecycle(self) -> Lifecycle:
        layout = self.descriptor.layout
        return Lifecycle(
            project_dir=self.descriptor.project_dir,
            environment=self.environment,
            log=self.log,
            registry=self.registry,
            build_outputs=(layout.target, layout.logs),
            links=(layout.libs,),
        )


def parse_wipe_arguments(args: tuple[str, ...] | list[str]) -> TeardownScope:
    scope = TeardownScope.CREATED
    for arg in args:
        if arg in ("--all", "-a"):
            scope = TeardownScope.ALL
        else:
            raise ValueError(f"unknown argument: [{arg}], use: {COMMAND_USAGES['wipe']}")
    return scope


class ProjectConfigurator:
    """Runs discovery and exports the project environment into ``environment``."""

    def __init__(
        self,
        *,
        environment: MutableMapping[str, str],
        console: Console | None = None,
        runner: CommandRunner | None = None,
        registry: CommandRegistry | None = None,
        windows: bool | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self._environment = environment
        self._console = console or Console()
        self._runner = runner or SubprocessCommandRunner()
        self._registry = registry or CommandRegistry()
        self._windows = windows
        self._stream = stream

    @property
    def registry(self) -> CommandRegistry:
        return self._registry

    def _discover(self, start: Path) -> ProjectDescriptor:
        project_dir = find_project_directory(start)
        layout = ProjectLayout.load(project_dir)
        return discover_project(
            project_dir,
            layout,
            console=self._console,
            windows=self._windows,
            runner=self._runner,
        )

    def discover(self, start: Path) -> ProjectDescriptor:
        """Discover the project without creating anything.

        The returned descriptor carries the variables a configured shell
        would hold, for use as the child environment of pipeline stages.
        """

        descriptor = self._discover(start)
        assembler = PathSetAssembler(descriptor)
        assembler.assemble()
        assembler.apply(dict(self._environment), CreatedAssetLog())
        return descriptor

    def configure(self, start: Path) -> ConfigurationResult:
        log = CreatedAssetLog()
        project_dir = find_project_directory(start)
        layout = ProjectLayout.load(project_dir)

        link = link_dependency_root(project_dir, layout, console=self._console)
        if link is not None:
            log.record_file(link)

        descriptor = discover_project(
            project_dir,
            layout,
            console=self._console,
            windows=self._windows,
            runner=self._runner,
        )
        assembler = PathSetAssembler(descriptor)
        assembler.assemble()
        assembler.apply(self._environment, log)

        writer = DescriptorWriter(descriptor, console=self._console)
        created_files = writer.write(log)

        result = ConfigurationResult(
            descriptor=descriptor,
            log=log,
            registry=self._registry,
            environment=self._environment,
            created_files=created_files,
        )
        self.register_commands(result)
        return result

    def register_commands(self, result: ConfigurationResult) -> None:
        handlers: Dict[str, Callable[..., int]] = {
            "show": lambda *tokens: self._pipeline(result.descriptor).run(list(tokens), preview_only=True).returncode,
            "mk": lambda *tokens: self._mk(result.descriptor, tokens),
            "wipe": lambda *args: self._wipe(result, args),
        }
        for name, handler in handlers.items():
            self._registry.register(name, handler, usage=COMMAND_USAGES[name], log=result.log)

    def _pipeline(self, descriptor: ProjectDescriptor) -> PipelineRunner:
        return PipelineRunner(descriptor, self._runner, stream=self._stream)

    def _mk(self, descriptor: ProjectDescriptor, tokens: tuple[str, ...]) -> int:
        preview_only = "--show" in tokens
        remaining = [token for token in tokens if token != "--show"]
        return self._pipeline(descriptor).run(remaining, preview_only=preview_only).returncode

    def _wipe(self, result: ConfigurationResult, args: tuple[str, ...]) -> int:
        report = result.lifecycle().teardown(parse_wipe_arguments(args))
        for line in report.lines():
            self._console.line(line)
        return 0


def created_asset_lines(result: ConfigurationResult) -> List[str]:
    """Summary of what the configuration pass created."""

    log = result.log
    if log.is_empty():
        return ["project environment has been set up"]
    lines: List[str] = []
    if log.variables:
        lines.append("created environment variables:")
        lines.extend(f" - {name}" for name in log.variables)
    if log.files:
        lines.append("created files:")
        project_dir = result.descriptor.project_dir
        for path in log.files:
            try:
                shown = path.relative_to(project_dir)
            except ValueError:
                shown = path
            lines.append(f" - {shown.as_posix()}")
    if log.commands:
        lines.append("created functions:")
        lines.extend(f" - {result.registry.get(name).usage}" for name in log.commands)
    return lines


def describe_lines(descriptor: ProjectDescriptor) -> List[str]:
    """Discovered values, one ``key: value`` per line."""
    return [f"  [{key}]: {'' if value is None else value}" for key, value in descriptor.describe().items()]


def environment_lines(environment: MutableMapping[str, str], separator: str) -> List[str]:
    lines: List[str] = []
    for name in (EXECUTION_CLASSPATH, TEST_CLASSPATH, MODULE_PATH):
        value = environment.get(name)
        if not value:
            continue
        lines.append(f"- {name}:")
        lines.extend(f"  + {segment}" for segment in value.split(separator))
        lines.append("")
    for name in MANAGED_VARIABLES:
        if name in (EXECUTION_CLASSPATH, TEST_CLASSPATH, MODULE_PATH):
            continue
        value = environment.get(name)
        if value:
            lines.append(f"- {name}: {value}")
    return lines


def read_created_record(environment: Mapping[str, str]) -> CreatedAssetLog:
    """Rebuild the log of an earlier ``configure --export`` from the calling shell."""

    variables = environment.get(CREATED_VARIABLES_RECORD, "").split()
    files = [Path(entry) for entry in environment.get(CREATED_FILES_RECORD, "").split(os.pathsep) if entry]
    return CreatedAssetLog(variables=variables, files=files)


def export_script(result: ConfigurationResult) -> str:
    """Shell text that reproduces the configured state in the calling shell.

    The record of created variables and files accumulates across
    configuration passes so that ``teardown`` can undo all of them.
    """

    lines = [f"export {name}={shlex.quote(result.environment[name])}" for name in result.log.variables]
    for name in result.log.commands:
        lines.append(SHELL_FUNCTIONS[name])

    record = read_created_record(result.environment)
    record.variables.extend(name for name in result.log.variables if name not in record.variables)
    record.files.extend(path for path in result.log.files if path not in record.files)
    if record.variables:
        lines.append(f"export {CREATED_VARIABLES_RECORD}={shlex.quote(' '.join(record.variables))}")
    if record.files:
        joined = os.pathsep.join(str(path) for path in record.files)
        lines.append(f"export {CREATED_FILES_RECORD}={shlex.quote(joined)}")
    return "".join(f"{line}\n" for line in lines)


def teardown_script(report: TeardownReport, *, records: Sequence[str] = ()) -> str:
    lines: List[str] = []
    variables = [*report.variables, *records]
    if variables:
        lines.append("unset " + " ".join(variables))
    if report.commands:
        lines.append("unset -f " + " ".join(report.commands))
    return "".join(f"{line}\n" for line in lines)
