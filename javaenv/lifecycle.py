"""Record of created assets and their reversal."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, List, MutableMapping
import shutil


DESCRIPTOR_FILES = (".classpath", ".project", ".vscode/launch-coderunner")


class TeardownScope(str, Enum):
    CREATED = "created"
    ALL = "all"


@dataclass(slots=True)
class CreatedAssetLog:
    """Append-only record of what one configuration pass created."""

    variables: List[str] = field(default_factory=list)
    files: List[Path] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)

    def record_variable(self, name: str) -> None:
        self.variables.append(name)

    def record_file(self, path: Path) -> None:
        self.files.append(path)

    def record_command(self, name: str) -> None:
        self.commands.append(name)

    def is_empty(self) -> bool:
        return not (self.variables or self.files or self.commands)


@dataclass(slots=True)
class RegisteredCommand:
    name: str
    usage: str
    handler: Callable[..., int]


class CommandRegistry:
    """Explicit initialization guard for the commands a session exposes."""

    def __init__(self) -> None:
        self._commands: Dict[str, RegisteredCommand] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., int],
        *,
        usage: str,
        log: CreatedAssetLog | None = None,
    ) -> bool:
        """Register ``handler`` unless ``name`` is already initialized."""
        if name in self._commands:
            return False
        self._commands[name] = RegisteredCommand(name=name, usage=usage, handler=handler)
        if log is not None:
            log.record_command(name)
        return True

    def unregister(self, name: str) -> bool:
        return self._commands.pop(name, None) is not None

    def get(self, name: str) -> RegisteredCommand:
        if name not in self._commands:
            available = ", ".join(sorted(self._commands)) or "<none>"
            raise KeyError(f"Command '{name}' is not registered. Available commands: {available}")
        return self._commands[name]

    def invoke(self, name: str, *args: str) -> int:
        return self.get(name).handler(*args)

    def names(self) -> List[str]:
        return list(self._commands)


@dataclass(slots=True)
class TeardownReport:
    variables: List[str] = field(default_factory=list)
    files: List[Path] = field(default_factory=list)
    commands: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.variables or self.files or self.commands)

    def lines(self, *, width: int = 78) -> List[str]:
        """Human-readable summary, wrapping the variable list at ``width``."""
        if self.is_empty():
            return ["nothing to undo"]
        lines = ["wiping:"]
        if self.variables:
            line = " - unset"
            separator = " "
            for name in self.variables:
                if len(f"{line}{separator}{name}") > width:
                    lines.append(f"{line},")
                    line = f"   {name}"
                else:
                    line = f"{line}{separator}{name}"
                separator = ", "
            lines.append(line)
        if self.files:
            lines.append(" - rm -rf " + " ".join(str(path) for path in self.files))
        if self.commands:
            lines.append(" - unregister " + " ".join(self.commands))
        return lines


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


class Lifecycle:
    """Reverses what a configuration pass created."""

    def __init__(
        self,
        *,
        project_dir: Path,
        environment: MutableMapping[str, str],
        log: CreatedAssetLog,
        registry: CommandRegistry | None = None,
        build_outputs: Iterable[str] = (),
        links: Iterable[str] = (),
    ) -> None:
        self._project_dir = project_dir
        self._environment = environment
        self._log = log
        self._registry = registry
        self._build_outputs = list(build_outputs)
        self._links = list(links)

    def plan(self, scope: TeardownScope = TeardownScope.CREATED) -> TeardownReport:
        report = TeardownReport()
        for name in self._log.variables:
            if name in self._environment and name not in report.variables:
                report.variables.append(name)
        for path in self._log.files:
            if (path.exists() or path.is_symlink()) and path not in report.files:
                report.files.append(path)

        if scope is TeardownScope.ALL:
            extra = [*self._build_outputs, *DESCRIPTOR_FILES]
            for relative in extra:
                path = self._project_dir / relative
                if (path.exists() or path.is_symlink()) and path not in report.files:
                    report.files.append(path)
            # only links are removed, a real directory under the same name stays
            for relative in self._links:
                path = self._project_dir / relative
                if path.is_symlink() and path not in report.files:
                    report.files.append(path)
            if self._registry is not None:
                report.commands.extend(self._registry.names())
        return report

    def teardown(self, scope: TeardownScope = TeardownScope.CREATED) -> TeardownReport:
        """Remove logged variables and files; ``ALL`` also unregisters commands."""
        report = self.plan(scope)
        for name in report.variables:
            self._environment.pop(name, None)
        for path in report.files:
            _remove_path(path)
        if self._registry is not None:
            for name in report.commands:
                self._registry.unregister(name)
        return report
