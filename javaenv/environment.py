"""Project discovery producing the :class:`ProjectDescriptor` of one invocation."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence
import os
import platform
import posixpath
import re
import shutil

import pygit2

from .artifacts import Artifact, first_matching, module_directories, scan_artifacts
from .command_runner import CommandRunner, SubprocessCommandRunner
from .config_loader import ProjectLayout
from .console import Console


_MODULE_PATTERN = re.compile(r"\b(?:open\s+)?module\s+([A-Za-z_][\w.]*)\s*\{")
_BLOCK_COMMENT_PATTERN = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT_PATTERN = re.compile(r"//[^\n]*")
_DRIVE_PATTERN = re.compile(r"^/(?:cygdrive/)?([A-Za-z])(/.*)?$")


def is_windows_host() -> bool:
    system = platform.system()
    return system == "Windows" or system.upper().startswith(("CYGWIN", "MINGW", "MSYS"))


def path_separator(windows: bool) -> str:
    return ";" if windows else ":"


@dataclass(slots=True)
class PathSet:
    """Ordered path segments for one consumer, joined by the platform separator."""

    name: str
    separator: str
    segments: List[str] = field(default_factory=list)

    def append(self, segment: str | None) -> None:
        if segment:
            self.segments.append(segment)

    def extend(self, segments: Sequence[str]) -> None:
        for segment in segments:
            self.append(segment)

    def joined(self) -> str:
        return self.separator.join(self.segments)

    def __bool__(self) -> bool:
        return bool(self.segments)

    def __iter__(self):
        return iter(self.segments)

    def __len__(self) -> int:
        return len(self.segments)


@dataclass(slots=True)
class ProjectDescriptor:
    """Mutable configuration record of one invocation.

    Optional locations are ``None`` when the probed asset does not exist.
    All relative paths are relative to :attr:`project_dir`, the working
    directory of every generated instruction.
    """

    project_dir: Path
    layout: ProjectLayout
    separator: str = ":"
    windows: bool = False
    src: str | None = None
    tests: str | None = None
    resources: str | None = None
    target_resources: str | None = None
    manifest: str | None = None
    main: str | None = None
    module: str | None = None
    module_info: str | None = None
    libs_path: str | None = None
    libs_absolute: str | None = None
    libs_parent: str | None = None
    artifacts: List[Artifact] = field(default_factory=list)
    module_dirs: List[str] = field(default_factory=list)
    resource_files: List[str] = field(default_factory=list)
    path_sets: Dict[str, PathSet] = field(default_factory=dict)
    variables: Dict[str, str] = field(default_factory=dict)

    @property
    def target(self) -> str:
        return self.layout.target

    @property
    def target_classes(self) -> str:
        return self.layout.target_classes

    @property
    def target_tests(self) -> str:
        return self.layout.target_tests

    @property
    def target_jar(self) -> str:
        return self.layout.target_jar

    @property
    def execution_artifacts(self) -> List[Artifact]:
        return [artifact for artifact in self.artifacts if artifact.execution]

    @property
    def test_artifacts(self) -> List[Artifact]:
        return [artifact for artifact in self.artifacts if artifact.test]

    @property
    def test_runner(self) -> Artifact | None:
        return first_matching(self.artifacts, "test-runner")

    @property
    def coverage_agent(self) -> Artifact | None:
        if not self.tests:
            return None
        return first_matching(self.artifacts, "coverage-agent")

    @property
    def coverage_report_tool(self) -> Artifact | None:
        return first_matching(self.artifacts, "coverage-report")

    @property
    def lombok(self) -> Artifact | None:
        return first_matching(self.artifacts, "lombok")

    @property
    def target_manifest(self) -> str | None:
        if not self.manifest or not self.target_resources:
            return None
        return posixpath.join(self.target_resources, self.manifest)

    def path(self, relative: str) -> Path:
        return self.project_dir / relative

    def exists(self, relative: str | None) -> bool:
        return bool(relative) and self.path(relative).exists()

    def describe(self) -> Dict[str, Any]:
        """Discovered values for the verbose report."""
        return {
            "project-dir": str(self.project_dir),
            "src": self.src,
            "tests": self.tests,
            "res": self.resources,
            "manifest": self.manifest,
            "main": self.main,
            "module": self.module,
            "module-info": self.module_info,
            "libs": self.libs_path,
            "libs-abs": self.libs_absolute,
            "libs-parent": self.libs_parent,
            "jars": self.separator.join(artifact.path for artifact in self.execution_artifacts),
            "junit-jars": self.separator.join(artifact.path for artifact in self.test_artifacts),
            "junit-runner": self.test_runner.path if self.test_runner else None,
            "cov-agent": self.coverage_agent.path if self.coverage_agent else None,
            "cov-report-gen": self.coverage_report_tool.path if self.coverage_report_tool else None,
            "lombok-jar": self.lombok.path if self.lombok else None,
            "module-path": self.separator.join(self.module_dirs),
            "sep": self.separator,
        }


def parse_module_name(text: str) -> str | None:
    """Return the module name declared in ``module-info.java`` source text."""

    stripped = _BLOCK_COMMENT_PATTERN.sub(" ", text)
    stripped = _LINE_COMMENT_PATTERN.sub("", stripped)
    match = _MODULE_PATTERN.search(stripped)
    return match.group(1) if match else None


def is_project_directory(path: Path, *, src_dir: str = "src") -> bool:
    """True when ``path`` is the work tree root of a Git repository holding sources."""

    if not (path / src_dir).is_dir():
        return False
    repo_path = pygit2.discover_repository(str(path))
    if not repo_path:
        return False
    try:
        repo = pygit2.Repository(repo_path)
    except pygit2.GitError:
        return False
    if repo.is_bare or not repo.workdir:
        return False
    return Path(repo.workdir).resolve() == path.resolve()


def find_project_directory(start: Path) -> Path:
    """Return the first of ``start`` and its parent that is a project directory."""

    start = start.resolve()
    for candidate in (start, start.parent):
        if is_project_directory(candidate):
            return candidate
    return start


def to_windows_path(path: str, runner: CommandRunner | None = None) -> str:
    """Convert a POSIX-style absolute path into ``C:/...`` form.

    Uses ``cygpath -wa`` when the host provides it, otherwise emulates the
    conversion for ``/cygdrive/c/...`` and ``/c/...`` paths.
    """

    if shutil.which("cygpath"):
        result = (runner or SubprocessCommandRunner()).run(["cygpath", "-wa", path])
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip().replace("\\", "/")
    match = _DRIVE_PATTERN.match(path)
    if not match:
        return path
    return f"{match.group(1).upper()}:{match.group(2) or '/'}"


def locate_dependency_root(project_dir: Path, layout: ProjectLayout, *, console: Console) -> str | None:
    """Probe ``layout.libs_search`` for a dependency root outside the project."""

    for location in layout.libs_search:
        candidate = posixpath.join(location, layout.libs)
        if (project_dir / candidate).is_dir():
            console.info(f"probing for '{layout.libs}', found at: {candidate}")
            return candidate
        console.debug(f"probing for '{layout.libs}' at {candidate}, none.")
    return None


def link_dependency_root(project_dir: Path, layout: ProjectLayout, *, console: Console) -> Path | None:
    """Create the ``libs`` symbolic link when the project has none.

    Returns the created link, or ``None`` when nothing was created.
    """

    link = project_dir / layout.libs
    if link.exists() or link.is_symlink():
        return None
    target = locate_dependency_root(project_dir, layout, console=console)
    if target is None:
        return None
    os.symlink(target, link, target_is_directory=True)
    return link


def _collect_resource_files(resources_dir: Path, *, exclude: str) -> List[str]:
    files: List[str] = []
    for current, dirnames, filenames in os.walk(resources_dir):
        relative_dir = Path(current).relative_to(resources_dir)
        dirnames[:] = sorted(
            name for name in dirnames if (relative_dir / name).as_posix() != exclude
        )
        for name in sorted(filenames):
            files.append((relative_dir / name).as_posix())
    return files


def discover_project(
    project_dir: Path,
    layout: ProjectLayout | None = None,
    *,
    console: Console | None = None,
    windows: bool | None = None,
    runner: CommandRunner | None = None,
) -> ProjectDescriptor:
    """Probe ``project_dir`` and classify its dependency root."""

    layout = layout or ProjectLayout()
    console = console or Console()
    windows = is_windows_host() if windows is None else windows
    descriptor = ProjectDescriptor(
        project_dir=project_dir,
        layout=layout,
        separator=path_separator(windows),
        windows=windows,
    )

    if (project_dir / layout.src).is_dir():
        descriptor.src = layout.src
        main_file = posixpath.join(layout.src, layout.main.replace(".", "/") + ".java")
        if (project_dir / main_file).is_file():
            descriptor.main = layout.main
    if (project_dir / layout.tests).is_dir():
        descriptor.tests = layout.tests
    if (project_dir / layout.resources).is_dir():
        descriptor.resources = layout.resources
        descriptor.target_resources = layout.target_resources
        if (project_dir / layout.resources / layout.manifest).is_file():
            descriptor.manifest = layout.manifest
        metadata_dir = posixpath.dirname(layout.manifest)
        descriptor.resource_files = _collect_resource_files(project_dir / layout.resources, exclude=metadata_dir)

    module_info = project_dir / layout.module_info
    if module_info.is_file():
        descriptor.module = parse_module_name(module_info.read_text(encoding="utf-8"))
        descriptor.module_info = layout.module_info

    libs_dir = project_dir / layout.libs
    if libs_dir.is_dir():
        real = libs_dir.resolve()
        relative = Path(os.path.relpath(real, project_dir.resolve())).as_posix()
        descriptor.libs_path = relative
        descriptor.libs_parent = posixpath.dirname(relative) or "."
        absolute = real.as_posix()
        descriptor.libs_absolute = to_windows_path(absolute, runner) if windows else absolute
        descriptor.artifacts = scan_artifacts(real, display_root=relative)
        if descriptor.module:
            descriptor.module_dirs = module_directories(descriptor.artifacts)
        console.debug(f"discovered {len(descriptor.artifacts)} artifact(s) in '{relative}'")
    else:
        console.error(f'cannot find "{layout.libs}" directory')

    return descriptor
