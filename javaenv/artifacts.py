"""Discovery and role classification of third-party ``.jar`` artifacts."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Sequence, Tuple
import os


class ArtifactRole(str, Enum):
    RUNTIME_LIBRARY = "runtime-library"
    TEST_RUNTIME = "test-runtime"
    COVERAGE_AGENT = "coverage-agent"
    COVERAGE_REPORT_TOOL = "coverage-report-tool"
    CODE_GENERATION_TOOL = "code-generation-tool"


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    """Patterns selecting artifacts for a role and the path sets they join.

    Patterns without ``/`` match the file name; patterns with ``/`` match
    the tail of the path relative to the dependency root.
    """

    name: str
    role: ArtifactRole
    patterns: Tuple[str, ...]
    execution: bool = False
    test: bool = False
    module_aware: bool = False

    def matches(self, relative_path: str) -> bool:
        file_name = PurePosixPath(relative_path).name
        for pattern in self.patterns:
            if "/" in pattern:
                if fnmatchcase(relative_path, pattern) or fnmatchcase(relative_path, f"*/{pattern}"):
                    return True
            elif fnmatchcase(file_name, pattern):
                return True
        return False


# Evaluated in priority order; the first match is the primary role.
CLASSIFICATION_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "test-runner",
        ArtifactRole.TEST_RUNTIME,
        ("junit-platform-console-standalone*.jar", "*test-runner*.jar"),
        test=True,
    ),
    ClassificationRule("coverage-agent", ArtifactRole.COVERAGE_AGENT, ("jacocoagent*.jar",), test=True),
    ClassificationRule("coverage-report", ArtifactRole.COVERAGE_REPORT_TOOL, ("jacococli*.jar",), test=True),
    ClassificationRule(
        "lombok",
        ArtifactRole.CODE_GENERATION_TOOL,
        ("lombok*.jar",),
        execution=True,
        test=True,
        module_aware=True,
    ),
    ClassificationRule(
        "junit-api",
        ArtifactRole.RUNTIME_LIBRARY,
        ("junit/junit-jupiter-api*.jar",),
        execution=True,
        module_aware=True,
    ),
    # bundled inside the console launcher
    ClassificationRule("junit-bundle", ArtifactRole.TEST_RUNTIME, ("junit/*",)),
    ClassificationRule(
        "jacoco-bundle",
        ArtifactRole.COVERAGE_AGENT,
        ("jacoco/*",),
        test=True,
        module_aware=True,
    ),
)

FALLBACK_RULE = ClassificationRule(
    "library",
    ArtifactRole.RUNTIME_LIBRARY,
    ("*.jar",),
    execution=True,
    module_aware=True,
)

_IGNORED_DIRECTORIES = {".git", ".svn", ".hg"}


@dataclass(frozen=True, slots=True)
class Artifact:
    """A classified binary dependency."""

    path: str
    relative_path: str
    directory: str
    roles: Tuple[ArtifactRole, ...]
    rules: Tuple[str, ...]
    execution: bool
    test: bool
    module_aware: bool

    @property
    def role(self) -> ArtifactRole:
        return self.roles[0]

    def has_role(self, role: ArtifactRole) -> bool:
        return role in self.roles


def classify(
    path: str,
    relative_path: str,
    *,
    rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES,
) -> Artifact:
    """Classify the artifact at ``path`` (``relative_path`` below the dependency root)."""

    matched = [rule for rule in rules if rule.matches(relative_path)]
    if not matched:
        matched = [FALLBACK_RULE]

    roles: List[ArtifactRole] = []
    for rule in matched:
        if rule.role not in roles:
            roles.append(rule.role)

    return Artifact(
        path=path,
        relative_path=relative_path,
        directory=str(PurePosixPath(path).parent),
        roles=tuple(roles),
        rules=tuple(rule.name for rule in matched),
        execution=any(rule.execution for rule in matched),
        test=any(rule.test for rule in matched),
        module_aware=any(rule.module_aware for rule in matched),
    )


def iter_artifact_paths(root: Path) -> Iterable[Path]:
    """Yield ``.jar`` files below ``root`` in discovery order.

    Directories are visited pre-order with sorted names and files are
    sorted within each directory.
    """

    for current, dirnames, filenames in os.walk(root, followlinks=True):
        dirnames[:] = sorted(name for name in dirnames if name not in _IGNORED_DIRECTORIES)
        for name in sorted(filenames):
            if name.endswith(".jar"):
                yield Path(current) / name


def scan_artifacts(
    root: Path,
    *,
    display_root: str | None = None,
    rules: Sequence[ClassificationRule] = CLASSIFICATION_RULES,
) -> List[Artifact]:
    """Discover and classify every artifact below ``root``.

    ``display_root`` is the prefix used for artifact paths (the root as the
    toolchain sees it, e.g. ``libs`` or ``../libs``). A missing root yields
    an empty list; reporting it is left to the caller.
    """

    if not root.is_dir():
        return []

    prefix = PurePosixPath(display_root if display_root is not None else root.as_posix())
    artifacts: List[Artifact] = []
    for jar in iter_artifact_paths(root):
        relative = jar.relative_to(root).as_posix()
        artifacts.append(classify(str(prefix / relative), relative, rules=rules))
    return artifacts


def module_directories(artifacts: Iterable[Artifact]) -> List[str]:
    """Directories holding at least one module-aware artifact, in discovery order."""

    directories: List[str] = []
    for artifact in artifacts:
        if artifact.module_aware and artifact.directory not in directories:
            directories.append(artifact.directory)
    return directories


def first_matching(artifacts: Iterable[Artifact], rule_name: str) -> Artifact | None:
    """Return the first artifact whose primary rule is ``rule_name``."""

    for artifact in artifacts:
        if artifact.rules[0] == rule_name:
            return artifact
    return None
