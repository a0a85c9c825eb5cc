"""Assembly of the ordered path sets and the environment variables derived from them."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, MutableMapping
import posixpath

from .environment import PathSet, ProjectDescriptor
from .lifecycle import CreatedAssetLog


EXECUTION_CLASSPATH = "CLASSPATH"
MODULE_PATH = "MODULEPATH"
JAVAC_OPTIONS = "JDK_JAVAC_OPTIONS"
JAVADOC_OPTIONS = "JDK_JAVADOC_OPTIONS"
PACKAGE_LIBS = "JAR_PACKAGE_LIBS"
TEST_CLASSPATH = "JUNIT_CLASSPATH"
TEST_OPTIONS = "JUNIT_OPTIONS"
COVERAGE_AGENT_OPTIONS = "JACOCO_AGENT_OPTIONS"

MANAGED_VARIABLES = (
    EXECUTION_CLASSPATH,
    MODULE_PATH,
    TEST_CLASSPATH,
    TEST_OPTIONS,
    JAVAC_OPTIONS,
    JAVADOC_OPTIONS,
    PACKAGE_LIBS,
    COVERAGE_AGENT_OPTIONS,
)

DEFAULT_TEST_OPTIONS = "--details-theme=unicode"


@dataclass(frozen=True, slots=True)
class PackagedEntry:
    """One ``-C <source_root> <relative_path>`` argument pair of the archiver."""

    source_root: str
    relative_path: str
    library: bool = False

    def as_arguments(self) -> List[str]:
        return ["-C", self.source_root, self.relative_path]

    def __str__(self) -> str:
        return f"-C {self.source_root} {self.relative_path}"


def packaged_entries(descriptor: ProjectDescriptor, *, include_libs: bool) -> List[PackagedEntry]:
    """Content added to the archive besides the compiled classes.

    Library entries come first, then resources, matching the order of the
    manifest class path.
    """

    entries: List[PackagedEntry] = []
    if include_libs and descriptor.libs_path:
        root = descriptor.libs_parent or "."
        for artifact in descriptor.execution_artifacts:
            relative = artifact.path if root == "." else posixpath.relpath(artifact.path, root)
            entries.append(PackagedEntry(root, relative, library=True))
    if descriptor.target_resources:
        root = posixpath.dirname(descriptor.target_resources) or "."
        name = posixpath.basename(descriptor.target_resources)
        for resource in descriptor.resource_files:
            entries.append(PackagedEntry(root, posixpath.join(name, resource)))
    return entries


class PathSetAssembler:
    """Builds the path sets of a discovered project and exports them."""

    def __init__(self, descriptor: ProjectDescriptor) -> None:
        self._descriptor = descriptor

    def execution_classpath(self) -> PathSet:
        descriptor = self._descriptor
        path_set = PathSet(EXECUTION_CLASSPATH, descriptor.separator)
        path_set.append(descriptor.target_classes)
        path_set.append(descriptor.target_resources)
        path_set.extend([artifact.path for artifact in descriptor.execution_artifacts])
        return path_set

    def test_classpath(self) -> PathSet:
        descriptor = self._descriptor
        path_set = PathSet(TEST_CLASSPATH, descriptor.separator)
        if not descriptor.tests:
            return path_set
        path_set.append(descriptor.target_classes)
        path_set.append(descriptor.target_tests)
        path_set.append(descriptor.target_resources)
        path_set.extend([artifact.path for artifact in descriptor.test_artifacts])
        return path_set

    def module_path(self) -> PathSet:
        descriptor = self._descriptor
        path_set = PathSet(MODULE_PATH, descriptor.separator)
        if not descriptor.module:
            return path_set
        path_set.append(descriptor.target_classes)
        path_set.extend(descriptor.module_dirs)
        return path_set

    def packaging_classpath(self, *, include_libs: bool) -> PathSet:
        """Entries of the manifest ``Class-Path`` attribute."""
        path_set = PathSet("Class-Path", " ")
        path_set.extend([entry.relative_path for entry in packaged_entries(self._descriptor, include_libs=include_libs)])
        return path_set

    def assemble(self) -> Dict[str, PathSet]:
        path_sets = {
            EXECUTION_CLASSPATH: self.execution_classpath(),
            TEST_CLASSPATH: self.test_classpath(),
            MODULE_PATH: self.module_path(),
        }
        self._descriptor.path_sets = path_sets
        return path_sets

    def derive_variables(self, environment: MutableMapping[str, str]) -> Dict[str, str]:
        """Values of every variable this project needs, in creation order.

        Option strings embed the module path already visible in
        ``environment`` so that a caller-provided ``MODULEPATH`` wins.
        """

        descriptor = self._descriptor
        path_sets = descriptor.path_sets or self.assemble()
        values: Dict[str, str] = {EXECUTION_CLASSPATH: path_sets[EXECUTION_CLASSPATH].joined()}
        if path_sets[MODULE_PATH]:
            values[MODULE_PATH] = path_sets[MODULE_PATH].joined()
        module_path = environment.get(MODULE_PATH) or values.get(MODULE_PATH, "")

        javac_options = "-Xlint:-options"
        if descriptor.module:
            javac_options += f' -Xlint:-module --module-path "{module_path}"'
        values[JAVAC_OPTIONS] = javac_options

        javadoc_options = ""
        if descriptor.module:
            javadoc_options = f'--module-path "{module_path}" '
        values[JAVADOC_OPTIONS] = javadoc_options + "-version -author -Xdoclint:-missing"

        entries = packaged_entries(descriptor, include_libs=True)
        if entries:
            values[PACKAGE_LIBS] = " ".join(str(entry) for entry in entries)

        if descriptor.tests:
            values[TEST_CLASSPATH] = path_sets[TEST_CLASSPATH].joined()
            values[TEST_OPTIONS] = DEFAULT_TEST_OPTIONS

        agent = descriptor.coverage_agent
        if agent is not None:
            values[COVERAGE_AGENT_OPTIONS] = (
                f"-javaagent:{agent.path}=output=file,destfile={descriptor.layout.coverage_file}"
            )
        return values

    def apply(self, environment: MutableMapping[str, str], log: CreatedAssetLog) -> Dict[str, str]:
        """Export derived variables that are absent from ``environment``.

        Pre-set (non-empty) variables are never overwritten. Returns the
        effective values, pre-set or created, which are also kept on the
        descriptor for child processes.
        """

        effective: Dict[str, str] = {}
        for name, value in self.derive_variables(environment).items():
            existing = environment.get(name)
            if existing:
                effective[name] = existing
                continue
            environment[name] = value
            log.record_variable(name)
            effective[name] = value
        self._descriptor.variables = effective
        return effective
