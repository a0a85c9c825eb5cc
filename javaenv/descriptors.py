"""IDE descriptor files: ``.classpath``, ``.project`` and the Code Runner launch file."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List
from xml.sax.saxutils import escape as xml_escape

from .console import Console
from .environment import ProjectDescriptor
from .lifecycle import CreatedAssetLog
from .pathsets import EXECUTION_CLASSPATH, MODULE_PATH
from .template import TemplateLibrary, render, render_each


CLASSPATH_FILE = ".classpath"
PROJECT_FILE = ".project"
LAUNCH_FILE = ".vscode/launch-coderunner"

_XML_ENTITIES = {'"': "&quot;"}


def _xml(value: str | None) -> str:
    return xml_escape(value or "", _XML_ENTITIES)


class DescriptorWriter:
    """Creates descriptor files that do not exist yet."""

    def __init__(
        self,
        descriptor: ProjectDescriptor,
        *,
        templates: TemplateLibrary | None = None,
        console: Console | None = None,
    ) -> None:
        self._descriptor = descriptor
        self._templates = templates or TemplateLibrary.load()
        self._console = console or Console()

    def classpath_text(self) -> str:
        descriptor = self._descriptor
        layout = descriptor.layout
        drop: List[str] = []
        if not descriptor.resources:
            drop.append("res")
        if not descriptor.tests:
            drop.append("tests")
        drop.append("jre" if descriptor.module else "jre.mod")

        bindings: Dict[str, str] = {
            "target": _xml(descriptor.target),
            "src": _xml(descriptor.src or layout.src),
            "classes": _xml(descriptor.target_classes),
            "res": _xml(descriptor.resources),
            "res-out": _xml(descriptor.target_resources),
            "tests": _xml(descriptor.tests),
            "test-classes": _xml(descriptor.target_tests),
        }
        start = self._templates.section(".classpath-start").without(*drop)
        entry = self._templates.section(".classpath-entry.mod" if descriptor.module else ".classpath-entry")

        libs_root = descriptor.libs_absolute or descriptor.libs_path or layout.libs
        jars = [_xml(f"{libs_root}/{artifact.relative_path}") for artifact in descriptor.execution_artifacts]
        return (
            render(start, bindings)
            + render_each(entry, "jar", jars)
            + render(self._templates.section(".classpath-end"), {})
        )

    def project_text(self) -> str:
        return render(self._templates.section(".project"), {"name": _xml(self._descriptor.project_dir.name)})

    def launch_text(self) -> str:
        descriptor = self._descriptor
        variables = descriptor.variables
        path_sets = descriptor.path_sets
        classpath = variables.get(EXECUTION_CLASSPATH)
        if classpath is None and EXECUTION_CLASSPATH in path_sets:
            classpath = path_sets[EXECUTION_CLASSPATH].joined()
        bindings = {
            "classpath": classpath or "",
            "main": descriptor.main or descriptor.layout.main,
        }
        if descriptor.module:
            module_path = variables.get(MODULE_PATH)
            if module_path is None and MODULE_PATH in path_sets:
                module_path = path_sets[MODULE_PATH].joined()
            bindings.update(modulepath=module_path or "", module=descriptor.module)
            return render(self._templates.section("launch-coderunner.mod"), bindings)
        return render(self._templates.section("launch-coderunner"), bindings)

    def _write(self, path: Path, text: str, log: CreatedAssetLog) -> bool:
        if path.exists():
            self._console.debug(f"'{path.name}' exists, left unchanged")
            return False
        path.write_text(text, encoding="utf-8")
        log.record_file(path)
        return True

    def write(self, log: CreatedAssetLog) -> List[Path]:
        """Create missing descriptor files and log each one created."""

        project_dir = self._descriptor.project_dir
        created: List[Path] = []
        for relative, producer in ((CLASSPATH_FILE, self.classpath_text), (PROJECT_FILE, self.project_text)):
            path = project_dir / relative
            if not path.exists() and self._write(path, producer(), log):
                created.append(path)

        launch = project_dir / LAUNCH_FILE
        if launch.parent.is_dir() and not launch.exists():
            if self._write(launch, self.launch_text(), log):
                created.append(launch)
        return created
