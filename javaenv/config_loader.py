"""Loading of the optional per-project configuration file."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence

import json
import tomllib

try:  # Optional dependency for YAML support
    import yaml
except ModuleNotFoundError:  # pragma: no cover - exercised when PyYAML absent
    yaml = None


ConfigLoader = Callable[[Any], Mapping[str, Any]]

CONFIG_STEM = "javaenv"


def _raise_yaml_missing() -> Mapping[str, Any]:
    raise RuntimeError(
        "PyYAML is required to load YAML configuration files. Install with `pip install PyYAML`."
    )


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
    ".yml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
}
"""Mapping of file suffixes to loader callables."""


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``."""

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS)) or "<none>"
        raise ValueError(
            f"Unsupported configuration file extension: {suffix}. Supported: {supported}"
        )

    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"

    with path.open(mode, **kwargs) as handle:
        data = loader(handle)

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")

    return data


def find_config_file(directory: Path, *, stem: str = CONFIG_STEM) -> Path | None:
    """Return the configuration file named ``stem`` within ``directory``, if any."""

    candidates = [
        directory / f"{stem}{suffix}"
        for suffix in FILE_LOADERS
        if (directory / f"{stem}{suffix}").is_file()
    ]
    if len(candidates) > 1:
        names = ", ".join(f"'{path.name}'" for path in candidates)
        raise ValueError(
            f"Multiple configuration files found for '{stem}': {names}. "
            "Only one format per configuration entry is allowed."
        )
    return candidates[0] if candidates else None


def normalize_string_list(value: Any, *, field_name: str | None = None) -> List[str]:
    """Coerce ``value`` into a list of trimmed strings."""

    if value is None:
        return []

    if isinstance(value, (str, bytes)):
        text = str(value).strip()
        return [part for part in text.split() if part] if text else []

    if isinstance(value, Sequence):
        items: List[str] = []
        for item in value:
            if not isinstance(item, (str, bytes)):
                label = f"{field_name} " if field_name else ""
                raise TypeError(f"{label}entries must be strings")
            text = str(item).strip()
            if text:
                items.append(text)
        return items

    label = f"{field_name} " if field_name else ""
    raise TypeError(f"{label}must be a string or sequence of strings")


@dataclass(slots=True, frozen=True)
class ProjectLayout:
    """Relative locations of project assets, probed during discovery."""

    src: str = "src/main"
    tests: str = "src/tests"
    resources: str = "src/resources"
    manifest: str = "META-INF/MANIFEST.MF"
    libs: str = "libs"
    libs_search: tuple[str, ...] = ("..", "../..", "../../..", "branches", "../branches")
    module_info: str = "src/main/module-info.java"
    main: str = "application.Application"
    target: str = "target"
    target_classes: str = "target/classes"
    target_tests: str = "target/test-classes"
    target_resources: str = "target/resources"
    target_jar: str = "target/application-1.0.0-SNAPSHOT.jar"
    logs: str = "logs"
    delombok: str = "target/delombok"
    docs: str = "target/javadoc"
    coverage: str = "target/coverage"
    coverage_file: str = "target/coverage/jacoco.exec"
    coverage_report: str = "target/coverage-report"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProjectLayout":
        section = data.get("project", {}) if isinstance(data, Mapping) else {}
        if not isinstance(section, Mapping):
            raise TypeError("[project] section must be a table")

        known = {item.name for item in fields(cls)}
        overrides: Dict[str, Any] = {}
        for raw_key, value in section.items():
            key = str(raw_key).replace("-", "_")
            if key not in known:
                raise ValueError(f"Unknown project setting '{raw_key}'")
            if key == "libs_search":
                overrides[key] = tuple(normalize_string_list(value, field_name="project.libs_search"))
                continue
            if not isinstance(value, str):
                raise TypeError(f"project.{raw_key} must be a string")
            overrides[key] = value.strip()
        return replace(cls(), **overrides)

    @classmethod
    def load(cls, directory: Path) -> "ProjectLayout":
        """Return the layout configured in ``directory``, or the defaults."""
        path = find_config_file(directory)
        if path is None:
            return cls()
        return cls.from_mapping(load_config_file(path))


__all__ = [
    "CONFIG_STEM",
    "ConfigLoader",
    "FILE_LOADERS",
    "ProjectLayout",
    "find_config_file",
    "load_config_file",
    "normalize_string_list",
]
