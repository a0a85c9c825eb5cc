"""Preparation of the packaged ``MANIFEST.MF``."""
from __future__ import annotations

from pathlib import Path
import shutil

from .environment import ProjectDescriptor
from .pathsets import PathSetAssembler


CLASS_PATH_HEADER = "Class-Path: resources "


def copy_resources(descriptor: ProjectDescriptor) -> Path | None:
    """Replace the resources output directory by a fresh copy of the resources."""

    if not descriptor.resources or not descriptor.target_resources:
        return None
    target = descriptor.path(descriptor.target_resources)
    if target.exists():
        shutil.rmtree(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(descriptor.path(descriptor.resources), target)
    return target


def prepare_manifest(descriptor: ProjectDescriptor, *, include_libs: bool = False) -> str | None:
    """Write the manifest used by ``package`` below the resources output.

    Blank lines are dropped, ``Main-Class`` is added when a main class
    exists and the manifest names none, and ``Class-Path`` is added when
    absent, listing resources and (with ``include_libs``) the bundled
    libraries. Returns the manifest path relative to the project directory,
    or ``None`` when the project has no manifest.
    """

    relative = descriptor.target_manifest
    if not descriptor.manifest or relative is None:
        return None
    copy_resources(descriptor)

    path = descriptor.path(relative)
    lines = [line for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]
    if descriptor.main and not any(line.startswith("Main-Class:") for line in lines):
        lines.append(f"Main-Class: {descriptor.main}")
    if not any(line.startswith("Class-Path:") for line in lines):
        lines.append(CLASS_PATH_HEADER)
        entries = PathSetAssembler(descriptor).packaging_classpath(include_libs=include_libs)
        lines.extend(f"    {entry}" for entry in entries)
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return relative


def prepare_package(descriptor: ProjectDescriptor, *, include_libs: bool = False) -> str | None:
    """Stage resources and the manifest ahead of ``jar``."""
    if descriptor.manifest:
        return prepare_manifest(descriptor, include_libs=include_libs)
    copy_resources(descriptor)
    return None
