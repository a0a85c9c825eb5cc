"""Section extraction and ``@token`` substitution for the descriptor templates."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import re


DEFAULT_TEMPLATE_PATH = Path(__file__).with_name("templates") / "descriptors.tpl"

_SECTION_OPEN = re.compile(r"^-- (?P<name>\S+)\s*$")
_SECTION_CLOSE = "--"
_BLOCK_OPEN = re.compile(r"^--- (?P<name>\S+)\s*$")
_BLOCK_CLOSE = "---"

_TOKEN_PATTERN = re.compile(r"@([A-Za-z][\w-]*)")

# Private-use code point; never part of descriptor text.
_ESCAPE = "\ue000"
_ESCAPES = {_ESCAPE: "0", " ": "1", "\n": "2"}
_UNESCAPES = {code: char for char, code in _ESCAPES.items()}
_UNESCAPE_PATTERN = re.compile(re.escape(_ESCAPE) + "(.)", re.DOTALL)


class TemplateError(ValueError):
    """Raised when a template section cannot be found or parsed."""


def escape(text: str) -> str:
    """Replace the escape character, spaces and newlines by sentinel sequences."""
    return "".join(_ESCAPE + _ESCAPES[char] if char in _ESCAPES else char for char in text)


def unescape(text: str) -> str:
    def replacement(match: re.Match[str]) -> str:
        code = match.group(1)
        if code not in _UNESCAPES:
            raise TemplateError(f"Invalid escape sequence {code!r}")
        return _UNESCAPES[code]

    return _UNESCAPE_PATTERN.sub(replacement, text)


@dataclass(frozen=True, slots=True)
class TemplateSection:
    """A named template section.

    ``lines`` pairs every line with the optional block that contains it
    (``None`` for unconditional lines).
    """

    name: str
    lines: Tuple[Tuple[Optional[str], str], ...]

    @property
    def blocks(self) -> List[str]:
        names: List[str] = []
        for block, _ in self.lines:
            if block is not None and block not in names:
                names.append(block)
        return names

    @property
    def text(self) -> str:
        return "".join(f"{line}\n" for _, line in self.lines)

    def without(self, *blocks: str) -> "TemplateSection":
        """Return a copy with the named optional blocks removed."""
        unknown = [name for name in blocks if name not in self.blocks]
        if unknown:
            raise TemplateError(f"Section '{self.name}' has no block(s): {', '.join(unknown)}")
        kept = tuple(entry for entry in self.lines if entry[0] not in blocks)
        return TemplateSection(self.name, kept)


def _strip_prefix(line: str) -> str | None:
    if line == "#":
        return ""
    if line.startswith("# "):
        return line[2:]
    return None


def parse_sections(source: str) -> Dict[str, TemplateSection]:
    """Split a template resource into its named sections."""

    sections: Dict[str, TemplateSection] = {}
    current: str | None = None
    block: str | None = None
    lines: List[Tuple[Optional[str], str]] = []

    for number, raw in enumerate(source.splitlines(), start=1):
        content = _strip_prefix(raw)
        if content is None:
            if current is not None:
                raise TemplateError(f"Line {number}: unterminated section '{current}'")
            continue
        if current is None:
            match = _SECTION_OPEN.match(content)
            if match:
                current = match.group("name")
                lines = []
            continue
        if content == _SECTION_CLOSE:
            if block is not None:
                raise TemplateError(f"Line {number}: unterminated block '{block}' in section '{current}'")
            sections[current] = TemplateSection(current, tuple(lines))
            current = None
            continue
        if content == _BLOCK_CLOSE:
            if block is None:
                raise TemplateError(f"Line {number}: block end without block in section '{current}'")
            block = None
            continue
        match = _BLOCK_OPEN.match(content)
        if match:
            if block is not None:
                raise TemplateError(f"Line {number}: nested block inside '{block}'")
            block = match.group("name")
            continue
        lines.append((block, content))

    if current is not None:
        raise TemplateError(f"Unterminated section '{current}'")
    return sections


def extract(source: str, name: str) -> TemplateSection:
    sections = parse_sections(source)
    if name not in sections:
        raise TemplateError(f"Unknown template section '{name}'")
    return sections[name]


def render(section: TemplateSection, bindings: Mapping[str, Any]) -> str:
    """Substitute ``@token`` placeholders; unbound tokens stay literal."""

    escaped = escape(section.text)

    def replacement(match: re.Match[str]) -> str:
        token = match.group(1)
        if token not in bindings:
            return match.group(0)
        return escape(str(bindings[token]))

    return unescape(_TOKEN_PATTERN.sub(replacement, escaped))


def render_each(
    section: TemplateSection,
    token: str,
    values: Iterable[Any],
    bindings: Mapping[str, Any] | None = None,
) -> str:
    """Render ``section`` once per value bound to ``token``."""

    base = dict(bindings or {})
    return "".join(render(section, {**base, token: value}) for value in values)


class TemplateLibrary:
    """Sections of one template resource, parsed once."""

    def __init__(self, source: str) -> None:
        self._sections = parse_sections(source)

    @classmethod
    def load(cls, path: Path | None = None) -> "TemplateLibrary":
        return cls((path or DEFAULT_TEMPLATE_PATH).read_text(encoding="utf-8"))

    def names(self) -> List[str]:
        return list(self._sections)

    def section(self, name: str) -> TemplateSection:
        if name not in self._sections:
            raise TemplateError(f"Unknown template section '{name}'")
        return self._sections[name]
