"""Stage catalogue, instruction generation and the ``mk``/``show`` pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Sequence, TextIO, Tuple
import os
import sys

from .command_runner import CommandRunner
from .environment import ProjectDescriptor
from .manifest import prepare_package
from .pathsets import packaged_entries


class UnknownStageError(ValueError):
    """Raised for a name that is neither a stage nor an alias."""


class PipelineUsageError(ValueError):
    """Raised when a token sequence cannot be split into stage requests."""


class Stage(str, Enum):
    BUILD = "build"
    CLEAN = "clean"
    COMPILE = "compile"
    COMPILE_TESTS = "compile-tests"
    RUN = "run"
    RUN_TESTS = "run-tests"
    COVERAGE = "coverage"
    COVERAGE_REPORT = "coverage-report"
    PACKAGE = "package"
    RUN_JAR = "run-jar"
    DELOMBOK = "delombok"
    JAVADOC = "javadoc"

    @classmethod
    def lookup(cls, name: str) -> "Stage | None":
        if name in STAGE_ALIASES:
            return STAGE_ALIASES[name]
        try:
            return cls(name)
        except ValueError:
            return None

    @classmethod
    def parse(cls, name: str) -> "Stage":
        stage = cls.lookup(name)
        if stage is None:
            known = ", ".join(sorted([*(member.value for member in cls), *STAGE_ALIASES]))
            raise UnknownStageError(f"Unknown stage '{name}'. Known stages: {known}")
        return stage


STAGE_ALIASES: Dict[str, Stage] = {
    "jar": Stage.PACKAGE,
    "lombok": Stage.DELOMBOK,
    "de-lombok": Stage.DELOMBOK,
    "javadocs": Stage.JAVADOC,
    "docs": Stage.JAVADOC,
    "doc": Stage.JAVADOC,
}

BUILD_STAGES: Tuple[Stage, ...] = (
    Stage.CLEAN,
    Stage.COMPILE,
    Stage.COMPILE_TESTS,
    Stage.RUN_TESTS,
    Stage.PACKAGE,
)

DEFAULT_SEQUENCE: Tuple[str, ...] = (
    "build",
    "compile",
    "compile-tests",
    "run",
    "run-tests",
    "package",
    "run-jar",
    "javadoc",
    "clean",
)

COVERAGE_FLAG = "--coverage"
PACKAGE_LIBS_FLAGS = ("--package-libs", "--fat-jar")


@dataclass(slots=True)
class PipelineOptions:
    coverage: bool = False
    include_libs: bool = False


@dataclass(frozen=True, slots=True)
class StageRequest:
    stage: Stage
    args: Tuple[str, ...] = ()

    def header(self) -> str:
        if not self.args:
            return f"{self.stage.value}:"
        return f"{self.stage.value}: [{' '.join(self.args)}]"


@dataclass(slots=True)
class Instruction:
    """Generated shell text for one stage.

    ``prepare`` runs before the text is executed (never when previewing);
    ``expands`` lists the stages a macro stands for.
    """

    stage: Stage
    text: str
    noop: bool = False
    prepare: Callable[[], object] | None = None
    expands: Tuple[Stage, ...] = ()

    def indented(self, prefix: str = "  ") -> str:
        return "\n".join(prefix + line for line in self.text.splitlines())


def noop(stage: Stage, reason: str) -> Instruction:
    return Instruction(stage=stage, text=f'echo "nothing to do: {reason}"', noop=True)


def parse_tokens(tokens: Sequence[str]) -> Tuple[List[StageRequest], PipelineOptions]:
    """Split ``tokens`` into stage requests and the cross-cutting modifiers."""

    options = PipelineOptions()
    requests: List[StageRequest] = []
    current: Stage | None = None
    args: List[str] = []
    for token in tokens:
        if token == COVERAGE_FLAG:
            options.coverage = True
            continue
        if token in PACKAGE_LIBS_FLAGS:
            options.include_libs = True
            continue
        stage = Stage.lookup(token)
        if stage is not None:
            if current is not None:
                requests.append(StageRequest(current, tuple(args)))
            current, args = stage, []
            continue
        if current is None:
            raise PipelineUsageError(f"'{token}' is not a stage; arguments must follow a stage name")
        args.append(token)
    if current is not None:
        requests.append(StageRequest(current, tuple(args)))
    return requests, options


def _with_args(text: str, args: Sequence[str]) -> str:
    return f"{text} {' '.join(args)}" if args else text


def _java_packages(source_dir: Path) -> List[str]:
    """Dotted names of the directories below ``source_dir`` holding ``.java`` files."""

    packages: List[str] = []
    for current, dirnames, filenames in os.walk(source_dir):
        dirnames.sort()
        relative = Path(current).relative_to(source_dir)
        if relative.parts and any(name.endswith(".java") for name in filenames):
            packages.append(".".join(relative.parts))
    return packages


class StageGenerator:
    """Produces the instruction for a stage from the project descriptor."""

    def __init__(self, descriptor: ProjectDescriptor, options: PipelineOptions | None = None) -> None:
        self._descriptor = descriptor
        self._options = options or PipelineOptions()
        self._generators: Dict[Stage, Callable[[Sequence[str]], Instruction]] = {
            Stage.BUILD: self._build,
            Stage.CLEAN: self._clean,
            Stage.COMPILE: self._compile,
            Stage.COMPILE_TESTS: self._compile_tests,
            Stage.RUN: self._run,
            Stage.RUN_TESTS: self._run_tests,
            Stage.COVERAGE: self._coverage,
            Stage.COVERAGE_REPORT: self._coverage_report,
            Stage.PACKAGE: self._package,
            Stage.RUN_JAR: self._run_jar,
            Stage.DELOMBOK: self._delombok,
            Stage.JAVADOC: self._javadoc,
        }

    @property
    def options(self) -> PipelineOptions:
        return self._options

    def generate(self, stage: Stage | str, args: Sequence[str] = ()) -> Instruction:
        if not isinstance(stage, Stage):
            stage = Stage.parse(stage)
        return self._generators[stage](args)

    def _build(self, args: Sequence[str]) -> Instruction:
        text = "mk " + " ".join(stage.value for stage in BUILD_STAGES)
        return Instruction(stage=Stage.BUILD, text=text, expands=BUILD_STAGES)

    def _clean(self, args: Sequence[str]) -> Instruction:
        layout = self._descriptor.layout
        outputs = [path for path in (layout.target, layout.logs) if self._descriptor.exists(path)]
        if not outputs:
            return noop(Stage.CLEAN, "nothing to clean")
        return Instruction(stage=Stage.CLEAN, text="rm -rf " + " ".join(outputs))

    def _compile(self, args: Sequence[str]) -> Instruction:
        descriptor = self._descriptor
        if not descriptor.src:
            return noop(Stage.COMPILE, f"no sources in '{descriptor.layout.src}'")
        text = _with_args(
            f"javac $(find {descriptor.src} -name '*.java') -d {descriptor.target_classes}", args
        )
        if descriptor.resources and not descriptor.exists(descriptor.target_manifest or descriptor.target_resources):
            text += (
                " &&\n"
                f"mkdir -p {descriptor.target_resources} && "
                f"cp -R {descriptor.resources}/. {descriptor.target_resources}"
            )
        return Instruction(stage=Stage.COMPILE, text=text)

    def _compile_tests(self, args: Sequence[str]) -> Instruction:
        descriptor = self._descriptor
        if not descriptor.tests:
            return noop(Stage.COMPILE_TESTS, "no tests present")
        text = (
            f"javac -cp \"$JUNIT_CLASSPATH\" $(find {descriptor.tests} -name '*.java') \\\n"
            + _with_args(f"  -d {descriptor.target_tests}", args)
        )
        return Instruction(stage=Stage.COMPILE_TESTS, text=text)

    def _run(self, args: Sequence[str]) -> Instruction:
        descriptor = self._descriptor
        if not descriptor.main:
            return noop(Stage.RUN, "no main class to execute")
        if descriptor.module:
            text = f'java -p "$MODULEPATH" -m "{descriptor.module}/{descriptor.main}"'
        else:
            text = f'java "{descriptor.main}"'
        return Instruction(stage=Stage.RUN, text=_with_args(text, args))

    def _run_tests(self, args: Sequence[str], *, coverage: bool | None = None) -> Instruction:
        descriptor = self._descriptor
        if not descriptor.tests:
            return noop(Stage.RUN_TESTS, "no tests present")
        if descriptor.test_runner is None:
            return noop(Stage.RUN_TESTS, "no test runner in dependencies")
        coverage = self._options.coverage if coverage is None else coverage
        lines = ['java -cp "$JUNIT_CLASSPATH" \\']
        if coverage and descriptor.coverage_agent is not None:
            lines.append("  $JACOCO_AGENT_OPTIONS \\")
        lines.append("  org.junit.platform.console.ConsoleLauncher $JUNIT_OPTIONS \\")
        lines.append("  " + (" ".join(args) if args else "--scan-class-path"))
        return Instruction(stage=Stage.RUN_TESTS, text="\n".join(lines))

    def _coverage(self, args: Sequence[str]) -> Instruction:
        descriptor = self._descriptor
        layout = descriptor.layout
        if descriptor.coverage_agent is None:
            return noop(Stage.COVERAGE, "no coverage agent or no tests present")
        tests = self._run_tests(args, coverage=True)
        if tests.noop:
            return Instruction(stage=Stage.COVERAGE, text=tests.text, noop=True)
        lines: List[str] = []
        if descriptor.exists(layout.coverage):
            lines.append(f"rm -rf {layout.coverage} &&")
        lines.extend(tests.text.splitlines())
        lines[-1] += " &&"
        lines.append(f"echo coverage events recorded in: {layout.coverage_file}")
        return Instruction(stage=Stage.COVERAGE, text="\n".join(lines))

    def _coverage_report(self, args: Sequence[str]) -> Instruction:
        descriptor = self._descriptor
        layout = descriptor.layout
        tool = descriptor.coverage_report_tool
        if tool is None or not descriptor.src:
            return noop(Stage.COVERAGE_REPORT, "no coverage report tool or no sources")
        text = "\n".join(
            [
                f"java -jar {tool.path} report {layout.coverage_file} \\",
                f"  --sourcefiles {descriptor.src} \\",
                f"  --classfiles {descriptor.target_classes} \\",
                _with_args(f"  --html {layout.coverage_report}", args) + " &&",
                f"echo coverage report created in: {layout.coverage_report}/index.html",
            ]
        )
        return Instruction(stage=Stage.COVERAGE_REPORT, text=text)

    def _package(self, args: Sequence[str]) -> Instruction:
        descriptor = self._descriptor
        if not descriptor.src:
            return noop(Stage.PACKAGE, f"no sources in '{descriptor.layout.src}' to package")
        include_libs = self._options.include_libs
        lines = [f'jar -c -v -f "{descriptor.target_jar}" \\']
        if descriptor.target_manifest:
            lines.append(f"  --manifest={descriptor.target_manifest} \\")
        content = [f"-C {descriptor.target_classes} ."]
        content.extend(str(entry) for entry in packaged_entries(descriptor, include_libs=include_libs))
        content.extend(args)
        lines.append("  " + " ".join(content) + " &&")
        lines.append(f'echo "created: {descriptor.target_jar}"')
        return Instruction(
            stage=Stage.PACKAGE,
            text="\n".join(lines),
            prepare=lambda: prepare_package(descriptor, include_libs=include_libs),
        )

    def _run_jar(self, args: Sequence[str]) -> Instruction:
        if not self._descriptor.main:
            return noop(Stage.RUN_JAR, "no main class for the jar entry point")
        return Instruction(
            stage=Stage.RUN_JAR,
            text=_with_args(f'java -jar "{self._descriptor.target_jar}"', args),
        )

    def _delombok(self, args: Sequence[str]) -> Instruction:
        descriptor = self._descriptor
        layout = descriptor.layout
        lombok = descriptor.lombok
        if lombok is None or not descriptor.src:
            return noop(Stage.DELOMBOK, f"no lombok jar or no '{layout.src}' to de-lombok")
        lines = [f"rm -rf {layout.delombok} &&"]
        module_info = descriptor.module_info
        # delombok fails on module-info.java, moved aside while it runs
        if module_info:
            lines.append(f"mv {module_info} {module_info}.BAK &&")
        lines.append(f"java -jar {lombok.path} delombok \\")
        lines.append(f'  {descriptor.src} -d {layout.delombok} --format=pretty --encoding="UTF-8" \\')
        if descriptor.module:
            lines.append('  --module-path="$MODULEPATH" \\')
        lines.append(_with_args('  --classpath="$CLASSPATH"', args) + " 2>&1 | head -30;")
        if module_info:
            lines.append(f"[ -f {module_info}.BAK ] && mv {module_info}.BAK {module_info};")
        lines.append(f"echo \"de-lomboked '{descriptor.src}' to '{layout.delombok}'\"")
        return Instruction(stage=Stage.DELOMBOK, text="\n".join(lines))

    def _javadoc(self, args: Sequence[str]) -> Instruction:
        descriptor = self._descriptor
        layout = descriptor.layout
        source = layout.delombok if descriptor.exists(layout.delombok) else descriptor.src
        if not source or not descriptor.exists(source):
            return noop(Stage.JAVADOC, "no source files present for javadoc")
        packages = _java_packages(descriptor.path(source))
        if not packages:
            return noop(Stage.JAVADOC, f"no packages in '{source}'")
        roots: List[str] = []
        for package in packages:
            root = package.split(".", 1)[0]
            if root not in roots:
                roots.append(root)
        qualifiers = ":".join(["java.*", *(f"{root}.*" for root in roots)])
        # JDK_JAVADOC_OPTIONS is read by javadoc from the environment
        lines = [
            f"rm -rf {layout.docs} &&",
            f"javadoc --source-path {source} -d {layout.docs} \\",
            f'  -noqualifier "{qualifiers}" \\',
            _with_args("  " + " ".join(packages), args) + " &&",
            f"echo \"created javadoc in: '{layout.docs}/index.html'\"",
        ]
        return Instruction(stage=Stage.JAVADOC, text="\n".join(lines))


@dataclass(slots=True)
class PipelineResult:
    returncode: int = 0
    executed: List[Stage] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class PipelineRunner:
    """Shows or executes stage requests, stopping at the first failure."""

    def __init__(
        self,
        descriptor: ProjectDescriptor,
        runner: CommandRunner,
        *,
        stream: TextIO | None = None,
    ) -> None:
        self._descriptor = descriptor
        self._runner = runner
        self._stream = stream

    def _print(self, text: str = "") -> None:
        print(text, file=self._stream or sys.stdout)

    def run(self, tokens: Sequence[str], *, preview_only: bool = False) -> PipelineResult:
        if not tokens:
            tokens, preview_only = DEFAULT_SEQUENCE, True
        requests, options = parse_tokens(tokens)
        generator = StageGenerator(self._descriptor, options)
        result = PipelineResult()

        for index, request in enumerate(requests):
            if index and preview_only:
                self._print()
            instruction = generator.generate(request.stage, request.args)
            self._print(request.header())
            self._print(instruction.indented())
            if preview_only:
                continue
            if instruction.expands:
                stages = [StageRequest(stage) for stage in instruction.expands]
                if not self._execute(generator, stages, result):
                    return result
                continue
            if not self._execute_instruction(instruction, result):
                return result
        return result

    def _execute(self, generator: StageGenerator, requests: Sequence[StageRequest], result: PipelineResult) -> bool:
        for request in requests:
            instruction = generator.generate(request.stage, request.args)
            self._print(request.header())
            self._print(instruction.indented())
            if not self._execute_instruction(instruction, result):
                return False
        return True

    def _execute_instruction(self, instruction: Instruction, result: PipelineResult) -> bool:
        if instruction.prepare is not None:
            instruction.prepare()
        outcome = self._runner.run_script(
            instruction.text,
            cwd=self._descriptor.project_dir,
            env=self._descriptor.variables,
            note=instruction.stage.value,
        )
        result.executed.append(instruction.stage)
        if outcome.returncode != 0:
            result.returncode = 1
            return False
        return True
