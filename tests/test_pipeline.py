from __future__ import annotations

from pathlib import Path
from typing import Sequence
import io
import shutil
import tempfile
import unittest

from javaenv.command_runner import CommandResult, RecordingCommandRunner
from javaenv.pipeline import (
    DEFAULT_SEQUENCE,
    PipelineOptions,
    PipelineRunner,
    PipelineUsageError,
    Stage,
    StageGenerator,
    StageRequest,
    UnknownStageError,
    parse_tokens,
)

from project_fixture import configured_descriptor, make_project, write


class FailingCommandRunner(RecordingCommandRunner):
    """Records commands and fails the stage named ``failing``."""

    def __init__(self, failing: str) -> None:
        super().__init__()
        self.failing = failing

    def run(self, command: Sequence[str], **kwargs) -> CommandResult:
        result = super().run(command, **kwargs)
        if kwargs.get("note") == self.failing:
            return CommandResult(command=command, returncode=1, stdout="", stderr="")
        return result


class StageParsingTests(unittest.TestCase):
    def test_aliases_resolve_to_stages(self) -> None:
        self.assertIs(Stage.parse("jar"), Stage.PACKAGE)
        self.assertIs(Stage.parse("de-lombok"), Stage.DELOMBOK)
        self.assertIs(Stage.parse("docs"), Stage.JAVADOC)
        self.assertIs(Stage.parse("run-tests"), Stage.RUN_TESTS)

    def test_names_are_case_sensitive(self) -> None:
        with self.assertRaises(UnknownStageError):
            Stage.parse("Compile")

    def test_unknown_stage_is_a_value_error(self) -> None:
        with self.assertRaises(ValueError):
            Stage.parse("deploy")

    def test_tokens_split_into_requests_and_modifiers(self) -> None:
        requests, options = parse_tokens(
            ["compile", "-Xlint", "run-tests", "--coverage", "-c", "app.Test", "jar", "--fat-jar"]
        )
        self.assertEqual(
            requests,
            [
                StageRequest(Stage.COMPILE, ("-Xlint",)),
                StageRequest(Stage.RUN_TESTS, ("-c", "app.Test")),
                StageRequest(Stage.PACKAGE),
            ],
        )
        self.assertEqual(options, PipelineOptions(coverage=True, include_libs=True))
        self.assertEqual(requests[1].header(), "run-tests: [-c app.Test]")
        self.assertEqual(requests[2].header(), "package:")

    def test_argument_before_stage_is_a_usage_error(self) -> None:
        with self.assertRaises(PipelineUsageError):
            parse_tokens(["-Xlint", "compile"])


class StageGeneratorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = make_project(Path(self.temp_dir.name), module="application")
        self.descriptor = configured_descriptor(self.root)
        self.generator = StageGenerator(self.descriptor)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_no_instruction_line_starts_with_and(self) -> None:
        generators = [self.generator, StageGenerator(self.descriptor, PipelineOptions(True, True))]
        (self.root / "target/coverage").mkdir(parents=True)
        for generator in generators:
            for stage in Stage:
                instruction = generator.generate(stage, ["arg"])
                for line in instruction.text.splitlines():
                    self.assertFalse(line.lstrip().startswith("&&"), f"{stage.value}: {line}")
                    self.assertFalse(line.lstrip().startswith("||"), f"{stage.value}: {line}")

    def test_build_is_a_macro(self) -> None:
        instruction = self.generator.generate("build")
        self.assertEqual(instruction.text, "mk clean compile compile-tests run-tests package")
        self.assertEqual(
            instruction.expands,
            (Stage.CLEAN, Stage.COMPILE, Stage.COMPILE_TESTS, Stage.RUN_TESTS, Stage.PACKAGE),
        )

    def test_clean_lists_existing_outputs(self) -> None:
        self.assertTrue(self.generator.generate("clean").noop)
        (self.root / "target").mkdir()
        (self.root / "logs").mkdir()
        self.assertEqual(self.generator.generate("clean").text, "rm -rf target logs")

    def test_compile_copies_resources_until_they_exist(self) -> None:
        text = self.generator.generate("compile").text
        self.assertEqual(
            text,
            "javac $(find src/main -name '*.java') -d target/classes &&\n"
            "mkdir -p target/resources && cp -R src/resources/. target/resources",
        )
        write(self.root / "target/resources/META-INF/MANIFEST.MF", "Manifest-Version: 1.0\n")
        self.assertEqual(
            self.generator.generate("compile", ["-g"]).text,
            "javac $(find src/main -name '*.java') -d target/classes -g",
        )

    def test_run_uses_module_when_declared(self) -> None:
        self.assertEqual(
            self.generator.generate("run", ["a", "b"]).text,
            'java -p "$MODULEPATH" -m "application/application.Application" a b',
        )

    def test_run_without_main_class_is_a_noop(self) -> None:
        (self.root / "src/main/application/Application.java").unlink()
        generator = StageGenerator(configured_descriptor(self.root))
        instruction = generator.generate("run")
        self.assertTrue(instruction.noop)
        self.assertEqual(instruction.text, 'echo "nothing to do: no main class to execute"')

    def test_run_tests_defaults_to_class_path_scan(self) -> None:
        self.assertEqual(
            self.generator.generate("run-tests").text,
            'java -cp "$JUNIT_CLASSPATH" \\\n'
            "  org.junit.platform.console.ConsoleLauncher $JUNIT_OPTIONS \\\n"
            "  --scan-class-path",
        )

    def test_run_tests_with_coverage_modifier(self) -> None:
        generator = StageGenerator(self.descriptor, PipelineOptions(coverage=True))
        self.assertIn("  $JACOCO_AGENT_OPTIONS \\\n", generator.generate("run-tests").text)

    def test_coverage_chains_run_tests(self) -> None:
        (self.root / "target/coverage").mkdir(parents=True)
        lines = self.generator.generate("coverage").text.splitlines()
        self.assertEqual(lines[0], "rm -rf target/coverage &&")
        self.assertEqual(lines[2], "  $JACOCO_AGENT_OPTIONS \\")
        self.assertEqual(lines[-2], "  --scan-class-path &&")
        self.assertEqual(lines[-1], "echo coverage events recorded in: target/coverage/jacoco.exec")

    def test_coverage_report(self) -> None:
        lines = self.generator.generate("coverage-report").text.splitlines()
        self.assertEqual(lines[0], "java -jar libs/jacoco/jacococli.jar report target/coverage/jacoco.exec \\")
        self.assertEqual(lines[-1], "echo coverage report created in: target/coverage-report/index.html")

    def test_package_content(self) -> None:
        instruction = StageGenerator(self.descriptor, PipelineOptions(include_libs=True)).generate("jar")
        lines = instruction.text.splitlines()
        self.assertEqual(lines[0], 'jar -c -v -f "target/application-1.0.0-SNAPSHOT.jar" \\')
        self.assertEqual(lines[1], "  --manifest=target/resources/META-INF/MANIFEST.MF \\")
        self.assertEqual(
            lines[2],
            "  -C target/classes . -C . libs/json/json-core-1.0.jar"
            " -C . libs/junit/junit-jupiter-api-5.12.2.jar"
            " -C . libs/lombok/lombok-1.18.38.jar"
            " -C target resources/application.properties &&",
        )
        self.assertIsNotNone(instruction.prepare)
        self.assertFalse((self.root / "target").exists())

    def test_delombok_hides_module_info(self) -> None:
        text = self.generator.generate("delombok").text
        self.assertIn("mv src/main/module-info.java src/main/module-info.java.BAK &&", text)
        self.assertIn("java -jar libs/lombok/lombok-1.18.38.jar delombok \\", text)
        self.assertIn('  --module-path="$MODULEPATH" \\', text)

    def test_javadoc_lists_packages(self) -> None:
        write(self.root / "src/main/application/model/Customer.java", "package application.model;\n")
        lines = self.generator.generate("doc").text.splitlines()
        self.assertEqual(lines[1], "javadoc --source-path src/main -d target/javadoc \\")
        self.assertEqual(lines[2], '  -noqualifier "java.*:application.*" \\')
        self.assertEqual(lines[3], "  application application.model &&")

    def test_javadoc_prefers_delomboked_sources(self) -> None:
        write(self.root / "target/delombok/application/Application.java", "package application;\n")
        self.assertIn("--source-path target/delombok", self.generator.generate("javadoc").text)


class MissingPrerequisiteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        root = make_project(Path(self.temp_dir.name), tests=True, jars=())
        self.generator = StageGenerator(configured_descriptor(root))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_stages_degrade_to_noops(self) -> None:
        for stage in ("run-tests", "coverage", "coverage-report", "delombok"):
            instruction = self.generator.generate(stage)
            self.assertTrue(instruction.noop, stage)
            self.assertTrue(instruction.text.startswith('echo "nothing to do: '), stage)


class ProjectWithoutSourcesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = make_project(Path(self.temp_dir.name), tests=False, resources=False, main=False)
        shutil.rmtree(self.root / "src" / "main")
        self.descriptor = configured_descriptor(self.root)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_package_and_run_jar_are_noops(self) -> None:
        generator = StageGenerator(self.descriptor)
        package = generator.generate("package")
        self.assertTrue(package.noop)
        self.assertEqual(package.text, "echo \"nothing to do: no sources in 'src/main' to package\"")
        self.assertIsNone(package.prepare)
        run_jar = generator.generate("run-jar")
        self.assertTrue(run_jar.noop)
        self.assertNotIn("java -jar", run_jar.text)

    def test_build_ends_cleanly(self) -> None:
        runner = RecordingCommandRunner()
        result = PipelineRunner(self.descriptor, runner, stream=io.StringIO()).run(["build", "run-jar"])
        self.assertTrue(result.ok)
        self.assertEqual(runner.notes(), ["clean", "compile", "compile-tests", "run-tests", "package", "run-jar"])
        self.assertTrue(all(record.script.startswith("echo ") for record in runner.commands))


class PipelineRunnerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = make_project(Path(self.temp_dir.name))
        self.descriptor = configured_descriptor(self.root)
        self.output = io.StringIO()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_preview_runs_nothing(self) -> None:
        runner = RecordingCommandRunner()
        result = PipelineRunner(self.descriptor, runner, stream=self.output).run(
            ["compile", "run", "x"], preview_only=True
        )
        self.assertTrue(result.ok)
        self.assertEqual(runner.commands, [])
        output = self.output.getvalue()
        self.assertIn("compile:\n  javac $(find src/main -name '*.java') -d target/classes", output)
        self.assertIn('run: [x]\n  java "application.Application" x\n', output)

    def test_without_tokens_the_default_sequence_is_previewed(self) -> None:
        runner = RecordingCommandRunner()
        result = PipelineRunner(self.descriptor, runner, stream=self.output).run([])
        self.assertTrue(result.ok)
        self.assertEqual(runner.commands, [])
        headers = [line[:-1] for line in self.output.getvalue().splitlines() if line.endswith(":")]
        self.assertEqual(headers, list(DEFAULT_SEQUENCE))

    def test_execution_passes_variables_and_working_directory(self) -> None:
        runner = RecordingCommandRunner()
        PipelineRunner(self.descriptor, runner, stream=self.output).run(["run"])
        record = runner.commands[0]
        self.assertEqual(record.script, 'java "application.Application"')
        self.assertEqual(record.cwd, str(self.root))
        self.assertEqual(record.env["CLASSPATH"], self.descriptor.variables["CLASSPATH"])
        self.assertEqual(record.note, "run")

    def test_build_expands_into_its_stages(self) -> None:
        runner = RecordingCommandRunner()
        result = PipelineRunner(self.descriptor, runner, stream=self.output).run(["build"])
        self.assertTrue(result.ok)
        self.assertEqual(runner.notes(), ["clean", "compile", "compile-tests", "run-tests", "package"])
        self.assertIn("build:\n  mk clean compile compile-tests run-tests package\n", self.output.getvalue())
        # package preparation ran
        self.assertTrue((self.root / "target/resources/META-INF/MANIFEST.MF").is_file())

    def test_failure_stops_the_chain(self) -> None:
        runner = FailingCommandRunner("compile")
        result = PipelineRunner(self.descriptor, runner, stream=self.output).run(["clean", "compile", "run"])
        self.assertEqual(result.returncode, 1)
        self.assertEqual(result.executed, [Stage.CLEAN, Stage.COMPILE])
        self.assertEqual(runner.notes(), ["clean", "compile"])
        self.assertNotIn("run:", self.output.getvalue())

    def test_failure_inside_build_stops_the_macro(self) -> None:
        runner = FailingCommandRunner("compile-tests")
        result = PipelineRunner(self.descriptor, runner, stream=self.output).run(["build", "run-jar"])
        self.assertFalse(result.ok)
        self.assertEqual(runner.notes(), ["clean", "compile", "compile-tests"])

    def test_invalid_tokens_run_nothing(self) -> None:
        runner = RecordingCommandRunner()
        with self.assertRaises(PipelineUsageError):
            PipelineRunner(self.descriptor, runner, stream=self.output).run(["oops", "compile"])
        self.assertEqual(runner.commands, [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
