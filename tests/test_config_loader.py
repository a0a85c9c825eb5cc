from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from javaenv.config_loader import ProjectLayout, find_config_file, load_config_file, normalize_string_list

try:  # PyYAML is optional
    import yaml  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency absent
    yaml = None


class ProjectLayoutTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_defaults_without_config_file(self) -> None:
        layout = ProjectLayout.load(self.root)
        self.assertEqual(layout, ProjectLayout())
        self.assertEqual(layout.libs_search, ("..", "../..", "../../..", "branches", "../branches"))

    def test_toml_overrides(self) -> None:
        (self.root / "javaenv.toml").write_text(
            textwrap.dedent(
                """
                [project]
                main = "app.Main"
                target-jar = "out/app.jar"
                libs_search = ".. ../shared"
                """
            )
        )
        layout = ProjectLayout.load(self.root)
        self.assertEqual(layout.main, "app.Main")
        self.assertEqual(layout.target_jar, "out/app.jar")
        self.assertEqual(layout.libs_search, ("..", "../shared"))
        self.assertEqual(layout.src, "src/main")

    def test_supports_json_configs(self) -> None:
        (self.root / "javaenv.json").write_text('{"project": {"libs": "deps", "libs-search": ["vendor"]}}')
        layout = ProjectLayout.load(self.root)
        self.assertEqual(layout.libs, "deps")
        self.assertEqual(layout.libs_search, ("vendor",))

    @unittest.skipIf(yaml is None, "PyYAML not installed")
    def test_supports_yaml_configs(self) -> None:
        (self.root / "javaenv.yaml").write_text("project:\n  tests: test/java\n")
        self.assertEqual(ProjectLayout.load(self.root).tests, "test/java")

    def test_unknown_setting_is_rejected(self) -> None:
        (self.root / "javaenv.toml").write_text('[project]\ncolour = "blue"\n')
        with self.assertRaises(ValueError):
            ProjectLayout.load(self.root)

    def test_non_string_setting_is_rejected(self) -> None:
        (self.root / "javaenv.toml").write_text("[project]\nsrc = 3\n")
        with self.assertRaises(TypeError):
            ProjectLayout.load(self.root)

    def test_multiple_formats_are_rejected(self) -> None:
        (self.root / "javaenv.toml").write_text("[project]\n")
        (self.root / "javaenv.json").write_text("{}")
        with self.assertRaises(ValueError):
            find_config_file(self.root)

    def test_non_mapping_root_is_rejected(self) -> None:
        path = self.root / "javaenv.json"
        path.write_text("[1, 2]")
        with self.assertRaises(TypeError):
            load_config_file(path)

    def test_unsupported_extension(self) -> None:
        path = self.root / "javaenv.ini"
        path.write_text("")
        with self.assertRaises(ValueError):
            load_config_file(path)


class NormalizeStringListTests(unittest.TestCase):
    def test_strings_and_sequences(self) -> None:
        self.assertEqual(normalize_string_list(" a  b "), ["a", "b"])
        self.assertEqual(normalize_string_list(["a", " ", "b "]), ["a", "b"])
        self.assertEqual(normalize_string_list(None), [])

    def test_rejects_non_strings(self) -> None:
        with self.assertRaises(TypeError):
            normalize_string_list([1], field_name="libs_search")
        with self.assertRaises(TypeError):
            normalize_string_list(5)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
