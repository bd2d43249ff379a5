from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import tempfile
import unittest
import zipfile

from vaultpack.compose import ComposeTask
from vaultpack.config import ComposeConfig
from vaultpack.core.console import RecordingConsole
from vaultpack.core.template import TemplateError
from vaultpack.errors import ComposeError
from vaultpack.units import BuildUnit, UnitGraph


FIXED_MOMENT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class ComposeTaskTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name)
        self.console = RecordingConsole()

        jar = self.workspace / "core" / "build" / "libs" / "core.jar"
        jar.parent.mkdir(parents=True)
        jar.write_bytes(b"core-bundle")

        _write(
            self.workspace / "ui" / "src" / "main" / "content" / "jcr_root" / "apps" / "site" / ".content.xml",
            "<jcr:root/>",
        )
        _write(self.workspace / "ui" / "src" / "main" / "content" / "jcr_root" / "apps" / "site" / ".vlt", "vlt")

        self.root = BuildUnit(path=":", directory=self.workspace, name="site", version="1.2.0", group="acme")
        self.core = BuildUnit(path=":core", directory=self.workspace / "core", artifacts=(jar,))
        self.ui = BuildUnit(path=":ui", directory=self.workspace / "ui")
        self.units = UnitGraph([self.root, self.core, self.ui])

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _task(self, config: ComposeConfig | None = None, unit: BuildUnit | None = None, **kwargs) -> ComposeTask:
        return ComposeTask(
            unit or self.root,
            units=self.units,
            config=config or ComposeConfig(),
            console=self.console,
            ambient={},
            clock=lambda: FIXED_MOMENT,
            **kwargs,
        )

    def test_compose_produces_complete_package(self) -> None:
        task = self._task()
        task.include_project(":core")
        task.include_project("ui")

        archive_path = task.compose()

        self.assertEqual(archive_path, self.workspace / "build" / "distributions" / "site-1.2.0.zip")
        with zipfile.ZipFile(archive_path) as archive:
            names = archive.namelist()
            properties = archive.read("META-INF/vault/properties.xml").decode("utf-8")
            filter_xml = archive.read("META-INF/vault/filter.xml").decode("utf-8")
            bundle = archive.read("jcr_root/apps/site/install/core.jar")

        self.assertIn("jcr_root/apps/site/.content.xml", names)
        self.assertNotIn("jcr_root/apps/site/.vlt", names)
        self.assertIn("META-INF/vault/definition/.content.xml", names)
        self.assertEqual(bundle, b"core-bundle")
        self.assertIn('<entry key="name">site</entry>', properties)
        self.assertIn('<entry key="group">acme</entry>', properties)
        self.assertIn('<entry key="created">2024-01-02T03:04:05Z</entry>', properties)
        self.assertIn('<filter root="/apps/site/install"/>', filter_xml)

    def test_inclusion_order_does_not_change_archive(self) -> None:
        forward = self._task(ComposeConfig(build_dir="forward"))
        forward.include_project(":core")
        forward.include_project(":ui")

        backward = self._task(ComposeConfig(build_dir="backward"))
        backward.include_project(":ui")
        backward.include_project(":core")

        self.assertEqual(forward.compose().read_bytes(), backward.compose().read_bytes())

    def test_missing_content_is_tolerated(self) -> None:
        task = self._task()
        task.include_bundles(":core")

        archive_path = task.compose()

        with zipfile.ZipFile(archive_path) as archive:
            self.assertIn("jcr_root/apps/site/install/core.jar", archive.namelist())
        self.assertTrue(
            any("Package content directory does not exist" in message for message in self.console.of_level("info"))
        )

    def test_failed_expression_aborts_without_archive(self) -> None:
        _write(
            self.workspace / "src" / "main" / "content" / "META-INF" / "vault" / "properties.xml",
            "<entry>{{ project.nmae }}</entry>",
        )
        task = self._task()

        with self.assertRaises(ComposeError) as ctx:
            task.compose()

        self.assertIn("properties.xml", str(ctx.exception))
        self.assertIsInstance(ctx.exception.__cause__, TemplateError)
        self.assertFalse(task.archive_path.exists())

    def test_evaluation_and_decoding_failures_abort_composition(self) -> None:
        properties = self.workspace / "src" / "main" / "content" / "META-INF" / "vault" / "properties.xml"
        cases = (
            (b"v={{ int(1e999) }}", TemplateError),
            (b"v={{ config[[1]] }}", TemplateError),
            (b"<a>\xff\xfe</a>", UnicodeDecodeError),
        )
        for content, cause in cases:
            with self.subTest(content=content):
                properties.parent.mkdir(parents=True, exist_ok=True)
                properties.write_bytes(content)
                task = self._task()

                with self.assertRaises(ComposeError) as ctx:
                    task.compose()

                self.assertIsInstance(ctx.exception.__cause__, cause)
                self.assertFalse(task.archive_path.exists())

    def test_artifacts_built_after_configuration_are_bundled(self) -> None:
        web = BuildUnit.from_mapping({"path": ":web", "artifacts": ["build/libs/*.jar"]}, workspace=self.workspace)
        units = UnitGraph([self.root, web])
        task = ComposeTask(
            self.root,
            units=units,
            config=ComposeConfig(),
            console=self.console,
            ambient={},
            clock=lambda: FIXED_MOMENT,
        )
        task.include_bundles(":web")

        jar = self.workspace / "web" / "build" / "libs" / "web.jar"
        jar.parent.mkdir(parents=True)
        jar.write_bytes(b"web-bundle")

        with zipfile.ZipFile(task.compose()) as archive:
            self.assertEqual(archive.read("jcr_root/apps/site/install/web.jar"), b"web-bundle")
        self.assertTrue((task.bundle_dir / "web.jar").is_file())

    def test_declared_properties_are_substituted(self) -> None:
        _write(
            self.workspace / "src" / "main" / "content" / "META-INF" / "vault" / "filter.xml",
            '<filter root="/content/${tenant}"/><filter root="${unbound}"/>',
        )
        task = self._task(ComposeConfig(vault_expand_properties={"tenant": "acme"}))

        with zipfile.ZipFile(task.compose()) as archive:
            filter_xml = archive.read("META-INF/vault/filter.xml").decode("utf-8")

        self.assertEqual(filter_xml, '<filter root="/content/acme"/><filter root="${unbound}"/>')

    def test_profile_files_take_precedence(self) -> None:
        _write(self.workspace / "src" / "main" / "vault" / "common" / "settings.xml", "<common/>")
        _write(self.workspace / "src" / "main" / "vault" / "profile" / "prod" / "filter.xml", "<prod/>")
        task = self._task()
        task.include_vault_profile("prod")

        with zipfile.ZipFile(task.compose()) as archive:
            self.assertEqual(archive.read("META-INF/vault/settings.xml"), b"<common/>")
            self.assertEqual(archive.read("META-INF/vault/filter.xml"), b"<prod/>")
            self.assertEqual(archive.namelist().count("META-INF/vault/filter.xml"), 1)

        self.assertEqual(len(self.console.of_level("warn")), 2)

    def test_defaults_can_be_disabled(self) -> None:
        _write(self.workspace / "src" / "main" / "content" / "META-INF" / "vault" / "filter.xml", "<mine/>")
        task = self._task(ComposeConfig(vault_copy_missing_files=False))

        with zipfile.ZipFile(task.compose()) as archive:
            self.assertEqual(archive.namelist(), ["META-INF/vault/filter.xml"])

    def test_path_overrides(self) -> None:
        _write(self.workspace / "vault-src" / "filter.xml", "<custom/>")
        _write(self.workspace / "pkg" / "jcr_root" / "conf" / "site.txt", "conf")
        task = self._task(ComposeConfig(vault_files_path="vault-src", content_path="pkg", archive_name="out.zip"))

        archive_path = task.compose()

        self.assertEqual(archive_path.name, "out.zip")
        with zipfile.ZipFile(archive_path) as archive:
            self.assertEqual(archive.read("META-INF/vault/filter.xml"), b"<custom/>")
            self.assertEqual(archive.read("jcr_root/conf/site.txt"), b"conf")

    def test_depends_on_lists_included_units(self) -> None:
        task = self._task(unit=self.ui)
        task.include_bundles(":core")
        task.include_content(":core")

        self.assertEqual(
            task.depends_on,
            [":ui:clean", ":ui:assemble", ":ui:check", ":core:clean", ":core:assemble", ":core:check"],
        )

    def test_configured_includes(self) -> None:
        task = self._task(ComposeConfig(include_projects=[":core"], vault_profiles=["prod"]))
        task.apply_configured_includes()

        self.assertIn(":core:assemble", task.depends_on)
        self.assertEqual(
            [source.directory for source in task.archive_sources()[:2]],
            [
                self.workspace / "src" / "main" / "vault" / "common",
                self.workspace / "src" / "main" / "vault" / "profile" / "prod",
            ],
        )

    def test_binding_context(self) -> None:
        context = self._task(ComposeConfig(bundle_path="/apps/custom/install")).binding_context()

        self.assertEqual(context["root_project"]["name"], "site")
        self.assertEqual(context["project"]["version"], "1.2.0")
        self.assertEqual(context["config"]["bundle_path"], "/apps/custom/install")
        self.assertEqual(context["created"], "2024-01-02T03:04:05Z")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
