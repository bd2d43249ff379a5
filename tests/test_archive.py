from __future__ import annotations

from pathlib import Path
import os
import tempfile
import unittest
import zipfile

from unittest.mock import patch

from vaultpack.core.archive import FIXED_TIMESTAMP, ArchiveBuilder, ArchiveSource
from vaultpack.core.console import RecordingConsole


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class ArchiveBuilderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name)
        self.staging = self.workspace / "staging"
        _write(self.staging / "META-INF" / "vault" / "filter.xml", b"<filter/>")
        _write(self.staging / "jcr_root" / "apps" / "site" / "b.txt", b"b")
        _write(self.staging / "jcr_root" / "apps" / "site" / "a.txt", b"a")
        _write(self.staging / "jcr_root" / "apps" / "site" / "install" / "core.jar", b"jar")
        self.console = RecordingConsole()
        self.builder = ArchiveBuilder(self.console)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _sources(self) -> list[ArchiveSource]:
        return [
            ArchiveSource(root="META-INF/vault", directory=self.staging / "META-INF" / "vault"),
            ArchiveSource(root="jcr_root", directory=self.staging / "jcr_root"),
        ]

    def test_layout_and_order(self) -> None:
        result = self.builder.build(sources=self._sources(), target_path=self.workspace / "out" / "pkg.zip")

        with zipfile.ZipFile(result.path) as archive:
            names = archive.namelist()
            self.assertEqual(archive.read("META-INF/vault/filter.xml"), b"<filter/>")
            infos = archive.infolist()

        self.assertEqual(
            names,
            [
                "META-INF/vault/filter.xml",
                "jcr_root/apps/site/a.txt",
                "jcr_root/apps/site/b.txt",
                "jcr_root/apps/site/install/core.jar",
            ],
        )
        self.assertEqual(result.entries, names)
        self.assertTrue(all(info.date_time == FIXED_TIMESTAMP for info in infos))

    def test_archives_are_reproducible(self) -> None:
        first = self.builder.build(sources=self._sources(), target_path=self.workspace / "first.zip")
        os.utime(self.staging / "jcr_root" / "apps" / "site" / "a.txt", (1_700_000_000, 1_700_000_000))
        second = self.builder.build(sources=self._sources(), target_path=self.workspace / "second.zip")

        self.assertEqual(first.path.read_bytes(), second.path.read_bytes())

    def test_duplicate_entries_keep_first(self) -> None:
        profile = self.workspace / "profile"
        _write(profile / "filter.xml", b"<profile/>")
        sources = [ArchiveSource(root="META-INF/vault", directory=profile, label="profile"), *self._sources()]

        result = self.builder.build(sources=sources, target_path=self.workspace / "pkg.zip")

        with zipfile.ZipFile(result.path) as archive:
            self.assertEqual(archive.read("META-INF/vault/filter.xml"), b"<profile/>")
            self.assertEqual(archive.namelist().count("META-INF/vault/filter.xml"), 1)
        self.assertEqual(result.duplicates, ["META-INF/vault/filter.xml"])
        warnings = self.console.of_level("warn")
        self.assertEqual(len(warnings), 1)
        self.assertIn("profile", warnings[0])

    def test_missing_source_is_skipped(self) -> None:
        sources = [ArchiveSource(root="META-INF/vault", directory=self.workspace / "absent"), *self._sources()]
        result = self.builder.build(sources=sources, target_path=self.workspace / "pkg.zip")
        self.assertEqual(len(result.entries), 4)

    def test_failure_leaves_no_partial_archive(self) -> None:
        target = self.workspace / "out" / "pkg.zip"
        with patch.object(zipfile.ZipFile, "writestr", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self.builder.build(sources=self._sources(), target_path=target)

        self.assertFalse(target.exists())
        self.assertEqual(list(target.parent.iterdir()), [])

    def test_failure_keeps_previous_archive(self) -> None:
        target = self.workspace / "pkg.zip"
        target.write_bytes(b"previous")
        with patch.object(zipfile.ZipFile, "writestr", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self.builder.build(sources=self._sources(), target_path=target)
        self.assertEqual(target.read_bytes(), b"previous")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
