import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from anchor_mcp.sandbox.artifacts import ArtifactStore, sanitize_base_name
from anchor_mcp.sandbox.base import ArtifactWriteError, CleanupWarning


class TestArtifactStore(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)
        self.store = ArtifactStore(self.dir)

    def tearDown(self):
        self.tmp.cleanup()

    def test_allocate_pair_in_directory(self):
        pair = self.store.allocate("anchor-test")
        self.assertEqual(pair.source_path.parent, self.dir)
        self.assertTrue(pair.source_path.name.startswith("anchor-test-"))
        self.assertTrue(pair.source_path.name.endswith(".ts"))
        self.assertEqual(pair.output_path.name, pair.source_path.name[:-3] + ".js")

    def test_allocations_never_collide(self):
        names = {self.store.allocate("anchor-test").source_path for _ in range(2000)}
        self.assertEqual(len(names), 2000)

    def test_stores_sharing_a_directory_do_not_collide(self):
        other = ArtifactStore(self.dir)
        a = self.store.allocate("same")
        b = other.allocate("same")
        self.assertNotEqual(a.source_path, b.source_path)

    def test_base_name_cannot_escape_directory(self):
        pair = self.store.allocate("../../etc/passwd")
        self.assertEqual(pair.source_path.parent, self.dir)
        self.assertEqual(sanitize_base_name("../../etc/passwd"), "etc-passwd")
        self.assertEqual(sanitize_base_name(""), "artifact")
        self.assertEqual(sanitize_base_name("my test.v1"), "my-test.v1")

    def test_write_and_remove(self):
        pair = self.store.allocate("t")
        self.store.write(pair.source_path, "console.log('hi')")
        self.assertEqual(pair.source_path.read_text(encoding="utf-8"), "console.log('hi')")
        self.assertIsNone(self.store.remove(pair.source_path))
        self.assertFalse(pair.source_path.exists())

    def test_write_refuses_existing_file(self):
        pair = self.store.allocate("t")
        self.store.write(pair.source_path, "first")
        with self.assertRaises(ArtifactWriteError):
            self.store.write(pair.source_path, "second")
        self.assertEqual(pair.source_path.read_text(encoding="utf-8"), "first")

    def test_write_to_missing_directory(self):
        store = ArtifactStore(self.dir / "does-not-exist")
        pair = store.allocate("t")
        with self.assertRaises(ArtifactWriteError) as ctx:
            store.write(pair.source_path, "x")
        self.assertEqual(ctx.exception.path, pair.source_path)
        self.assertEqual(ctx.exception.stage, "write")

    def test_remove_missing_file_is_silent(self):
        pair = self.store.allocate("t")
        self.assertIsNone(self.store.remove(pair.source_path))
        self.assertIsNone(self.store.remove(pair.source_path))

    def test_remove_failure_is_reported_not_raised(self):
        pair = self.store.allocate("t")
        self.store.write(pair.source_path, "x")
        with patch.object(Path, "unlink", side_effect=PermissionError(13, "Permission denied")):
            with self.assertLogs("anchor_mcp.artifacts", level="WARNING"):
                warning = self.store.remove(pair.source_path)
        self.assertIsInstance(warning, CleanupWarning)
        self.assertEqual(warning.path, pair.source_path)
        self.assertIn("Permission denied", str(warning))
        os.unlink(pair.source_path)


if __name__ == "__main__":
    unittest.main()
