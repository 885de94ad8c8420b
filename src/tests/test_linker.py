import os
import threading
import unittest
from pathlib import Path
from unittest import mock

from omniswitch.errors import PackageNotFound, StoreIOError, SwitchIncomplete, VersionNotFound
from omniswitch.linker import (
    ActiveLinker,
    CopyStrategy,
    SymlinkStrategy,
    Switcher,
    select_strategy,
    valid_binary_name,
)
from tests.support import StoreTestCase


class TestSwitch(StoreTestCase):
    def setUp(self):
        super().setUp()
        self.old = self.store.register("sqlx-cli", "0.6.3", {"sqlx": self.make_binary("sqlx", "#!/bin/sh\necho 0.6.3\n")})
        self.new = self.store.register("sqlx-cli", "0.7.2", {"sqlx": self.make_binary("sqlx", "#!/bin/sh\necho 0.7.2\n")})

    def stable(self, name="sqlx"):
        return self.store.bin_dir / name

    def test_switch_points_stable_path_at_the_version(self):
        switched = self.core.switch("sqlx-cli", "0.6.3")
        self.assertEqual(switched, ["sqlx"])
        self.assertIn("0.6.3", self.stable().read_text())
        package, version = self.core.query("sqlx")
        self.assertEqual((package, str(version)), ("sqlx-cli", "0.6.3"))

    def test_switch_back_and_forth(self):
        self.core.switch("sqlx-cli", "0.6.3")
        self.core.switch("sqlx-cli", "0.7.2")
        self.assertIn("0.7.2", self.stable().read_text())
        self.core.switch("sqlx-cli", "0.6.3")
        self.assertIn("0.6.3", self.stable().read_text())

    def test_switch_is_idempotent(self):
        self.core.switch("sqlx-cli", "0.7.2")
        self.core.switch("sqlx-cli", "0.7.2")
        self.assertEqual(str(self.core.query("sqlx")[1]), "0.7.2")
        leftovers = [p.name for p in self.store.bin_dir.iterdir() if p.name.startswith(".")]
        self.assertEqual([n for n in leftovers if ".tmp-" in n], [])

    def test_switch_to_missing_version_changes_nothing(self):
        self.core.switch("sqlx-cli", "0.6.3")
        with self.assertRaises(VersionNotFound):
            self.core.switch("sqlx-cli", "0.8.0")
        self.assertIn("0.6.3", self.stable().read_text())

    def test_switch_to_unknown_package(self):
        with self.assertRaises(PackageNotFound):
            self.core.switch("ripgrep", "13.0.0")
        self.assertFalse(self.stable("rg").exists())

    def test_query_unbound_name(self):
        self.assertIsNone(self.core.query("sqlx"))
        self.assertIsNone(self.core.query("../etc/passwd"))

    def test_unreadable_stable_path_is_store_io_error(self):
        self.core.switch("sqlx-cli", "0.7.2")
        denied = PermissionError(13, "Permission denied")
        with mock.patch.object(self.core.linker.strategy, "read", side_effect=denied):
            with self.assertRaises(StoreIOError) as ctx:
                self.core.query("sqlx")
        self.assertEqual(ctx.exception.exit_code, 10)
        self.assertIn("sqlx", str(ctx.exception))

    def test_unlistable_bin_directory_is_store_io_error(self):
        self.core.switch("sqlx-cli", "0.7.2")
        with mock.patch("omniswitch.linker.os.scandir", side_effect=PermissionError(13, "Permission denied")):
            with self.assertRaises(StoreIOError):
                self.core.switcher.bindings()

    def test_query_ignores_foreign_files(self):
        self.store.bin_dir.mkdir(parents=True, exist_ok=True)
        self.stable("handmade").write_text("#!/bin/sh\n")
        self.assertIsNone(self.core.query("handmade"))
        self.assertEqual(self.core.switcher.bindings(), {})

    def test_bindings_lists_every_managed_name(self):
        self.store.register("just", "1.14.0", {"just": self.make_binary("just")})
        self.core.switch("sqlx-cli", "0.7.2")
        self.core.switch("just", "1.14.0")
        bindings = {name: (p, str(v)) for name, (p, v) in self.core.switcher.bindings().items()}
        self.assertEqual(bindings, {"just": ("just", "1.14.0"), "sqlx": ("sqlx-cli", "0.7.2")})

    def test_partial_failure_is_switch_incomplete(self):
        self.store.register(
            "multi", "1.0.0", {"a": self.make_binary("a"), "b": self.make_binary("b"), "c": self.make_binary("c")}
        )

        class FailOnB(SymlinkStrategy):
            def link(self, target, stable_path):
                if stable_path.name == "b":
                    raise PermissionError(13, "Permission denied", str(stable_path))
                super().link(target, stable_path)

        linker = ActiveLinker(self.store.bin_dir, FailOnB())
        switcher = Switcher(self.store, linker)
        with self.assertRaises(SwitchIncomplete) as ctx:
            switcher.switch("multi", "1.0.0")
        self.assertEqual(ctx.exception.switched, ["a"])
        self.assertEqual(ctx.exception.failed, "b")
        self.assertEqual(ctx.exception.exit_code, 11)
        self.assertEqual(str(self.core.query("a")[1]), "1.0.0")
        self.assertIsNone(self.core.query("b"))

    def test_concurrent_switches_end_on_one_of_the_requests(self):
        errors = []

        def worker(version):
            try:
                for _ in range(25):
                    self.core.switch("sqlx-cli", version)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(v,)) for v in ("0.6.3", "0.7.2")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(errors, [])
        self.assertIn(str(self.core.query("sqlx")[1]), ("0.6.3", "0.7.2"))

    def test_readers_never_see_a_missing_stable_path(self):
        self.core.switch("sqlx-cli", "0.6.3")
        stop = threading.Event()
        observed = []

        def reader():
            while not stop.is_set():
                try:
                    observed.append(self.stable().read_text())
                except FileNotFoundError:
                    observed.append(None)

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            for i in range(50):
                self.core.switch("sqlx-cli", "0.7.2" if i % 2 == 0 else "0.6.3")
        finally:
            stop.set()
            thread.join()

        self.assertNotIn(None, observed)
        self.assertTrue(all("0.6.3" in text or "0.7.2" in text for text in observed))


class TestCopyStrategy(TestSwitch):
    """The same switching behaviour for filesystems without symlinks."""

    link_strategy = "copy"

    def test_stable_path_is_a_regular_file(self):
        self.core.switch("sqlx-cli", "0.7.2")
        self.assertFalse(self.stable().is_symlink())
        self.assertTrue(os.access(self.stable(), os.X_OK))
        self.assertTrue((self.store.bin_dir / ".bindings" / "sqlx.json").is_file())

    def test_partial_failure_is_switch_incomplete(self):
        self.store.register(
            "multi", "1.0.0", {"a": self.make_binary("a"), "b": self.make_binary("b"), "c": self.make_binary("c")}
        )
        records = self.store.bin_dir / ".bindings"

        class FailOnB(CopyStrategy):
            def link(self, target, stable_path):
                if stable_path.name == "b":
                    raise PermissionError(13, "Permission denied", str(stable_path))
                super().link(target, stable_path)

        switcher = Switcher(self.store, ActiveLinker(self.store.bin_dir, FailOnB(records)))
        with self.assertRaises(SwitchIncomplete) as ctx:
            switcher.switch("multi", "1.0.0")
        self.assertEqual(ctx.exception.switched, ["a"])
        self.assertIsNone(self.core.query("b"))


class TestStrategySelection(unittest.TestCase):
    def test_explicit_modes(self):
        bin_dir = Path("/nonexistent/omniswitch/bin")
        self.assertIsInstance(select_strategy("symlink", bin_dir), SymlinkStrategy)
        copy = select_strategy("copy", bin_dir)
        self.assertIsInstance(copy, CopyStrategy)
        self.assertEqual(copy.records_dir, bin_dir / ".bindings")

    def test_unknown_mode(self):
        with self.assertRaises(ValueError):
            select_strategy("hardlink", Path("/nonexistent"))

    def test_binary_names(self):
        self.assertTrue(valid_binary_name("cargo-sqlx"))
        for name in ("", ".", "..", ".hidden", "a/b", "..\\x"):
            with self.subTest(name=name):
                self.assertFalse(valid_binary_name(name))


if __name__ == "__main__":
    unittest.main()
