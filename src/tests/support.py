"""Shared fixtures: a deterministic builder and a temporary store root."""
import shutil
import tempfile
import unittest
from pathlib import Path

from omniswitch.builders import Builder
from omniswitch.core import Omniswitch
from omniswitch.errors import BuildFailed


class FakeBuilder(Builder):
    """Writes tiny shell scripts instead of running a real package manager."""

    def __init__(self, binaries=("sqlx",), fail=False, interrupt=False, produce=True):
        self.binaries = binaries
        self.fail = fail
        self.interrupt = interrupt
        self.produce = produce
        self.calls = []
        self.work_dirs = []

    def build(self, package, version, work_dir):
        self.calls.append((package, version))
        self.work_dirs.append(Path(work_dir))
        bin_dir = Path(work_dir) / "bin"
        bin_dir.mkdir(parents=True, exist_ok=True)
        result = {}
        for name in self.binaries:
            path = bin_dir / name
            path.write_text(f"#!/bin/sh\necho {package} {version} {name}\n")
            result[name] = path
        if self.interrupt:
            raise KeyboardInterrupt
        if self.fail:
            raise BuildFailed("install", package, version, exit_status=101, output="error[E0432]")
        return result if self.produce else {}


class StoreTestCase(unittest.TestCase):
    """Gives every test its own store root; nothing touches the real user data dir."""

    link_strategy = "symlink"

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp(prefix="omniswitch-test-"))
        self.root = self.tmp / "store"
        self.builder = FakeBuilder()
        self.core = Omniswitch(self.root, builder=self.builder, link_strategy=self.link_strategy)
        self.store = self.core.store

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def make_binary(self, name, content="#!/bin/sh\necho fixture\n"):
        source_dir = self.tmp / "fixtures"
        source_dir.mkdir(exist_ok=True)
        path = source_dir / name
        path.write_text(content)
        return path

    def versions(self, package):
        return [str(v) for v in self.store.list_versions(package)]
