from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .builders import Builder, CargoBuilder
from .config import ConfigManager
from .installer import Installer
from .linker import ActiveLinker, Switcher, select_strategy
from .lister import Lister
from .store import VersionStore

logger = logging.getLogger(__name__)


class Omniswitch:
    """
    Wires the store, linker, switcher, installer and lister around one
    explicit store root. Nothing below this class reads the environment.
    """

    def __init__(
        self,
        root: Path,
        builder: Optional[Builder] = None,
        link_strategy: str = "auto",
        lock_timeout: float = 0,
    ):
        root = Path(root).expanduser().resolve()
        self.linker = ActiveLinker(root / "bin", select_strategy(link_strategy, root / "bin"))
        self.store = VersionStore(root, linker=self.linker, lock_timeout=lock_timeout)
        self.switcher = Switcher(self.store, self.linker)
        self.installer = Installer(self.store, builder if builder is not None else CargoBuilder())
        self.lister = Lister(self.store, self.switcher)
        logger.debug("Store at %s using %s links", root, self.linker.strategy.name)

    @classmethod
    def from_config(
        cls,
        config_manager: ConfigManager,
        root: Optional[str] = None,
        builder: Optional[Builder] = None,
    ) -> "Omniswitch":
        if builder is None:
            builder = CargoBuilder(
                cargo_executable=config_manager.get("cargo_executable", "cargo"),
                extra_args=config_manager.get("cargo_install_args", []),
            )
        return cls(
            config_manager.store_root(root),
            builder=builder,
            link_strategy=config_manager.get("link_strategy", "auto"),
            lock_timeout=float(config_manager.get("lock_timeout", 0)),
        )

    @property
    def root(self) -> Path:
        return self.store.root

    @property
    def bin_dir(self) -> Path:
        return self.store.bin_dir

    def bin_dir_on_path(self, path_value: Optional[str] = None) -> bool:
        if path_value is None:
            path_value = os.environ.get("PATH", "")
        for entry in path_value.split(os.pathsep):
            if entry and os.path.realpath(os.path.expanduser(entry)) == os.path.realpath(self.bin_dir):
                return True
        return False

    def install(self, package, version, force_reinstall=False, activate=False):
        installed = self.installer.install(package, version, force_reinstall=force_reinstall)
        switched = self.switcher.switch(package, installed.version) if activate else []
        return installed, switched

    def switch(self, package, version):
        return self.switcher.switch(package, version)

    def uninstall(self, package, version):
        self.store.remove(package, version, operation="uninstall")

    def query(self, binary_name):
        return self.switcher.query(binary_name)

    def report(self, package=None):
        return self.lister.report(package)
