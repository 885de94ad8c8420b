from __future__ import annotations

import logging
import os
from pathlib import Path

from .builders import Builder
from .errors import AlreadyInstalled, BinaryMissingAfterBuild
from .store import InstalledVersion, VersionStore
from .versions import coerce_version, validate_package_name

logger = logging.getLogger(__name__)


def _is_within(path: Path, directory: Path) -> bool:
    try:
        Path(os.path.abspath(path)).relative_to(os.path.abspath(directory))
    except ValueError:
        return False
    return True


class Installer:
    """Builds a package version in isolation and registers it, all or nothing."""

    def __init__(self, store: VersionStore, builder: Builder):
        self.store = store
        self.builder = builder

    def install(self, package: str, version, force_reinstall: bool = False) -> InstalledVersion:
        """
        Build ``package@version`` into a private staging directory and commit
        it to the store.

        Holds the pair's install lock throughout, so a concurrent installer
        of the same pair fails with LockContention. Nothing becomes visible
        unless the final manifest rename happens; a forced reinstall removes
        the previous registration only after the new build succeeded.
        """
        validate_package_name(package)
        version = coerce_version(version)
        version_str = str(version)

        with self.store.install_lock(package, version, operation="install"):
            self.store.sweep_incomplete(package, version)
            already_installed = self.store.exists(package, version)
            if already_installed and not force_reinstall:
                raise AlreadyInstalled("install", package, version_str)

            with self.store.staging_dir(package, version) as work_dir:
                logger.info("Building %s@%s in %s", package, version_str, work_dir)
                binaries = self.builder.build(package, version_str, work_dir)
                if not binaries:
                    raise BinaryMissingAfterBuild("install", package, version_str)
                missing = sorted(name for name, path in binaries.items() if not Path(path).is_file())
                if missing:
                    raise BinaryMissingAfterBuild(
                        "install",
                        package,
                        version_str,
                        detail="build reported binaries that do not exist: {}".format(", ".join(missing)),
                    )

                if already_installed:
                    logger.info("Replacing existing install of %s@%s", package, version_str)
                    self.store.remove(package, version, operation="install")

                # Files produced inside the staging area can be moved instead of copied.
                move = all(_is_within(Path(path), work_dir) for path in binaries.values())
                return self.store.register(
                    package, version, binaries, move=move, operation="install"
                )
