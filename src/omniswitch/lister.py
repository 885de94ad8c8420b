from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import semantic_version

from .errors import PackageNotFound, VersionNotFound


@dataclass(frozen=True)
class ListedVersion:
    version: semantic_version.Version
    binaries: Tuple[str, ...]
    active_binaries: Tuple[str, ...]

    @property
    def active(self) -> bool:
        return bool(self.active_binaries)


class Lister:
    """Read-only view of the store joined with the current bindings."""

    def __init__(self, store, switcher):
        self.store = store
        self.switcher = switcher

    def report(self, package: Optional[str] = None) -> Dict[str, List[ListedVersion]]:
        """
        ``{package: [ListedVersion, ...]}`` in ascending version order. A
        version is marked active when at least one of its binaries is bound
        to it. With a ``package`` filter, an empty result is PackageNotFound.
        """
        packages = [package] if package is not None else list(self.store.list_packages())
        owners = {}
        report = {}
        for name in packages:
            entries = []
            for version in self.store.list_versions(name):
                try:
                    installed = self.store.resolve(name, version, operation="list")
                except VersionNotFound:
                    # Removed by another process since the directory scan.
                    continue
                active = []
                for binary in sorted(installed.binaries):
                    if binary not in owners:
                        owners[binary] = self.switcher.query(binary)
                    if owners[binary] == (name, version):
                        active.append(binary)
                entries.append(
                    ListedVersion(version, tuple(sorted(installed.binaries)), tuple(active))
                )
            if entries:
                report[name] = entries
        if package is not None and package not in report:
            raise PackageNotFound("list", package)
        return report
