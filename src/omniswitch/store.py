from __future__ import annotations

import json
import logging
import os
import shutil
import stat
import tempfile
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

import filelock
import semantic_version

from .common_utils import atomic_write_json, fsync_dir, fsync_file
from .errors import (
    ActiveVersionInUse,
    AlreadyInstalled,
    BinaryMissingAfterBuild,
    InvalidVersionSpec,
    LockContention,
    PackageNotFound,
    StoreIOError,
    VersionNotFound,
)
from .linker import ActiveLinker, valid_binary_name
from .versions import RESERVED_NAMES, coerce_version, validate_package_name, version_sort_key

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
MANIFEST_SCHEMA_VERSION = "1.0"

VersionLike = Union[str, semantic_version.Version]


@dataclass(frozen=True)
class InstalledVersion:
    """One committed (package, version) pair and the binaries it provides."""

    package: str
    version: semantic_version.Version
    path: Path
    binaries: Dict[str, Path]
    installed_at: datetime

    @property
    def bin_dir(self) -> Path:
        return self.path / "bin"

    @property
    def spec(self) -> str:
        return f"{self.package}@{self.version}"


class LazySequence:
    """A finite iterable that recomputes its items every time it is iterated."""

    def __init__(self, factory: Callable[[], Iterable]):
        self._factory = factory

    def __iter__(self) -> Iterator:
        return iter(self._factory())


class VersionStore:
    """
    Owns the on-disk layout of installed versions::

        root/<package>/<version>/bin/<binary>
        root/<package>/<version>/manifest.json
        root/bin/<binary>                 stable paths, see ActiveLinker
        root/.locks/ .staging/ .trash/    bookkeeping

    A version exists only once its manifest has been renamed into place;
    a version directory without a manifest is an install in progress (or
    the leftover of an interrupted one) and is invisible to every reader.
    """

    def __init__(
        self,
        root: Union[str, os.PathLike],
        linker: Optional[ActiveLinker] = None,
        lock_timeout: float = 0,
    ):
        self.root = Path(root).expanduser().resolve()
        self.locks_dir = self.root / ".locks"
        self.staging_root = self.root / ".staging"
        self.trash_dir = self.root / ".trash"
        self.lock_timeout = lock_timeout
        self._install_locks: Dict[str, filelock.FileLock] = {}
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError("open store", cause=e, detail=f"cannot create {self.root}: {e}") from e
        self.linker = linker if linker is not None else ActiveLinker(self.bin_dir)

    @property
    def bin_dir(self) -> Path:
        return self.root / "bin"

    def version_dir(self, package: str, version: VersionLike) -> Path:
        return self.root / package / str(version)

    def exists(self, package: str, version: VersionLike) -> bool:
        return (self.version_dir(package, version) / MANIFEST_NAME).is_file()

    # ------------------------------------------------------------------
    # Locking and staging
    # ------------------------------------------------------------------
    def _get_install_lock(self, package: str, version: VersionLike) -> filelock.FileLock:
        """
        One FileLock instance per pair and process, so a holder can re-enter
        it (a forced reinstall removes the old version while still holding
        the install lock).
        """
        lock_name = f"{package}@{version}"
        if lock_name not in self._install_locks:
            self.locks_dir.mkdir(parents=True, exist_ok=True)
            self._install_locks[lock_name] = filelock.FileLock(
                str(self.locks_dir / f"{lock_name}.lock"), timeout=self.lock_timeout
            )
        return self._install_locks[lock_name]

    @contextmanager
    def install_lock(self, package: str, version: VersionLike, operation: str = "install"):
        """Exclusive access to one (package, version) pair across processes."""
        try:
            lock = self._get_install_lock(package, version)
            lock.acquire()
        except filelock.Timeout:
            raise LockContention(operation, package, str(version)) from None
        except OSError as e:
            raise StoreIOError(operation, package, str(version), cause=e) from e
        try:
            yield
        finally:
            lock.release()

    def sweep_incomplete(self, package: str, version: VersionLike) -> bool:
        """
        Remove a version directory that never got its manifest.

        Only safe while holding ``install_lock`` for the pair: without it the
        directory may belong to an install that is still running.
        """
        version_dir = self.version_dir(package, version)
        if not version_dir.is_dir() or self.exists(package, version):
            return False
        logger.warning("Removing unfinished install of %s@%s at %s", package, version, version_dir)
        self._discard(version_dir, "install", package, str(version))
        return True

    @contextmanager
    def staging_dir(self, package: str, version: VersionLike):
        """
        A private, empty work directory for building one pair, deleted on exit.

        Leftovers from interrupted builds of the same pair are purged first;
        callers hold ``install_lock`` so none of them can still be in use.
        """
        # '_' cannot occur in a semantic version, so the prefix never matches
        # the staging directory of another version.
        prefix = f"{package}@{version}_"
        try:
            self.staging_root.mkdir(parents=True, exist_ok=True)
            for stale in self.staging_root.iterdir():
                if stale.name.startswith(prefix):
                    logger.debug("Purging stale staging directory %s", stale)
                    shutil.rmtree(stale, ignore_errors=True)
            work_dir = Path(tempfile.mkdtemp(prefix=prefix, dir=str(self.staging_root)))
        except OSError as e:
            raise StoreIOError("install", package, str(version), cause=e) from e
        try:
            yield work_dir
        finally:
            shutil.rmtree(work_dir, ignore_errors=True)

    # ------------------------------------------------------------------
    # Register / resolve
    # ------------------------------------------------------------------
    def register(
        self,
        package: str,
        version: VersionLike,
        binaries: Mapping[str, Union[str, os.PathLike]],
        move: bool = False,
        operation: str = "register",
    ) -> InstalledVersion:
        """
        Copy (or move) ``binaries`` into the isolated directory of the pair and
        commit its manifest.

        The version directory is created with an existence check, which is
        what keeps two installers of the same pair apart. The manifest is
        written under a temporary name and renamed into place; that rename
        is the single commit point.
        """
        validate_package_name(package)
        version = coerce_version(version)
        version_str = str(version)
        if not binaries:
            raise BinaryMissingAfterBuild(operation, package, version_str)

        sources: Dict[str, Path] = {}
        for name, source in binaries.items():
            source = Path(source)
            if not valid_binary_name(name):
                raise BinaryMissingAfterBuild(
                    operation, package, version_str, detail=f"invalid binary name {name!r}"
                )
            if not source.is_file():
                raise BinaryMissingAfterBuild(
                    operation,
                    package,
                    version_str,
                    detail=f"declared binary {name!r} not found at {source}",
                )
            sources[name] = source

        version_dir = self.version_dir(package, version)
        try:
            version_dir.parent.mkdir(parents=True, exist_ok=True)
            try:
                version_dir.mkdir()
            except FileNotFoundError:
                # A concurrent removal pruned the empty package directory.
                version_dir.parent.mkdir(parents=True, exist_ok=True)
                version_dir.mkdir()
        except FileExistsError:
            if self.exists(package, version):
                raise AlreadyInstalled(operation, package, version_str) from None
            raise LockContention(
                operation,
                package,
                version_str,
                detail="an unfinished install of this version is in progress",
            ) from None
        except OSError as e:
            raise StoreIOError(operation, package, version_str, cause=e) from e

        try:
            bin_dir = version_dir / "bin"
            bin_dir.mkdir()
            installed_binaries = {}
            for name, source in sorted(sources.items()):
                dest = bin_dir / name
                if move:
                    shutil.move(str(source), str(dest))
                else:
                    shutil.copy2(source, dest)
                mode = dest.stat().st_mode
                dest.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
                fsync_file(dest)
                installed_binaries[name] = dest
            # Binaries must be on disk before the manifest can point at them.
            fsync_dir(bin_dir)
            fsync_dir(version_dir)

            installed_at = datetime.now(timezone.utc)
            atomic_write_json(
                version_dir / MANIFEST_NAME,
                {
                    "manifest_schema_version": MANIFEST_SCHEMA_VERSION,
                    "package": package,
                    "version": version_str,
                    "installed_at": installed_at.isoformat(),
                    "binaries": {name: f"bin/{name}" for name in installed_binaries},
                },
            )
        except OSError as e:
            self._discard_quietly(version_dir)
            raise StoreIOError(operation, package, version_str, cause=e) from e
        except BaseException:
            self._discard_quietly(version_dir)
            raise

        logger.info("Registered %s@%s with %d binaries", package, version_str, len(installed_binaries))
        return InstalledVersion(package, version, version_dir, installed_binaries, installed_at)

    def resolve(
        self, package: str, version: VersionLike, operation: str = "resolve"
    ) -> InstalledVersion:
        validate_package_name(package)
        version = coerce_version(version)
        version_dir = self.version_dir(package, version)
        manifest_path = version_dir / MANIFEST_NAME
        try:
            with open(manifest_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            if not any(True for _ in self.list_versions(package)):
                raise PackageNotFound(operation, package, str(version)) from None
            raise VersionNotFound(operation, package, str(version)) from None
        except (OSError, ValueError) as e:
            raise StoreIOError(operation, package, str(version), cause=e) from e

        try:
            binaries = {name: version_dir / rel for name, rel in data["binaries"].items()}
            installed_at = datetime.fromisoformat(data["installed_at"])
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise StoreIOError(
                operation, package, str(version), cause=e, detail=f"corrupt manifest {manifest_path}"
            ) from e
        return InstalledVersion(package, version, version_dir, binaries, installed_at)

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------
    def list_versions(self, package: str) -> LazySequence:
        """Committed versions of ``package`` in ascending semantic-version order."""
        return LazySequence(lambda: self._scan_versions(package))

    def list_packages(self) -> LazySequence:
        """Names of packages that have at least one committed version."""
        return LazySequence(self._scan_packages)

    def _scan_versions(self, package: str) -> List[semantic_version.Version]:
        try:
            validate_package_name(package)
        except InvalidVersionSpec:
            return []
        package_dir = self.root / package
        try:
            entries = list(os.scandir(package_dir))
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as e:
            raise StoreIOError("list", package, cause=e) from e

        versions = []
        for entry in entries:
            if entry.name.startswith(".") or not entry.is_dir():
                continue
            try:
                version = semantic_version.Version(entry.name)
            except ValueError:
                logger.debug("Ignoring non-version directory %s", entry.path)
                continue
            if (Path(entry.path) / MANIFEST_NAME).is_file():
                versions.append(version)
        versions.sort(key=version_sort_key)
        return versions

    def _scan_packages(self) -> List[str]:
        try:
            entries = list(os.scandir(self.root))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StoreIOError("list", cause=e) from e
        names = sorted(
            entry.name
            for entry in entries
            if entry.is_dir() and not entry.name.startswith(".") and entry.name not in RESERVED_NAMES
        )
        return [name for name in names if self._scan_versions(name)]

    def owner_of(self, path: Union[str, os.PathLike]) -> Optional[Tuple[str, semantic_version.Version]]:
        """Map an installed binary path back to its committed (package, version)."""
        try:
            rel = Path(os.path.abspath(path)).relative_to(self.root)
        except ValueError:
            return None
        parts = rel.parts
        if len(parts) != 4 or parts[2] != "bin":
            return None
        package, version_text = parts[0], parts[1]
        try:
            version = semantic_version.Version(version_text)
        except ValueError:
            return None
        if package.startswith(".") or package in RESERVED_NAMES or not self.exists(package, version):
            return None
        return package, version

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------
    def active_binaries(self, installed: InstalledVersion, operation: str = "remove") -> List[str]:
        """Binary names whose stable path currently resolves into ``installed``."""
        in_use = []
        for name, path in sorted(installed.binaries.items()):
            target = self.linker.target_of(
                name, operation, installed.package, str(installed.version)
            )
            if target is not None and _same_path(target, path):
                in_use.append(name)
        return in_use

    def remove(self, package: str, version: VersionLike, operation: str = "remove") -> None:
        """
        Delete a committed version. Refused with ActiveVersionInUse while any
        stable path targets one of its binaries.
        """
        validate_package_name(package)
        version = coerce_version(version)
        with self.install_lock(package, version, operation):
            installed = self.resolve(package, version, operation=operation)
            in_use = self.active_binaries(installed, operation)
            if in_use:
                raise ActiveVersionInUse(operation, package, str(version), in_use)
            self._discard(installed.path, operation, package, str(version))
            self._prune_package_dir(package)
        logger.info("Removed %s@%s", package, version)

    def _discard(self, version_dir: Path, operation: str, package: str, version: str) -> None:
        """
        Make ``version_dir`` disappear in one rename, then delete it from the
        trash directory.
        """
        try:
            self.trash_dir.mkdir(parents=True, exist_ok=True)
            trashed = self.trash_dir / f"{package}@{version}_{uuid.uuid4().hex[:8]}"
            os.replace(version_dir, trashed)
        except OSError as e:
            raise StoreIOError(operation, package, version, cause=e) from e
        try:
            shutil.rmtree(trashed)
        except OSError as e:
            logger.warning("Could not delete %s (already detached from the store): %s", trashed, e)

    def _discard_quietly(self, version_dir: Path) -> None:
        shutil.rmtree(version_dir, ignore_errors=True)

    def _prune_package_dir(self, package: str) -> None:
        try:
            (self.root / package).rmdir()
        except OSError:
            # Not empty: other versions (or an install in flight) live there.
            pass


def _same_path(a: Union[str, os.PathLike], b: Union[str, os.PathLike]) -> bool:
    return os.path.normcase(os.path.abspath(a)) == os.path.normcase(os.path.abspath(b))
