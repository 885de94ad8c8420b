from __future__ import annotations

import errno
import json
import logging
import os
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .common_utils import atomic_write_json, safe_unlink
from .errors import StoreIOError, SwitchIncomplete

logger = logging.getLogger(__name__)

LINK_STRATEGIES = ("auto", "symlink", "copy")


def valid_binary_name(name: str) -> bool:
    if not name or name.startswith(".") or name in (".", ".."):
        return False
    return not any(sep and sep in name for sep in ("/", "\\", os.sep, os.altsep))


def _temp_name(stable_path: Path) -> Path:
    # Same directory as the stable path: the rename must not cross filesystems.
    return stable_path.with_name(f".{stable_path.name}.tmp-{os.getpid()}-{uuid.uuid4().hex[:8]}")


class LinkStrategy:
    """
    How a stable path is made to resolve to an installed binary.

    ``link`` must replace the stable path with a single rename so a reader
    sees either the previous target or the new one, never a missing or
    half-written file.
    """

    name = "base"

    def link(self, target: Path, stable_path: Path) -> None:
        raise NotImplementedError

    def read(self, stable_path: Path) -> Optional[Path]:
        """The installed binary ``stable_path`` currently stands for, or None."""
        raise NotImplementedError


class SymlinkStrategy(LinkStrategy):
    """The stable path is a symbolic link; the link itself records the binding."""

    name = "symlink"

    def link(self, target: Path, stable_path: Path) -> None:
        temp_path = _temp_name(stable_path)
        try:
            os.symlink(str(target), str(temp_path))
            os.replace(temp_path, stable_path)
        except BaseException:
            safe_unlink(temp_path)
            raise

    def read(self, stable_path: Path) -> Optional[Path]:
        try:
            target = Path(os.readlink(stable_path))
        except FileNotFoundError:
            return None
        except OSError as e:
            if e.errno == errno.EINVAL:
                # A regular file sits at the stable path: not ours.
                return None
            raise
        if not target.is_absolute():
            target = stable_path.parent / target
        return target


class CopyStrategy(LinkStrategy):
    """
    For filesystems without symlinks: the binary is copied to a temporary
    name and renamed over the stable path, then a binding record is written
    (atomically) to ``records_dir``.
    """

    name = "copy"

    def __init__(self, records_dir: Path):
        self.records_dir = Path(records_dir)

    def _record_path(self, stable_path: Path) -> Path:
        return self.records_dir / f"{stable_path.name}.json"

    def link(self, target: Path, stable_path: Path) -> None:
        temp_path = _temp_name(stable_path)
        try:
            shutil.copy2(target, temp_path)
            os.replace(temp_path, stable_path)
        except BaseException:
            safe_unlink(temp_path)
            raise
        atomic_write_json(
            self._record_path(stable_path),
            {"target": str(target), "linked_at": datetime.now(timezone.utc).isoformat()},
        )

    def read(self, stable_path: Path) -> Optional[Path]:
        if not stable_path.exists():
            return None
        try:
            with open(self._record_path(stable_path), "r", encoding="utf-8") as f:
                record = json.load(f)
        except FileNotFoundError:
            return None
        except ValueError:
            logger.warning("Unreadable binding record for %s", stable_path)
            return None
        target = record.get("target") if isinstance(record, dict) else None
        return Path(target) if target else None


def _symlinks_supported(directory: Path) -> bool:
    directory.mkdir(parents=True, exist_ok=True)
    probe = directory / f".symlink-probe-{os.getpid()}-{uuid.uuid4().hex[:8]}"
    try:
        os.symlink("omniswitch-probe-target", str(probe))
    except (OSError, NotImplementedError):
        return False
    safe_unlink(probe)
    return True


def select_strategy(mode: str, bin_dir: Path) -> LinkStrategy:
    """Pick the link strategy once, at startup."""
    bin_dir = Path(bin_dir)
    if mode == "symlink":
        return SymlinkStrategy()
    if mode == "copy":
        return CopyStrategy(bin_dir / ".bindings")
    if mode != "auto":
        raise ValueError(f"unknown link strategy {mode!r} (expected one of {', '.join(LINK_STRATEGIES)})")
    if _symlinks_supported(bin_dir):
        return SymlinkStrategy()
    logger.info("Symbolic links are not available in %s; falling back to copies", bin_dir)
    return CopyStrategy(bin_dir / ".bindings")


class ActiveLinker:
    """Owns the stable, name-addressable paths in ``bin_dir``."""

    def __init__(self, bin_dir: Path, strategy: Optional[LinkStrategy] = None):
        self.bin_dir = Path(bin_dir)
        self.strategy = strategy if strategy is not None else select_strategy("auto", self.bin_dir)

    def stable_path(self, name: str) -> Path:
        if not valid_binary_name(name):
            raise ValueError(f"invalid binary name {name!r}")
        return self.bin_dir / name

    def link(self, name: str, target: Path) -> None:
        stable_path = self.stable_path(name)
        self.bin_dir.mkdir(parents=True, exist_ok=True)
        self.strategy.link(Path(target), stable_path)
        logger.debug("Linked %s -> %s (%s)", stable_path, target, self.strategy.name)

    def target_of(
        self,
        name: str,
        operation: str = "query",
        package: Optional[str] = None,
        version: Optional[str] = None,
    ) -> Optional[Path]:
        if not valid_binary_name(name):
            return None
        stable_path = self.bin_dir / name
        try:
            return self.strategy.read(stable_path)
        except OSError as e:
            raise StoreIOError(
                operation, package, version, cause=e, detail=f"cannot read {stable_path}: {e}"
            ) from e

    def bound_names(self, operation: str = "query") -> List[str]:
        try:
            entries = list(os.scandir(self.bin_dir))
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StoreIOError(operation, cause=e, detail=f"cannot list {self.bin_dir}: {e}") from e
        return sorted(
            entry.name
            for entry in entries
            if valid_binary_name(entry.name) and (entry.is_symlink() or entry.is_file())
        )


class Switcher:
    """Resolves a requested version in the store and repoints its binaries."""

    def __init__(self, store, linker: Optional[ActiveLinker] = None):
        self.store = store
        self.linker = linker if linker is not None else store.linker

    def switch(self, package: str, version) -> List[str]:
        """
        Make every binary of ``package@version`` the active one.

        Each name is swapped atomically on its own; if one fails, the names
        already switched stay switched and SwitchIncomplete reports both.
        """
        installed = self.store.resolve(package, version, operation="switch")
        switched = []
        for name, path in sorted(installed.binaries.items()):
            try:
                self.linker.link(name, path)
            except OSError as e:
                raise SwitchIncomplete(package, str(installed.version), switched, name, e) from e
            switched.append(name)
        logger.info("Switched %s to %s", ", ".join(switched), installed.spec)
        return switched

    def query(self, binary_name: str) -> Optional[Tuple[str, object]]:
        """The (package, version) bound to ``binary_name``, or None when unbound."""
        target = self.linker.target_of(binary_name)
        if target is None:
            return None
        return self.store.owner_of(target)

    def bindings(self) -> Dict[str, Tuple[str, object]]:
        result = {}
        for name in self.linker.bound_names():
            owner = self.query(name)
            if owner is not None:
                result[name] = owner
        return result
