from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .common_utils import run_command
from .errors import BuildFailed

logger = logging.getLogger(__name__)

# Lines of tool output kept on a BuildFailed for the error report.
OUTPUT_TAIL_LINES = 20


class Builder:
    """
    Produces the binaries of one package version inside ``work_dir``.

    Implementations return ``{binary name: path}`` on success and raise
    BuildFailed otherwise. The caller owns ``work_dir`` and deletes it
    afterwards, whatever happened.
    """

    def build(self, package: str, version: str, work_dir: Path) -> Dict[str, Path]:
        raise NotImplementedError


class CargoBuilder(Builder):
    """Builds with ``cargo install <package>@<version> --root <work_dir>``."""

    def __init__(
        self,
        cargo_executable: str = "cargo",
        extra_args: Optional[Sequence[str]] = None,
        stream_output: bool = True,
        env: Optional[dict] = None,
    ):
        self.cargo_executable = cargo_executable
        self.extra_args = list(extra_args or [])
        self.stream_output = stream_output
        self.env = env

    def command(self, package: str, version: str, work_dir: Path) -> List[str]:
        return [
            self.cargo_executable,
            "install",
            f"{package}@{version}",
            "--root",
            str(work_dir),
            *self.extra_args,
        ]

    def build(self, package: str, version: str, work_dir: Path) -> Dict[str, Path]:
        cmd = self.command(package, version, work_dir)
        logger.debug("Running %s", " ".join(cmd))
        try:
            returncode, output = run_command(cmd, env=self.env, stream_output=self.stream_output)
        except OSError as e:
            raise BuildFailed(
                "install",
                package,
                version,
                detail=f"could not run {self.cargo_executable!r}: {e}",
            ) from e
        if returncode != 0:
            raise BuildFailed(
                "install",
                package,
                version,
                exit_status=returncode,
                output="\n".join(output[-OUTPUT_TAIL_LINES:]),
                detail=f"{Path(self.cargo_executable).name} exited with status {returncode}",
            )
        return self.collect_binaries(package, Path(work_dir))

    def collect_binaries(self, package: str, work_dir: Path) -> Dict[str, Path]:
        """
        The binaries cargo declares for ``package`` in ``.crates2.json``, or
        every file in ``bin/`` when the declaration is unavailable.
        """
        bin_dir = work_dir / "bin"
        declared = self._declared_binaries(package, work_dir)
        if declared is not None:
            return {name: bin_dir / name for name in declared}
        try:
            entries = list(os.scandir(bin_dir))
        except FileNotFoundError:
            return {}
        return {entry.name: Path(entry.path) for entry in entries if entry.is_file()}

    def _declared_binaries(self, package: str, work_dir: Path) -> Optional[List[str]]:
        crates_file = work_dir / ".crates2.json"
        try:
            with open(crates_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except ValueError as e:
            logger.warning("Ignoring unreadable %s: %s", crates_file, e)
            return None

        names = []
        # Keys look like "sqlx-cli 0.7.2 (registry+https://github.com/rust-lang/crates.io-index)".
        for key, info in data.get("installs", {}).items():
            if key.split(" ", 1)[0] == package and isinstance(info, dict):
                names.extend(info.get("bins", []))
        return sorted(set(names)) or None
