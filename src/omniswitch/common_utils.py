from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Any, List, Optional, Tuple

# Keep a reference to the original, built-in print function
_builtin_print = print


def safe_print(*args, **kwargs):
    """
    Print that never crashes on a terminal which cannot encode the text.
    Unencodable characters are replaced instead of raising.
    """
    if "flush" not in kwargs:
        kwargs["flush"] = True
    try:
        _builtin_print(*args, **kwargs)
    except UnicodeEncodeError:
        stream = kwargs.get("file") or sys.stdout
        encoding = getattr(stream, "encoding", None) or "utf-8"
        safe_args = [
            arg.encode(encoding, "replace").decode(encoding) if isinstance(arg, str) else arg
            for arg in args
        ]
        _builtin_print(*safe_args, **kwargs)


def print_header(title):
    """Prints a consistent, pretty header."""
    from omniswitch.i18n import _

    safe_print("\n" + "=" * 60)
    safe_print(_("  🔀 {}").format(title))
    safe_print("=" * 60)


def safe_unlink(path: Path) -> None:
    """Unlink that ignores missing files."""
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def fsync_file(path: Path) -> None:
    """Flush a file's data to disk."""
    with open(path, "rb") as f:
        os.fsync(f.fileno())


def fsync_dir(path: Path) -> None:
    """Flush a directory entry so a rename inside it survives a crash."""
    if os.name != "posix":
        return
    fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def atomic_write_json(path: Path, data: Any) -> None:
    """
    Write JSON next to ``path`` under a temporary name, fsync it and rename it
    into place. Readers see either the old file or the complete new one.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except BaseException:
        safe_unlink(temp_path)
        raise
    fsync_dir(path.parent)


def run_command(
    command_list: List[str],
    env: Optional[dict] = None,
    stream_output: bool = True,
    prefix: str = "   | ",
) -> Tuple[int, List[str]]:
    """
    Run a command, streaming its combined stdout/stderr line by line.

    Returns ``(returncode, output_lines)``. Failing to start the command
    raises the underlying OSError.
    """
    process = subprocess.Popen(
        command_list,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding="utf-8",
        errors="replace",
        bufsize=1,
        env=env,
    )
    output_lines = []
    try:
        for line in iter(process.stdout.readline, ""):
            stripped_line = line.rstrip()
            if stream_output:
                safe_print(f"{prefix}{stripped_line}")
            output_lines.append(stripped_line)
    finally:
        process.stdout.close()
        retcode = process.wait()
    return retcode, output_lines
