"""
omniswitch: keep several versions of the same tool installed and switch
which one is active without reinstalling.

Copyright (c) 2025  The omniswitch authors

This file is part of `omniswitch`.

omniswitch is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

omniswitch is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the License for more details.

You should have received a copy of the GNU Affero General Public License
along with omniswitch. If not, see <https://www.gnu.org/licenses/>.
"""
from pathlib import Path

from importlib.metadata import PackageNotFoundError, version

try:
    import tomllib
except ModuleNotFoundError:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None

__version__ = "0.0.0"  # fallback default

_pkg_name = "omniswitch"

try:
    __version__ = version(_pkg_name)
except PackageNotFoundError:
    # Running from a source checkout: read pyproject.toml instead.
    if tomllib is not None:
        pyproject_path = Path(__file__).resolve().parent.parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            with pyproject_path.open("rb") as f:
                __version__ = tomllib.load(f)["project"]["version"]

__all__ = [
    "builders",
    "cli",
    "config",
    "core",
    "errors",
    "installer",
    "linker",
    "lister",
    "store",
    "versions",
]
