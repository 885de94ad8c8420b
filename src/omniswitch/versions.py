from __future__ import annotations

import functools
import os
from typing import Optional, Tuple

import semantic_version

from .errors import InvalidVersionSpec

# Names under the store root that belong to omniswitch itself.
RESERVED_NAMES = {"bin"}


def validate_package_name(
    name: str, token: Optional[str] = None, operation: str = "parse"
) -> str:
    """Reject package names that could escape or collide with the store layout."""
    token = token if token is not None else name
    if not name:
        raise InvalidVersionSpec(token, operation, f"missing package name in {token!r}")
    separators = {"/", "\\", os.sep}
    if os.altsep:
        separators.add(os.altsep)
    if any(sep in name for sep in separators):
        raise InvalidVersionSpec(
            token, operation, f"package name {name!r} contains a path separator"
        )
    if name.startswith(".") or name in RESERVED_NAMES:
        raise InvalidVersionSpec(token, operation, f"package name {name!r} is reserved")
    return name


def parse_version(
    text: str, token: Optional[str] = None, operation: str = "parse"
) -> semantic_version.Version:
    token = token if token is not None else text
    try:
        return semantic_version.Version(text)
    except ValueError:
        raise InvalidVersionSpec(token, operation) from None


def coerce_version(version) -> semantic_version.Version:
    if isinstance(version, semantic_version.Version):
        return version
    return parse_version(str(version))


def parse_spec(token: str, operation: str = "parse") -> Tuple[str, semantic_version.Version]:
    """
    Split a ``name@version`` token into a package name and a semantic version.

    ``sqlx-cli@0.7.2`` and ``zig@1.0.0-rc0`` are accepted; ``zig@rc``,
    ``zig@`` and ``@0.7.2`` raise InvalidVersionSpec.
    """
    package, sep, version = token.partition("@")
    if not sep or not version:
        raise InvalidVersionSpec(token, operation)
    validate_package_name(package, token, operation)
    return package, parse_version(version, token, operation)


def looks_like_spec(token: str) -> bool:
    return "@" in token and not token.startswith("-")


def compare_versions(a: semantic_version.Version, b: semantic_version.Version) -> int:
    if a < b:
        return -1
    if b < a:
        return 1
    # Same precedence (build metadata only): fall back to the literal string.
    return (str(a) > str(b)) - (str(a) < str(b))


version_sort_key = functools.cmp_to_key(compare_versions)
