from __future__ import annotations

from typing import Iterable, Optional


class OmniswitchError(Exception):
    """
    Base class for every failure omniswitch reports to its caller.

    Carries the operation that failed and the package/version it was acting
    on, so the CLI can print one consistent message and exit with a status
    that identifies the failure kind.
    """

    exit_code = 1

    def __init__(
        self,
        operation: str,
        package: Optional[str] = None,
        version: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        self.operation = operation
        self.package = package
        self.version = None if version is None else str(version)
        self.detail = detail or self.default_detail()
        super().__init__(self._build_message())

    def default_detail(self) -> str:
        return "failed"

    @property
    def target(self) -> str:
        if self.package and self.version:
            return f"{self.package}@{self.version}"
        return self.package or self.version or ""

    def _build_message(self) -> str:
        if self.target:
            return f"{self.operation} {self.target}: {self.detail}"
        return f"{self.operation}: {self.detail}"


class InvalidVersionSpec(OmniswitchError):
    exit_code = 2

    def __init__(self, token: str, operation: str = "parse", detail: Optional[str] = None):
        self.token = token
        super().__init__(
            operation,
            detail=detail or f"expected PACKAGE@VERSION with a semantic version, got {token!r}",
        )


class VersionNotFound(OmniswitchError):
    exit_code = 3

    def default_detail(self) -> str:
        return "version is not installed"


class PackageNotFound(VersionNotFound):
    """Raised when a package has no committed versions at all."""

    exit_code = 4

    def default_detail(self) -> str:
        return "package has no installed versions"


class AlreadyInstalled(OmniswitchError):
    exit_code = 5

    def default_detail(self) -> str:
        return "already installed (use --force to reinstall)"


class BuildFailed(OmniswitchError):
    exit_code = 6

    def __init__(
        self,
        operation: str,
        package: str,
        version: str,
        exit_status: Optional[int] = None,
        output: str = "",
        detail: Optional[str] = None,
    ):
        self.exit_status = exit_status
        self.output = output
        if detail is None:
            detail = f"build failed with exit status {exit_status}"
        super().__init__(operation, package, version, detail)


class BinaryMissingAfterBuild(OmniswitchError):
    exit_code = 7

    def default_detail(self) -> str:
        return "the build succeeded but produced no binaries"


class ActiveVersionInUse(OmniswitchError):
    exit_code = 8

    def __init__(self, operation: str, package: str, version: str, binaries: Iterable[str]):
        self.binaries = sorted(binaries)
        super().__init__(
            operation,
            package,
            version,
            "still active for {}; switch to another version first".format(
                ", ".join(self.binaries)
            ),
        )


class LockContention(OmniswitchError):
    exit_code = 9

    def default_detail(self) -> str:
        return "another omniswitch process is working on this version"


class StoreIOError(OmniswitchError):
    """Wraps an OSError (disk full, permission denied, ...) hit by the store or linker."""

    exit_code = 10

    def __init__(
        self,
        operation: str,
        package: Optional[str] = None,
        version: Optional[str] = None,
        cause: Optional[BaseException] = None,
        detail: Optional[str] = None,
    ):
        self.cause = cause
        if detail is None:
            detail = f"I/O error: {cause}" if cause is not None else "I/O error"
        super().__init__(operation, package, version, detail)


class SwitchIncomplete(StoreIOError):
    """
    A switch repointed some binary names and then failed on one of them.

    The names in ``switched`` stay switched; the caller must retry for
    ``failed``.
    """

    exit_code = 11

    def __init__(
        self,
        package: str,
        version: str,
        switched: Iterable[str],
        failed: str,
        cause: BaseException,
    ):
        self.switched = list(switched)
        self.failed = failed
        done = ", ".join(self.switched) if self.switched else "none"
        super().__init__(
            "switch",
            package,
            version,
            cause=cause,
            detail=f"could not link {failed!r} ({cause}); already switched: {done}",
        )
