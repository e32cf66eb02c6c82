"""Error taxonomy for scans, listings and result sinks."""

from __future__ import annotations


class FerretError(Exception):
    pass


class InvalidRootError(FerretError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class AccessError(FerretError):
    """Metadata or directory contents could not be read for one path."""

    reason = "unreadable"

    def __init__(self, path: str, detail: str | None = None) -> None:
        super().__init__(f"{path}: {detail or self.reason}")
        self.path = path
        self.detail = detail or self.reason


class AccessDeniedError(AccessError):
    reason = "permission denied"


class BrokenLinkError(AccessError):
    reason = "broken symlink"


class SinkWriteError(FerretError):
    def __init__(self, destination: str, cause: BaseException) -> None:
        super().__init__(f"cannot write results to {destination}: {cause}")
        self.destination = destination
        self.cause = cause
