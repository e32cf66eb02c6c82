"""Platform-abstracted metadata queries.

One ``MetadataAccessor`` interface with a POSIX and a Windows backing,
picked once by ``default_accessor()``. Callers never branch on the
platform; they ask ``supports(feature)`` instead.
"""

from __future__ import annotations

import errno
import logging
import os
import stat
import sys

from ferret.collectors.capabilities import XATTR_NAME, decode_vfs_cap
from ferret.errors import AccessDeniedError, AccessError, BrokenLinkError
from ferret.models.entry import CapabilitySet, Entry, EntryKind, Feature, PermissionBits

logger = logging.getLogger(__name__)

_DENIED_ERRNOS = {errno.EACCES, errno.EPERM}
_NO_XATTR_ERRNOS = {
    getattr(errno, "ENODATA", 61),
    getattr(errno, "ENOATTR", 93),
    errno.ENOTSUP,
    getattr(errno, "EOPNOTSUPP", errno.ENOTSUP),
}


def _translate(path: str, exc: OSError) -> AccessError:
    if isinstance(exc, PermissionError) or exc.errno in _DENIED_ERRNOS:
        return AccessDeniedError(path)
    return AccessError(path, exc.strerror or str(exc))


class MetadataAccessor:
    platform = "generic"
    features: frozenset[Feature] = frozenset()

    def supports(self, feature: Feature) -> bool:
        return feature in self.features

    def query(self, path: str, follow_symlinks: bool = False) -> Entry:
        name = os.path.basename(path.rstrip(os.sep)) or path
        try:
            st = os.stat(path, follow_symlinks=follow_symlinks)
        except FileNotFoundError as e:
            if follow_symlinks and os.path.islink(path):
                raise BrokenLinkError(path) from e
            raise AccessError(path, "no such file or directory") from e
        except OSError as e:
            raise _translate(path, e) from e

        kind = EntryKind.from_mode(st.st_mode)
        return Entry(
            path=path,
            name=name,
            kind=kind,
            perms=PermissionBits(st.st_mode),
            uid=getattr(st, "st_uid", None),
            gid=getattr(st, "st_gid", None),
            size=int(st.st_size),
            mtime=float(st.st_mtime),
            capabilities=self._capabilities(path, kind),
            attributes=getattr(st, "st_file_attributes", None),
        )

    def list_dir(self, path: str) -> list[str]:
        try:
            with os.scandir(path) as it:
                return [e.name for e in it]
        except OSError as e:
            raise _translate(path, e) from e

    def _capabilities(self, path: str, kind: EntryKind) -> CapabilitySet | None:
        return CapabilitySet.unsupported()


class PosixMetadataAccessor(MetadataAccessor):
    platform = sys.platform
    features = frozenset({Feature.UNIX_PERMISSIONS})

    def __init__(self) -> None:
        if sys.platform.startswith("linux") and hasattr(os, "getxattr"):
            self.features = frozenset({Feature.UNIX_PERMISSIONS, Feature.CAPABILITIES})

    def _capabilities(self, path: str, kind: EntryKind) -> CapabilitySet | None:
        if not self.supports(Feature.CAPABILITIES):
            return CapabilitySet.unsupported()
        if kind is not EntryKind.FILE:
            return CapabilitySet.empty()
        try:
            blob = os.getxattr(path, XATTR_NAME, follow_symlinks=False)
        except OSError as e:
            if e.errno in _NO_XATTR_ERRNOS:
                return CapabilitySet.empty()
            logger.debug("capability xattr unreadable: %s (%s)", path, e)
            return None
        try:
            return decode_vfs_cap(blob)
        except ValueError as e:
            logger.debug("capability xattr malformed: %s (%s)", path, e)
            return None


class WindowsMetadataAccessor(MetadataAccessor):
    platform = "win32"
    features: frozenset[Feature] = frozenset()

    def query(self, path: str, follow_symlinks: bool = False) -> Entry:
        entry = super().query(path, follow_symlinks=follow_symlinks)
        attrs = entry.attributes or 0
        if entry.kind is EntryKind.OTHER and attrs & stat.FILE_ATTRIBUTE_REPARSE_POINT:
            # junctions and other reparse points are reported like symlinks
            return Entry(
                path=entry.path,
                name=entry.name,
                kind=EntryKind.SYMLINK,
                perms=entry.perms,
                size=entry.size,
                mtime=entry.mtime,
                capabilities=entry.capabilities,
                attributes=entry.attributes,
            )
        return entry


def default_accessor() -> MetadataAccessor:
    if os.name == "nt":
        return WindowsMetadataAccessor()
    return PosixMetadataAccessor()
