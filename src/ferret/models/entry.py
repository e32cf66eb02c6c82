from __future__ import annotations

import enum
import stat
from dataclasses import dataclass


class EntryKind(str, enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    OTHER = "other"
    UNKNOWN = "unknown"

    @classmethod
    def from_mode(cls, mode: int) -> EntryKind:
        if stat.S_ISREG(mode):
            return cls.FILE
        if stat.S_ISDIR(mode):
            return cls.DIRECTORY
        if stat.S_ISLNK(mode):
            return cls.SYMLINK
        return cls.OTHER


class Feature(str, enum.Enum):
    UNIX_PERMISSIONS = "unix permission bits"
    CAPABILITIES = "file capabilities"


def _triad(mode: int, r: int, w: int, x: int) -> str:
    return (
        ("r" if mode & r else "-")
        + ("w" if mode & w else "-")
        + ("x" if mode & x else "-")
    )


@dataclass(frozen=True)
class PermissionBits:
    mode: int

    @property
    def is_setuid(self) -> bool:
        return bool(self.mode & stat.S_ISUID)

    @property
    def is_setgid(self) -> bool:
        return bool(self.mode & stat.S_ISGID)

    @property
    def is_world_writable(self) -> bool:
        return bool(self.mode & stat.S_IWOTH)

    @property
    def is_executable(self) -> bool:
        return bool(self.mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))

    @property
    def filemode(self) -> str:
        return stat.filemode(self.mode)

    def explain(self) -> str:
        owner = _triad(self.mode, stat.S_IRUSR, stat.S_IWUSR, stat.S_IXUSR)
        group = _triad(self.mode, stat.S_IRGRP, stat.S_IWGRP, stat.S_IXGRP)
        other = _triad(self.mode, stat.S_IROTH, stat.S_IWOTH, stat.S_IXOTH)
        return f"(owner:{owner}, group:{group}, other:{other})"


@dataclass(frozen=True)
class CapabilitySet:
    """File capabilities in ``getcap`` terms.

    ``names`` is the union of the permitted and inheritable sets.
    ``permitted`` of None means every name is permitted.
    """

    names: tuple[str, ...] = ()
    effective: bool = False
    supported: bool = True
    inheritable: frozenset[str] = frozenset()
    permitted: frozenset[str] | None = None

    @classmethod
    def unsupported(cls) -> CapabilitySet:
        return cls(names=(), effective=False, supported=False)

    @classmethod
    def empty(cls) -> CapabilitySet:
        return cls()

    def __bool__(self) -> bool:
        return bool(self.names)

    def flags(self, name: str) -> str:
        return (
            ("e" if self.effective else "")
            + ("i" if name in self.inheritable else "")
            + ("p" if self.permitted is None or name in self.permitted else "")
        )

    def render(self) -> str:
        if not self.supported:
            return "(unsupported)"
        groups: dict[str, list[str]] = {}
        for name in self.names:
            groups.setdefault(self.flags(name), []).append(name)
        clauses = []
        for flags, names in groups.items():
            op = "+" if clauses else "="
            clauses.append(f"{','.join(names)}{op}{flags}")
        return " ".join(clauses)


@dataclass(frozen=True)
class Entry:
    path: str
    name: str
    kind: EntryKind
    perms: PermissionBits | None = None
    uid: int | None = None
    gid: int | None = None
    size: int | None = None
    mtime: float | None = None
    capabilities: CapabilitySet | None = None
    attributes: int | None = None
    error: str | None = None

    @classmethod
    def unreadable(cls, path: str, name: str, error: str, kind: EntryKind = EntryKind.UNKNOWN) -> Entry:
        return cls(path=path, name=name, kind=kind, error=error)
