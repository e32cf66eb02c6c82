"""Shared test fixtures for ferret tests."""

from __future__ import annotations

import os
import stat
import time
from pathlib import Path

import pytest

from ferret.errors import AccessDeniedError, AccessError
from ferret.models.entry import CapabilitySet, Entry, EntryKind, Feature, PermissionBits

FAKE_ROOT = os.path.abspath(os.sep + "t")
NOW = 1_700_000_000.0


def fp(*parts: str) -> str:
    """Absolute path inside the fake tree."""
    return os.path.join(FAKE_ROOT, *parts)


class FakeAccessor:
    """In-memory metadata backend.

    Lets tests script permission denials, unreadable entries and missing
    platform features without depending on the user running the suite.
    """

    platform = "fake"

    def __init__(self, features=(Feature.UNIX_PERMISSIONS,)) -> None:
        self.features = frozenset(features)
        self.entries: dict[str, Entry] = {}
        self.children: dict[str, list[str]] = {}
        self.query_errors: dict[str, AccessError] = {}
        self.list_errors: dict[str, AccessError] = {}
        self.listed: list[str] = []
        self.add_dir(FAKE_ROOT)

    def supports(self, feature: Feature) -> bool:
        return feature in self.features

    def _register(self, entry: Entry) -> None:
        self.entries[entry.path] = entry
        parent = os.path.dirname(entry.path)
        if entry.path != parent:
            siblings = self.children.setdefault(parent, [])
            if entry.name not in siblings:
                siblings.append(entry.name)

    def add_dir(self, path: str, mode: int = 0o755) -> str:
        self._register(
            Entry(
                path=path,
                name=os.path.basename(path) or path,
                kind=EntryKind.DIRECTORY,
                perms=PermissionBits(stat.S_IFDIR | mode),
                size=4096,
                mtime=NOW - 86400,
                capabilities=CapabilitySet.empty(),
            )
        )
        self.children.setdefault(path, [])
        return path

    def add_file(
        self,
        path: str,
        mode: int = 0o644,
        size: int = 0,
        mtime: float = NOW - 86400,
        caps: CapabilitySet | None = CapabilitySet.empty(),
    ) -> str:
        self._register(
            Entry(
                path=path,
                name=os.path.basename(path),
                kind=EntryKind.FILE,
                perms=PermissionBits(stat.S_IFREG | mode),
                size=size,
                mtime=mtime,
                capabilities=caps,
            )
        )
        return path

    def add_symlink(self, path: str) -> str:
        self._register(
            Entry(
                path=path,
                name=os.path.basename(path),
                kind=EntryKind.SYMLINK,
                perms=PermissionBits(stat.S_IFLNK | 0o777),
                size=10,
                mtime=NOW - 86400,
            )
        )
        return path

    def deny(self, path: str) -> None:
        self.list_errors[path] = AccessDeniedError(path)

    def break_entry(self, path: str, detail: str = "input/output error") -> None:
        self.query_errors[path] = AccessError(path, detail)

    def query(self, path: str, follow_symlinks: bool = False) -> Entry:
        if path in self.query_errors:
            raise self.query_errors[path]
        try:
            return self.entries[path]
        except KeyError:
            raise AccessError(path, "no such file or directory") from None

    def list_dir(self, path: str) -> list[str]:
        self.listed.append(path)
        if path in self.list_errors:
            raise self.list_errors[path]
        entry = self.query(path)
        if entry.kind is not EntryKind.DIRECTORY:
            raise AccessError(path, "not a directory")
        # scrambled on purpose so callers have to sort
        return list(reversed(self.children.get(path, [])))


@pytest.fixture
def fake() -> FakeAccessor:
    return FakeAccessor()


@pytest.fixture
def fake_tree(fake: FakeAccessor) -> FakeAccessor:
    """The /t scenario: one SUID binary, one key file, one plain file."""
    fake.add_dir(fp("bin"))
    fake.add_file(fp("bin", "ping"), mode=0o4755, size=64000)
    fake.add_file(fp("bin", "ls"), mode=0o755, size=140000)
    fake.add_dir(fp("home"))
    fake.add_dir(fp("home", "u"), mode=0o4755)
    fake.add_file(fp("home", "u", "id_rsa"), mode=0o600, size=2590)
    fake.add_file(fp("home", "u", "notes.txt"), size=12)
    return fake


@pytest.fixture
def real_tree(tmp_path: Path) -> Path:
    """A small on-disk tree with files of known sizes and extensions."""
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "deep").mkdir()
    (tmp_path / "b").mkdir()
    (tmp_path / "a" / "one.txt").write_bytes(b"x" * 10)
    (tmp_path / "a" / "deep" / "big.bin").write_bytes(b"x" * 200_000)
    (tmp_path / "b" / "two.txt").write_bytes(b"x" * 2048)
    (tmp_path / "b" / "server.pem").write_bytes(b"x" * 100)
    (tmp_path / "README").write_bytes(b"x" * 5)
    (tmp_path / ".hidden").write_bytes(b"x" * 1)
    return tmp_path


@pytest.fixture
def fixed_clock():
    return lambda: NOW


@pytest.fixture
def no_pseudo(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("ferret.engine.traversal.pseudo_mountpoints", lambda: frozenset())


def touch_minutes_ago(path: Path, minutes: float) -> None:
    t = time.time() - minutes * 60
    os.utime(path, (t, t))
