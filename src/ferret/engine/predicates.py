from __future__ import annotations

import fnmatch
import os
import re
import time
from dataclasses import dataclass, field
from typing import Callable

from ferret.formatting import format_elapsed, human_bytes
from ferret.models.entry import Entry, EntryKind, Feature
from ferret.models.scan import (
    NO_MATCH,
    KindFilter,
    MatchOutcome,
    Outcome,
    indeterminate,
    match,
)

CREDENTIAL_PATTERNS: tuple[str, ...] = (
    "passwd",
    "shadow",
    ".bashrc",
    ".bash_history",
    ".zsh_history",
    ".netrc",
    ".pgpass",
    ".my.cnf",
    ".htpasswd",
    ".git-credentials",
    ".npmrc",
    ".pypirc",
    "authorized_keys",
    "credentials",
    "wp-config.php",
    "*id_rsa*",
    "*id_dsa*",
    "*id_ecdsa*",
    "*id_ed25519*",
    "*.pem",
    "*.p12",
    "*.pfx",
    "*.kdbx",
    "*.ovpn",
    "*.env",
    ".env.*",
)

CONFIG_EXTENSIONS: frozenset[str] = frozenset(
    {".conf", ".cfg", ".ini", ".yaml", ".json", ".crt", ".key"}
)

_WILDCARDS = frozenset("*?[")


class Predicate:
    name: str = "predicate"
    requires: frozenset[Feature] = frozenset()

    def evaluate(self, entry: Entry) -> MatchOutcome:
        raise NotImplementedError

    def restrict(self, supported: Callable[[Feature], bool]) -> tuple[Predicate | None, list[Feature]]:
        """Return the part of this predicate the platform can evaluate.

        The second element lists the features that were missing.
        """
        missing = [f for f in sorted(self.requires, key=lambda f: f.value) if not supported(f)]
        return (None, missing) if missing else (self, [])


@dataclass(frozen=True)
class SuidPredicate(Predicate):
    name: str = "suid"
    requires: frozenset[Feature] = frozenset({Feature.UNIX_PERMISSIONS})

    def evaluate(self, entry: Entry) -> MatchOutcome:
        if entry.kind not in (EntryKind.FILE, EntryKind.UNKNOWN):
            return NO_MATCH
        if entry.perms is None:
            return indeterminate(entry.error)
        return match(entry.perms.filemode) if entry.perms.is_setuid else NO_MATCH


@dataclass(frozen=True)
class SgidPredicate(Predicate):
    name: str = "sgid"
    requires: frozenset[Feature] = frozenset({Feature.UNIX_PERMISSIONS})

    def evaluate(self, entry: Entry) -> MatchOutcome:
        if entry.kind not in (EntryKind.FILE, EntryKind.UNKNOWN):
            return NO_MATCH
        if entry.perms is None:
            return indeterminate(entry.error)
        return match(entry.perms.filemode) if entry.perms.is_setgid else NO_MATCH


@dataclass(frozen=True)
class WorldWritablePredicate(Predicate):
    kinds: KindFilter = KindFilter.ANY
    name: str = "writable"
    requires: frozenset[Feature] = frozenset({Feature.UNIX_PERMISSIONS})

    def evaluate(self, entry: Entry) -> MatchOutcome:
        if entry.kind is EntryKind.SYMLINK:
            return NO_MATCH
        if self.kinds is KindFilter.FILES and entry.kind is EntryKind.DIRECTORY:
            return NO_MATCH
        if self.kinds is KindFilter.DIRECTORIES and entry.kind not in (EntryKind.DIRECTORY, EntryKind.UNKNOWN):
            return NO_MATCH
        if entry.perms is None:
            return indeterminate(entry.error)
        return match(entry.perms.filemode) if entry.perms.is_world_writable else NO_MATCH


@dataclass(frozen=True)
class CapabilitiesPredicate(Predicate):
    name: str = "caps"
    requires: frozenset[Feature] = frozenset({Feature.CAPABILITIES})

    def evaluate(self, entry: Entry) -> MatchOutcome:
        if entry.kind not in (EntryKind.FILE, EntryKind.UNKNOWN):
            return NO_MATCH
        caps = entry.capabilities
        if caps is None:
            return indeterminate(entry.error or "capabilities unreadable")
        if not caps.supported or not caps:
            return NO_MATCH
        return match(caps.render())


@dataclass(frozen=True)
class CredentialPatternPredicate(Predicate):
    patterns: tuple[str, ...] = CREDENTIAL_PATTERNS
    extensions: frozenset[str] = CONFIG_EXTENSIONS
    name: str = "configs"

    def matches_name(self, name: str) -> bool:
        lowered = name.lower()
        for pat in self.patterns:
            if _WILDCARDS & set(pat):
                if fnmatch.fnmatchcase(lowered, pat):
                    return True
            elif pat in lowered:
                return True
        return os.path.splitext(lowered)[1] in self.extensions

    def evaluate(self, entry: Entry) -> MatchOutcome:
        if entry.kind is EntryKind.DIRECTORY:
            return NO_MATCH
        if not self.matches_name(entry.name):
            return NO_MATCH
        return match(human_bytes(entry.size) if entry.size is not None else "size unknown")


@dataclass(frozen=True)
class RecentlyModifiedPredicate(Predicate):
    window_minutes: int = 60
    clock: Callable[[], float] = field(default=time.time, compare=False)
    name: str = "recent"

    def evaluate(self, entry: Entry) -> MatchOutcome:
        if entry.mtime is None:
            return indeterminate(entry.error or "modification time unreadable")
        elapsed = self.clock() - entry.mtime
        if elapsed <= self.window_minutes * 60:
            return match(format_elapsed(elapsed))
        return NO_MATCH


@dataclass(frozen=True)
class NamePredicate(Predicate):
    """Matches entry names by glob, substring or regular expression.

    A glob without wildcards matches anywhere in the name.
    """

    pattern: str = "*"
    regex: bool = False
    ignore_case: bool = False
    name: str = "name"

    def matches_name(self, name: str) -> bool:
        if self.regex:
            return re.search(self.pattern, name, re.IGNORECASE if self.ignore_case else 0) is not None
        pattern = self.pattern.lower() if self.ignore_case else self.pattern
        candidate = name.lower() if self.ignore_case else name
        if _WILDCARDS & set(pattern):
            return fnmatch.fnmatchcase(candidate, pattern)
        return pattern in candidate

    def evaluate(self, entry: Entry) -> MatchOutcome:
        return match(entry.kind.value) if self.matches_name(entry.name) else NO_MATCH


@dataclass(frozen=True)
class KindPredicate(Predicate):
    kind: EntryKind = EntryKind.FILE
    name: str = "type"

    def evaluate(self, entry: Entry) -> MatchOutcome:
        if entry.kind is EntryKind.UNKNOWN:
            return indeterminate(entry.error)
        return match() if entry.kind is self.kind else NO_MATCH


@dataclass(frozen=True)
class SizePredicate(Predicate):
    """Regular files whose size lies within the inclusive bounds."""

    min_bytes: int | None = None
    max_bytes: int | None = None
    name: str = "size"

    def evaluate(self, entry: Entry) -> MatchOutcome:
        if entry.kind not in (EntryKind.FILE, EntryKind.UNKNOWN):
            return NO_MATCH
        if entry.size is None:
            return indeterminate(entry.error or "size unreadable")
        if self.min_bytes is not None and entry.size < self.min_bytes:
            return NO_MATCH
        if self.max_bytes is not None and entry.size > self.max_bytes:
            return NO_MATCH
        return match(human_bytes(entry.size))


@dataclass(frozen=True)
class AllOf(Predicate):
    parts: tuple[Predicate, ...] = ()
    name: str = "all"

    @property
    def requires(self) -> frozenset[Feature]:  # type: ignore[override]
        return frozenset().union(*(p.requires for p in self.parts))

    def evaluate(self, entry: Entry) -> MatchOutcome:
        outcomes = [p.evaluate(entry) for p in self.parts]
        if any(o.kind is Outcome.NO_MATCH for o in outcomes):
            return NO_MATCH
        pending = [o for o in outcomes if o.is_indeterminate]
        if pending:
            return pending[0]
        return match(_join_details(outcomes))


@dataclass(frozen=True)
class AnyOf(Predicate):
    parts: tuple[Predicate, ...] = ()
    name: str = "any"

    @property
    def requires(self) -> frozenset[Feature]:  # type: ignore[override]
        return frozenset().union(*(p.requires for p in self.parts))

    def evaluate(self, entry: Entry) -> MatchOutcome:
        outcomes = [p.evaluate(entry) for p in self.parts]
        hits = [o for o in outcomes if o.is_match]
        if hits:
            return match(_join_details(hits))
        pending = [o for o in outcomes if o.is_indeterminate]
        return pending[0] if pending else NO_MATCH

    def restrict(self, supported: Callable[[Feature], bool]) -> tuple[Predicate | None, list[Feature]]:
        kept: list[Predicate] = []
        missing: list[Feature] = []
        for p in self.parts:
            usable, lacking = p.restrict(supported)
            missing.extend(f for f in lacking if f not in missing)
            if usable is not None:
                kept.append(usable)
        if not kept:
            return None, missing
        if len(kept) == len(self.parts):
            return self, missing
        return AnyOf(parts=tuple(kept)), missing


def _join_details(outcomes: list[MatchOutcome]) -> str | None:
    details = [o.detail for o in outcomes if o.detail]
    return ", ".join(details) if details else None


CHECKS: tuple[str, ...] = ("suid", "sgid", "writable", "caps", "configs", "recent")


def build_predicate(
    check: str,
    *,
    kinds: KindFilter = KindFilter.ANY,
    window_minutes: int = 60,
) -> Predicate:
    if check == "suid":
        return SuidPredicate()
    if check == "sgid":
        return SgidPredicate()
    if check == "writable":
        return WorldWritablePredicate(kinds=kinds)
    if check == "caps":
        return CapabilitiesPredicate()
    if check == "configs":
        return CredentialPatternPredicate()
    if check == "recent":
        return RecentlyModifiedPredicate(window_minutes=window_minutes)
    raise ValueError(f"unknown check: {check}")


def combine(predicates: list[Predicate], mode: str = "any") -> Predicate:
    if len(predicates) == 1:
        return predicates[0]
    if mode == "all":
        return AllOf(parts=tuple(predicates))
    if mode == "any":
        return AnyOf(parts=tuple(predicates))
    raise ValueError(f"unknown match mode: {mode}")


FIND_KINDS: dict[str, EntryKind] = {
    "file": EntryKind.FILE,
    "dir": EntryKind.DIRECTORY,
    "symlink": EntryKind.SYMLINK,
}


def build_find_predicate(
    pattern: str,
    *,
    regex: bool = False,
    ignore_case: bool = False,
    kind: str | None = None,
    min_bytes: int | None = None,
    max_bytes: int | None = None,
    modified_days: int | None = None,
) -> Predicate:
    if regex:
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"invalid regular expression {pattern!r}: {e}") from None
    if min_bytes is not None and max_bytes is not None and min_bytes > max_bytes:
        raise ValueError("minimum size is larger than maximum size")

    parts: list[Predicate] = [NamePredicate(pattern=pattern, regex=regex, ignore_case=ignore_case)]
    if kind is not None:
        if kind not in FIND_KINDS:
            raise ValueError(f"unknown entry type: {kind}")
        parts.append(KindPredicate(kind=FIND_KINDS[kind]))
    if min_bytes is not None or max_bytes is not None:
        parts.append(SizePredicate(min_bytes=min_bytes, max_bytes=max_bytes))
    if modified_days is not None:
        parts.append(RecentlyModifiedPredicate(window_minutes=modified_days * 24 * 60))
    return combine(parts, mode="all")
