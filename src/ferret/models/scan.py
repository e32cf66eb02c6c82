from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ferret.models.entry import Entry

if TYPE_CHECKING:
    from ferret.engine.predicates import Predicate


class Outcome(str, enum.Enum):
    NO_MATCH = "no_match"
    MATCH = "match"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True)
class MatchOutcome:
    kind: Outcome
    detail: str | None = None

    @property
    def is_match(self) -> bool:
        return self.kind is Outcome.MATCH

    @property
    def is_indeterminate(self) -> bool:
        return self.kind is Outcome.INDETERMINATE


NO_MATCH = MatchOutcome(Outcome.NO_MATCH)


def match(detail: str | None = None) -> MatchOutcome:
    return MatchOutcome(Outcome.MATCH, detail)


def indeterminate(reason: str | None = None) -> MatchOutcome:
    return MatchOutcome(Outcome.INDETERMINATE, reason or "metadata unavailable")


@dataclass(frozen=True)
class Match:
    entry: Entry
    outcome: MatchOutcome


class OutputMode(str, enum.Enum):
    QUIET = "quiet"
    NORMAL = "normal"
    VERBOSE = "verbose"


class KindFilter(str, enum.Enum):
    ANY = "any"
    FILES = "files"
    DIRECTORIES = "directories"


@dataclass(frozen=True)
class ScanRequest:
    root: str
    predicate: Predicate
    max_depth: int | None = None
    mode: OutputMode = OutputMode.NORMAL
    output_path: str | None = None
    workers: int = 1
    skip_pseudo_filesystems: bool = True
    include_hidden: bool = True


@dataclass
class ScanCounters:
    visited: int = 0
    matched: int = 0
    indeterminate: int = 0
    skipped_dirs: int = 0
    unreadable_dirs: int = 0
    pruned: int = 0
    warnings: list[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def bump(self, name: str, n: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + n)

    def warn(self, message: str) -> None:
        with self._lock:
            if message not in self.warnings:
                self.warnings.append(message)

    def snapshot(self) -> ScanCounters:
        with self._lock:
            return ScanCounters(
                visited=self.visited,
                matched=self.matched,
                indeterminate=self.indeterminate,
                skipped_dirs=self.skipped_dirs,
                unreadable_dirs=self.unreadable_dirs,
                pruned=self.pruned,
                warnings=list(self.warnings),
            )
