"""Recursive scanning engine.

``Scanner.scan()`` validates the root eagerly and returns a ``ScanResult``,
a lazy forward-only sequence of ``Match`` pairs. Directories are walked
depth-first with an explicit stack, children in lexical order, so two scans
of an unchanged tree produce identical output. Closing the result (or
setting the cancel event) stops the walk.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterator

from ferret.collectors.metadata import MetadataAccessor, default_accessor
from ferret.collectors.mounts import pseudo_mountpoints
from ferret.engine.predicates import Predicate
from ferret.errors import AccessDeniedError, AccessError, InvalidRootError
from ferret.models.entry import Entry, EntryKind
from ferret.models.scan import Match, ScanCounters, ScanRequest

logger = logging.getLogger(__name__)

_QUEUE_SIZE = 512
_PUT_TIMEOUT_S = 0.1
_DONE = object()


@dataclass
class _Frame:
    path: str
    names: list[str]
    depth: int
    index: int = 0

    def next_name(self) -> str | None:
        if self.index >= len(self.names):
            return None
        name = self.names[self.index]
        self.index += 1
        return name


@dataclass
class _Failure:
    exc: BaseException


class ScanResult:
    def __init__(self, matches: Iterator[Match], counters: ScanCounters, cancel: threading.Event) -> None:
        self._matches = matches
        self.counters = counters
        self._cancel = cancel

    def __iter__(self) -> Iterator[Match]:
        return self

    def __next__(self) -> Match:
        return next(self._matches)

    def close(self) -> None:
        self._cancel.set()
        close = getattr(self._matches, "close", None)
        if close is not None:
            close()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()


@dataclass
class Scanner:
    request: ScanRequest
    accessor: MetadataAccessor = field(default_factory=default_accessor)
    cancel: threading.Event = field(default_factory=threading.Event)

    def __post_init__(self) -> None:
        self.counters = ScanCounters()
        self._prune: frozenset[str] = frozenset()
        self._predicate: Predicate | None = self.request.predicate

    def scan(self) -> ScanResult:
        self.counters = ScanCounters()
        root = os.path.abspath(self.request.root)
        names = self._open_root(root)

        predicate, missing = self.request.predicate.restrict(self.accessor.supports)
        for feature in missing:
            self.counters.warn(
                f"{feature.value} are not supported on this platform ({self.accessor.platform}); "
                f"that check reports no matches"
            )
        self._predicate = predicate
        if predicate is None:
            return ScanResult(iter(()), self.counters, self.cancel)

        if self.request.skip_pseudo_filesystems:
            self._prune = frozenset(p for p in pseudo_mountpoints() if p != os.path.normpath(root))

        logger.info("scanning %s for %s", root, predicate.name)
        if self.request.workers > 1:
            matches = self._parallel(root, names)
        else:
            matches = self._walk(root, names, depth=1)
        return ScanResult(matches, self.counters, self.cancel)

    def _open_root(self, root: str) -> list[str]:
        try:
            entry = self.accessor.query(root, follow_symlinks=True)
        except AccessError as e:
            raise InvalidRootError(root, e.detail) from e
        if entry.kind is not EntryKind.DIRECTORY:
            raise InvalidRootError(root, "not a directory")
        try:
            return self.accessor.list_dir(root)
        except AccessError as e:
            raise InvalidRootError(root, e.detail) from e

    def _open(self, path: str) -> list[str] | None:
        try:
            return self.accessor.list_dir(path)
        except AccessDeniedError:
            logger.debug("skipping %s: permission denied", path)
            self.counters.bump("skipped_dirs")
        except AccessError as e:
            logger.debug("skipping %s: %s", path, e.detail)
            self.counters.bump("unreadable_dirs")
        return None

    def _ordered(self, names: list[str]) -> list[str]:
        if not self.request.include_hidden:
            names = [n for n in names if not n.startswith(".")]
        return sorted(names)

    def _visit(self, path: str, name: str, depth: int) -> tuple[Match | None, bool]:
        assert self._predicate is not None
        self.counters.bump("visited")
        try:
            entry = self.accessor.query(path)
        except AccessError as e:
            entry = Entry.unreadable(path, name, e.detail)

        outcome = self._predicate.evaluate(entry)
        found = None
        if outcome.is_match:
            self.counters.bump("matched")
            found = Match(entry, outcome)
        elif outcome.is_indeterminate:
            self.counters.bump("indeterminate")
            found = Match(entry, outcome)

        descend = entry.kind is EntryKind.DIRECTORY and (
            self.request.max_depth is None or depth < self.request.max_depth
        )
        if descend and path in self._prune:
            logger.debug("not descending into pseudo filesystem %s", path)
            self.counters.bump("pruned")
            descend = False
        return found, descend

    def _walk(
        self, top: str, names: list[str], depth: int, stop: threading.Event | None = None
    ) -> Iterator[Match]:
        stack = [_Frame(top, self._ordered(names), depth)]
        while stack:
            if self.cancel.is_set() or (stop is not None and stop.is_set()):
                return
            frame = stack[-1]
            name = frame.next_name()
            if name is None:
                stack.pop()
                continue
            path = os.path.join(frame.path, name)
            found, descend = self._visit(path, name, frame.depth)
            if found is not None:
                yield found
            if descend:
                children = self._open(path)
                if children:
                    stack.append(_Frame(path, self._ordered(children), frame.depth + 1))

    def _parallel(self, root: str, names: list[str]) -> Iterator[Match]:
        workers = self.request.workers
        stop = threading.Event()
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ferret-scan")

        top: list[tuple[str, Match | None, bool]] = []
        for name in self._ordered(names):
            path = os.path.join(root, name)
            found, descend = self._visit(path, name, 1)
            top.append((path, found, descend))
        subtrees = [path for path, _found, descend in top if descend]
        queues: dict[str, queue.Queue] = {}

        def submit_next() -> None:
            if subtrees:
                path = subtrees.pop(0)
                q: queue.Queue = queue.Queue(maxsize=_QUEUE_SIZE)
                queues[path] = q
                pool.submit(self._drain_subtree, path, q, stop)

        try:
            # a window of `workers` subtrees is in flight; the one being consumed is always running
            for _ in range(workers):
                submit_next()
            for path, found, descend in top:
                if self.cancel.is_set():
                    return
                if found is not None:
                    yield found
                if descend:
                    yield from self._consume(queues.pop(path))
                    submit_next()
        finally:
            stop.set()
            pool.shutdown(wait=True, cancel_futures=True)

    def _consume(self, q: queue.Queue) -> Iterator[Match]:
        while True:
            try:
                item = q.get(timeout=_PUT_TIMEOUT_S)
            except queue.Empty:
                if self.cancel.is_set():
                    return
                continue
            if item is _DONE:
                return
            if isinstance(item, _Failure):
                raise item.exc
            yield item

    def _drain_subtree(self, path: str, q: queue.Queue, stop: threading.Event) -> None:
        try:
            children = self._open(path)
            if children:
                for found in self._walk(path, children, depth=2, stop=stop):
                    if not self._put(q, found, stop):
                        return
            self._put(q, _DONE, stop)
        except Exception as e:  # noqa: BLE001
            self._put(q, _Failure(e), stop)

    def _put(self, q: queue.Queue, item: object, stop: threading.Event) -> bool:
        while not (self.cancel.is_set() or stop.is_set()):
            try:
                q.put(item, timeout=_PUT_TIMEOUT_S)
                return True
            except queue.Full:
                continue
        return False
