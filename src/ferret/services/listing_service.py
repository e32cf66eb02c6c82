from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator

from ferret.collectors.metadata import MetadataAccessor, default_accessor
from ferret.errors import AccessDeniedError, AccessError, InvalidRootError
from ferret.formatting import human_bytes
from ferret.models.entry import Entry, EntryKind

_UNKNOWN_PERMS = "?????????"


@dataclass(frozen=True)
class ListingOptions:
    show_all: bool = False
    long_format: bool = False
    recursive: bool = False
    human_readable: bool = False
    explain_perms: bool = False


def classify(entry: Entry) -> str:
    if entry.kind is EntryKind.DIRECTORY:
        return "/"
    if entry.kind is EntryKind.SYMLINK:
        return "@"
    if entry.kind is EntryKind.FILE and entry.perms is not None and entry.perms.is_executable:
        return "*"
    return ""


class ListingService:
    def __init__(self, accessor: MetadataAccessor | None = None) -> None:
        self.accessor = accessor or default_accessor()

    def render(self, path: str, opts: ListingOptions) -> Iterator[str]:
        try:
            top = self.accessor.query(path, follow_symlinks=True)
        except AccessError as e:
            raise InvalidRootError(path, e.detail) from e

        if top.kind is not EntryKind.DIRECTORY:
            yield self.format_entry(top, opts) if opts.long_format else path
            return

        try:
            names = self._visible(self.accessor.list_dir(path), opts)
        except AccessError as e:
            raise InvalidRootError(path, e.detail) from e

        if opts.recursive:
            yield f"{path}:"
            yield from self._render_tree(path, names, opts, depth=0)
        else:
            for name in names:
                yield self.format_entry(self._query(os.path.join(path, name), name), opts)

    def _render_tree(self, path: str, names: list[str], opts: ListingOptions, depth: int) -> Iterator[str]:
        indent = "  " * depth
        for name in names:
            entry = self._query(os.path.join(path, name), name)
            yield indent + self.format_entry(entry, opts)
            if entry.kind is not EntryKind.DIRECTORY:
                continue
            try:
                children = self._visible(self.accessor.list_dir(entry.path), opts)
            except AccessDeniedError:
                yield f"{indent}  (permission denied)"
                continue
            except AccessError as e:
                yield f"{indent}  ({e.detail})"
                continue
            yield from self._render_tree(entry.path, children, opts, depth + 1)

    def _visible(self, names: list[str], opts: ListingOptions) -> list[str]:
        return sorted(n for n in names if opts.show_all or not n.startswith("."))

    def _query(self, path: str, name: str) -> Entry:
        try:
            return self.accessor.query(path)
        except AccessError as e:
            return Entry.unreadable(path, name, e.detail)

    def format_entry(self, entry: Entry, opts: ListingOptions) -> str:
        label = entry.name + classify(entry)
        if not opts.long_format:
            return label

        if entry.perms is not None:
            perms = entry.perms.filemode
            if opts.explain_perms:
                perms = f"{perms} {entry.perms.explain()}"
        else:
            perms = "-" + _UNKNOWN_PERMS

        if entry.size is None:
            size = "?"
        elif opts.human_readable:
            size = human_bytes(entry.size)
        else:
            size = str(entry.size)
        width = 8 if opts.human_readable else 10

        if entry.mtime is not None:
            when = datetime.fromtimestamp(entry.mtime).strftime("%b %d %H:%M")
        else:
            when = " " * 12

        return f"{perms} {size:>{width}} {when} {label}"
