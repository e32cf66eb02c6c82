from __future__ import annotations

import heapq
import logging
import os
import stat
from collections import Counter
from datetime import datetime
from pathlib import Path

from ferret.collectors.mounts import mount_for
from ferret.errors import InvalidRootError
from ferret.models.common import STATUS_OK, STATUS_WARN, CollectorResult
from ferret.models.filesystem import (
    ExtensionStat,
    FilesystemStats,
    LargeFile,
    MountUsage,
    SizeBucket,
)

logger = logging.getLogger(__name__)

SIZE_BUCKETS: tuple[tuple[str, int], ...] = (
    ("0-1KB", 1024),
    ("1KB-100KB", 100 * 1024),
    ("100KB-1MB", 1024 * 1024),
    ("1MB-10MB", 10 * 1024 * 1024),
    ("10MB-100MB", 100 * 1024 * 1024),
    ("100MB+", -1),
)

NO_EXTENSION = "(no extension)"


def bucket_for(size: int) -> str:
    for label, upper in SIZE_BUCKETS:
        if upper < 0 or size <= upper:
            return label
    return SIZE_BUCKETS[-1][0]


class FilesystemCollector:
    def __init__(
        self,
        scan_dir: str = ".",
        recursive: bool = False,
        include_hidden: bool = False,
        top_extensions: int = 15,
        top_files: int = 10,
        disk_warn_percent: int = 85,
    ) -> None:
        self.scan_dir = scan_dir
        self.recursive = bool(recursive)
        self.include_hidden = bool(include_hidden)
        self.top_extensions = int(top_extensions)
        self.top_files = int(top_files)
        self.disk_warn_percent = int(disk_warn_percent)

    def collect(self) -> CollectorResult[FilesystemStats]:
        ts = datetime.now()
        warnings: list[str] = []
        notes: list[str] = []

        root = Path(self.scan_dir)
        if not root.is_dir():
            raise InvalidRootError(self.scan_dir, "not a directory" if root.exists() else "no such directory")

        mount = self._mount(notes)
        if mount is not None and mount.used_percent >= self.disk_warn_percent:
            warnings.append(
                f"Disk usage high: {mount.mountpoint} {mount.used_percent}% (>= {self.disk_warn_percent}%)"
            )

        total_files = 0
        total_dirs = 0
        total_bytes = 0
        buckets: Counter[str] = Counter()
        ext_count: Counter[str] = Counter()
        ext_bytes: Counter[str] = Counter()
        largest: list[tuple[int, str]] = []
        unreadable = 0

        def on_error(e: OSError) -> None:
            nonlocal unreadable
            unreadable += 1
            logger.debug("stats: cannot read %s: %s", e.filename, e)

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error, followlinks=False):
            if not self.include_hidden:
                dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                filenames = [f for f in filenames if not f.startswith(".")]
            # symlinked directories are neither counted nor followed
            dirnames[:] = sorted(d for d in dirnames if not os.path.islink(os.path.join(dirpath, d)))
            total_dirs += len(dirnames)

            for fn in sorted(filenames):
                p = os.path.join(dirpath, fn)
                try:
                    st = os.lstat(p)
                except OSError:
                    unreadable += 1
                    continue
                if not stat.S_ISREG(st.st_mode):
                    continue
                size = int(st.st_size)
                total_files += 1
                total_bytes += size
                buckets[bucket_for(size)] += 1
                ext = os.path.splitext(fn)[1].lower() or NO_EXTENSION
                ext_count[ext] += 1
                ext_bytes[ext] += size
                if len(largest) < self.top_files:
                    heapq.heappush(largest, (size, p))
                else:
                    heapq.heappushpop(largest, (size, p))

            if not self.recursive:
                break

        if unreadable:
            notes.append(f"{unreadable} entries could not be read")

        extensions = [
            ExtensionStat(extension=ext, count=int(n), size_bytes=int(ext_bytes[ext]))
            for ext, n in sorted(ext_count.items(), key=lambda kv: (-kv[1], kv[0]))[: self.top_extensions]
        ]
        large_files = [
            LargeFile(size_bytes=size, path=path)
            for size, path in sorted(largest, key=lambda x: (-x[0], x[1]))
        ]

        status = STATUS_OK if not warnings else STATUS_WARN
        data = FilesystemStats(
            path=str(root),
            total_files=total_files,
            total_dirs=total_dirs,
            total_bytes=total_bytes,
            size_buckets=[SizeBucket(label=label, count=int(buckets[label])) for label, _ in SIZE_BUCKETS],
            extensions=extensions,
            large_files=large_files,
            mount=mount,
            notes=notes,
        )
        return CollectorResult(
            ts=ts,
            status=status,
            warning_count=len(warnings),
            warnings=warnings,
            data=data,
        )

    def _mount(self, notes: list[str]) -> MountUsage | None:
        try:
            return mount_for(self.scan_dir)
        except Exception as e:  # noqa: BLE001
            notes.append(f"Mount usage unavailable: {e}")
            return None
