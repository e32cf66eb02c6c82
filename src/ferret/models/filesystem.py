from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class MountUsage:
    device: str
    mountpoint: str
    fstype: str
    total_gb: float
    used_gb: float
    free_gb: float
    used_percent: int


@dataclass(frozen=True)
class LargeFile:
    size_bytes: int
    path: str


@dataclass(frozen=True)
class ExtensionStat:
    extension: str
    count: int
    size_bytes: int


@dataclass(frozen=True)
class SizeBucket:
    label: str
    count: int


@dataclass(frozen=True)
class FilesystemStats:
    path: str
    total_files: int
    total_dirs: int
    total_bytes: int
    size_buckets: list[SizeBucket]
    extensions: list[ExtensionStat]
    large_files: list[LargeFile]
    mount: MountUsage | None
    notes: list[str]
