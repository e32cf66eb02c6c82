from __future__ import annotations

import logging
import os

import psutil

from ferret.models.filesystem import MountUsage

logger = logging.getLogger(__name__)

PSEUDO_FSTYPES: frozenset[str] = frozenset(
    {
        "autofs",
        "binfmt_misc",
        "bpf",
        "cgroup",
        "cgroup2",
        "configfs",
        "debugfs",
        "devpts",
        "efivarfs",
        "fusectl",
        "hugetlbfs",
        "mqueue",
        "nsfs",
        "proc",
        "pstore",
        "rpc_pipefs",
        "securityfs",
        "selinuxfs",
        "sysfs",
        "tracefs",
    }
)


def pseudo_mountpoints() -> frozenset[str]:
    try:
        parts = psutil.disk_partitions(all=True)
    except Exception as e:  # noqa: BLE001
        logger.warning("cannot enumerate mounts, pseudo filesystems will be scanned: %s", e)
        return frozenset()
    return frozenset(
        os.path.normpath(p.mountpoint) for p in parts if str(p.fstype).lower() in PSEUDO_FSTYPES
    )


def mount_for(path: str) -> MountUsage | None:
    target = os.path.realpath(path)
    best = None
    for p in psutil.disk_partitions(all=False):
        mp = os.path.normpath(str(p.mountpoint))
        inside = target == mp or target.startswith(mp.rstrip(os.sep) + os.sep)
        if inside and (best is None or len(mp) > len(os.path.normpath(str(best.mountpoint)))):
            best = p
    if best is None:
        return None
    u = psutil.disk_usage(best.mountpoint)
    return MountUsage(
        device=str(best.device),
        mountpoint=str(best.mountpoint),
        fstype=str(best.fstype),
        total_gb=float(u.total / 1024 / 1024 / 1024),
        used_gb=float(u.used / 1024 / 1024 / 1024),
        free_gb=float(u.free / 1024 / 1024 / 1024),
        used_percent=int(u.percent),
    )
