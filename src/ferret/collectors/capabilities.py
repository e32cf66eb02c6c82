"""Decoding of the Linux ``security.capability`` extended attribute.

The attribute holds a little-endian ``vfs_cap_data`` structure:
a magic/revision word followed by one (revision 1) or two (revisions 2
and 3) pairs of 32-bit permitted/inheritable masks. Revision 3 appends
the namespace root uid, which is not needed here.
"""

from __future__ import annotations

import struct

from ferret.models.entry import CapabilitySet

XATTR_NAME = "security.capability"

VFS_CAP_REVISION_MASK = 0xFF000000
VFS_CAP_FLAGS_EFFECTIVE = 0x000001
VFS_CAP_REVISION_1 = 0x01000000
VFS_CAP_REVISION_2 = 0x02000000
VFS_CAP_REVISION_3 = 0x03000000

_MASK_WORDS = {
    VFS_CAP_REVISION_1: 1,
    VFS_CAP_REVISION_2: 2,
    VFS_CAP_REVISION_3: 2,
}

# Index is the capability number from linux/capability.h.
CAP_NAMES: tuple[str, ...] = (
    "cap_chown",
    "cap_dac_override",
    "cap_dac_read_search",
    "cap_fowner",
    "cap_fsetid",
    "cap_kill",
    "cap_setgid",
    "cap_setuid",
    "cap_setpcap",
    "cap_linux_immutable",
    "cap_net_bind_service",
    "cap_net_broadcast",
    "cap_net_admin",
    "cap_net_raw",
    "cap_ipc_lock",
    "cap_ipc_owner",
    "cap_sys_module",
    "cap_sys_rawio",
    "cap_sys_chroot",
    "cap_sys_ptrace",
    "cap_sys_pacct",
    "cap_sys_admin",
    "cap_sys_boot",
    "cap_sys_nice",
    "cap_sys_resource",
    "cap_sys_time",
    "cap_sys_tty_config",
    "cap_mknod",
    "cap_lease",
    "cap_audit_write",
    "cap_audit_control",
    "cap_setfcap",
    "cap_mac_override",
    "cap_mac_admin",
    "cap_syslog",
    "cap_wake_alarm",
    "cap_block_suspend",
    "cap_audit_read",
    "cap_perfmon",
    "cap_bpf",
    "cap_checkpoint_restore",
)


def cap_name(index: int) -> str:
    if 0 <= index < len(CAP_NAMES):
        return CAP_NAMES[index]
    return f"cap_{index}"


def decode_vfs_cap(blob: bytes) -> CapabilitySet:
    if len(blob) < 4:
        raise ValueError(f"capability xattr too short ({len(blob)} bytes)")

    (magic,) = struct.unpack_from("<I", blob, 0)
    revision = magic & VFS_CAP_REVISION_MASK
    words = _MASK_WORDS.get(revision)
    if words is None:
        raise ValueError(f"unknown capability revision 0x{revision:08x}")
    if len(blob) < 4 + 8 * words:
        raise ValueError(f"capability xattr truncated ({len(blob)} bytes)")

    permitted = 0
    inheritable = 0
    for i in range(words):
        p, inh = struct.unpack_from("<II", blob, 4 + 8 * i)
        permitted |= p << (32 * i)
        inheritable |= inh << (32 * i)

    bits = permitted | inheritable
    names = tuple(cap_name(i) for i in range(64) if bits >> i & 1)
    return CapabilitySet(
        names=names,
        effective=bool(magic & VFS_CAP_FLAGS_EFFECTIVE),
        inheritable=frozenset(cap_name(i) for i in range(64) if inheritable >> i & 1),
        permitted=frozenset(cap_name(i) for i in range(64) if permitted >> i & 1),
    )
