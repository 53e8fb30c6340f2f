"""Mount table helpers: root mount lookup and persistent fstab entries.

Functions:
    - find_mount_source(): Device mounted at a mountpoint, from /proc/mounts
    - resolve_root_alias(): Real partition node behind the kernel's /dev/root
    - partition_number_of(): Partition number of a node on a base device
    - fstab_mount_point(): Mount path for a label, blanks escaped for fstab
    - build_fstab_entry(): Format the data partition's fstab line
    - append_fstab_entry(): Append a line to /etc/fstab
    - vfat_tokens(): Device tokens of the vfat entries already in fstab
    - derive_partition_token(): Rewrite a PARTUUID token for another partition
    - read_partuuid(): Read a partition's own PARTUUID back with blkid
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

from rpi_first_boot.domain.models import partition_device_name
from rpi_first_boot.logging import LoggerFactory
from rpi_first_boot.storage.command_runners import run_checked_command, run_command
from rpi_first_boot.storage.exceptions import CommandFailedError


MOUNTS_PATH = Path("/proc/mounts")
FSTAB_PATH = Path("/etc/fstab")
SYS_DEV_BLOCK_PATH = Path("/sys/dev/block")

# Source the kernel reports for a root= given as PARTUUID or similar
ROOT_ALIAS = "/dev/root"

# Ownership for the non-privileged operating user (pi)
DATA_PARTITION_UID = 1000
DATA_PARTITION_GID = 1000

log = LoggerFactory.for_disk()


def find_mount_source(mountpoint: str = "/", mounts_path: Path = MOUNTS_PATH) -> Optional[str]:
    """Return the source device mounted at ``mountpoint``.

    Raises:
        OSError: If the mount table cannot be read
    """
    source = None
    with open(mounts_path, "r", encoding="utf-8") as mounts_file:
        for line in mounts_file:
            parts = line.split()
            # Later lines shadow earlier mounts on the same path
            if len(parts) > 1 and parts[1] == mountpoint:
                source = parts[0]
    return source


def _device_numbers(path: str) -> tuple[int, int]:
    st_dev = os.stat(path).st_dev
    return os.major(st_dev), os.minor(st_dev)


def resolve_root_alias(
    mountpoint: str = "/",
    sys_dev_block: Path = SYS_DEV_BLOCK_PATH,
) -> Optional[str]:
    """Resolve /dev/root to the partition node actually mounted at ``mountpoint``.

    Asks findmnt first, which resolves the alias through libmount. If that
    is unavailable, maps the device number of ``mountpoint`` through
    /sys/dev/block/<major>:<minor>.
    """
    try:
        source = run_checked_command(["findmnt", "-n", "-o", "SOURCE", mountpoint]).strip()
    except CommandFailedError as error:
        log.debug(f"findmnt unavailable: {error}")
        source = ""
    if source and source != ROOT_ALIAS:
        return source

    try:
        major, minor = _device_numbers(mountpoint)
        name = (sys_dev_block / f"{major}:{minor}").resolve(strict=True).name
    except OSError as error:
        log.warning(f"Cannot resolve {ROOT_ALIAS}: {error}")
        return None
    return f"/dev/{name}"


def partition_number_of(source: Optional[str], device: str) -> Optional[int]:
    """Partition number of ``source`` (e.g. /dev/mmcblk0p2) on ``device``."""
    if not source:
        return None
    name = Path(source).name
    prefix = partition_device_name(device, 0)[:-1]
    if not name.startswith(prefix):
        return None
    number = name[len(prefix):]
    return int(number) if number.isdigit() else None


def fstab_mount_point(label: str) -> str:
    """Mount path for ``label`` as written in fstab.

    Blanks are escaped as octal (\\040, \\011) since fstab splits fields on
    whitespace.

    Raises:
        ValueError: If the label is empty or would leave the top level
    """
    name = label.strip()
    if not name or "/" in name or name in (".", ".."):
        raise ValueError(f"Label {label!r} does not name a mount point below /")
    return "/" + name.replace(" ", "\\040").replace("\t", "\\011")


def build_fstab_entry(token: str, label: str) -> str:
    """Format the fstab line for the FAT32 data partition.

    Raises:
        ValueError: If the label is not usable as a mount point
    """
    return (
        f"{token}  {fstab_mount_point(label)}  vfat  "
        f"defaults,uid={DATA_PARTITION_UID},gid={DATA_PARTITION_GID}  0  2"
    )


def append_fstab_entry(entry: str, fstab_path: Path = FSTAB_PATH) -> None:
    """Append one line to the fstab, keeping the file newline-terminated."""
    existing = fstab_path.read_text(encoding="utf-8") if fstab_path.exists() else ""
    with open(fstab_path, "a", encoding="utf-8") as fstab:
        if existing and not existing.endswith("\n"):
            fstab.write("\n")
        fstab.write(entry + "\n")


def vfat_tokens(fstab_text: str) -> list[str]:
    """Device tokens (first column) of every active vfat entry."""
    tokens = []
    for line in fstab_text.splitlines():
        parts = line.split()
        if len(parts) >= 3 and not parts[0].startswith("#") and parts[2] == "vfat":
            tokens.append(parts[0])
    return tokens


def derive_partition_token(token: str, number: int) -> Optional[str]:
    """Point a PARTUUID token of one partition at partition ``number``.

    On MBR disks the PARTUUID is "<disk id>-<two digit partition number>",
    so PARTUUID=738a4d67-01 becomes PARTUUID=738a4d67-03.
    """
    match = re.match(r"^(PARTUUID=[0-9A-Fa-f]+)-\d{2}$", token)
    if not match:
        return None
    return f"{match.group(1)}-{number:02d}"


def read_partuuid(partition_path: str) -> Optional[str]:
    """Read a partition's PARTUUID straight from the device."""
    try:
        result = run_command(["blkid", "-s", "PARTUUID", "-o", "value", partition_path])
    except OSError as error:
        log.debug(f"blkid unavailable: {error}")
        return None
    value = result.stdout.strip()
    if result.returncode != 0 or not value:
        return None
    return value
