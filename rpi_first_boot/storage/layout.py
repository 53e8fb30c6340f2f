"""Partition table inspection.

Reads the current layout of the boot device into an immutable
:class:`PartitionTable` snapshot:

    - partition rows from ``parted -ms <device> unit s print``
    - total device size from ``/sys/block/<device>/size`` (512-byte units)
    - the root partition from the mount table, with /dev/root resolved
      through findmnt

Everything the planner needs is captured here, before any mutation runs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from rpi_first_boot.domain.models import PartitionEntry, PartitionTable
from rpi_first_boot.logging import LoggerFactory
from rpi_first_boot.storage.command_runners import run_checked_command
from rpi_first_boot.storage.exceptions import (
    CommandFailedError,
    LayoutMismatchError,
    LayoutUnreadableError,
)
from rpi_first_boot.storage.mount import (
    MOUNTS_PATH,
    ROOT_ALIAS,
    find_mount_source,
    partition_number_of,
    resolve_root_alias,
)


DEFAULT_DEVICE = "mmcblk0"
SYS_BLOCK_PATH = Path("/sys/block")

log = LoggerFactory.for_disk()


def normalize_device_name(device: str) -> str:
    """Strip a leading /dev/ from a device token."""
    return device[len("/dev/"):] if device.startswith("/dev/") else device


def _sectors(field: str) -> int:
    return int(field.strip().rstrip("s"))


def parse_parted_machine_output(output: str) -> list[PartitionEntry]:
    """Parse ``parted -m ... unit s print`` output into partition entries.

    Example input:
        BYT;
        /dev/mmcblk0:62333952s:sd/mmc:512:512:msdos:SD SC32G:;
        1:8192s:532479s:524288s:fat32::lba;
        2:532480s:60000000s:59467521s:ext4::;

    Raises:
        ValueError: If a partition row cannot be parsed
    """
    entries = []
    for line in output.splitlines():
        line = line.strip().rstrip(";")
        if not line or not line[0].isdigit():
            continue
        fields = line.split(":")
        if len(fields) < 3:
            raise ValueError(f"Malformed partition row: {line!r}")
        filesystem = fields[4] if len(fields) > 4 else ""
        entries.append(
            PartitionEntry(
                number=int(fields[0]),
                start_sector=_sectors(fields[1]),
                end_sector=_sectors(fields[2]),
                filesystem=filesystem,
            )
        )
    return sorted(entries, key=lambda entry: entry.number)


def read_total_sectors(device: str, sys_block: Path = SYS_BLOCK_PATH) -> int:
    """Device size in 512-byte sectors as reported by sysfs."""
    size_path = sys_block / device / "size"
    try:
        return int(size_path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError) as error:
        raise LayoutUnreadableError(device, f"cannot read {size_path}: {error}") from error


def read_partition_rows(device: str) -> list[PartitionEntry]:
    try:
        output = run_checked_command(["parted", f"/dev/{device}", "-ms", "unit", "s", "print"])
    except CommandFailedError as error:
        raise LayoutUnreadableError(device, str(error)) from error
    try:
        return parse_parted_machine_output(output)
    except ValueError as error:
        raise LayoutUnreadableError(device, str(error)) from error


def find_root_partition_number(device: str, mounts_path: Path = MOUNTS_PATH) -> Optional[int]:
    try:
        source = find_mount_source("/", mounts_path)
    except OSError as error:
        raise LayoutUnreadableError(device, f"cannot read {mounts_path}: {error}") from error
    if source is None:
        raise LayoutUnreadableError(device, "no filesystem mounted at /")
    if source == ROOT_ALIAS:
        resolved = resolve_root_alias("/")
        log.debug(f"{ROOT_ALIAS} resolved to {resolved}")
        source = resolved or source
    number = partition_number_of(source, device)
    if number is None:
        log.warning(f"Root filesystem {source} is not a partition of /dev/{device}")
    return number


def inspect_layout(
    device: str = DEFAULT_DEVICE,
    *,
    sys_block: Path = SYS_BLOCK_PATH,
    mounts_path: Path = MOUNTS_PATH,
) -> PartitionTable:
    """Snapshot the partition table and root mount of ``device``.

    Raises:
        LayoutUnreadableError: If the table, size or mount table is unreadable
    """
    device = normalize_device_name(device)
    root_number = find_root_partition_number(device, mounts_path)
    partitions = read_partition_rows(device)
    total_sectors = read_total_sectors(device, sys_block)

    table = PartitionTable(
        device=device,
        partitions=tuple(partitions),
        total_sectors=total_sectors,
        root_partition_number=root_number,
    )
    log.info(
        f"/dev/{device}: {total_sectors} sectors, partitions "
        f"{table.partition_numbers}, root on partition {root_number}"
    )
    for entry in partitions:
        log.debug(
            f"partition {entry.number}: {entry.start_sector}-{entry.end_sector} "
            f"{entry.filesystem or '?'}"
        )
    return table


def require_standard_scheme(table: PartitionTable) -> None:
    """Fail closed on anything but the stock boot + root layout.

    Raises:
        LayoutMismatchError: If the table is not partitions 1 and 2 with / on 2
    """
    if not table.matches_standard_scheme:
        raise LayoutMismatchError(
            table.device, table.partition_numbers, table.root_partition_number
        )
