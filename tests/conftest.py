"""
Pytest configuration and shared fixtures for rpi-first-boot tests.

This module provides common fixtures used across all test modules: parted
output, partition table snapshots, configurations and fake system files.
"""

from pathlib import Path
from types import MappingProxyType

import pytest
from loguru import logger

from rpi_first_boot.domain.models import (
    PartitionEntry,
    PartitionTable,
    ResolvedConfiguration,
)


# ==============================================================================
# Logging
# ==============================================================================


@pytest.fixture(autouse=True)
def quiet_logger():
    """Drop loguru sinks so tests do not write to the real log directory."""
    logger.remove()
    yield
    logger.remove()


@pytest.fixture
def captured_logs():
    """Collect log messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]))
    yield messages
    logger.remove(handler_id)


# ==============================================================================
# Partition Table Fixtures
# ==============================================================================


DEVICE_SECTORS = 62_333_952


@pytest.fixture
def parted_output() -> str:
    """Machine-readable parted output for a stock two-partition SD card."""
    return (
        "BYT;\n"
        f"/dev/mmcblk0:{DEVICE_SECTORS}s:sd/mmc:512:512:msdos:SD SC32G:;\n"
        "1:8192s:532479s:524288s:fat32::lba;\n"
        "2:532480s:60000000s:59467521s:ext4::;\n"
    )


@pytest.fixture
def standard_table() -> PartitionTable:
    """Boot + root layout with root ending at sector 60,000,000."""
    return PartitionTable(
        device="mmcblk0",
        partitions=(
            PartitionEntry(1, 8192, 532479, "fat32"),
            PartitionEntry(2, 532480, 60_000_000, "ext4"),
        ),
        total_sectors=DEVICE_SECTORS,
        root_partition_number=2,
    )


@pytest.fixture
def three_partition_table(standard_table) -> PartitionTable:
    """Layout that already carries a data partition."""
    return PartitionTable(
        device="mmcblk0",
        partitions=standard_table.partitions
        + (PartitionEntry(3, 62_129_152, 62_333_951, "fat32"),),
        total_sectors=DEVICE_SECTORS,
        root_partition_number=2,
    )


# ==============================================================================
# Configuration Fixtures
# ==============================================================================


@pytest.fixture
def default_config() -> ResolvedConfiguration:
    return ResolvedConfiguration()


@pytest.fixture
def make_config():
    """Factory for configurations with selected overrides."""

    def _make(**overrides) -> ResolvedConfiguration:
        overrides.setdefault("extras", MappingProxyType({}))
        return ResolvedConfiguration(**overrides)

    return _make


# ==============================================================================
# Fake System Files
# ==============================================================================


@pytest.fixture
def fake_system(tmp_path) -> dict:
    """Directory tree standing in for /proc, /sys/block, /etc and /boot."""
    sys_block = tmp_path / "sys" / "block"
    device_dir = sys_block / "mmcblk0"
    (device_dir / "device").mkdir(parents=True)
    (device_dir / "size").write_text(f"{DEVICE_SECTORS}\n")
    (device_dir / "device" / "serial").write_text("0x1234abcd\n")

    mounts = tmp_path / "proc" / "mounts"
    mounts.parent.mkdir(parents=True)
    mounts.write_text(
        "/dev/mmcblk0p2 / ext4 rw,noatime 0 0\n"
        "devtmpfs /dev devtmpfs rw,relatime 0 0\n"
        "/dev/mmcblk0p1 /boot vfat rw,relatime 0 0\n"
    )

    etc = tmp_path / "etc"
    etc.mkdir()
    fstab = etc / "fstab"
    fstab.write_text(
        "proc            /proc           proc    defaults          0       0\n"
        "PARTUUID=738a4d67-01  /boot           vfat    defaults          0       2\n"
        "PARTUUID=738a4d67-02  /               ext4    defaults,noatime  0       1\n"
    )
    debian_version = etc / "debian_version"
    debian_version.write_text("10.13\n")
    sshd_config = etc / "sshd_config"
    sshd_config.write_text("PermitRootLogin no\nAcceptEnv LANG LC_*\n")

    boot = tmp_path / "boot"
    boot.mkdir()
    (boot / "issue.txt").write_text(
        "Raspberry Pi reference 2022-04-04\n"
        "Generated using pi-gen, stage2\n"
    )

    home = tmp_path / "home" / "pi"
    home.mkdir(parents=True)

    return {
        "root": tmp_path,
        "sys_block": sys_block,
        "mounts": mounts,
        "fstab": fstab,
        "debian_version": debian_version,
        "sshd_config": sshd_config,
        "boot": boot,
        "home": home,
    }


@pytest.fixture
def write_file(tmp_path):
    """Write text to a file under tmp_path and return its path."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    return _write
