"""Identification record written to the boot partition.

The record lets an operator match a physical SD card to its catalogue
number and installed image by reading the boot partition on any machine:

    SD card nr 07 with serial number 1234abcd
    Raspbian GNU/Linux 10 (buster) lite
    (Debian 10.13)
    Linux pi4-1a2b3c 5.10.103-v7l+ #1529 SMP ... armv7l GNU/Linux
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rpi_first_boot.domain.models import ResolvedConfiguration, StepResult
from rpi_first_boot.logging import LoggerFactory
from rpi_first_boot.storage.command_runners import record_step, run_checked_command
from rpi_first_boot.storage.exceptions import CommandFailedError


DEBIAN_VERSION_PATH = Path("/etc/debian_version")
SYS_BLOCK_PATH = Path("/sys/block")

# pi-gen build stage recorded in issue.txt -> image variant
DISTRO_VARIANTS = {
    "1": "minimal",
    "2": "lite",
    "3": "base-desktop",
    "4": "small-desktop",
    "5": "desktop",
}

log = LoggerFactory.for_system()


@dataclass(frozen=True)
class CardInfo:
    card_number: str
    card_serial: str
    distro_name: str
    distro_variant: str
    debian_version: str
    kernel_info: str

    def render(self) -> str:
        return (
            f"SD card nr {self.card_number} with serial number {self.card_serial}\n"
            f"{self.distro_name} {self.distro_variant}\n"
            f"(Debian {self.debian_version})\n"
            f"{self.kernel_info}\n"
        )


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace").strip()
    except OSError:
        return ""


def _command_output(command: list[str]) -> str:
    try:
        return run_checked_command(command).strip()
    except CommandFailedError as error:
        log.debug(f"{command[0]} unavailable: {error}")
        return ""


def read_debian_version(path: Path = DEBIAN_VERSION_PATH) -> str:
    return _read_text(path)


def debian_major_version(path: Path = DEBIAN_VERSION_PATH) -> Optional[int]:
    """Major Debian release, e.g. 10 for "10.13"; None if unknown."""
    match = re.match(r"(\d+)", read_debian_version(path))
    return int(match.group(1)) if match else None


def read_card_serial(device: str, sys_block: Path = SYS_BLOCK_PATH) -> str:
    """SD card serial without its 0x prefix."""
    serial = _read_text(sys_block / device / "device" / "serial")
    return serial.split("x", 1)[1] if "x" in serial else serial


def read_distro_variant(boot_dir: Path) -> str:
    match = re.search(r"stage(\d)", _read_text(boot_dir / "issue.txt"))
    if not match:
        return ""
    return DISTRO_VARIANTS.get(match.group(1), "")


def collect_card_info(
    config: ResolvedConfiguration,
    device: str,
    boot_dir: Path,
    *,
    sys_block: Path = SYS_BLOCK_PATH,
    debian_version_path: Path = DEBIAN_VERSION_PATH,
) -> CardInfo:
    return CardInfo(
        card_number=config.sd_card_number,
        card_serial=read_card_serial(device, sys_block),
        distro_name=_command_output(["lsb_release", "-ds"]),
        distro_variant=read_distro_variant(boot_dir),
        debian_version=read_debian_version(debian_version_path),
        kernel_info=_command_output(["uname", "-a"]),
    )


def card_file_path(config: ResolvedConfiguration, boot_dir: Path) -> Path:
    return boot_dir / f"SD-card-{config.sd_card_number}.txt"


def write_card_file(
    config: ResolvedConfiguration,
    device: str,
    boot_dir: Path,
    *,
    sys_block: Path = SYS_BLOCK_PATH,
    debian_version_path: Path = DEBIAN_VERSION_PATH,
) -> StepResult:
    """Write SD-card-<nr>.txt to the boot partition."""
    path = card_file_path(config, boot_dir)
    name = f"Write card information to {path}"
    info = collect_card_info(
        config,
        device,
        boot_dir,
        sys_block=sys_block,
        debian_version_path=debian_version_path,
    )
    try:
        path.write_text(info.render(), encoding="utf-8")
    except OSError as error:
        return record_step(StepResult.failure(name, str(error)))
    return record_step(StepResult.success(name))
