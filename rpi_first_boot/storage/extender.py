"""Root partition and ext4 filesystem growth."""

from __future__ import annotations

from rpi_first_boot.domain.models import (
    ROOT_PARTITION_NUMBER,
    CreateAndShrink,
    ExpandOnly,
    ExtensionResult,
    LayoutPlan,
    partition_device_name,
)
from rpi_first_boot.logging import LoggerFactory
from rpi_first_boot.storage.command_runners import run_step


log = LoggerFactory.for_disk()


def extend_filesystem(plan: LayoutPlan, device: str) -> ExtensionResult:
    """Grow the root partition and filesystem according to ``plan``.

    CreateAndShrink resizes partition 2 to end just before the data partition
    and then runs resize2fs. ExpandOnly hands both jobs to raspi-config, which
    also copes with images where scripting the partition table is unreliable.
    Outcomes are recorded, never retried.
    """
    result = ExtensionResult()
    if isinstance(plan, CreateAndShrink):
        device_path = f"/dev/{device}"
        root_path = f"/dev/{partition_device_name(device, ROOT_PARTITION_NUMBER)}"
        result.add(
            run_step(
                "Make the ext4 partition take up the remainder of the SD card",
                [
                    "parted",
                    "-m",
                    device_path,
                    "u",
                    "s",
                    "resizepart",
                    str(ROOT_PARTITION_NUMBER),
                    str(plan.root_partition_new_end),
                ],
            )
        )
        result.add(
            run_step(
                "Resize the ext4 file system to take up the full partition",
                ["resize2fs", root_path],
            )
        )
    elif isinstance(plan, ExpandOnly):
        if plan.reason:
            log.info(f"Expanding root filesystem only: {plan.reason}")
        result.add(
            run_step(
                "Expansion of the root partition",
                ["raspi-config", "nonint", "do_expand_rootfs"],
            )
        )
    else:
        raise TypeError(f"Unknown layout plan: {plan!r}")
    return result
