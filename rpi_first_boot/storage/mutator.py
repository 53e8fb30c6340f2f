"""Creation of the FAT32 data partition.

Executes a :class:`CreateAndShrink` plan against the device. The steps run
strictly in order and each is recorded as its own result; a failed step is
logged and the next one still runs:

    1. add primary partition 3 over the planned sectors (fdisk)
    2. set its type to W95 FAT32 (LBA) (sfdisk --part-type)
    3. make the kernel reread the partition table (partprobe)
    4. create a FAT32 filesystem with the configured label (mkfs.fat)
    5. register it in /etc/fstab, owned by the operating user

The plan carries every sector number needed; the table is never re-read
between steps.
"""

from __future__ import annotations

from pathlib import Path

from rpi_first_boot.domain.models import (
    DATA_PARTITION_NUMBER,
    CreateAndShrink,
    MutationResult,
    StepResult,
    partition_device_name,
)
from rpi_first_boot.logging import LoggerFactory
from rpi_first_boot.storage.command_runners import record_step, run_step
from rpi_first_boot.storage.mount import (
    FSTAB_PATH,
    append_fstab_entry,
    build_fstab_entry,
    derive_partition_token,
    fstab_mount_point,
    read_partuuid,
    vfat_tokens,
)


FAT32_LBA_TYPE = "c"

log = LoggerFactory.for_disk()


def build_fdisk_script(plan: CreateAndShrink, number: int = DATA_PARTITION_NUMBER) -> str:
    """fdisk dialogue adding a primary partition over the planned sectors."""
    answers = [
        "n",
        "p",
        str(number),
        str(plan.new_partition_start),
        str(plan.new_partition_end),
        "w",
    ]
    return "\n".join(answers) + "\n"


def resolve_fstab_token(partition_path: str, fstab_path: Path = FSTAB_PATH) -> str:
    """Pick the device token for the new fstab entry.

    Prefers the PARTUUID read back from the freshly formatted partition.
    Falls back to rewriting the boot partition's PARTUUID when exactly one
    vfat entry exists, and finally to the plain device path.
    """
    partuuid = read_partuuid(partition_path)
    if partuuid:
        return f"PARTUUID={partuuid}"

    try:
        fstab_text = fstab_path.read_text(encoding="utf-8")
    except OSError:
        fstab_text = ""
    tokens = vfat_tokens(fstab_text)
    if len(tokens) == 1:
        derived = derive_partition_token(tokens[0], DATA_PARTITION_NUMBER)
        if derived:
            log.warning(f"Could not read PARTUUID of {partition_path}, derived {derived}")
            return derived
    elif len(tokens) > 1:
        log.warning(f"{len(tokens)} vfat entries in {fstab_path}, not deriving a PARTUUID")

    log.warning(f"Falling back to device path {partition_path} in {fstab_path}")
    return partition_path


def register_in_fstab(
    partition_path: str,
    label: str,
    fstab_path: Path = FSTAB_PATH,
) -> StepResult:
    name = "Add the new partition to /etc/fstab for mounting at boot"
    try:
        fstab_mount_point(label)
    except ValueError as error:
        return record_step(StepResult.failure(name, str(error)))
    try:
        token = resolve_fstab_token(partition_path, fstab_path)
        entry = build_fstab_entry(token, label)
        append_fstab_entry(entry, fstab_path)
    except OSError as error:
        return record_step(StepResult.failure(name, str(error)))
    return record_step(StepResult.success(name, entry))


def apply_plan(
    plan: CreateAndShrink,
    device: str,
    *,
    fstab_path: Path = FSTAB_PATH,
) -> MutationResult:
    """Create, type, format and register the data partition.

    Args:
        plan: Boundaries computed by the planner
        device: Base device token (e.g., mmcblk0)
        fstab_path: fstab to register the partition in

    Returns:
        One result per step, in execution order
    """
    device_path = f"/dev/{device}"
    partition_path = f"/dev/{partition_device_name(device, DATA_PARTITION_NUMBER)}"
    result = MutationResult()

    log.info(
        f"Creating partition {DATA_PARTITION_NUMBER} on {device_path} at sectors "
        f"{plan.new_partition_start}-{plan.new_partition_end}"
    )
    result.add(
        run_step(
            "Create new FAT32 entry in the partition table",
            ["fdisk", device_path],
            input_text=build_fdisk_script(plan),
        )
    )
    result.add(
        run_step(
            "Set the partition type to FAT32",
            [
                "sfdisk",
                "--no-reread",
                "--part-type",
                device_path,
                str(DATA_PARTITION_NUMBER),
                FAT32_LBA_TYPE,
            ],
        )
    )
    result.add(run_step("Reload the partition table", ["partprobe", device_path]))
    result.add(
        run_step(
            "Format the new partition as FAT32",
            ["mkfs.fat", "-F", "32", "-n", plan.label, partition_path],
        )
    )
    result.add(register_in_fstab(partition_path, plan.label, fstab_path))
    return result
