"""Partition layout planning.

Decides, from a partition table snapshot and the run configuration, whether
a FAT32 data partition can be carved from the end of the device:

    |boot|      root      |  free space  |        becomes
    |boot|      root (grown)      |data|

The data partition takes the last ``2048 * size_mb`` sectors; the root
partition grows up to the sector before it. The FAT32 32 MB minimum is left
to the operator; only fit against the current free space is checked here.
"""

from __future__ import annotations

from rpi_first_boot.domain.models import (
    SECTORS_PER_MB,
    CreateAndShrink,
    ExpandOnly,
    LayoutPlan,
    PartitionTable,
    ResolvedConfiguration,
)
from rpi_first_boot.logging import LoggerFactory
from rpi_first_boot.storage.exceptions import (
    InsufficientSpaceError,
    LayoutMismatchError,
    PlanningError,
)
from rpi_first_boot.storage.layout import require_standard_scheme


log = LoggerFactory.for_disk()


def required_sectors(size_mb: int) -> int:
    return SECTORS_PER_MB * size_mb


def validate_plan(plan: CreateAndShrink, table: PartitionTable) -> None:
    """Check the computed boundaries before anything is written.

    Raises:
        PlanningError: If any boundary invariant does not hold
    """
    total = table.total_sectors
    root = table.root_partition
    boundaries = (plan.new_partition_start, plan.new_partition_end, plan.root_partition_new_end)
    if not all(isinstance(value, int) and value >= 0 for value in boundaries):
        raise PlanningError(f"Non-integral partition boundaries {boundaries}", table.device)
    if plan.new_partition_start <= plan.root_partition_new_end:
        raise PlanningError(
            f"Data partition start {plan.new_partition_start} overlaps root end "
            f"{plan.root_partition_new_end}",
            table.device,
        )
    if plan.new_partition_end >= total or plan.root_partition_new_end >= total:
        raise PlanningError(
            f"Partition boundaries exceed device size of {total} sectors", table.device
        )
    if root is not None and plan.root_partition_new_end < root.end_sector:
        raise PlanningError(
            f"Root partition would shrink from {root.end_sector} to "
            f"{plan.root_partition_new_end}",
            table.device,
        )


def plan_layout(table: PartitionTable, config: ResolvedConfiguration) -> LayoutPlan:
    """Compute the layout plan for a run.

    Returns:
        ExpandOnly when no data partition is requested or the layout is not the
        standard boot + root scheme, otherwise CreateAndShrink

    Raises:
        InsufficientSpaceError: If the data partition does not fit after root
        PlanningError: If the computed boundaries are inconsistent
    """
    size_mb = config.new_partition_size_mb
    if size_mb <= 0:
        log.info("No data partition requested")
        return ExpandOnly(reason="no data partition requested")

    try:
        require_standard_scheme(table)
    except LayoutMismatchError as error:
        log.warning(f"Did not find the standard partition scheme: {error}")
        return ExpandOnly(reason="non-standard partition scheme")

    root_end = table.root_partition.end_sector
    total = table.total_sectors
    required = required_sectors(size_mb)
    if root_end + required >= total:
        raise InsufficientSpaceError(table.device, required, root_end, total)

    root_new_end = total - required - 1
    plan = CreateAndShrink(
        new_partition_start=root_new_end + 1,
        new_partition_end=total - 1,
        root_partition_new_end=root_new_end,
        label=config.new_partition_label,
    )
    validate_plan(plan, table)
    log.info(
        f"Planned {size_mb} MB data partition at sectors "
        f"{plan.new_partition_start}-{plan.new_partition_end}, "
        f"root partition to end at {plan.root_partition_new_end}"
    )
    return plan
