"""Provisioning run orchestration.

A run resolves the configuration once and threads it through an ordered
list of phases. Every phase yields step results that are collected into a
:class:`ProvisioningReport`; failed steps are logged and the run carries on,
so that one broken step does not leave the board half configured.

Disk phase control flow:

    legacy image? ──yes──> ExpandOnly
         │no
    inspect layout ──unreadable──> disk phase aborted
         │
    plan layout ──mismatch / no space──> ExpandOnly
         │CreateAndShrink
    apply plan (create, type, reread, format, fstab)
         │
    extend root partition and filesystem
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from rpi_first_boot.config.settings import CONFIG_PATH, load_configuration
from rpi_first_boot.domain.models import (
    CreateAndShrink,
    ExpandOnly,
    LayoutPlan,
    PhaseResult,
    ProvisioningReport,
    ResolvedConfiguration,
    StepResult,
)
from rpi_first_boot.logging import LoggerFactory, operation_context
from rpi_first_boot.services.card_info import (
    DEBIAN_VERSION_PATH,
    SYS_BLOCK_PATH,
    debian_major_version,
    write_card_file,
)
from rpi_first_boot.services.system_config import SSHD_CONFIG_PATH, configure_system
from rpi_first_boot.services.user_profile import DEFAULT_HOME, setup_user_profile
from rpi_first_boot.storage.command_runners import record_step
from rpi_first_boot.storage.exceptions import (
    InsufficientSpaceError,
    LayoutUnreadableError,
    PlanningError,
)
from rpi_first_boot.storage.extender import extend_filesystem
from rpi_first_boot.storage.layout import DEFAULT_DEVICE, inspect_layout, normalize_device_name
from rpi_first_boot.storage.mount import FSTAB_PATH, MOUNTS_PATH
from rpi_first_boot.storage.mutator import apply_plan
from rpi_first_boot.storage.planner import plan_layout


# Partitioning commands are unreliable on Raspbian Stretch (9) and earlier
MIN_PARTITIONING_DEBIAN_RELEASE = 10

log = LoggerFactory.for_system()


@dataclass
class ProvisioningOptions:
    """Paths and switches for one run; defaults match a stock Pi OS image."""

    device: str = DEFAULT_DEVICE
    config_path: Path = CONFIG_PATH
    boot_dir: Path = Path("/boot")
    fstab_path: Path = FSTAB_PATH
    home: Path = DEFAULT_HOME
    sshd_config: Path = SSHD_CONFIG_PATH
    mounts_path: Path = MOUNTS_PATH
    sys_block: Path = SYS_BLOCK_PATH
    debian_version_path: Path = DEBIAN_VERSION_PATH
    skip_disk: bool = False
    skip_system: bool = False
    remove_config: bool = False
    hostname: Optional[str] = None

    def __post_init__(self) -> None:
        self.device = normalize_device_name(self.device)


def is_legacy_image(debian_version_path: Path = DEBIAN_VERSION_PATH) -> bool:
    major = debian_major_version(debian_version_path)
    return major is not None and major < MIN_PARTITIONING_DEBIAN_RELEASE


def decide_plan(
    config: ResolvedConfiguration,
    options: ProvisioningOptions,
    layout_phase: PhaseResult,
) -> Optional[LayoutPlan]:
    """Inspect and plan; None means the disk phase must stop here."""
    if is_legacy_image(options.debian_version_path):
        layout_phase.add(
            record_step(StepResult.skipped("Inspect partition table", "legacy image"))
        )
        return ExpandOnly(reason="partitioning unsupported before Debian 10")

    try:
        table = inspect_layout(
            options.device,
            sys_block=options.sys_block,
            mounts_path=options.mounts_path,
        )
    except LayoutUnreadableError as error:
        layout_phase.add(record_step(StepResult.failure("Inspect partition table", str(error))))
        return None
    layout_phase.add(record_step(StepResult.success("Inspect partition table")))

    try:
        plan = plan_layout(table, config)
    except InsufficientSpaceError as error:
        log.warning(f"{error}; expanding the root partition instead")
        plan = ExpandOnly(reason="not enough free space for the data partition")
    except PlanningError as error:
        log.error(f"{error}; expanding the root partition instead")
        plan = ExpandOnly(reason="inconsistent partition plan")

    if isinstance(plan, CreateAndShrink):
        detail = (
            f"data partition {plan.new_partition_start}-{plan.new_partition_end}, "
            f"root to {plan.root_partition_new_end}"
        )
    else:
        detail = f"expand only: {plan.reason}"
    layout_phase.add(record_step(StepResult.success("Plan partition layout", detail)))
    return plan


def run_disk_management(
    config: ResolvedConfiguration,
    options: ProvisioningOptions,
    report: ProvisioningReport,
) -> None:
    with operation_context("disk", device=options.device):
        layout_phase = report.add_phase(PhaseResult("disk layout"))
        plan = decide_plan(config, options, layout_phase)
        if plan is None:
            log.error("Disk layout unreadable, skipping disk management")
            return
        report.plan = plan

        if isinstance(plan, CreateAndShrink):
            report.add_phase(apply_plan(plan, options.device, fstab_path=options.fstab_path))
        report.add_phase(extend_filesystem(plan, options.device))


def remove_config_file(path: Path) -> StepResult:
    name = f"Remove configuration file {path}"
    if not path.exists():
        return record_step(StepResult.skipped(name, "not present"))
    try:
        path.unlink()
    except OSError as error:
        return record_step(StepResult.failure(name, str(error)))
    return record_step(StepResult.success(name))


def run_provisioning(options: ProvisioningOptions) -> ProvisioningReport:
    """Run every provisioning phase in order and return the collected report."""
    report = ProvisioningReport()
    config = load_configuration(options.config_path)
    log.debug(f"Resolved configuration: {config!r}")

    if options.skip_disk:
        log.info("Skipping disk management")
    else:
        run_disk_management(config, options, report)

    if options.skip_system:
        log.info("Skipping system configuration")
    else:
        with operation_context("profile"):
            report.add_phase(setup_user_profile(options.home))
        with operation_context("system"):
            report.add_phase(
                configure_system(
                    config, hostname=options.hostname, sshd_config=options.sshd_config
                )
            )

    with operation_context("card"):
        card_phase = report.add_phase(PhaseResult("boot partition records"))
        card_phase.add(
            write_card_file(
                config,
                options.device,
                options.boot_dir,
                sys_block=options.sys_block,
                debian_version_path=options.debian_version_path,
            )
        )
        if options.remove_config:
            card_phase.add(remove_config_file(options.config_path))

    for line in report.summary_lines():
        log.info(line)
    if report.ok:
        log.success("Provisioning finished without failures")
    else:
        log.warning(f"Provisioning finished with {len(report.failed_steps)} failed step(s)")
    return report
