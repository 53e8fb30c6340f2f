"""Domain model for first-boot provisioning.

Type-safe records passed between the configuration resolver, the layout
inspector, the planner and the mutation phases. Everything here is immutable
except the result collections, which are filled step by step during a run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Union


SECTORS_PER_MB = 2048  # 1 MiB at 512-byte sectors

BOOT_PARTITION_NUMBER = 1
ROOT_PARTITION_NUMBER = 2
DATA_PARTITION_NUMBER = 3


def partition_device_name(device: str, number: int) -> str:
    """Build the partition node name for a base device token.

    Devices whose name ends in a digit use a "p" separator
    (mmcblk0 -> mmcblk0p3), others are suffixed directly (sda -> sda3).
    """
    name = device[len("/dev/"):] if device.startswith("/dev/") else device
    suffix = "p" if name[-1:].isdigit() else ""
    return f"{name}{suffix}{number}"


# ==============================================================================
# Configuration Domain
# ==============================================================================


@dataclass(frozen=True)
class ResolvedConfiguration:
    """Operator parameters for one provisioning run.

    Built once by the resolver and handed explicitly to every phase.
    """

    new_partition_size_mb: int = 100
    new_partition_label: str = "logs"
    new_locale: str = "en_GB.UTF-8"
    new_timezone: str = "Europe/London"
    new_hostname_tag: str = ""
    new_ssh_setting: int = 0  # 0 = enable, 1 = disable
    new_wifi_country: str = "GB"
    new_wifi_ssid: str = "Our network"
    new_wifi_password: str = field(default="Secret", repr=False)
    new_boot_behaviour: str = "B4"
    sd_card_number: str = "XX"
    extras: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def ssh_enabled(self) -> bool:
        return self.new_ssh_setting == 0


# ==============================================================================
# Partition Table Domain
# ==============================================================================


@dataclass(frozen=True)
class PartitionEntry:
    """One row of the partition table, in sectors."""

    number: int
    start_sector: int
    end_sector: int
    filesystem: str = ""

    @property
    def size_sectors(self) -> int:
        return self.end_sector - self.start_sector + 1


@dataclass(frozen=True)
class PartitionTable:
    """Snapshot of a device's partition table and root mount.

    Stale as soon as any mutation runs; plans must be computed from it
    before the first write.
    """

    device: str  # e.g., "mmcblk0"
    partitions: tuple[PartitionEntry, ...]
    total_sectors: int
    root_partition_number: Optional[int] = None

    @property
    def device_path(self) -> str:
        return f"/dev/{self.device}"

    @property
    def partition_numbers(self) -> list[int]:
        return [entry.number for entry in self.partitions]

    @property
    def last_partition(self) -> Optional[PartitionEntry]:
        return self.partitions[-1] if self.partitions else None

    @property
    def root_partition(self) -> Optional[PartitionEntry]:
        for entry in self.partitions:
            if entry.number == self.root_partition_number:
                return entry
        return None

    @property
    def matches_standard_scheme(self) -> bool:
        """True for exactly boot (1) and root (2) with / mounted from 2."""
        return (
            self.partition_numbers == [BOOT_PARTITION_NUMBER, ROOT_PARTITION_NUMBER]
            and self.root_partition_number == ROOT_PARTITION_NUMBER
        )


# ==============================================================================
# Layout Plan Domain
# ==============================================================================


@dataclass(frozen=True)
class ExpandOnly:
    """Grow the root partition to the end of the device, nothing else."""

    reason: str = ""


@dataclass(frozen=True)
class CreateAndShrink:
    """Carve a data partition from the device end, grow root up to it."""

    new_partition_start: int
    new_partition_end: int
    root_partition_new_end: int
    label: str = "logs"

    @property
    def new_partition_sectors(self) -> int:
        return self.new_partition_end - self.new_partition_start + 1


LayoutPlan = Union[ExpandOnly, CreateAndShrink]


# ==============================================================================
# Step Results
# ==============================================================================


class StepStatus(Enum):
    """Outcome of a single provisioning step."""

    OK = "OK"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class StepResult:
    """Outcome of one named step (usually one external command)."""

    name: str
    status: StepStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.FAILED

    @classmethod
    def success(cls, name: str, detail: str = "") -> StepResult:
        return cls(name=name, status=StepStatus.OK, detail=detail)

    @classmethod
    def failure(cls, name: str, detail: str = "") -> StepResult:
        return cls(name=name, status=StepStatus.FAILED, detail=detail)

    @classmethod
    def skipped(cls, name: str, detail: str = "") -> StepResult:
        return cls(name=name, status=StepStatus.SKIPPED, detail=detail)


@dataclass
class PhaseResult:
    """Ordered step results of one provisioning phase."""

    phase: str
    steps: list[StepResult] = field(default_factory=list)

    def add(self, result: StepResult) -> StepResult:
        self.steps.append(result)
        return result

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failed_steps(self) -> list[StepResult]:
        return [step for step in self.steps if not step.ok]


@dataclass
class MutationResult(PhaseResult):
    phase: str = "partition mutation"


@dataclass
class ExtensionResult(PhaseResult):
    phase: str = "filesystem extension"


@dataclass
class ProvisioningReport:
    """Aggregated outcome of a whole provisioning run."""

    plan: Optional[LayoutPlan] = None
    phases: list[PhaseResult] = field(default_factory=list)

    def add_phase(self, phase: PhaseResult) -> PhaseResult:
        self.phases.append(phase)
        return phase

    @property
    def steps(self) -> list[StepResult]:
        return [step for phase in self.phases for step in phase.steps]

    @property
    def ok(self) -> bool:
        return all(phase.ok for phase in self.phases)

    @property
    def failed_steps(self) -> list[StepResult]:
        return [step for step in self.steps if not step.ok]

    def summary_lines(self) -> list[str]:
        """Human-readable summary, one line per step."""
        lines = []
        for phase in self.phases:
            lines.append(phase.phase.upper())
            for step in phase.steps:
                line = f"  {step.name}: {step.status.value}"
                if step.detail:
                    line += f" ({step.detail})"
                lines.append(line)
        return lines
