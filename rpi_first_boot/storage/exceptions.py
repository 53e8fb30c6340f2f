"""Custom exceptions for disk layout operations.

This module defines a hierarchy of exceptions for the disk subsystem so that
the orchestrator can tell a layout it must not touch apart from a plan that
simply does not fit.

Exception Hierarchy:
    ProvisioningError (base)
        ├── LayoutError
        │   ├── LayoutUnreadableError
        │   └── LayoutMismatchError
        ├── PlanningError
        │   └── InsufficientSpaceError
        └── CommandFailedError

Usage:
    from rpi_first_boot.storage.exceptions import InsufficientSpaceError

    if root_end + required >= total_sectors:
        raise InsufficientSpaceError(device, required, root_end, total_sectors)
"""

from typing import Optional, Sequence


class ProvisioningError(Exception):
    """Base exception for all provisioning operations."""



class LayoutError(ProvisioningError):
    """Base exception for partition layout problems."""



class LayoutUnreadableError(LayoutError):
    """Partition table, device size or mount table could not be read."""

    def __init__(self, device_name: str, reason: str):
        self.device_name = device_name
        self.reason = reason
        super().__init__(f"Cannot read layout of {device_name}: {reason}")


class LayoutMismatchError(LayoutError):
    """Device does not carry the expected boot + root partition scheme."""

    def __init__(self, device_name: str, partition_numbers: Sequence[int], root_number: Optional[int]):
        self.device_name = device_name
        self.partition_numbers = list(partition_numbers)
        self.root_number = root_number
        numbers = ", ".join(str(number) for number in self.partition_numbers) or "none"
        super().__init__(
            f"Unexpected partition scheme on {device_name}: "
            f"partitions [{numbers}], root partition {root_number}"
        )


class PlanningError(ProvisioningError):
    """Computed partition boundaries violate the layout invariants."""

    def __init__(self, message: str, device: Optional[str] = None):
        self.device = device
        super().__init__(message)


class InsufficientSpaceError(PlanningError):
    """Not enough unallocated space after the root partition."""

    def __init__(
        self,
        device_name: str,
        required_sectors: int,
        root_end_sector: int,
        total_sectors: int,
    ):
        self.required_sectors = required_sectors
        self.root_end_sector = root_end_sector
        self.total_sectors = total_sectors
        free_sectors = max(total_sectors - root_end_sector - 1, 0)
        super().__init__(
            f"Not enough free space on {device_name}: need {required_sectors} sectors "
            f"after sector {root_end_sector}, only {free_sectors} of "
            f"{total_sectors} available",
            device=device_name,
        )


class CommandFailedError(ProvisioningError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, output: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        message = f"Command failed ({' '.join(self.command)}) rc={returncode}"
        if output:
            message += f": {output}"
        super().__init__(message)
