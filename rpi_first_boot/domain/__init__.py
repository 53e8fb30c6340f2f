"""Domain models for first-boot provisioning."""

from __future__ import annotations

from .models import (
    CreateAndShrink,
    ExpandOnly,
    ExtensionResult,
    LayoutPlan,
    MutationResult,
    PartitionEntry,
    PartitionTable,
    PhaseResult,
    ProvisioningReport,
    ResolvedConfiguration,
    StepResult,
    StepStatus,
)


__all__ = [
    "CreateAndShrink",
    "ExpandOnly",
    "ExtensionResult",
    "LayoutPlan",
    "MutationResult",
    "PartitionEntry",
    "PartitionTable",
    "PhaseResult",
    "ProvisioningReport",
    "ResolvedConfiguration",
    "StepResult",
    "StepStatus",
]
