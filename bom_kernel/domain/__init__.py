"""
Pure domain layer.

Commands, DTOs, costing, lifecycle rules and ordering helpers with NO
dependencies on the ORM, the database or the filesystem.  Every object
here is immutable and deterministic; time comes from an injected Clock.
"""

from bom_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from bom_kernel.domain.commands import (
    UNSET,
    AchatInput,
    AchatPatch,
    ActorContext,
    BomLineInput,
    BomLinePatch,
    FamilyCreate,
    OperationInput,
    OperationPatch,
    PartCreate,
    PartListQuery,
    PartPatch,
    UploadedFile,
)
from bom_kernel.domain.costing import (
    AchatTotals,
    OperationTotals,
    PartCostSummary,
    compute_achat_totals,
    compute_operation_totals,
    round_half_away,
    summarize_part_costs,
)
from bom_kernel.domain.dtos import (
    ALL_INCLUDES,
    DEFAULT_INCLUDES,
    AchatInfo,
    AffaireLinkInfo,
    BomLineInfo,
    DocumentInfo,
    DownloadableDocument,
    FamilyInfo,
    HistoryEntryInfo,
    OperationInfo,
    Page,
    PartInclude,
    PartInfo,
    PartListItem,
    PartStats,
)
from bom_kernel.domain.lifecycle import PartStatus, TransitionOutcome, evaluate_transition
from bom_kernel.domain.settings import DEFAULT_SETTINGS, KernelSettings

__all__ = [
    "UNSET",
    "ALL_INCLUDES",
    "DEFAULT_INCLUDES",
    "DEFAULT_SETTINGS",
    "AchatInfo",
    "AchatInput",
    "AchatPatch",
    "AchatTotals",
    "ActorContext",
    "AffaireLinkInfo",
    "BomLineInfo",
    "BomLineInput",
    "BomLinePatch",
    "Clock",
    "DeterministicClock",
    "DocumentInfo",
    "DownloadableDocument",
    "FamilyCreate",
    "FamilyInfo",
    "HistoryEntryInfo",
    "KernelSettings",
    "OperationInfo",
    "OperationInput",
    "OperationPatch",
    "OperationTotals",
    "Page",
    "PartCostSummary",
    "PartCreate",
    "PartInclude",
    "PartInfo",
    "PartListItem",
    "PartListQuery",
    "PartPatch",
    "PartStats",
    "PartStatus",
    "SystemClock",
    "TransitionOutcome",
    "UploadedFile",
    "compute_achat_totals",
    "compute_operation_totals",
    "evaluate_transition",
    "round_half_away",
    "summarize_part_costs",
]
