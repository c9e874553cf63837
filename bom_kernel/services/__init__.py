"""Services for the BOM kernel (write side)."""

from bom_kernel.services.achat_service import AchatService
from bom_kernel.services.affaire_link_service import AffaireLinkService
from bom_kernel.services.auditor_service import AuditorService, AuditRecorder
from bom_kernel.services.document_service import DocumentService
from bom_kernel.services.family_service import FamilyService
from bom_kernel.services.lifecycle_service import LifecycleService, TransitionResult
from bom_kernel.services.nomenclature_service import NomenclatureService
from bom_kernel.services.operation_service import OperationService
from bom_kernel.services.part_repository import PartRepository
from bom_kernel.services.part_service import PartService
from bom_kernel.services.sequence_service import SequenceService

__all__ = [
    "AchatService",
    "AffaireLinkService",
    "AuditRecorder",
    "AuditorService",
    "DocumentService",
    "FamilyService",
    "LifecycleService",
    "NomenclatureService",
    "OperationService",
    "PartRepository",
    "PartService",
    "SequenceService",
    "TransitionResult",
]
