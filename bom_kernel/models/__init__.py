"""ORM models for the BOM kernel."""

from bom_kernel.models.achat import PartAchat
from bom_kernel.models.affaire_link import AffairePartLink, AffaireRole
from bom_kernel.models.audit_event import AuditAction, AuditEvent
from bom_kernel.models.bom import BomLine
from bom_kernel.models.document import PartDocument
from bom_kernel.models.family import PartFamily
from bom_kernel.models.history import PartHistoryEntry
from bom_kernel.models.operation import PartOperation
from bom_kernel.models.part import Part

__all__ = [
    "AffairePartLink",
    "AffaireRole",
    "AuditAction",
    "AuditEvent",
    "BomLine",
    "Part",
    "PartAchat",
    "PartDocument",
    "PartFamily",
    "PartHistoryEntry",
    "PartOperation",
]
