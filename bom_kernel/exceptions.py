"""
Typed Exception Hierarchy for the BOM Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The kernel sits behind an HTTP layer that must map every failure to a
stable response.  Parsing exception messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        service.add_bom_line(parent_id, line, actor)
    except Exception as e:
        if "cycle" in str(e):  # FRAGILE - message might change
            respond_409()

Example - RIGHT way (what this module enables):
    try:
        service.add_bom_line(parent_id, line, actor)
    except BomCycleError as e:
        respond(status=409, code=e.code, child=str(e.child_id))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from BomKernelError.  The second level is the
error KIND, which is what the HTTP layer maps to a status code:

    BomKernelError (base)
    |
    +-- NotFoundError                       (404)
    |   +-- PartNotFoundError
    |   +-- FamilyNotFoundError
    |   +-- BomLineNotFoundError
    |   +-- OperationNotFoundError
    |   +-- AchatNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- AffaireLinkNotFoundError
    |
    +-- ConflictError                       (409)
    |   +-- DuplicatePartCodeError
    |   +-- DuplicateFamilyCodeError
    |   +-- BomCycleError
    |   +-- OptimisticLockError
    |   +-- InvalidTransitionError
    |   +-- DuplicateCodeExhaustedError
    |
    +-- UnprocessableError                  (422)
    |   +-- ReorderMismatchError
    |
    +-- ForbiddenError                      (403)
    |   +-- ReservedFieldError
    |
    +-- InternalError                       (500)
    |   +-- DocumentStorageError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |   +-- MissingAuditRecorderError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind            | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
NotFound        | PART_NOT_FOUND              | Part missing or soft-deleted
                | FAMILY_NOT_FOUND            | famille_id references no family
                | BOM_LINE_NOT_FOUND          | Line missing or owned by another parent
                | OPERATION_NOT_FOUND         | Operation missing for this part
                | ACHAT_NOT_FOUND             | Achat missing for this part
                | DOCUMENT_NOT_FOUND          | Document missing or removed
                | AFFAIRE_LINK_NOT_FOUND      | No link for (affaire, part)
----------------|-----------------------------|-----------------------------------------
Conflict        | PART_CODE_CONFLICT          | code_piece used by a live part
                | FAMILY_CODE_CONFLICT        | Family code already exists
                | BOM_CYCLE                   | Edge would make the BOM cyclic
                | CONCURRENT_MODIFICATION     | expected_updated_at mismatch
                | INVALID_TRANSITION          | Status change not in the table
                | DUPLICATE_CODE_EXHAUSTED    | No free <code>-COPIE-N found
----------------|-----------------------------|-----------------------------------------
Unprocessable   | REORDER_MISMATCH            | Reorder ids != current sibling ids
----------------|-----------------------------|-----------------------------------------
Forbidden       | RESERVED_FIELD              | statut / collections via update()
----------------|-----------------------------|-----------------------------------------
Internal        | DOCUMENT_STORAGE_ERROR      | Filesystem failure on attach/download
----------------|-----------------------------|-----------------------------------------
Audit           | AUDIT_CHAIN_BROKEN          | Hash chain validation failed
                | MISSING_AUDIT_RECORDER      | Service built without a recorder
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | History / audit row modified
"""

from __future__ import annotations

from typing import Any


class BomKernelError(Exception):
    """
    Base exception for all BOM kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BOM_KERNEL_ERROR"


# Error kinds


class NotFoundError(BomKernelError):
    """Entity does not exist or is soft-deleted."""

    code: str = "NOT_FOUND"


class ConflictError(BomKernelError):
    """Request conflicts with the current stored state."""

    code: str = "CONFLICT"


class UnprocessableError(BomKernelError):
    """Request is well-formed but cannot be applied."""

    code: str = "UNPROCESSABLE"


class ForbiddenError(BomKernelError):
    """Mutation of a field reserved for a dedicated operation."""

    code: str = "FORBIDDEN"


class InternalError(BomKernelError):
    """Storage or filesystem failure during a multi-step write."""

    code: str = "INTERNAL_ERROR"


# Not found


class PartNotFoundError(NotFoundError):
    """Part not found (or soft-deleted)."""

    code: str = "PART_NOT_FOUND"

    def __init__(self, part_id: Any):
        self.part_id = str(part_id)
        super().__init__(f"Part not found: {part_id}")


class FamilyNotFoundError(NotFoundError):
    """Part family not found."""

    code: str = "FAMILY_NOT_FOUND"

    def __init__(self, family_id: Any):
        self.family_id = str(family_id)
        super().__init__(f"Part family not found: {family_id}")


class _ChildNotFoundError(NotFoundError):
    """Row of a part's child collection not found."""

    entity_label: str = "row"

    def __init__(self, part_id: Any, row_id: Any):
        self.part_id = str(part_id)
        self.row_id = str(row_id)
        super().__init__(
            f"{self.entity_label} {row_id} not found on part {part_id}"
        )


class BomLineNotFoundError(_ChildNotFoundError):
    code: str = "BOM_LINE_NOT_FOUND"
    entity_label = "BOM line"


class OperationNotFoundError(_ChildNotFoundError):
    code: str = "OPERATION_NOT_FOUND"
    entity_label = "Operation"


class AchatNotFoundError(_ChildNotFoundError):
    code: str = "ACHAT_NOT_FOUND"
    entity_label = "Achat"


class DocumentNotFoundError(_ChildNotFoundError):
    code: str = "DOCUMENT_NOT_FOUND"
    entity_label = "Document"


class AffaireLinkNotFoundError(NotFoundError):
    """No link between this part and this affaire."""

    code: str = "AFFAIRE_LINK_NOT_FOUND"

    def __init__(self, part_id: Any, affaire_id: int):
        self.part_id = str(part_id)
        self.affaire_id = affaire_id
        super().__init__(
            f"Part {part_id} is not linked to affaire {affaire_id}"
        )


# Conflict


class DuplicatePartCodeError(ConflictError):
    """
    code_piece is already used by a non-deleted part.

    Soft-deleted parts release their code: the uniqueness rule only
    covers live rows.
    """

    code: str = "PART_CODE_CONFLICT"

    def __init__(self, code_piece: str):
        self.code_piece = code_piece
        super().__init__(f"Part code already in use: {code_piece}")


class DuplicateFamilyCodeError(ConflictError):
    """Part family code already exists."""

    code: str = "FAMILY_CODE_CONFLICT"

    def __init__(self, family_code: str):
        self.family_code = family_code
        super().__init__(f"Part family code already in use: {family_code}")


class BomCycleError(ConflictError):
    """
    Adding this BOM edge would introduce a cycle in the nomenclature.

    A part may not contain itself, directly or through any chain of
    sub-assemblies.  ``path`` lists the part ids from the child back to
    the parent when the cycle is transitive.
    """

    code: str = "BOM_CYCLE"

    def __init__(self, parent_id: Any, child_id: Any, path: list[str] | None = None):
        self.parent_id = str(parent_id)
        self.child_id = str(child_id)
        self.path = path or [self.child_id, self.parent_id]
        path_str = " -> ".join(self.path)
        super().__init__(
            f"BOM cycle: part {parent_id} cannot contain {child_id} ({path_str})"
        )


class OptimisticLockError(ConflictError):
    """Concurrent modification: stored updated_at differs from the expected one."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: Any, expected_updated_at: Any = None):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.expected_updated_at = expected_updated_at
        super().__init__(
            f"Concurrent modification on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class InvalidTransitionError(ConflictError):
    """Status change is not permitted by the lifecycle table."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, part_id: Any, from_status: str, to_status: str):
        self.part_id = str(part_id)
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid transition for part {part_id}: {from_status} -> {to_status}"
        )


class DuplicateCodeExhaustedError(ConflictError):
    """
    No free ``<code>-COPIE[-N]`` code within the configured attempt bound,
    or the next candidate would not fit in ``max_length`` characters.
    """

    code: str = "DUPLICATE_CODE_EXHAUSTED"

    def __init__(self, source_code: str, attempts: int, max_length: int):
        self.source_code = source_code
        self.attempts = attempts
        self.max_length = max_length
        super().__init__(
            f"Could not allocate a copy code for {source_code} "
            f"after {attempts} attempts (codes hold at most {max_length} characters)"
        )


# Unprocessable


class ReorderMismatchError(UnprocessableError):
    """
    Reorder payload is not exactly the current set of sibling ids.

    Missing, extra and repeated ids are all rejected; nothing is renumbered.
    """

    code: str = "REORDER_MISMATCH"

    def __init__(
        self,
        collection: str,
        part_id: Any,
        missing: list[str],
        unexpected: list[str],
        duplicated: list[str] | None = None,
    ):
        self.collection = collection
        self.part_id = str(part_id)
        self.missing = missing
        self.unexpected = unexpected
        self.duplicated = duplicated or []
        super().__init__(
            f"Reorder of {collection} on part {part_id} does not match the "
            f"current set (missing={missing}, unexpected={unexpected}, "
            f"duplicated={self.duplicated})"
        )


# Forbidden


class ReservedFieldError(ForbiddenError):
    """Field can only be changed through its dedicated operation."""

    code: str = "RESERVED_FIELD"

    def __init__(self, fields: list[str]):
        self.fields = sorted(fields)
        super().__init__(
            f"Fields cannot be changed through update: {', '.join(self.fields)}"
        )


# Internal


class DocumentStorageError(InternalError):
    """Filesystem failure while storing or resolving a document."""

    code: str = "DOCUMENT_STORAGE_ERROR"

    def __init__(self, part_id: Any, reason: str, file_name: str | None = None):
        self.part_id = str(part_id)
        self.reason = reason
        self.file_name = file_name
        target = f" ({file_name})" if file_name else ""
        super().__init__(f"Document storage failed for part {part_id}{target}: {reason}")


# Audit


class AuditError(BomKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


class MissingAuditRecorderError(AuditError):
    """A mutating service was constructed without an audit recorder."""

    code: str = "MISSING_AUDIT_RECORDER"

    def __init__(self, service_name: str):
        self.service_name = service_name
        super().__init__(f"{service_name} requires an audit recorder")


# Immutability


class ImmutabilityError(BomKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Part history entries and audit events are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
