"""
PartService -- transaction-owning facade over the part sub-services.

Responsibility:
    The single entry point for callers (HTTP layer, scripts, tests).  It
    wires the sub-services around one Session and one audit recorder, runs
    every mutating operation inside ``_transaction()`` and owns the
    part-level operations (create, update, delete, duplicate) that span
    several collections.

Architecture position:
    Kernel > Services -- imperative shell, top of the write path.  The
    only class in the kernel that calls ``session.commit()`` or
    ``session.rollback()``.

Invariants enforced:
    - Atomicity: with auto_commit, a mutation commits on success and rolls
      back on any exception, so a failed create / duplicate / attach
      leaves no partial rows.
    - One audit record per mutating operation, written in the same
      transaction.
    - Reserved fields (statut, collections) cannot change through
      ``update_part``.
    - Duplicated parts start in DRAFT and get the first free code among
      ``<code>-COPIE``, ``<code>-COPIE-2`` ... bounded by
      ``duplicate_max_attempts`` and by the length of the code column.
    - Stored files of an attach whose commit fails are discarded.

Failure modes:
    - Every BomKernelError raised by a sub-service propagates unchanged
      after rollback.
    - RuntimeError when a document operation is called without a
      configured DocumentStore.

Audit relevance:
    PART_CREATED, PART_UPDATED, PART_DELETED and PART_DUPLICATED are
    recorded here; collection, lifecycle, document, affaire and family
    actions are recorded by their sub-services.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import fields
from typing import Iterable, Iterator, Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from bom_kernel.db.types import to_decimal
from bom_kernel.domain.clock import Clock, SystemClock
from bom_kernel.domain.commands import (
    ACHAT_DERIVED_FIELDS,
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
from bom_kernel.domain.dtos import (
    AchatInfo,
    AffaireLinkInfo,
    BomLineInfo,
    DocumentInfo,
    DownloadableDocument,
    FamilyInfo,
    OperationInfo,
    Page,
    PartInclude,
    PartInfo,
    PartListItem,
    PartStats,
)
from bom_kernel.domain.lifecycle import PartStatus, en_fabrication_for
from bom_kernel.domain.settings import DEFAULT_SETTINGS, KernelSettings
from bom_kernel.exceptions import (
    BomKernelError,
    DuplicateCodeExhaustedError,
    FamilyNotFoundError,
    PartNotFoundError,
    ReservedFieldError,
)
from bom_kernel.logging_config import LogContext, get_logger
from bom_kernel.models.achat import PartAchat
from bom_kernel.models.affaire_link import AffaireRole
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.models.operation import PartOperation
from bom_kernel.models.part import CODE_PIECE_MAX_LENGTH, Part
from bom_kernel.selectors.part_selector import PartSelector
from bom_kernel.services.achat_service import AchatService
from bom_kernel.services.affaire_link_service import AffaireLinkService
from bom_kernel.services.auditor_service import AuditRecorder
from bom_kernel.services.document_service import DocumentService
from bom_kernel.services.family_service import FamilyService
from bom_kernel.services.lifecycle_service import LifecycleService, TransitionResult
from bom_kernel.services.nomenclature_service import NomenclatureService
from bom_kernel.services.operation_service import OperationService
from bom_kernel.services.part_collection import PART_ENTITY
from bom_kernel.services.part_repository import PartRepository
from bom_kernel.storage.document_store import DocumentStore

logger = get_logger("services.parts")

COPY_SUFFIX = "-COPIE"

# Columns carried over by duplicate()
_COPIED_FIELDS = (
    "famille_id",
    "name_piece",
    "designation",
    "designation_2",
    "prix_unitaire",
    "cycle",
    "cycle_fabrication",
    "client_id",
    "code_client",
    "client_name",
    "ensemble",
)

_OPERATION_INPUT_FIELDS = tuple(
    f.name for f in fields(OperationInput)
    if f.name not in ("temps_total", "cout_mo", "phase")
)

_ACHAT_INPUT_FIELDS = tuple(
    f.name for f in fields(AchatInput)
    if f.name not in ACHAT_DERIVED_FIELDS and f.name != "phase"
)


def copy_code_candidates(code_piece: str, max_attempts: int) -> Iterator[str]:
    """
    Candidate codes for a copy of ``code_piece``, in the order tried.

    >>> list(copy_code_candidates("P-100", 3))
    ['P-100-COPIE', 'P-100-COPIE-2', 'P-100-COPIE-3']
    """
    base = f"{code_piece}{COPY_SUFFIX}"
    for attempt in range(1, max_attempts + 1):
        yield base if attempt == 1 else f"{base}-{attempt}"


def _operation_input(row: PartOperation) -> OperationInput:
    return OperationInput(**{name: getattr(row, name) for name in _OPERATION_INPUT_FIELDS})


def _achat_input(row: PartAchat) -> AchatInput:
    return AchatInput(**{name: getattr(row, name) for name in _ACHAT_INPUT_FIELDS})


def _parse_includes(includes) -> frozenset[PartInclude]:
    if includes is None or isinstance(includes, str):
        return PartInclude.parse(includes)
    return frozenset(PartInclude(i) for i in includes)


class PartService:
    """
    Facade for every part operation.

    Usage:
        auditor = AuditorService(session, clock)
        service = PartService(session, auditor, clock=clock,
                              document_store=LocalDocumentStore(root))
        part = service.create_part(cmd, actor)

    With ``auto_commit=False`` the caller owns commit / rollback, which is
    how the test-suite runs each test inside one outer transaction.
    """

    def __init__(
        self,
        session: Session,
        audit: AuditRecorder,
        clock: Clock | None = None,
        document_store: DocumentStore | None = None,
        settings: KernelSettings | None = None,
        auto_commit: bool = True,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._settings = settings or DEFAULT_SETTINGS
        self._audit = audit
        self._auto_commit = auto_commit

        self._parts = PartRepository(session, self._clock)
        self._selector = PartSelector(session, self._settings)
        self._nomenclature = NomenclatureService(session, audit, self._clock, self._settings)
        self._operations = OperationService(session, audit, self._clock, self._settings)
        self._achats = AchatService(session, audit, self._clock, self._settings)
        self._lifecycle = LifecycleService(session, audit, self._clock)
        self._affaires = AffaireLinkService(session, audit, self._clock)
        self._families = FamilyService(session, audit, self._clock)
        self._documents = (
            DocumentService(session, audit, document_store, self._clock)
            if document_store is not None
            else None
        )

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(
        self,
        operation: str,
        actor: ActorContext | None = None,
        part_id: UUID | None = None,
    ) -> Iterator[None]:
        actor_fields = actor.log_fields() if actor is not None else {}
        with LogContext.bind(
            correlation_id=uuid4(),
            operation=operation,
            part_id=part_id,
            **actor_fields,
        ):
            try:
                yield
                if self._auto_commit:
                    self.session.commit()
            except BomKernelError as exc:
                if self._auto_commit:
                    self.session.rollback()
                logger.warning("part_operation_rejected", extra={"error_code": exc.code})
                raise
            except Exception:
                if self._auto_commit:
                    self.session.rollback()
                logger.error("part_operation_failed", exc_info=True)
                raise

    def _require_documents(self) -> DocumentService:
        if self._documents is None:
            raise RuntimeError("PartService was built without a DocumentStore")
        return self._documents

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_parts(self, query: PartListQuery | None = None) -> Page[PartListItem]:
        return self._selector.list_parts(query or PartListQuery())

    def get_part(
        self,
        part_id: UUID,
        includes: Iterable[PartInclude | str] | str | None = None,
    ) -> PartInfo:
        """
        Hydrated part.  ``includes`` is a comma-separated string, an
        iterable of PartInclude names, or None for the default set.

        Raises:
            PartNotFoundError: part missing or soft-deleted.
        """
        part = self._selector.get_part(part_id, _parse_includes(includes))
        if part is None:
            raise PartNotFoundError(part_id)
        return part

    def stats(self) -> PartStats:
        return self._selector.stats()

    # ------------------------------------------------------------------
    # Part aggregate
    # ------------------------------------------------------------------

    def _require_family(self, family_id: UUID) -> None:
        if not self._selector.family_exists(family_id):
            raise FamilyNotFoundError(family_id)

    def create_part(self, cmd: PartCreate, actor: ActorContext) -> PartInfo:
        """
        Insert a part with its BOM lines, operations and achats.

        Postconditions:
            - One history entry (ancien_statut None -> cmd.statut).
            - One PART_CREATED audit record.

        Raises:
            FamilyNotFoundError, DuplicatePartCodeError, PartNotFoundError
            (unknown BOM child), BomCycleError.
        """
        with self._transaction("create_part", actor):
            self._require_family(cmd.famille_id)
            statut = PartStatus(cmd.statut)
            now = self._clock.now()
            part = Part(
                famille_id=cmd.famille_id,
                name_piece=cmd.name_piece,
                code_piece=cmd.code_piece,
                designation=cmd.designation,
                designation_2=cmd.designation_2,
                prix_unitaire=to_decimal(cmd.prix_unitaire),
                statut=statut.value,
                en_fabrication=en_fabrication_for(statut),
                cycle=cmd.cycle,
                cycle_fabrication=cmd.cycle_fabrication,
                client_id=cmd.client_id,
                code_client=cmd.code_client,
                client_name=cmd.client_name,
                ensemble=cmd.ensemble,
                created_at=now,
                updated_at=now,
                created_by_id=actor.actor_id,
            )
            self._parts.flush_with_code_check(part)

            for line in cmd.bom:
                self._nomenclature.insert_line(part.id, line)
            for op in cmd.operations:
                self._operations.insert_operation(part.id, op)
            for achat in cmd.achats:
                self._achats.insert_achat(part.id, achat)

            self._lifecycle.record_history(part, None, statut, actor, occurred_at=now)
            self._audit.record(
                actor,
                AuditAction.PART_CREATED,
                PART_ENTITY,
                part.id,
                {
                    "code_piece": part.code_piece,
                    "statut": statut.value,
                    "bom_lines": len(cmd.bom),
                    "operations": len(cmd.operations),
                    "achats": len(cmd.achats),
                },
            )
            logger.info(
                "part_created",
                extra={"part_id": str(part.id), "code_piece": part.code_piece},
            )
            part_id = part.id
        return self.get_part(part_id)

    def update_part(self, part_id: UUID, patch: PartPatch, actor: ActorContext) -> PartInfo:
        """
        Change scalar fields of a live part.

        When ``patch.expected_updated_at`` is set the write only happens if
        the stored token still matches.

        Raises:
            ReservedFieldError: statut or a collection was supplied.
            PartNotFoundError, OptimisticLockError, FamilyNotFoundError,
            DuplicatePartCodeError.
        """
        reserved = patch.reserved_fields()
        if reserved:
            logger.warning(
                "part_update_reserved_fields",
                extra={"part_id": str(part_id), "fields": reserved},
            )
            raise ReservedFieldError(reserved)

        changes = patch.scalar_changes()
        with self._transaction("update_part", actor, part_id):
            if not changes:
                self._parts.lock_checked(part_id, patch.expected_updated_at)
            else:
                part = self._parts.lock_for_write(
                    part_id, actor.actor_id, patch.expected_updated_at
                )
                if "famille_id" in changes:
                    self._require_family(changes["famille_id"])
                previous = {name: getattr(part, name) for name in changes}

                for name, value in changes.items():
                    if name == "prix_unitaire":
                        value = to_decimal(value)
                    setattr(part, name, value)
                if "code_piece" in changes and changes["code_piece"] != previous["code_piece"]:
                    self._parts.flush_with_code_check(part)

                self._parts.touch(part, actor.actor_id)
                self.session.flush()
                self._audit.record(
                    actor,
                    AuditAction.PART_UPDATED,
                    PART_ENTITY,
                    part.id,
                    {"changes": changes, "previous": previous},
                )
                logger.info(
                    "part_updated",
                    extra={"part_id": str(part_id), "fields": sorted(changes)},
                )
        return self.get_part(part_id)

    def delete_part(self, part_id: UUID, actor: ActorContext) -> bool:
        """Soft delete.  False when the part is missing or already deleted."""
        with self._transaction("delete_part", actor, part_id):
            part = self._parts.soft_delete(part_id, actor.actor_id)
            if part is None:
                return False
            self._audit.record(
                actor,
                AuditAction.PART_DELETED,
                PART_ENTITY,
                part.id,
                {"code_piece": part.code_piece},
            )
            logger.info(
                "part_deleted",
                extra={"part_id": str(part_id), "code_piece": part.code_piece},
            )
        return True

    def _allocate_copy_code(self, source_code: str) -> str:
        attempts = 0
        for candidate in copy_code_candidates(source_code, self._settings.duplicate_max_attempts):
            if len(candidate) > CODE_PIECE_MAX_LENGTH:
                # Later candidates are only longer
                break
            attempts += 1
            if not self._parts.code_taken(candidate):
                return candidate
        logger.warning(
            "duplicate_code_exhausted",
            extra={"code_piece": source_code, "attempts": attempts},
        )
        raise DuplicateCodeExhaustedError(source_code, attempts, CODE_PIECE_MAX_LENGTH)

    def duplicate_part(self, part_id: UUID, actor: ActorContext) -> PartInfo:
        """
        Copy a part with its BOM lines, operations and achats.

        Documents, affaire links and history are not copied.  The copy is
        DRAFT and its single history entry reads "Dupliquée depuis <code>".

        Raises:
            PartNotFoundError: source missing or soft-deleted.
            DuplicateCodeExhaustedError: no free copy code.
        """
        with self._transaction("duplicate_part", actor, part_id):
            source = self._parts.get_live(part_id)
            code = self._allocate_copy_code(source.code_piece)
            now = self._clock.now()

            copy = Part(
                code_piece=code,
                statut=PartStatus.DRAFT.value,
                en_fabrication=en_fabrication_for(PartStatus.DRAFT),
                created_at=now,
                updated_at=now,
                created_by_id=actor.actor_id,
                **{name: getattr(source, name) for name in _COPIED_FIELDS},
            )
            self._parts.flush_with_code_check(copy)

            lines = self._nomenclature.rows(source.id)
            for line in lines:
                self._nomenclature.insert_line(
                    copy.id,
                    BomLineInput(
                        child_part_id=line.child_part_id,
                        quantite=line.quantite,
                        repere=line.repere,
                        designation=line.designation,
                    ),
                    rang=line.rang,
                    require_live_child=False,
                )
            operations = self._operations.rows(source.id)
            for op in operations:
                self._operations.insert_operation(copy.id, _operation_input(op), phase=op.phase)
            achats = self._achats.rows(source.id)
            for achat in achats:
                self._achats.insert_achat(copy.id, _achat_input(achat), phase=achat.phase)

            self._lifecycle.record_history(
                copy,
                None,
                PartStatus.DRAFT,
                actor,
                commentaire=f"Dupliquée depuis {source.code_piece}",
                occurred_at=now,
            )
            self._audit.record(
                actor,
                AuditAction.PART_DUPLICATED,
                PART_ENTITY,
                copy.id,
                {
                    "source_id": source.id,
                    "source_code_piece": source.code_piece,
                    "code_piece": code,
                    "bom_lines": len(lines),
                    "operations": len(operations),
                    "achats": len(achats),
                },
            )
            logger.info(
                "part_duplicated",
                extra={
                    "source_id": str(source.id),
                    "part_id": str(copy.id),
                    "code_piece": code,
                },
            )
            copy_id = copy.id
        return self.get_part(copy_id)

    # ------------------------------------------------------------------
    # Nomenclature
    # ------------------------------------------------------------------

    def add_bom_line(self, parent_id: UUID, line: BomLineInput, actor: ActorContext) -> BomLineInfo:
        with self._transaction("add_bom_line", actor, parent_id):
            return self._nomenclature.add_line(parent_id, line, actor)

    def update_bom_line(
        self,
        parent_id: UUID,
        line_id: UUID,
        patch: BomLinePatch,
        actor: ActorContext,
    ) -> BomLineInfo:
        with self._transaction("update_bom_line", actor, parent_id):
            return self._nomenclature.update_line(parent_id, line_id, patch, actor)

    def delete_bom_line(self, parent_id: UUID, line_id: UUID, actor: ActorContext) -> bool:
        with self._transaction("delete_bom_line", actor, parent_id):
            return self._nomenclature.delete_line(parent_id, line_id, actor)

    def reorder_bom(
        self,
        parent_id: UUID,
        ordered_ids: Sequence[UUID],
        actor: ActorContext,
    ) -> tuple[BomLineInfo, ...]:
        with self._transaction("reorder_bom", actor, parent_id):
            return self._nomenclature.reorder(parent_id, ordered_ids, actor)

    def list_bom_lines(self, parent_id: UUID) -> tuple[BomLineInfo, ...]:
        return self._nomenclature.list_lines(parent_id)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add_operation(self, part_id: UUID, cmd: OperationInput, actor: ActorContext) -> OperationInfo:
        with self._transaction("add_operation", actor, part_id):
            return self._operations.add_operation(part_id, cmd, actor)

    def update_operation(
        self,
        part_id: UUID,
        operation_id: UUID,
        patch: OperationPatch,
        actor: ActorContext,
    ) -> OperationInfo:
        with self._transaction("update_operation", actor, part_id):
            return self._operations.update_operation(part_id, operation_id, patch, actor)

    def delete_operation(self, part_id: UUID, operation_id: UUID, actor: ActorContext) -> bool:
        with self._transaction("delete_operation", actor, part_id):
            return self._operations.delete_operation(part_id, operation_id, actor)

    def reorder_operations(
        self,
        part_id: UUID,
        ordered_ids: Sequence[UUID],
        actor: ActorContext,
    ) -> tuple[OperationInfo, ...]:
        with self._transaction("reorder_operations", actor, part_id):
            return self._operations.reorder_operations(part_id, ordered_ids, actor)

    # ------------------------------------------------------------------
    # Achats
    # ------------------------------------------------------------------

    def add_achat(self, part_id: UUID, cmd: AchatInput, actor: ActorContext) -> AchatInfo:
        with self._transaction("add_achat", actor, part_id):
            return self._achats.add_achat(part_id, cmd, actor)

    def update_achat(
        self,
        part_id: UUID,
        achat_id: UUID,
        patch: AchatPatch,
        actor: ActorContext,
    ) -> AchatInfo:
        with self._transaction("update_achat", actor, part_id):
            return self._achats.update_achat(part_id, achat_id, patch, actor)

    def delete_achat(self, part_id: UUID, achat_id: UUID, actor: ActorContext) -> bool:
        with self._transaction("delete_achat", actor, part_id):
            return self._achats.delete_achat(part_id, achat_id, actor)

    def reorder_achats(
        self,
        part_id: UUID,
        ordered_ids: Sequence[UUID],
        actor: ActorContext,
    ) -> tuple[AchatInfo, ...]:
        with self._transaction("reorder_achats", actor, part_id):
            return self._achats.reorder_achats(part_id, ordered_ids, actor)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def transition(
        self,
        part_id: UUID,
        to_status: PartStatus | str,
        actor: ActorContext,
        commentaire: str | None = None,
        expected_updated_at=None,
    ) -> TransitionResult:
        with self._transaction("transition", actor, part_id):
            return self._lifecycle.transition(
                part_id,
                PartStatus(to_status),
                actor,
                commentaire=commentaire,
                expected_updated_at=expected_updated_at,
            )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def attach_documents(
        self,
        part_id: UUID,
        files: Sequence[UploadedFile],
        actor: ActorContext,
    ) -> tuple[DocumentInfo, ...]:
        documents = self._require_documents()
        attached: tuple[DocumentInfo, ...] = ()
        try:
            with self._transaction("attach_documents", actor, part_id):
                attached = documents.attach(part_id, files, actor)
        except Exception:
            if attached:
                # Rows were not committed; their files must not linger.
                documents.discard_files([d.storage_path for d in attached])
            raise
        return attached

    def remove_document(self, part_id: UUID, document_id: UUID, actor: ActorContext) -> bool:
        documents = self._require_documents()
        with self._transaction("remove_document", actor, part_id):
            return documents.remove(part_id, document_id, actor)

    def get_document_for_download(
        self,
        part_id: UUID,
        document_id: UUID,
        actor: ActorContext,
    ) -> DownloadableDocument:
        documents = self._require_documents()
        with self._transaction("download_document", actor, part_id):
            return documents.get_for_download(part_id, document_id, actor)

    def list_documents(self, part_id: UUID) -> tuple[DocumentInfo, ...]:
        return self._require_documents().list_documents(part_id)

    # ------------------------------------------------------------------
    # Affaires
    # ------------------------------------------------------------------

    def link_affaire(
        self,
        part_id: UUID,
        affaire_id: int,
        actor: ActorContext,
        role: AffaireRole | str = AffaireRole.LINKED,
    ) -> AffaireLinkInfo:
        with self._transaction("link_affaire", actor, part_id):
            return self._affaires.upsert_link(part_id, affaire_id, actor, role=role)

    def unlink_affaire(self, part_id: UUID, affaire_id: int, actor: ActorContext) -> bool:
        with self._transaction("unlink_affaire", actor, part_id):
            return self._affaires.unlink(part_id, affaire_id, actor)

    def list_affaires(self, part_id: UUID) -> tuple[AffaireLinkInfo, ...]:
        return self._affaires.list_affaires(part_id)

    def list_parts_for_affaire(self, affaire_id: int) -> tuple[AffaireLinkInfo, ...]:
        return self._affaires.list_parts_for_affaire(affaire_id)

    # ------------------------------------------------------------------
    # Families
    # ------------------------------------------------------------------

    def create_family(self, cmd: FamilyCreate, actor: ActorContext) -> FamilyInfo:
        with self._transaction("create_family", actor):
            return self._families.create_family(cmd, actor)

    def list_families(self) -> tuple[FamilyInfo, ...]:
        return self._families.list_families()

    def get_family(self, family_id: UUID) -> FamilyInfo:
        return self._families.get_family(family_id)
