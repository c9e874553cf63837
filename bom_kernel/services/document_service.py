"""
DocumentService -- files attached to a part.

Responsibility:
    Moves uploaded files into the document store, records their metadata,
    soft-removes them and serves them for download.  Every attach, removal
    and download leaves an audit record.

Architecture position:
    Kernel > Services -- imperative shell.  The only caller of the
    DocumentStore.  Called by PartService.

Invariants enforced:
    - A metadata row is flushed only after its file sits in the store and
      has been hashed; sha256 and size_bytes describe the stored bytes.
    - Batch atomicity: when one file of a batch fails, the files already
      moved for that batch are discarded and nothing is flushed for the
      batch (the facade rolls the session back).
    - Downloads only resolve paths inside the store root.

Failure modes:
    - PartNotFoundError: part missing or soft-deleted.
    - DocumentNotFoundError: document missing, removed or owned by
      another part (download only).
    - DocumentStorageError: filesystem failure, size mismatch, or a stored
      path outside the store root.
"""

from __future__ import annotations

from typing import Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bom_kernel.domain.clock import Clock
from bom_kernel.domain.commands import ActorContext, UploadedFile
from bom_kernel.domain.dtos import DocumentInfo, DownloadableDocument
from bom_kernel.exceptions import DocumentNotFoundError, DocumentStorageError
from bom_kernel.logging_config import get_logger
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.models.document import PartDocument
from bom_kernel.models.part import Part
from bom_kernel.selectors.part_selector import PartSelector
from bom_kernel.services.auditor_service import AuditRecorder
from bom_kernel.services.base import AuditedService
from bom_kernel.services.part_collection import PART_ENTITY
from bom_kernel.services.part_repository import PartRepository
from bom_kernel.storage.document_store import DocumentStore

logger = get_logger("services.documents")


class DocumentService(AuditedService[PartDocument]):
    def __init__(
        self,
        session: Session,
        audit: AuditRecorder | None,
        store: DocumentStore,
        clock: Clock | None = None,
    ):
        super().__init__(session, audit, clock)
        self._store = store
        self._parts = PartRepository(session, self._clock)
        self._selector = PartSelector(session)

    def _store_one(
        self,
        part: Part,
        upload: UploadedFile,
        actor: ActorContext,
        moved: list[str],
    ) -> PartDocument:
        document_id = uuid4()
        stored = self._store.store(document_id, upload.temp_path, upload.original_name)
        moved.append(stored.storage_path)

        if upload.size_bytes is not None and upload.size_bytes != stored.size_bytes:
            raise DocumentStorageError(
                part.id,
                f"size mismatch: declared {upload.size_bytes}, stored {stored.size_bytes}",
                upload.original_name,
            )

        row = PartDocument(
            id=document_id,
            part_id=part.id,
            original_name=upload.original_name,
            stored_name=stored.stored_name,
            storage_path=stored.storage_path,
            mime_type=upload.mime_type,
            size_bytes=stored.size_bytes,
            sha256=stored.sha256,
            label=upload.label,
            uploaded_by_id=actor.actor_id,
            created_at=self._clock.now(),
        )
        self.session.add(row)
        self.session.flush()
        return row

    def discard_files(self, storage_paths: Sequence[str]) -> None:
        """Remove stored files whose rows will not be committed."""
        for path in storage_paths:
            self._store.discard(path)

    def _store_batch(
        self,
        part: Part,
        files: Sequence[UploadedFile],
        actor: ActorContext,
        moved: list[str],
    ) -> list[PartDocument]:
        rows: list[PartDocument] = []
        current: UploadedFile | None = None
        try:
            for current in files:
                rows.append(self._store_one(part, current, actor, moved))
        except (OSError, SQLAlchemyError) as exc:
            raise DocumentStorageError(
                part.id,
                str(exc),
                current.original_name if current else None,
            ) from exc
        return rows

    def attach(
        self,
        part_id: UUID,
        files: Sequence[UploadedFile],
        actor: ActorContext,
    ) -> tuple[DocumentInfo, ...]:
        """
        Store a batch of uploaded files on a part.

        An empty batch is a no-op.  The returned infos carry the stored
        paths so a caller whose commit fails can discard them.  Any failure
        inside this call discards the files already moved for the batch.

        Raises:
            PartNotFoundError: part missing or soft-deleted.
            DocumentStorageError: any file of the batch could not be stored.
        """
        part = self._parts.lock_live(part_id)
        if not files:
            return ()

        moved: list[str] = []
        try:
            rows = self._store_batch(part, files, actor, moved)
            self._parts.touch(part, actor.actor_id)
            self.session.flush()
            self._audit.record(
                actor,
                AuditAction.DOCUMENTS_ATTACHED,
                PART_ENTITY,
                part.id,
                {
                    "documents": [
                        {
                            "id": row.id,
                            "original_name": row.original_name,
                            "size_bytes": row.size_bytes,
                            "sha256": row.sha256,
                        }
                        for row in rows
                    ],
                },
            )
        except Exception:
            self.discard_files(moved)
            logger.error(
                "document_attach_failed",
                extra={"part_id": str(part_id), "discarded": len(moved)},
            )
            raise

        logger.info(
            "documents_attached",
            extra={"part_id": str(part_id), "count": len(rows)},
        )
        return tuple(DocumentInfo.from_model(row) for row in rows)

    def _live_document(self, part_id: UUID, document_id: UUID) -> PartDocument | None:
        return self.session.execute(
            select(PartDocument).where(
                PartDocument.id == document_id,
                PartDocument.part_id == part_id,
                PartDocument.removed_at.is_(None),
            )
        ).scalar_one_or_none()

    def remove(self, part_id: UUID, document_id: UUID, actor: ActorContext) -> bool:
        """Soft-remove a document.  The stored file is kept."""
        part = self._parts.lock_live(part_id)
        row = self._live_document(part_id, document_id)
        if row is None:
            return False

        row.removed_at = self._clock.now()
        row.removed_by_id = actor.actor_id
        self._parts.touch(part, actor.actor_id)
        self.session.flush()
        self._audit.record(
            actor,
            AuditAction.DOCUMENT_REMOVED,
            PART_ENTITY,
            part.id,
            {"document_id": document_id, "original_name": row.original_name},
        )
        logger.info(
            "document_removed",
            extra={"part_id": str(part_id), "document_id": str(document_id)},
        )
        return True

    def get_for_download(
        self,
        part_id: UUID,
        document_id: UUID,
        actor: ActorContext,
    ) -> DownloadableDocument:
        self._parts.get_live(part_id)
        row = self._live_document(part_id, document_id)
        if row is None:
            raise DocumentNotFoundError(part_id, document_id)

        try:
            path = self._store.resolve(row.storage_path)
        except (ValueError, OSError) as exc:
            logger.error(
                "document_resolve_failed",
                extra={
                    "part_id": str(part_id),
                    "document_id": str(document_id),
                    "reason": str(exc),
                },
            )
            raise DocumentStorageError(part_id, str(exc), row.original_name) from exc

        self._audit.record(
            actor,
            AuditAction.DOCUMENT_DOWNLOADED,
            PART_ENTITY,
            part_id,
            {"document_id": document_id, "original_name": row.original_name},
        )
        logger.info(
            "document_downloaded",
            extra={"part_id": str(part_id), "document_id": str(document_id)},
        )
        return DownloadableDocument(document=DocumentInfo.from_model(row), path=path)

    def list_documents(self, part_id: UUID) -> tuple[DocumentInfo, ...]:
        self._parts.get_live(part_id)
        return self._selector.list_documents(part_id)
