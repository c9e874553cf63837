"""Document attachment, soft removal and download."""

import hashlib
from uuid import uuid4

import pytest

from bom_kernel.domain.commands import UploadedFile
from bom_kernel.exceptions import (
    DocumentNotFoundError,
    DocumentStorageError,
    PartNotFoundError,
)
from bom_kernel.models.audit_event import AuditAction
from bom_kernel.models.document import PartDocument
from bom_kernel.services.part_collection import PART_ENTITY
from bom_kernel.services.part_service import PartService


class _UnavailableRecorder:
    def record(self, actor, action, entity_type, entity_id, details=None):
        raise RuntimeError("audit store unavailable")


class TestAttach:
    def test_attach_stores_and_hashes(self, create_part, part_service, test_actor, make_upload, document_store):
        part = create_part()
        content = b"%PDF-1.4 plan de fabrication"

        (doc,) = part_service.attach_documents(
            part.id, [make_upload("Plan.PDF", content, label="Plan")], test_actor,
        )

        assert doc.stored_name == f"{doc.id}.pdf"
        assert doc.size_bytes == len(content)
        assert doc.sha256 == hashlib.sha256(content).hexdigest()
        assert doc.label == "Plan"
        assert doc.uploaded_by_id == test_actor.actor_id
        stored = document_store.root / doc.stored_name
        assert stored.read_bytes() == content

    def test_unsafe_extension_dropped(self, create_part, part_service, test_actor, make_upload):
        part = create_part()
        (doc,) = part_service.attach_documents(
            part.id, [make_upload("evil.p h p")], test_actor,
        )
        assert doc.stored_name == str(doc.id)

    def test_batch_audited_once(self, create_part, part_service, test_actor, make_upload, auditor_service):
        part = create_part()
        docs = part_service.attach_documents(
            part.id, [make_upload("a.pdf"), make_upload("b.step", b"ISO-10303")], test_actor,
        )

        trace = auditor_service.get_trace(PART_ENTITY, part.id)
        assert trace.actions == (
            AuditAction.PART_CREATED.value,
            AuditAction.DOCUMENTS_ATTACHED.value,
        )
        payload = trace.entries[-1].payload
        assert [d["id"] for d in payload["documents"]] == [str(d.id) for d in docs]
        assert part_service.get_part(part.id).updated_at > part.updated_at

    def test_empty_batch_is_noop(self, create_part, part_service, test_actor, auditor_service):
        part = create_part()
        assert part_service.attach_documents(part.id, [], test_actor) == ()
        assert part_service.get_part(part.id).updated_at == part.updated_at
        assert len(auditor_service.get_trace(PART_ENTITY, part.id).entries) == 1

    def test_size_mismatch_discards_whole_batch(
        self, create_part, part_service, test_actor, make_upload, document_store,
    ):
        part = create_part()
        good = make_upload("ok.pdf")
        bad = make_upload("bad.pdf", b"12345", size_bytes=99)

        with pytest.raises(DocumentStorageError) as exc_info:
            part_service.attach_documents(part.id, [good, bad], test_actor)

        assert exc_info.value.file_name == "bad.pdf"
        assert exc_info.value.code == "DOCUMENT_STORAGE_ERROR"
        assert list(document_store.root.iterdir()) == []
        assert part_service.list_documents(part.id) == ()

    def test_failure_after_storing_discards_files(
        self, create_part, session, deterministic_clock, test_actor, make_upload, document_store,
    ):
        part = create_part()
        service = PartService(
            session, _UnavailableRecorder(), clock=deterministic_clock,
            document_store=document_store, auto_commit=False,
        )

        with pytest.raises(RuntimeError):
            service.attach_documents(part.id, [make_upload("a.pdf"), make_upload("b.dxf")], test_actor)

        assert list(document_store.root.iterdir()) == []

    def test_missing_upload_file_is_storage_error(self, create_part, part_service, test_actor, tmp_path):
        part = create_part()
        ghost = UploadedFile(temp_path=str(tmp_path / "nope.tmp"), original_name="nope.pdf")
        with pytest.raises(DocumentStorageError) as exc_info:
            part_service.attach_documents(part.id, [ghost], test_actor)
        assert exc_info.value.file_name == "nope.pdf"

    def test_deleted_part_rejected(self, create_part, part_service, test_actor, make_upload):
        part = create_part()
        part_service.delete_part(part.id, test_actor)
        with pytest.raises(PartNotFoundError):
            part_service.attach_documents(part.id, [make_upload()], test_actor)


class TestRemoveAndDownload:
    @pytest.fixture
    def attached(self, create_part, part_service, test_actor, make_upload):
        part = create_part()
        (doc,) = part_service.attach_documents(part.id, [make_upload("plan.pdf", b"bytes")], test_actor)
        return part_service.get_part(part.id), doc

    def test_download_resolves_and_audits(self, attached, part_service, test_actor, auditor_service):
        part, doc = attached

        download = part_service.get_document_for_download(part.id, doc.id, test_actor)

        assert download.document.id == doc.id
        assert download.path.read_bytes() == b"bytes"
        trace = auditor_service.get_trace(PART_ENTITY, part.id)
        assert trace.last_action == AuditAction.DOCUMENT_DOWNLOADED.value
        assert trace.entries[-1].payload["document_id"] == str(doc.id)
        # A download is not a modification
        assert part_service.get_part(part.id).updated_at == part.updated_at

    def test_remove_is_soft(self, attached, part_service, test_actor, document_store):
        part, doc = attached

        assert part_service.remove_document(part.id, doc.id, test_actor) is True

        assert part_service.list_documents(part.id) == ()
        assert (document_store.root / doc.stored_name).exists()
        with pytest.raises(DocumentNotFoundError):
            part_service.get_document_for_download(part.id, doc.id, test_actor)
        assert part_service.remove_document(part.id, doc.id, test_actor) is False

    def test_remove_audited(self, attached, part_service, test_actor, auditor_service):
        part, doc = attached
        part_service.remove_document(part.id, doc.id, test_actor)
        assert auditor_service.get_trace(PART_ENTITY, part.id).last_action == (
            AuditAction.DOCUMENT_REMOVED.value
        )

    def test_document_of_another_part(self, attached, create_part, part_service, test_actor):
        _, doc = attached
        other = create_part()
        with pytest.raises(DocumentNotFoundError):
            part_service.get_document_for_download(other.id, doc.id, test_actor)

    def test_unknown_document(self, attached, part_service, test_actor):
        part, _ = attached
        with pytest.raises(DocumentNotFoundError):
            part_service.get_document_for_download(part.id, uuid4(), test_actor)

    def test_path_outside_root_refused(self, attached, part_service, test_actor, session, tmp_path):
        part, doc = attached
        outside = tmp_path / "outside.pdf"
        outside.write_bytes(b"secret")
        row = session.get(PartDocument, doc.id)
        row.storage_path = str(outside)
        session.flush()

        with pytest.raises(DocumentStorageError):
            part_service.get_document_for_download(part.id, doc.id, test_actor)

    def test_file_gone_from_disk(self, attached, part_service, test_actor, document_store):
        part, doc = attached
        (document_store.root / doc.stored_name).unlink()
        with pytest.raises(DocumentStorageError):
            part_service.get_document_for_download(part.id, doc.id, test_actor)


def test_service_without_store(session, auditor_service, deterministic_clock, create_part, test_actor):
    part = create_part()
    service = PartService(session, auditor_service, clock=deterministic_clock)
    with pytest.raises(RuntimeError):
        service.list_documents(part.id)
