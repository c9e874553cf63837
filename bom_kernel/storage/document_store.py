"""
Document store -- durable, path-addressable storage for part documents.

Responsibility:
    Moves an uploaded temporary file to ``<root>/<document_id><ext>``,
    hashes the stored bytes, resolves stored paths for download and
    removes files when a batch is compensated.

Architecture position:
    Kernel > Storage -- filesystem I/O boundary.  Used only by
    DocumentService; the database never holds file bytes.

Invariants enforced:
    - Deterministic path: the stored name is the document id plus a
      sanitized extension (``^\\.[a-z0-9]+$``, at most 10 characters
      including the dot, lower-cased) or no extension at all.
    - Containment: ``resolve()`` refuses any path that does not resolve
      inside the store root.
    - sha256 and size are computed from the stored file, never from the
      upload.

Failure modes:
    - OSError from the filesystem propagates; DocumentService wraps it.
    - ValueError from ``resolve()`` for a path outside the root.
"""

from __future__ import annotations

import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from uuid import UUID

from bom_kernel.logging_config import get_logger
from bom_kernel.utils.hashing import hash_file

logger = get_logger("storage.documents")

DEFAULT_EXTENSION_MAX_LENGTH = 10

_SAFE_EXTENSION = re.compile(r"^\.[a-z0-9]+$")


def safe_extension(original_name: str, max_length: int = DEFAULT_EXTENSION_MAX_LENGTH) -> str:
    """
    Extension to keep from a client file name, or "".

    >>> safe_extension("Plan.PDF")
    '.pdf'
    >>> safe_extension("archive.tar.gz")
    '.gz'
    >>> safe_extension("evil.p h p")
    ''
    """
    ext = os.path.splitext(os.path.basename(original_name or ""))[1].lower()
    if len(ext) > max_length or not _SAFE_EXTENSION.match(ext):
        return ""
    return ext


@dataclass(frozen=True)
class StoredFile:
    stored_name: str
    storage_path: str
    size_bytes: int
    sha256: str


class DocumentStore(Protocol):
    """What DocumentService needs from a store."""

    def store(self, document_id: UUID, source_path: str, original_name: str) -> StoredFile:
        ...

    def resolve(self, storage_path: str) -> Path:
        ...

    def discard(self, storage_path: str) -> None:
        ...


class LocalDocumentStore:
    """
    Store rooted at a local directory.

    The root is created on first use.
    """

    def __init__(self, root: str | Path, extension_max_length: int = DEFAULT_EXTENSION_MAX_LENGTH):
        self.root = Path(root)
        self.extension_max_length = extension_max_length

    def path_for(self, document_id: UUID, original_name: str) -> Path:
        return self.root / f"{document_id}{safe_extension(original_name, self.extension_max_length)}"

    def _move(self, source: Path, destination: Path) -> None:
        """Rename, or copy then unlink when the rename crosses devices."""
        try:
            os.rename(source, destination)
        except OSError:
            shutil.copyfile(source, destination)
            os.unlink(source)
            logger.debug(
                "document_moved_by_copy",
                extra={"destination": str(destination)},
            )

    def store(self, document_id: UUID, source_path: str, original_name: str) -> StoredFile:
        """
        Move an uploaded file into the store and hash it.

        When the move or the verification fails, whatever reached the
        destination is removed before the error propagates.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        destination = self.path_for(document_id, original_name)
        try:
            self._move(Path(source_path), destination)
            sha256, hashed_bytes = hash_file(destination)
            on_disk = destination.stat().st_size
            if hashed_bytes != on_disk:
                raise OSError(
                    f"Stored size mismatch for {destination.name}: "
                    f"hashed {hashed_bytes} bytes, file has {on_disk}"
                )
        except OSError:
            self.discard(str(destination))
            raise
        return StoredFile(
            stored_name=destination.name,
            storage_path=str(destination),
            size_bytes=on_disk,
            sha256=sha256,
        )

    def resolve(self, storage_path: str) -> Path:
        """
        Absolute path of a stored file.

        Raises:
            ValueError: the path resolves outside the store root.
            FileNotFoundError: the file is gone.
        """
        root = self.root.resolve()
        candidate = Path(storage_path)
        if not candidate.is_absolute():
            candidate = root / candidate
        resolved = candidate.resolve()
        if resolved != root and root not in resolved.parents:
            raise ValueError(f"Path escapes document root: {storage_path}")
        if not resolved.is_file():
            raise FileNotFoundError(str(resolved))
        return resolved

    def discard(self, storage_path: str) -> None:
        """Best-effort delete used to compensate a failed batch."""
        try:
            Path(storage_path).unlink(missing_ok=True)
        except OSError:
            logger.warning(
                "document_discard_failed",
                extra={"storage_path": storage_path},
                exc_info=True,
            )
