"""Filesystem storage for part documents."""

from bom_kernel.storage.document_store import (
    DocumentStore,
    LocalDocumentStore,
    StoredFile,
    safe_extension,
)

__all__ = [
    "DocumentStore",
    "LocalDocumentStore",
    "StoredFile",
    "safe_extension",
]
