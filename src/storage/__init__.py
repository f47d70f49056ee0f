"""Signed-document storage backends."""

from .document_store import (
    DocumentStore,
    FilesystemDocumentStore,
    S3DocumentStore,
    build_document_store,
)

__all__ = [
    "DocumentStore",
    "FilesystemDocumentStore",
    "S3DocumentStore",
    "build_document_store",
]
