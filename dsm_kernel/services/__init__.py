"""Kernel services - persistence ports and adapters."""

from dsm_kernel.services.document_repository import (
    DocumentRepository,
    SqlDocumentRepository,
)

__all__ = [
    "DocumentRepository",
    "SqlDocumentRepository",
]
