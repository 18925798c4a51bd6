"""Document ingestion package: turns uploaded documents into multimodal prompt parts.

Usage:
    from docrefine.core.document_processing import (
        DocumentIngestor,
        SourceDocument,
        IngestionResult,
    )
"""

from docrefine.core.document_processing.base import (
    BaseIngestor,
    DocumentIngestor,
    DocumentType,
    IngestionResult,
    IngestorRegistry,
    SourceDocument,
    detect_document_type,
)

# Import ingestors to register them
from docrefine.core.document_processing import pdf_ingestor  # noqa: F401
from docrefine.core.document_processing import image_ingestor  # noqa: F401

__all__ = [
    "BaseIngestor",
    "DocumentIngestor",
    "DocumentType",
    "IngestionResult",
    "IngestorRegistry",
    "SourceDocument",
    "detect_document_type",
]
