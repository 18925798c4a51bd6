"""Base ingestor interface and registry for document ingestion.

Defines the contract every ingestor implements, plus a registry for
automatic ingestor selection based on file type. Ingestors turn a source
document into the ordered multimodal parts a provider consumes.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from docrefine.core.errors import IngestionError
from docrefine.core.schemas import AnalysisMode, MultimodalPart


class DocumentType(Enum):
    """Supported document types."""
    PDF = "pdf"
    IMAGE = "image"


# MIME type to DocumentType mapping
MIME_TYPE_MAP: dict[str, DocumentType] = {
    "application/pdf": DocumentType.PDF,
    "image/png": DocumentType.IMAGE,
    "image/jpeg": DocumentType.IMAGE,
    "image/jpg": DocumentType.IMAGE,
    "image/webp": DocumentType.IMAGE,
}

# File extension to DocumentType mapping
EXTENSION_MAP: dict[str, DocumentType] = {
    ".pdf": DocumentType.PDF,
    ".png": DocumentType.IMAGE,
    ".jpg": DocumentType.IMAGE,
    ".jpeg": DocumentType.IMAGE,
    ".webp": DocumentType.IMAGE,
}

# Size limits in bytes
SIZE_LIMITS: dict[DocumentType, int] = {
    DocumentType.PDF: 50 * 1024 * 1024,    # 50 MB
    DocumentType.IMAGE: 10 * 1024 * 1024,  # 10 MB
}

# Called with (current, total) while pages are processed
PageProgress = Callable[[int, int], None]


@dataclass(frozen=True)
class SourceDocument:
    """A document selected for conversion."""

    filename: str
    data: bytes
    mime_type: str | None = None

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass
class IngestionResult:
    """Result of document ingestion.

    Ordered multimodal parts (page images, or the raw document) plus the
    extracted page text when it was requested.
    """

    parts: list[MultimodalPart]
    """Ordered non-text payload: page images or a single raw document."""

    page_count: int
    """Total number of pages/images ingested."""

    extracted_text: str | None = None
    """Concatenated ``--- Page i ---`` text blocks, if text extraction ran."""

    errors: list[str] = field(default_factory=list)
    """Non-fatal problems (truncated page range, unreadable page, ...)."""

    metadata: dict[str, Any] = field(default_factory=dict)


class BaseIngestor(ABC):
    """Base class for document ingestors.

    Each document type (PDF, image) has its own ingestor implementation
    that inherits from this base class.
    """

    name = "base"

    @abstractmethod
    def can_handle(self, mime_type: str, file_extension: str) -> bool:
        """Check if this ingestor can handle the given file type.

        Args:
            mime_type: MIME type of the file (e.g., 'application/pdf')
            file_extension: File extension including dot (e.g., '.pdf')

        Returns:
            True if this ingestor can handle the file type
        """
        pass

    @abstractmethod
    async def ingest(
        self,
        document: SourceDocument,
        mode: AnalysisMode,
        on_page: PageProgress | None = None,
        **kwargs: Any,
    ) -> IngestionResult:
        """Turn a document into multimodal parts.

        Args:
            document: Source document bytes and name
            mode: Which payload shape the provider should receive
            on_page: Optional page progress callback
            **kwargs: Ingestor-specific options

        Returns:
            IngestionResult with parts and extracted text

        Raises:
            IngestionError: If ingestion fails
        """
        pass

    def get_size_limit(self) -> int:
        """Get size limit in bytes for this ingestor's document type."""
        return 10 * 1024 * 1024

    def validate_size(self, file_bytes: bytes) -> tuple[bool, str]:
        """Validate file size against limit.

        Returns:
            Tuple of (is_valid, error_message)
        """
        limit = self.get_size_limit()
        size = len(file_bytes)

        if size > limit:
            limit_mb = limit / (1024 * 1024)
            size_mb = size / (1024 * 1024)
            return False, f"File size ({size_mb:.1f} MB) exceeds limit ({limit_mb:.1f} MB)"

        return True, ""


class IngestorRegistry:
    """Registry for document ingestors.

    Automatically selects the appropriate ingestor based on file type.
    """

    _ingestors: list[BaseIngestor] = []

    @classmethod
    def register(cls, ingestor: BaseIngestor) -> None:
        cls._ingestors.append(ingestor)

    @classmethod
    def get_ingestor(
        cls,
        mime_type: str = None,
        file_extension: str = None,
    ) -> Optional[BaseIngestor]:
        """Get appropriate ingestor for file type, or None if no match."""
        for ingestor in cls._ingestors:
            if ingestor.can_handle(mime_type or "", file_extension or ""):
                return ingestor
        return None


def detect_document_type(
    mime_type: str = None,
    file_extension: str = None,
) -> Optional[DocumentType]:
    """Detect document type from MIME type or extension."""
    if mime_type and mime_type in MIME_TYPE_MAP:
        return MIME_TYPE_MAP[mime_type]
    if file_extension and file_extension.lower() in EXTENSION_MAP:
        return EXTENSION_MAP[file_extension.lower()]
    return None


class DocumentIngestor:
    """Collaborator the orchestrator calls once per analyze/refine command.

    Holds no cached output, so repeated calls for the same document re-run
    ingestion from the original bytes.
    """

    async def ingest(
        self,
        document: SourceDocument,
        mode: AnalysisMode,
        on_page: PageProgress | None = None,
    ) -> IngestionResult:
        ingestor = IngestorRegistry.get_ingestor(document.mime_type, document.extension)
        if ingestor is None:
            raise IngestionError(
                f"Unsupported document type: {document.filename}",
                ingestor=None,
                recoverable=False,
            )
        return await ingestor.ingest(document, mode, on_page=on_page)
