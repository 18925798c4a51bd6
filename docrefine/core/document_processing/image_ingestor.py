"""Image ingestor.

Scanned pages uploaded as images are passed through unchanged as a single
image part; there is no text layer to extract.
"""

from typing import Any

from docrefine.core.document_processing.base import (
    BaseIngestor,
    DocumentType,
    IngestionResult,
    IngestorRegistry,
    PageProgress,
    SIZE_LIMITS,
    SourceDocument,
)
from docrefine.core.errors import IngestionError
from docrefine.core.logging import get_logger
from docrefine.core.schemas import AnalysisMode, MultimodalPart

logger = get_logger(__name__)

# Supported image MIME types
IMAGE_MIME_TYPES = [
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/webp",
]

EXTENSION_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


class ImageIngestor(BaseIngestor):
    """Single-image document ingestor."""

    name = "image"

    def can_handle(self, mime_type: str, file_extension: str) -> bool:
        """Check if this ingestor can handle the file."""
        return (
            mime_type in IMAGE_MIME_TYPES
            or file_extension.lower() in EXTENSION_MIME_TYPES
        )

    def get_size_limit(self) -> int:
        """Get size limit for images."""
        return SIZE_LIMITS.get(DocumentType.IMAGE, 10 * 1024 * 1024)

    async def ingest(
        self,
        document: SourceDocument,
        mode: AnalysisMode,
        on_page: PageProgress | None = None,
        **kwargs: Any,
    ) -> IngestionResult:
        valid, error_msg = self.validate_size(document.data)
        if not valid:
            raise IngestionError(error_msg, ingestor=self.name, recoverable=False)
        if not document.data:
            raise IngestionError(f"{document.filename} is empty", ingestor=self.name)

        mime_type = document.mime_type
        if mime_type not in IMAGE_MIME_TYPES:
            mime_type = EXTENSION_MIME_TYPES.get(document.extension, "image/jpeg")
        if mime_type == "image/jpg":
            mime_type = "image/jpeg"

        if on_page:
            on_page(1, 1)

        logger.info(f"Ingested image {document.filename} ({mime_type}, {document.size_bytes} bytes)")

        return IngestionResult(
            parts=[MultimodalPart.image_part(document.data, mime_type=mime_type)],
            page_count=1,
            metadata={"filename": document.filename, "mime_type": mime_type},
        )


# Register ingestor
IngestorRegistry.register(ImageIngestor())
