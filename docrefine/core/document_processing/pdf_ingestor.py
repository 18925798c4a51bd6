"""PDF ingestor.

Uses PyMuPDF (fitz) to rasterize pages to JPEG and to extract native page
text for the image-with-text analysis mode.
"""

import asyncio
from typing import Any

from docrefine.core.config import get_settings
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

# Lazy import to avoid loading heavy libraries at module load
fitz = None


def _get_fitz():
    """Lazy load PyMuPDF."""
    global fitz
    if fitz is None:
        try:
            import fitz as _fitz
            fitz = _fitz
        except ImportError:
            raise IngestionError(
                "PyMuPDF (fitz) is required for PDF ingestion. "
                "Install with: pip install pymupdf",
                ingestor="pdf",
            )
    return fitz


class PDFIngestor(BaseIngestor):
    """PDF document ingestor."""

    name = "pdf"

    def can_handle(self, mime_type: str, file_extension: str) -> bool:
        """Check if this ingestor can handle the file."""
        return (
            mime_type == "application/pdf"
            or file_extension.lower() in (".pdf",)
        )

    def get_size_limit(self) -> int:
        """Get size limit for PDFs."""
        return SIZE_LIMITS.get(DocumentType.PDF, 50 * 1024 * 1024)

    async def ingest(
        self,
        document: SourceDocument,
        mode: AnalysisMode,
        on_page: PageProgress | None = None,
        max_pages: int | None = None,
        render_scale: float | None = None,
        **kwargs: Any,
    ) -> IngestionResult:
        """Rasterize and/or extract text from a PDF.

        Args:
            document: Source PDF
            mode: image-only, image-with-text or raw-document
            on_page: Called with (page, total) before each page is rendered
            max_pages: Override max pages (default from settings)
            render_scale: Override zoom factor (default from settings)

        Returns:
            IngestionResult with page images or the raw document

        Raises:
            IngestionError: If the PDF cannot be opened or rendered
        """
        valid, error_msg = self.validate_size(document.data)
        if not valid:
            raise IngestionError(error_msg, ingestor=self.name, recoverable=False)

        settings = get_settings()
        fitz_lib = _get_fitz()
        max_pages = max_pages or settings.MAX_PAGES
        scale = render_scale or settings.RENDER_SCALE

        try:
            doc = fitz_lib.open(stream=document.data, filetype="pdf")
        except Exception as e:
            logger.error(f"Could not open PDF {document.filename}: {e}")
            raise IngestionError(
                f"PDF could not be opened: {e}", ingestor=self.name, recoverable=False
            ) from e

        errors: list[str] = []
        try:
            page_count = len(doc)
            if page_count == 0:
                raise IngestionError("PDF has no pages", ingestor=self.name)

            if mode == AnalysisMode.RAW_DOCUMENT:
                return IngestionResult(
                    parts=[
                        MultimodalPart.document_part(
                            document.data, mime_type="application/pdf", filename=document.filename
                        )
                    ],
                    page_count=page_count,
                    metadata={"filename": document.filename},
                )

            if page_count > max_pages:
                errors.append(f"PDF has {page_count} pages, truncating to {max_pages}")
                page_count = max_pages

            extracted_text = None
            if mode == AnalysisMode.IMAGE_WITH_TEXT:
                blocks = []
                for page_num in range(page_count):
                    text = " ".join(doc[page_num].get_text("text").split())
                    blocks.append(f"--- Page {page_num + 1} ---\n{text}\n\n")
                extracted_text = "".join(blocks)

            matrix = fitz_lib.Matrix(scale, scale)
            parts: list[MultimodalPart] = []
            for page_num in range(page_count):
                if on_page:
                    on_page(page_num + 1, page_count)
                try:
                    pixmap = doc[page_num].get_pixmap(matrix=matrix)
                    parts.append(MultimodalPart.image_part(pixmap.tobytes("jpeg")))
                except Exception as e:
                    logger.warning(f"Failed to render page {page_num + 1} of {document.filename}: {e}")
                    errors.append(f"Page {page_num + 1} could not be rendered: {e}")
                # Yield to the event loop between pages
                await asyncio.sleep(0)
        finally:
            doc.close()

        if not parts:
            raise IngestionError(
                f"No pages of {document.filename} could be rendered",
                ingestor=self.name,
                recoverable=True,
            )

        logger.info(
            f"Ingested PDF {document.filename}: {len(parts)} pages, "
            f"mode={mode.value}, text_chars={len(extracted_text or '')}"
        )

        return IngestionResult(
            parts=parts,
            page_count=page_count,
            extracted_text=extracted_text,
            errors=errors,
            metadata={"filename": document.filename, "render_scale": scale},
        )


# Register ingestor
IngestorRegistry.register(PDFIngestor())
