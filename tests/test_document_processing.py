"""Tests for PDF and image ingestion."""

import fitz
import pytest

from docrefine.core.document_processing import DocumentIngestor, SourceDocument, detect_document_type
from docrefine.core.document_processing.base import DocumentType
from docrefine.core.document_processing.pdf_ingestor import PDFIngestor
from docrefine.core.errors import IngestionError
from docrefine.core.schemas import AnalysisMode, PartKind


def _pdf_bytes(*page_texts: str) -> bytes:
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def pdf():
    return SourceDocument(
        filename="design.pdf",
        data=_pdf_bytes("First   page", "Second page"),
        mime_type="application/pdf",
    )


class TestPDFIngestor:
    @pytest.mark.asyncio
    async def test_image_only(self, pdf):
        progress = []

        result = await DocumentIngestor().ingest(
            pdf, AnalysisMode.IMAGE_ONLY, on_page=lambda i, n: progress.append((i, n))
        )

        assert result.page_count == 2
        assert [p.kind for p in result.parts] == [PartKind.IMAGE, PartKind.IMAGE]
        assert all(p.mime_type == "image/jpeg" and p.data for p in result.parts)
        assert result.extracted_text is None
        assert progress == [(1, 2), (2, 2)]

    @pytest.mark.asyncio
    async def test_image_with_text(self, pdf):
        result = await DocumentIngestor().ingest(pdf, AnalysisMode.IMAGE_WITH_TEXT)

        assert result.extracted_text == (
            "--- Page 1 ---\nFirst page\n\n--- Page 2 ---\nSecond page\n\n"
        )
        assert len(result.parts) == 2

    @pytest.mark.asyncio
    async def test_raw_document(self, pdf):
        progress = []

        result = await DocumentIngestor().ingest(
            pdf, AnalysisMode.RAW_DOCUMENT, on_page=lambda i, n: progress.append(i)
        )

        [part] = result.parts
        assert part.kind == PartKind.RAW_DOCUMENT
        assert part.data == pdf.data
        assert part.filename == "design.pdf"
        assert progress == []

    @pytest.mark.asyncio
    async def test_page_limit_truncates(self):
        document = SourceDocument(filename="long.pdf", data=_pdf_bytes("a", "b", "c"))

        result = await PDFIngestor().ingest(document, AnalysisMode.IMAGE_ONLY, max_pages=2)

        assert result.page_count == 2
        assert len(result.parts) == 2
        assert "truncating to 2" in result.errors[0]

    @pytest.mark.asyncio
    async def test_invalid_pdf(self):
        document = SourceDocument(filename="broken.pdf", data=b"not a pdf at all")

        with pytest.raises(IngestionError) as exc_info:
            await DocumentIngestor().ingest(document, AnalysisMode.IMAGE_ONLY)

        assert exc_info.value.ingestor == "pdf"

    @pytest.mark.asyncio
    async def test_reingest_uses_original_bytes(self, pdf):
        ingestor = DocumentIngestor()

        first = await ingestor.ingest(pdf, AnalysisMode.IMAGE_ONLY)
        second = await ingestor.ingest(pdf, AnalysisMode.IMAGE_ONLY)

        assert [p.data for p in first.parts] == [p.data for p in second.parts]


class TestImageIngestor:
    @pytest.mark.asyncio
    async def test_single_image_part(self):
        document = SourceDocument(filename="scan.PNG", data=b"\x89PNG fake")
        progress = []

        result = await DocumentIngestor().ingest(
            document, AnalysisMode.IMAGE_WITH_TEXT, on_page=lambda i, n: progress.append((i, n))
        )

        [part] = result.parts
        assert part.mime_type == "image/png"
        assert result.extracted_text is None
        assert progress == [(1, 1)]

    @pytest.mark.asyncio
    async def test_empty_image(self):
        document = SourceDocument(filename="scan.jpg", data=b"")

        with pytest.raises(IngestionError):
            await DocumentIngestor().ingest(document, AnalysisMode.IMAGE_ONLY)


class TestDetection:
    @pytest.mark.asyncio
    async def test_unsupported_type(self):
        document = SourceDocument(filename="notes.docx", data=b"PK")

        with pytest.raises(IngestionError, match="Unsupported document type"):
            await DocumentIngestor().ingest(document, AnalysisMode.IMAGE_ONLY)

    @pytest.mark.parametrize(
        "mime_type,extension,expected",
        [
            ("application/pdf", None, DocumentType.PDF),
            (None, ".JPEG", DocumentType.IMAGE),
            ("text/plain", ".txt", None),
        ],
    )
    def test_detect_document_type(self, mime_type, extension, expected):
        assert detect_document_type(mime_type, extension) == expected
