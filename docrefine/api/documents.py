"""API endpoints for the source document and the refinement workflow."""

from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from docrefine.api.deps import get_orchestrator, http_error, unwrap
from docrefine.core.document_processing import IngestorRegistry, SourceDocument
from docrefine.core.errors import DocRefineError
from docrefine.core.logging import get_logger
from docrefine.core.schemas import (
    ClarificationQuestion,
    NodeArtifacts,
    NodeSummary,
    ResultNode,
    UsageInfo,
)
from docrefine.services.workflow_orchestrator import CommandResult, WorkflowOrchestrator

logger = get_logger(__name__)

router = APIRouter()


class NodeResponse(BaseModel):
    id: str
    content: str
    usage: UsageInfo | None = None
    progress: list[str] = []


class GeneratedQuestionsResponse(BaseModel):
    node_id: str
    questions: list[ClarificationQuestion]
    progress: list[str] = []


class AnswerRequest(BaseModel):
    answer: str


class RefineRequest(BaseModel):
    answered_questions: list[ClarificationQuestion] | None = None
    instructions: str = ""


class DiffRequest(BaseModel):
    baseline_node_id: str | None = None


class DiffResponse(BaseModel):
    node_id: str
    diff: str
    progress: list[str] = []


def _progress(result: CommandResult) -> list[str]:
    return [event.label for event in result.progress]


def _node_response(result: CommandResult) -> NodeResponse:
    node: ResultNode = unwrap(result)
    return NodeResponse(id=node.id, content=node.content, usage=node.usage, progress=_progress(result))


@router.post("/document")
async def upload_document(
    file: UploadFile = File(...),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Select a new source document. Resets the history.

    Raises:
        HTTPException 400: If the file is empty, unsupported or too large
    """
    file_bytes = await file.read()
    if not file_bytes:
        raise HTTPException(status_code=400, detail="Empty file")

    document = SourceDocument(
        filename=file.filename or "document.pdf",
        data=file_bytes,
        mime_type=file.content_type,
    )
    ingestor = IngestorRegistry.get_ingestor(document.mime_type, document.extension)
    if ingestor is None:
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {document.filename}")
    is_valid, error_msg = ingestor.validate_size(file_bytes)
    if not is_valid:
        raise HTTPException(status_code=400, detail=error_msg)

    orchestrator.select_document(document)
    logger.info(f"Uploaded {document.filename} ({document.size_bytes} bytes)")
    return orchestrator.status()


@router.delete("/document")
async def clear_document(
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    orchestrator.select_document(None)
    return orchestrator.status()


@router.get("/status")
async def get_status(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
    return orchestrator.status()


@router.post("/analyze")
async def analyze(orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)) -> NodeResponse:
    """Convert the selected document into the baseline Markdown version."""
    return _node_response(await orchestrator.analyze())


@router.get("/history")
async def get_history(
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> list[NodeSummary]:
    return orchestrator.history_snapshot()


@router.get("/nodes/{node_id}")
async def get_node(
    node_id: str, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
) -> ResultNode:
    try:
        return orchestrator.get_node(node_id)
    except DocRefineError as e:
        raise http_error(e) from e


@router.get("/nodes/{node_id}/artifacts")
async def get_node_artifacts(
    node_id: str, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
) -> NodeArtifacts:
    try:
        return orchestrator.node_artifacts(node_id)
    except DocRefineError as e:
        raise http_error(e) from e


@router.get("/nodes/{node_id}/export")
async def export_node(
    node_id: str, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
) -> Response:
    """Download a version as a Markdown file named after its first heading."""
    try:
        filename, content = orchestrator.export_node(node_id)
    except DocRefineError as e:
        raise http_error(e) from e
    return Response(
        content=content,
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/nodes/{node_id}/questions")
async def generate_questions(
    node_id: str, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
) -> GeneratedQuestionsResponse:
    result = await orchestrator.generate_questions(node_id)
    return GeneratedQuestionsResponse(
        node_id=node_id, questions=unwrap(result), progress=_progress(result)
    )


@router.patch("/nodes/{node_id}/questions/{question_id}")
async def answer_question(
    node_id: str,
    question_id: str,
    request: AnswerRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> ClarificationQuestion:
    try:
        return orchestrator.answer_question(node_id, question_id, request.answer)
    except DocRefineError as e:
        raise http_error(e) from e


@router.post("/nodes/{node_id}/refine")
async def refine(
    node_id: str,
    request: RefineRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> NodeResponse:
    """Create a new version from ``node_id``; later versions are discarded."""
    result = await orchestrator.refine(node_id, request.answered_questions, request.instructions)
    return _node_response(result)


@router.post("/nodes/{node_id}/diff")
async def generate_diff(
    node_id: str,
    request: DiffRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> DiffResponse:
    result = await orchestrator.generate_diff(node_id, request.baseline_node_id)
    return DiffResponse(node_id=node_id, diff=unwrap(result), progress=_progress(result))
