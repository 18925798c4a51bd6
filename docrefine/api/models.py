"""API endpoint for the provider's model catalog."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from docrefine.api.deps import get_orchestrator, http_error
from docrefine.core.errors import DocRefineError
from docrefine.core.llm_usage import format_price_per_million
from docrefine.core.schemas import Stage
from docrefine.services.workflow_orchestrator import WorkflowOrchestrator

router = APIRouter()


@router.get("/models")
async def list_models(
    stage: Stage = Query(default=Stage.ANALYZE),
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """List selectable models with display prices and warnings for ``stage``."""
    try:
        models = await orchestrator.list_models()
    except DocRefineError as e:
        raise http_error(e) from e

    return {
        "models": [
            {
                **model.model_dump(),
                "supports_images": model.supports_images,
                "is_free": model.is_free,
                "prompt_price": format_price_per_million(model.pricing.prompt),
                "completion_price": format_price_per_million(model.pricing.completion),
            }
            for model in models
        ],
        "selected": orchestrator.prompt_settings.stage(stage).model,
        "warnings": orchestrator.model_warnings(stage),
    }
