"""API endpoints for stage prompts, presets, provider and preferences."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError

from docrefine.api.deps import get_orchestrator, http_error
from docrefine.core.errors import DocRefineError, SettingsImportError
from docrefine.core.logging import get_logger
from docrefine.core.presets import PromptPreset, StageSettings
from docrefine.core.schemas import AnalysisMode, ProviderKind, Stage
from docrefine.services.workflow_orchestrator import WorkflowOrchestrator

logger = get_logger(__name__)

router = APIRouter()


class StageUpdateRequest(BaseModel):
    persona_prompt: str | None = None
    user_prompt: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)


class ModelRequest(BaseModel):
    model: str = Field(..., min_length=1)


class PresetRequest(BaseModel):
    name: str


class ProviderRequest(BaseModel):
    provider: ProviderKind
    api_key: str | None = None


class PreferencesRequest(BaseModel):
    analysis_mode: AnalysisMode | None = None
    thinking_enabled: bool | None = None


@router.get("/stages")
async def list_stages(
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, StageSettings]:
    return {stage.value: settings for stage, settings in orchestrator.prompt_settings.stages.items()}


@router.get("/stages/{stage}")
async def get_stage(
    stage: Stage, orchestrator: WorkflowOrchestrator = Depends(get_orchestrator)
) -> StageSettings:
    return orchestrator.prompt_settings.stage(stage)


@router.put("/stages/{stage}")
async def update_stage(
    stage: Stage,
    request: StageUpdateRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> StageSettings:
    try:
        updated = orchestrator.prompt_settings.update_stage(
            stage,
            persona_prompt=request.persona_prompt,
            user_prompt=request.user_prompt,
            temperature=request.temperature,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    orchestrator.save_prompt_settings()
    return updated


@router.put("/stages/{stage}/model")
async def set_stage_model(
    stage: Stage,
    request: ModelRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    orchestrator.set_stage_model(stage, request.model)
    return {
        "stage": stage.value,
        "model": request.model,
        "warnings": orchestrator.model_warnings(stage),
    }


@router.post("/stages/{stage}/presets")
async def save_preset(
    stage: Stage,
    request: PresetRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> PromptPreset:
    preset = orchestrator.prompt_settings.save_preset(stage, request.name)
    if preset is None:
        raise HTTPException(status_code=400, detail="Preset name must not be blank")
    orchestrator.save_prompt_settings()
    return preset


@router.post("/stages/{stage}/presets/{preset_id}/load")
async def load_preset(
    stage: Stage,
    preset_id: str,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> StageSettings:
    updated = orchestrator.prompt_settings.load_preset(stage, preset_id)
    orchestrator.save_prompt_settings()
    return updated


@router.delete("/stages/{stage}/presets/{preset_id}")
async def delete_preset(
    stage: Stage,
    preset_id: str,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> StageSettings:
    updated = orchestrator.prompt_settings.delete_preset(stage, preset_id)
    orchestrator.save_prompt_settings()
    return updated


@router.get("/export")
async def export_settings(
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return orchestrator.prompt_settings.export_settings()


@router.post("/import")
async def import_settings(
    data: dict[str, Any],
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, StageSettings]:
    """Replace all stage prompts and presets from an exported settings file."""
    try:
        orchestrator.prompt_settings.import_settings(data)
    except SettingsImportError as e:
        logger.warning(f"Settings import rejected: {e.message}")
        raise http_error(e) from e
    orchestrator.save_prompt_settings()
    return {stage.value: settings for stage, settings in orchestrator.prompt_settings.stages.items()}


@router.put("/provider")
async def set_provider(
    request: ProviderRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    try:
        orchestrator.configure_provider(request.provider, api_key=request.api_key)
    except DocRefineError as e:
        raise http_error(e) from e
    return orchestrator.status()


@router.put("/preferences")
async def set_preferences(
    request: PreferencesRequest,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    if request.analysis_mode is not None:
        orchestrator.set_analysis_mode(request.analysis_mode)
    if request.thinking_enabled is not None:
        orchestrator.set_thinking(request.thinking_enabled)
    return orchestrator.status()
