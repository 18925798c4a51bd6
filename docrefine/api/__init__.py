"""API router for v1 endpoints."""

from fastapi import APIRouter

from docrefine.api import documents, models, settings

router = APIRouter()

# Source document, workflow commands and result history
router.include_router(documents.router, tags=["documents"])

# Stage prompts, presets, provider and preferences
router.include_router(settings.router, prefix="/settings", tags=["settings"])

# Model catalog
router.include_router(models.router, tags=["models"])
