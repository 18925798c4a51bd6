"""Provider adapter contract and factory.

Each adapter normalizes one external completion service behind the same
two calls: plain completion, and completion of a structured payload. Parsing
heuristics stay in ``docrefine.core.llm``; adapters never parse question
lists themselves.
"""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from docrefine.core.config import Settings, get_settings
from docrefine.core.schemas import (
    CompletionResult,
    MultimodalPart,
    PartKind,
    PromptBundle,
    ProviderKind,
    ProviderModel,
    StructuredResult,
)


class ProviderAdapter(ABC):
    """Base class for completion providers."""

    kind: ProviderKind
    # True when the provider enforces the response schema itself
    supports_native_schema = False

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials are available."""
        pass

    @abstractmethod
    async def complete(self, bundle: PromptBundle) -> CompletionResult:
        """Submit a multimodal prompt and return the completion text.

        Raises:
            ProviderError: On transport or HTTP failure
            AuthError: When the credentials are rejected
        """
        pass

    @abstractmethod
    async def complete_structured(
        self, bundle: PromptBundle, schema_hint: type[BaseModel]
    ) -> StructuredResult:
        """Submit a prompt whose answer must match ``schema_hint``.

        Raises:
            ProviderError: On transport or HTTP failure
            AuthError: When the credentials are rejected
        """
        pass

    async def list_models(self) -> list[ProviderModel]:
        """Models selectable for this provider; empty when fixed."""
        return []

    def default_model(self) -> str | None:
        return None


def redact_parts(parts: list[MultimodalPart]) -> list[dict[str, Any]]:
    """Diagnostic view of multimodal parts without binary payloads."""
    redacted = []
    for part in parts:
        if part.kind == PartKind.TEXT:
            redacted.append({"kind": part.kind.value, "text": part.text})
        else:
            redacted.append(
                {
                    "kind": part.kind.value,
                    "mime_type": part.mime_type,
                    "bytes": len(part.data or b""),
                }
            )
    return redacted


def get_provider(
    kind: ProviderKind,
    settings: Settings | None = None,
    api_key: str | None = None,
) -> ProviderAdapter:
    """
    Build the adapter for ``kind``.

    Args:
        kind: Which provider to build
        settings: Settings override (defaults to cached settings)
        api_key: Credential override, e.g. a key entered by the user

    Returns:
        ProviderAdapter instance
    """
    settings = settings or get_settings()
    if kind == ProviderKind.GEMINI:
        from docrefine.services.gemini_service import GeminiService

        return GeminiService(
            api_key=api_key or settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            timeout_seconds=settings.HTTP_TIMEOUT_SECONDS,
        )
    if kind == ProviderKind.OPENROUTER:
        from docrefine.services.openrouter_service import OpenRouterService

        return OpenRouterService(
            api_key=api_key or settings.OPENROUTER_API_KEY,
            base_url=settings.OPENROUTER_BASE_URL,
            site_url=settings.OPENROUTER_SITE_URL,
            app_name=settings.OPENROUTER_APP_NAME,
            default_model=settings.OPENROUTER_MODEL,
            timeout_seconds=settings.HTTP_TIMEOUT_SECONDS,
            cost_lookup_delay=settings.COST_LOOKUP_DELAY_SECONDS,
            cost_lookup_timeout=settings.COST_LOOKUP_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown provider: {kind}")
