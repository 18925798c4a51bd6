"""OpenRouter provider adapter.

Speaks the OpenAI-compatible chat completions API over httpx. Cost is not
part of the completion response; it is fetched afterwards from the
generation endpoint and reported as 0 when that lookup fails.
"""

import asyncio
from typing import Any

import httpx
from pydantic import BaseModel

from docrefine.core.errors import (
    AuthError,
    PreconditionError,
    PreconditionReason,
    ProviderError,
    is_auth_failure,
)
from docrefine.core.llm_usage import build_usage
from docrefine.core.logging import get_logger
from docrefine.core.prompts import build_questions_json_instruction
from docrefine.core.schemas import (
    CompletionResult,
    ModelPricing,
    PartKind,
    PromptBundle,
    ProviderKind,
    ProviderModel,
    StructuredResult,
)
from docrefine.services.providers import ProviderAdapter, redact_parts

logger = get_logger(__name__)

PROVIDER_NAME = "openrouter"

# Vendors offered in the model catalog
CATALOG_VENDORS = ("openai", "google", "xai", "meta", "anthropic")

MODALITY_TYPES = {
    "text": "text",
    "image": "image_input",
    "audio": "audio_input",
    "video": "video_input",
}


def _per_million(price: Any) -> str:
    try:
        return str(float(price) * 1_000_000)
    except (TypeError, ValueError):
        return "0"


def _to_provider_model(raw: dict[str, Any]) -> ProviderModel:
    pricing = raw.get("pricing") or {}
    architecture = raw.get("architecture") or {}
    supported = raw.get("supported_parameters") or []

    modality_types = [
        MODALITY_TYPES[m] for m in architecture.get("input_modalities") or [] if m in MODALITY_TYPES
    ]
    if "tools" in supported:
        modality_types.append("tool_use")

    return ProviderModel(
        id=raw["id"],
        name=raw.get("name") or raw["id"],
        description=raw.get("description") or "",
        pricing=ModelPricing(
            prompt=_per_million(pricing.get("prompt")),
            completion=_per_million(pricing.get("completion")),
        ),
        context_length=raw.get("context_length") or 0,
        modality_types=modality_types,
        supports_thinking="reasoning" in supported,
    )


class OpenRouterService(ProviderAdapter):
    """Completion provider routed through OpenRouter."""

    kind = ProviderKind.OPENROUTER

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://openrouter.ai/api/v1",
        site_url: str = "",
        app_name: str = "",
        default_model: str | None = None,
        timeout_seconds: float = 300.0,
        cost_lookup_delay: float = 2.0,
        cost_lookup_timeout: float = 15.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.site_url = site_url
        self.app_name = app_name
        self._default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.cost_lookup_delay = cost_lookup_delay
        self.cost_lookup_timeout = cost_lookup_timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def default_model(self) -> str | None:
        return self._default_model

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.site_url,
            "X-Title": self.app_name,
            "Content-Type": "application/json",
        }

    def _build_messages(self, bundle: PromptBundle) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if bundle.system_persona:
            messages.append({"role": "system", "content": bundle.system_persona})

        content: list[dict[str, Any]] = []
        for part in bundle.parts:
            if part.kind == PartKind.TEXT:
                content.append({"type": "text", "text": part.text or ""})
            elif part.kind == PartKind.IMAGE:
                content.append({"type": "image_url", "image_url": {"url": part.data_url()}})
            else:
                content.append(
                    {
                        "type": "file",
                        "file": {
                            "filename": part.filename or "document.pdf",
                            "file_data": part.data_url(),
                        },
                    }
                )
        content.append({"type": "text", "text": bundle.user_instruction})
        messages.append({"role": "user", "content": content})
        return messages

    def _build_body(self, bundle: PromptBundle) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": bundle.model or self._default_model,
            "messages": self._build_messages(bundle),
            "temperature": bundle.temperature,
        }
        if bundle.thinking:
            body["reasoning"] = {"enabled": True}
        return body

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        return f"HTTP {response.status_code}"

    async def _lookup_cost(self, generation_id: str | None) -> tuple[float, dict[str, Any] | None]:
        """
        Fetch the billed cost of a generation.

        Never raises: any failure is logged and reported as a cost of 0.
        """
        if not generation_id:
            return 0.0, None

        await asyncio.sleep(self.cost_lookup_delay)
        try:
            async with httpx.AsyncClient(timeout=self.cost_lookup_timeout) as client:
                response = await client.get(
                    f"{self.base_url}/generation",
                    headers=self._headers(),
                    params={"id": generation_id},
                )
            if response.status_code >= 400:
                logger.warning(
                    f"Cost lookup for generation {generation_id} failed: HTTP {response.status_code}"
                )
                return 0.0, None
            data = response.json()
            total_cost = (data.get("data") or {}).get("total_cost")
            return float(total_cost or 0.0), data
        except (httpx.HTTPError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Cost lookup for generation {generation_id} failed: {e}")
            return 0.0, None

    async def complete(self, bundle: PromptBundle) -> CompletionResult:
        if not self.api_key:
            raise PreconditionError(
                "OpenRouter API key is not configured", PreconditionReason.NO_CREDENTIALS
            )

        body = self._build_body(bundle)
        model = body["model"]
        logger.info(
            f"OpenRouter request: model={model} parts={len(bundle.parts)} thinking={bundle.thinking}"
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=self._headers(),
                    json=body,
                )
        except httpx.TimeoutException as e:
            logger.error(f"OpenRouter request timed out: {e}")
            raise ProviderError("OpenRouter request timed out", provider=PROVIDER_NAME) from e
        except httpx.HTTPError as e:
            logger.error(f"OpenRouter transport error: {e}")
            raise ProviderError(f"Failed to reach OpenRouter: {e}", provider=PROVIDER_NAME) from e

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.error(f"OpenRouter API error ({response.status_code}): {message}")
            error_cls = AuthError if is_auth_failure(response.status_code, message) else ProviderError
            raise error_cls(
                f"OpenRouter API error: {message}",
                status_hint=response.status_code,
                provider=PROVIDER_NAME,
            )

        try:
            data = response.json()
            text = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                "OpenRouter returned an invalid response structure",
                status_hint=response.status_code,
                provider=PROVIDER_NAME,
            ) from e
        if not text:
            raise ProviderError(
                "OpenRouter returned an invalid response structure",
                status_hint=response.status_code,
                provider=PROVIDER_NAME,
            )

        raw_usage = data.get("usage") or {}
        usage = None
        if raw_usage:
            usage = build_usage(
                raw_usage.get("prompt_tokens"),
                raw_usage.get("completion_tokens"),
                raw_usage.get("total_tokens"),
            )

        cost, generation = await self._lookup_cost(data.get("id"))
        if usage is not None:
            usage = usage.model_copy(update={"cost": cost})

        request = {**body, "messages": None, "parts": redact_parts(bundle.parts)}
        return CompletionResult(
            text=text,
            usage=usage,
            cost=cost,
            diagnostics={"request": request, "response": data, "generation": generation},
        )

    async def complete_structured(
        self, bundle: PromptBundle, schema_hint: type[BaseModel]
    ) -> StructuredResult:
        # No native schema support; the shape is requested in the prompt
        instruction = (
            f"{bundle.user_instruction}\n\n"
            f"{build_questions_json_instruction(schema_hint.model_json_schema())}"
        )
        result = await self.complete(bundle.model_copy(update={"user_instruction": instruction}))
        return StructuredResult(
            parsed=None,
            raw_text=result.text,
            usage=result.usage,
            cost=result.cost,
            diagnostics=result.diagnostics,
        )

    async def list_models(self) -> list[ProviderModel]:
        """
        Fetch the model catalog, filtered to the supported vendors.

        Raises:
            ProviderError: If the catalog cannot be fetched
        """
        try:
            async with httpx.AsyncClient(timeout=self.cost_lookup_timeout) as client:
                response = await client.get(f"{self.base_url}/models", headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch OpenRouter models: {e}")
            raise ProviderError(f"Failed to fetch models: {e}", provider=PROVIDER_NAME) from e

        if response.status_code >= 400:
            message = self._error_message(response)
            error_cls = AuthError if is_auth_failure(response.status_code, message) else ProviderError
            raise error_cls(
                f"Failed to fetch models: {message}",
                status_hint=response.status_code,
                provider=PROVIDER_NAME,
            )

        models = []
        for raw in response.json().get("data") or []:
            model_id = raw.get("id") or ""
            if not any(vendor in model_id.lower() for vendor in CATALOG_VENDORS):
                continue
            models.append(_to_provider_model(raw))
        logger.info(f"Fetched {len(models)} OpenRouter models")
        return models
