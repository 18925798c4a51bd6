"""Gemini provider adapter.

Uses the google-genai SDK. Gemini accepts a response schema, so structured
requests come back already parsed; callers still run them through question
validation.
"""

from __future__ import annotations

from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel

from docrefine.core.errors import (
    AuthError,
    PreconditionError,
    PreconditionReason,
    ProviderError,
    is_auth_failure,
)
from docrefine.core.llm_usage import build_usage, estimate_cost
from docrefine.core.logging import get_logger
from docrefine.core.schemas import (
    CompletionResult,
    PartKind,
    PromptBundle,
    ProviderKind,
    StructuredResult,
    UsageInfo,
)
from docrefine.services.providers import ProviderAdapter, redact_parts

logger = get_logger(__name__)

PROVIDER_NAME = "gemini"


class GeminiService(ProviderAdapter):
    """Schema-constrained completion provider backed by Gemini."""

    kind = ProviderKind.GEMINI
    supports_native_schema = True

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-2.5-flash",
        timeout_seconds: float = 300.0,
        client: genai.Client | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def default_model(self) -> str | None:
        return self.model

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise PreconditionError(
                    "Gemini API key is not configured. Set GEMINI_API_KEY.",
                    PreconditionReason.NO_CREDENTIALS,
                )
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout_seconds * 1000)),
            )
        return self._client

    def _build_contents(self, bundle: PromptBundle) -> list[types.Content]:
        parts: list[types.Part] = []
        for part in bundle.parts:
            if part.kind == PartKind.TEXT:
                parts.append(types.Part.from_text(text=part.text or ""))
            else:
                parts.append(types.Part.from_bytes(data=part.data or b"", mime_type=part.mime_type))
        # User prompt goes last, after the document payload
        parts.append(types.Part.from_text(text=bundle.user_instruction))
        return [types.Content(role="user", parts=parts)]

    def _build_config(
        self, bundle: PromptBundle, schema_hint: type[BaseModel] | None = None
    ) -> types.GenerateContentConfig:
        config: dict[str, Any] = {"temperature": bundle.temperature}
        if bundle.system_persona:
            config["system_instruction"] = bundle.system_persona
        if schema_hint is not None:
            config["response_mime_type"] = "application/json"
            config["response_schema"] = schema_hint
        return types.GenerateContentConfig(**config)

    def _usage(self, response: types.GenerateContentResponse, model: str) -> UsageInfo | None:
        meta = response.usage_metadata
        if meta is None:
            return None
        usage = build_usage(
            meta.prompt_token_count,
            meta.candidates_token_count,
            meta.total_token_count,
        )
        return usage.model_copy(
            update={"cost": estimate_cost(model, usage.prompt_tokens, usage.completion_tokens)}
        )

    @staticmethod
    def _dump(response: types.GenerateContentResponse) -> dict[str, Any]:
        try:
            return response.model_dump(mode="json", exclude_none=True)
        except (TypeError, ValueError):
            return {"text": response.text}

    async def _generate(
        self, bundle: PromptBundle, schema_hint: type[BaseModel] | None = None
    ) -> tuple[types.GenerateContentResponse, dict[str, Any], str]:
        client = self._get_client()
        model = bundle.model or self.model
        request = {
            "model": model,
            "system_instruction": bundle.system_persona,
            "temperature": bundle.temperature,
            "parts": redact_parts(bundle.parts),
            "user_instruction": bundle.user_instruction,
            "response_schema": schema_hint.__name__ if schema_hint else None,
        }

        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=self._build_contents(bundle),
                config=self._build_config(bundle, schema_hint),
            )
        except genai_errors.APIError as e:
            message = e.message or str(e)
            logger.error(f"Gemini API error ({e.code}): {message}")
            error_cls = AuthError if is_auth_failure(e.code, message) else ProviderError
            raise error_cls(
                f"Failed to get a response from Gemini: {message}",
                status_hint=e.code,
                provider=PROVIDER_NAME,
            ) from e
        except httpx.TimeoutException as e:
            logger.error(f"Gemini request timed out: {e}")
            raise ProviderError(
                "Gemini request timed out", status_hint=None, provider=PROVIDER_NAME
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Gemini transport error: {e}")
            raise ProviderError(
                f"Failed to reach Gemini: {e}", status_hint=None, provider=PROVIDER_NAME
            ) from e

        return response, request, model

    async def complete(self, bundle: PromptBundle) -> CompletionResult:
        response, request, model = await self._generate(bundle)
        text = response.text
        if not text:
            raise ProviderError("Gemini returned an empty response", provider=PROVIDER_NAME)

        usage = self._usage(response, model)
        return CompletionResult(
            text=text,
            usage=usage,
            cost=usage.cost if usage else None,
            diagnostics={"request": request, "response": self._dump(response)},
        )

    async def complete_structured(
        self, bundle: PromptBundle, schema_hint: type[BaseModel]
    ) -> StructuredResult:
        response, request, model = await self._generate(bundle, schema_hint)

        parsed = response.parsed
        if isinstance(parsed, BaseModel):
            parsed = parsed.model_dump()
        elif not isinstance(parsed, (dict, list)):
            parsed = None

        usage = self._usage(response, model)
        return StructuredResult(
            parsed=parsed,
            raw_text=response.text or "",
            usage=usage,
            cost=usage.cost if usage else None,
            diagnostics={"request": request, "response": self._dump(response)},
        )
