"""Tests for the Gemini provider adapter."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from google.genai import errors as genai_errors

from docrefine.core.errors import AuthError, PreconditionError, ProviderError
from docrefine.core.schemas import MultimodalPart, PromptBundle, QuestionsResponse
from docrefine.services.gemini_service import GeminiService


def _response(text: str = "# Doc", parsed=None, usage=(1000, 200, 1200)):
    response = MagicMock()
    response.text = text
    response.parsed = parsed
    if usage is None:
        response.usage_metadata = None
    else:
        response.usage_metadata = MagicMock(
            prompt_token_count=usage[0],
            candidates_token_count=usage[1],
            total_token_count=usage[2],
        )
    response.model_dump.return_value = {"text": text}
    return response


def _service(response=None, side_effect=None) -> tuple[GeminiService, MagicMock]:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(return_value=response, side_effect=side_effect)
    return GeminiService(api_key="test-key", model="gemini-2.5-flash", client=client), client


def _bundle(**kwargs) -> PromptBundle:
    defaults = {
        "system_persona": "You convert documents.",
        "user_instruction": "Convert this.",
        "temperature": 0.2,
        "parts": [
            MultimodalPart.text_part("extracted text"),
            MultimodalPart.image_part(b"\xff\xd8jpeg"),
        ],
    }
    defaults.update(kwargs)
    return PromptBundle(**defaults)


class TestComplete:
    @pytest.mark.asyncio
    async def test_complete_success(self):
        service, client = _service(_response("# Doc"))

        result = await service.complete(_bundle())

        assert result.text == "# Doc"
        assert result.usage.prompt_tokens == 1000
        assert result.usage.completion_tokens == 200
        assert result.usage.total_tokens == 1200
        # gemini-2.5-flash: $0.30 in / $2.50 out per 1M tokens
        assert result.cost == pytest.approx(0.0008)
        assert result.usage.cost == result.cost

    @pytest.mark.asyncio
    async def test_request_shape(self):
        service, client = _service(_response())

        await service.complete(_bundle())

        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        parts = kwargs["contents"][0].parts
        assert len(parts) == 3
        assert parts[0].text == "extracted text"
        assert parts[1].inline_data.mime_type == "image/jpeg"
        assert parts[2].text == "Convert this."
        config = kwargs["config"]
        assert config.temperature == 0.2
        assert config.system_instruction == "You convert documents."
        assert config.response_schema is None

    @pytest.mark.asyncio
    async def test_diagnostics_redact_binary_parts(self):
        service, _ = _service(_response())

        result = await service.complete(_bundle())

        parts = result.diagnostics["request"]["parts"]
        assert parts[1] == {"kind": "image", "mime_type": "image/jpeg", "bytes": 6}

    @pytest.mark.asyncio
    async def test_bundle_model_overrides_default(self):
        service, client = _service(_response())

        await service.complete(_bundle(model="gemini-2.5-pro"))

        assert client.aio.models.generate_content.call_args.kwargs["model"] == "gemini-2.5-pro"

    @pytest.mark.asyncio
    async def test_missing_usage(self):
        service, _ = _service(_response(usage=None))

        result = await service.complete(_bundle())

        assert result.usage is None
        assert result.cost is None

    @pytest.mark.asyncio
    async def test_empty_text_is_provider_error(self):
        service, _ = _service(_response(text=""))

        with pytest.raises(ProviderError, match="empty response"):
            await service.complete(_bundle())


class TestErrors:
    @pytest.mark.asyncio
    async def test_invalid_key_is_auth_error(self):
        error = genai_errors.ClientError(
            400,
            {
                "error": {
                    "code": 400,
                    "message": "API key not valid. Please pass a valid API key.",
                    "status": "INVALID_ARGUMENT",
                }
            },
        )
        service, _ = _service(side_effect=error)

        with pytest.raises(AuthError) as exc_info:
            await service.complete(_bundle())

        assert exc_info.value.status_hint == 400
        assert exc_info.value.provider == "gemini"

    @pytest.mark.asyncio
    async def test_server_error_is_provider_error(self):
        error = genai_errors.ServerError(
            503, {"error": {"code": 503, "message": "The model is overloaded.", "status": "UNAVAILABLE"}}
        )
        service, _ = _service(side_effect=error)

        with pytest.raises(ProviderError) as exc_info:
            await service.complete(_bundle())

        assert not isinstance(exc_info.value, AuthError)
        assert exc_info.value.status_hint == 503

    @pytest.mark.asyncio
    async def test_timeout_is_provider_error(self):
        service, _ = _service(side_effect=httpx.ReadTimeout("timed out"))

        with pytest.raises(ProviderError, match="timed out"):
            await service.complete(_bundle())

    @pytest.mark.asyncio
    async def test_missing_key(self):
        service = GeminiService(api_key=None)

        assert service.is_configured() is False
        with pytest.raises(PreconditionError):
            await service.complete(_bundle())


class TestCompleteStructured:
    @pytest.mark.asyncio
    async def test_parsed_model_is_dumped(self):
        parsed = QuestionsResponse.model_validate({"questions": [{"question": "Units?"}]})
        service, client = _service(_response(text='{"questions": []}', parsed=parsed))

        result = await service.complete_structured(_bundle(), QuestionsResponse)

        assert result.parsed == {"questions": [{"question": "Units?", "suggestions": []}]}
        config = client.aio.models.generate_content.call_args.kwargs["config"]
        assert config.response_mime_type == "application/json"
        assert config.response_schema is not None

    @pytest.mark.asyncio
    async def test_unparsed_response_keeps_raw_text(self):
        service, _ = _service(_response(text='{"questions": [', parsed=None))

        result = await service.complete_structured(_bundle(), QuestionsResponse)

        assert result.parsed is None
        assert result.raw_text == '{"questions": ['
