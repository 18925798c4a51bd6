"""Pydantic schemas for result history, clarification questions and provider I/O."""

import base64
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderKind(str, Enum):
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class AnalysisMode(str, Enum):
    IMAGE_ONLY = "image-only"
    IMAGE_WITH_TEXT = "image-with-text"
    RAW_DOCUMENT = "raw-document"


class Stage(str, Enum):
    """Prompt stages; values match the settings export section names."""

    ANALYZE = "main"
    QUESTIONS = "qg"
    REFINE = "refine"
    DIFF = "diff"


class PartKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    RAW_DOCUMENT = "raw_document"


# ============================================================================
# Provider request / response
# ============================================================================


class MultimodalPart(BaseModel):
    """One ordered element of a multimodal prompt."""

    model_config = ConfigDict(frozen=True)

    kind: PartKind
    text: str | None = None
    data: bytes | None = None
    mime_type: str | None = None
    filename: str | None = None

    @classmethod
    def text_part(cls, text: str) -> "MultimodalPart":
        return cls(kind=PartKind.TEXT, text=text)

    @classmethod
    def image_part(cls, data: bytes, mime_type: str = "image/jpeg") -> "MultimodalPart":
        return cls(kind=PartKind.IMAGE, data=data, mime_type=mime_type)

    @classmethod
    def document_part(
        cls, data: bytes, mime_type: str = "application/pdf", filename: str | None = None
    ) -> "MultimodalPart":
        return cls(kind=PartKind.RAW_DOCUMENT, data=data, mime_type=mime_type, filename=filename)

    def data_url(self) -> str:
        """Base64 data URL for binary parts."""
        encoded = base64.b64encode(self.data or b"").decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class PromptBundle(BaseModel):
    """Everything a provider needs for one completion."""

    system_persona: str = ""
    user_instruction: str
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    parts: list[MultimodalPart] = Field(default_factory=list)
    model: str | None = None
    thinking: bool = False


class UsageInfo(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0


class CompletionResult(BaseModel):
    """Normalized plain-text completion."""

    text: str
    usage: UsageInfo | None = None
    cost: float | None = None
    diagnostics: dict[str, Any] | None = None


class StructuredResult(BaseModel):
    """Completion expected to carry a machine-readable payload.

    ``parsed`` is only set by providers that enforce the response shape
    natively; otherwise callers recover it from ``raw_text``.
    """

    parsed: dict[str, Any] | list[Any] | None = None
    raw_text: str = ""
    usage: UsageInfo | None = None
    cost: float | None = None
    diagnostics: dict[str, Any] | None = None


class QuestionItem(BaseModel):
    question: str
    suggestions: list[str] = Field(default_factory=list)


class QuestionsResponse(BaseModel):
    """Response shape requested from providers when generating questions."""

    questions: list[QuestionItem]


class ModelPricing(BaseModel):
    """Prices per 1M tokens, kept as strings the way the catalog reports them."""

    prompt: str = "0"
    completion: str = "0"


class ProviderModel(BaseModel):
    id: str
    name: str
    description: str = ""
    pricing: ModelPricing = Field(default_factory=ModelPricing)
    context_length: int = 0
    modality_types: list[str] = Field(default_factory=list)
    supports_thinking: bool = False

    @property
    def supports_images(self) -> bool:
        return "image_input" in self.modality_types

    @property
    def is_free(self) -> bool:
        return "free" in self.name.lower()


# ============================================================================
# History and artifacts
# ============================================================================


class ResultNode(BaseModel):
    """One immutable version of the converted document."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    content: str
    usage: UsageInfo | None = None
    diagnostics: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class ClarificationQuestion(BaseModel):
    id: str = Field(default_factory=new_id)
    question: str = Field(..., min_length=1)
    answer: str = ""
    suggestions: list[str] = Field(default_factory=list)


class NodeSummary(BaseModel):
    id: str
    index: int
    title: str
    content_length: int
    usage: UsageInfo | None = None
    created_at: datetime
    has_questions: bool = False
    has_diff: bool = False


class NodeArtifacts(BaseModel):
    node_id: str
    questions: list[ClarificationQuestion] = Field(default_factory=list)
    answered_questions: list[ClarificationQuestion] | None = None
    instructions: str | None = None
    diff: str | None = None
