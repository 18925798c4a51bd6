"""Workflow orchestrator for the analyze / questions / refine / diff stages.

The orchestrator is the only writer of the document session. Each command
runs as ingestion -> completion -> parse -> commit, under a single-flight
guard: while one command is in flight every other command is rejected with
``PreconditionReason.BUSY``. Every command captures a generation token when
it starts; if the token is stale by the time the completion arrives (the
document was changed or cleared), the result is discarded instead of
committed.

Commands never raise. They return a ``CommandResult`` carrying either the
committed value or the typed error, plus the progress events emitted on the
way.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from docrefine.core.config import Settings, get_settings
from docrefine.core.document_processing import DocumentIngestor, SourceDocument
from docrefine.core.errors import (
    AuthError,
    DocRefineError,
    PreconditionError,
    PreconditionReason,
    SupersededError,
)
from docrefine.core.llm import parse_clarification_questions, validate_questions_payload
from docrefine.core.llm_usage import log_llm_usage, merge_usage
from docrefine.core.logging import get_logger, log_with_context
from docrefine.core.markdown_export import extract_filename_from_markdown
from docrefine.core.presets import PromptSettings, StageSettings
from docrefine.core.prompts import (
    build_diff_instruction,
    build_extracted_text_context,
    build_question_instruction,
    build_refinement_instruction,
)
from docrefine.core.schemas import (
    AnalysisMode,
    ClarificationQuestion,
    CompletionResult,
    MultimodalPart,
    NodeArtifacts,
    NodeSummary,
    PromptBundle,
    ProviderKind,
    ProviderModel,
    QuestionsResponse,
    ResultNode,
    Stage,
    StructuredResult,
    new_id,
)
from docrefine.core.session import DocumentSession
from docrefine.db.session_store import Credentials, Preferences, SessionStore
from docrefine.services.providers import ProviderAdapter, get_provider

logger = get_logger(__name__)

T = TypeVar("T")


class WorkflowState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    GENERATING_QUESTIONS = "generating_questions"
    REFINING = "refining"
    GENERATING_DIFF = "generating_diff"


@dataclass(frozen=True)
class GenerationToken:
    """Identity of one command invocation, checked before every commit."""

    generation: int
    document_version: int
    command_id: str


@dataclass(frozen=True)
class ProgressEvent:
    stage: str
    label: str
    current: int | None = None
    total: int | None = None


@dataclass
class CommandResult(Generic[T]):
    ok: bool
    value: T | None = None
    error: DocRefineError | None = None
    progress: list[ProgressEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "error": self.error.to_dict() if self.error else None,
            "progress": [event.label for event in self.progress],
        }


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class _Run:
    state: WorkflowState
    token: GenerationToken
    progress: list[ProgressEvent] = field(default_factory=list)


class WorkflowOrchestrator:
    """Owns the document session and drives every stage against it."""

    def __init__(
        self,
        session: DocumentSession | None = None,
        provider: ProviderAdapter | None = None,
        ingestor: DocumentIngestor | None = None,
        prompt_settings: PromptSettings | None = None,
        store: SessionStore | None = None,
        settings: Settings | None = None,
        on_progress: ProgressCallback | None = None,
        credentials: Credentials | None = None,
    ):
        self.settings = settings or get_settings()
        self.session = session or DocumentSession()
        self.provider = provider or get_provider(
            ProviderKind(self.settings.DEFAULT_PROVIDER), self.settings
        )
        self.ingestor = ingestor or DocumentIngestor()
        self.prompt_settings = prompt_settings or PromptSettings.defaults(self.settings)
        self.store = store
        self.on_progress = on_progress

        self.credentials = credentials or Credentials(provider=self.provider.kind)
        self.analysis_mode = AnalysisMode(self.settings.ANALYSIS_MODE)
        self.thinking_enabled = self.settings.THINKING_ENABLED

        self._state = WorkflowState.IDLE
        self._generation = 0
        self._progress_label: str | None = None
        self._model_catalog: dict[str, ProviderModel] = {}

    @classmethod
    def from_store(cls, store: SessionStore, settings: Settings | None = None) -> "WorkflowOrchestrator":
        """Build an orchestrator from persisted state, falling back to defaults."""
        settings = settings or get_settings()
        credentials = store.load_credentials()
        kind = credentials.provider or ProviderKind(settings.DEFAULT_PROVIDER)
        api_key = credentials.openrouter_api_key if kind == ProviderKind.OPENROUTER else None

        orchestrator = cls(
            session=store.load_session(),
            provider=get_provider(kind, settings, api_key=api_key),
            prompt_settings=store.load_prompt_settings(settings),
            store=store,
            settings=settings,
            credentials=credentials.model_copy(update={"provider": kind}),
        )
        preferences = store.load_preferences()
        if preferences.analysis_mode is not None:
            orchestrator.analysis_mode = preferences.analysis_mode
        if preferences.thinking_enabled is not None:
            orchestrator.thinking_enabled = preferences.thinking_enabled
        return orchestrator

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state != WorkflowState.IDLE

    @property
    def credentials_invalid(self) -> bool:
        return self.credentials.credentials_invalid

    def _is_current(self, token: GenerationToken) -> bool:
        return (
            token.generation == self._generation
            and token.document_version == self.session.document_version
        )

    def _begin(self, state: WorkflowState) -> _Run:
        if self.is_busy:
            raise PreconditionError(
                f"Another operation is in progress ({self._state.value})",
                PreconditionReason.BUSY,
            )
        self._generation += 1
        self._state = state
        self._progress_label = None
        token = GenerationToken(
            generation=self._generation,
            document_version=self.session.document_version,
            command_id=new_id()[:8],
        )
        return _Run(state=state, token=token)

    def _end(self, run: _Run) -> None:
        # A superseded run must not reset the state of the run that replaced it
        if self._is_current(run.token):
            self._state = WorkflowState.IDLE
            self._progress_label = None

    def _report(
        self, run: _Run, label: str, current: int | None = None, total: int | None = None
    ) -> None:
        event = ProgressEvent(stage=run.state.value, label=label, current=current, total=total)
        run.progress.append(event)
        if self._is_current(run.token):
            self._progress_label = label
        if self.on_progress is not None:
            self.on_progress(event)

    def _set_credentials_invalid(self, invalid: bool) -> None:
        if self.credentials.credentials_invalid == invalid:
            return
        self.credentials = self.credentials.model_copy(update={"credentials_invalid": invalid})
        self._save_credentials()

    async def _execute(
        self,
        state: WorkflowState,
        body: Callable[[_Run], Awaitable[T]],
    ) -> CommandResult[T]:
        try:
            run = self._begin(state)
        except PreconditionError as e:
            logger.info(f"Rejected {state.value}: {e.message}")
            return CommandResult(ok=False, error=e)

        command_id = run.token.command_id
        log_with_context(
            logger,
            logging.INFO,
            f"Starting {state.value}",
            command_id=command_id,
            generation=run.token.generation,
        )
        try:
            value = await body(run)
        except DocRefineError as e:
            if isinstance(e, AuthError):
                self._set_credentials_invalid(True)
            level = logging.INFO if isinstance(e, SupersededError) else logging.ERROR
            log_with_context(
                logger,
                level,
                f"{state.value} failed: {e.message}",
                command_id=command_id,
                error_kind=e.kind,
            )
            return CommandResult(ok=False, error=e, progress=run.progress)
        finally:
            self._end(run)

        self._set_credentials_invalid(False)
        log_with_context(logger, logging.INFO, f"Completed {state.value}", command_id=command_id)
        return CommandResult(ok=True, value=value, progress=run.progress)

    def _commit(self, run: _Run, apply: Callable[[], T]) -> T:
        """Apply ``apply`` to the session if ``run`` is still current, then persist."""
        if not self._is_current(run.token):
            log_with_context(
                logger,
                logging.WARNING,
                "Discarding superseded result",
                command_id=run.token.command_id,
            )
            raise SupersededError("The document changed while the request was running")
        value = apply()
        log_with_context(
            logger,
            logging.INFO,
            "Committed result",
            command_id=run.token.command_id,
            history_length=len(self.session.history),
        )
        self._save_session()
        return value

    # ------------------------------------------------------------------
    # Request assembly
    # ------------------------------------------------------------------

    def _require_document(self) -> SourceDocument:
        if self.session.document is None:
            raise PreconditionError("No source document selected", PreconditionReason.NO_DOCUMENT)
        return self.session.document

    def _require_credentials(self) -> None:
        if not self.provider.is_configured():
            raise PreconditionError(
                f"No API key configured for {self.provider.kind.value}",
                PreconditionReason.NO_CREDENTIALS,
            )

    def _stage_model(self, stage: StageSettings) -> str | None:
        """Model id for a stage; only OpenRouter lets the user pick per stage."""
        if self.provider.kind != ProviderKind.OPENROUTER:
            return None
        model = stage.model or self.provider.default_model()
        if not model:
            raise PreconditionError("No model selected", PreconditionReason.NO_MODEL)
        return model

    def _thinking_for(self, model: str | None) -> bool:
        if not self.thinking_enabled or model is None:
            return False
        entry = self._model_catalog.get(model)
        return entry is not None and entry.supports_thinking

    def _bundle(
        self,
        stage: StageSettings,
        instruction: str,
        parts: list[MultimodalPart] | None = None,
    ) -> PromptBundle:
        model = self._stage_model(stage)
        return PromptBundle(
            system_persona=stage.persona_prompt,
            user_instruction=instruction,
            temperature=stage.temperature,
            parts=parts or [],
            model=model,
            thinking=self._thinking_for(model),
        )

    async def _ingest(self, run: _Run, document: SourceDocument) -> list[MultimodalPart]:
        self._report(run, f"Preparing {document.filename}")

        def on_page(current: int, total: int) -> None:
            self._report(run, f"Rendering page {current}/{total}", current, total)

        result = await self.ingestor.ingest(document, self.analysis_mode, on_page=on_page)
        for problem in result.errors:
            log_with_context(
                logger, logging.WARNING, problem, command_id=run.token.command_id
            )

        parts: list[MultimodalPart] = []
        if self.analysis_mode == AnalysisMode.IMAGE_WITH_TEXT and result.extracted_text:
            parts.append(MultimodalPart.text_part(build_extracted_text_context(result.extracted_text)))
        parts.extend(result.parts)
        return parts

    def _to_node(self, stage: Stage, bundle: PromptBundle, result: CompletionResult) -> ResultNode:
        usage = merge_usage(result.usage, result.cost)
        log_llm_usage(stage.value, self.provider.kind.value, bundle.model, usage)
        return ResultNode(content=result.text, usage=usage, diagnostics=result.diagnostics)

    def _questions_from(self, result: StructuredResult) -> list[ClarificationQuestion]:
        if self.provider.supports_native_schema and result.parsed is not None:
            return validate_questions_payload(result.parsed, raw_text=result.raw_text)
        return parse_clarification_questions(result.raw_text)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def analyze(self) -> CommandResult[ResultNode]:
        """Convert the selected document; the result replaces the whole history."""

        async def body(run: _Run) -> ResultNode:
            document = self._require_document()
            self._require_credentials()
            stage = self.prompt_settings.stage(Stage.ANALYZE)
            bundle = self._bundle(stage, stage.user_prompt)

            parts = await self._ingest(run, document)
            bundle = bundle.model_copy(update={"parts": parts})
            self._report(run, "Analyzing document")
            result = await self.provider.complete(bundle)

            node = self._to_node(Stage.ANALYZE, bundle, result)
            self._commit(run, lambda: self.session.commit_analysis(node))
            return node

        return await self._execute(WorkflowState.ANALYZING, body)

    async def generate_questions(self, node_id: str) -> CommandResult[list[ClarificationQuestion]]:
        """Generate clarification questions for a result version."""

        async def body(run: _Run) -> list[ClarificationQuestion]:
            source = self.session.history.get(node_id)
            self._require_credentials()
            stage = self.prompt_settings.stage(Stage.QUESTIONS)
            bundle = self._bundle(
                stage, build_question_instruction(stage.user_prompt, source.content)
            )

            self._report(run, "Generating questions")
            result = await self.provider.complete_structured(bundle, QuestionsResponse)
            log_llm_usage(
                Stage.QUESTIONS.value,
                self.provider.kind.value,
                bundle.model,
                merge_usage(result.usage, result.cost),
            )

            questions = self._questions_from(result)
            self._commit(run, lambda: self.session.set_questions(node_id, questions))
            return questions

        return await self._execute(WorkflowState.GENERATING_QUESTIONS, body)

    async def refine(
        self,
        node_id: str,
        answered_questions: list[ClarificationQuestion] | None = None,
        instructions: str = "",
    ) -> CommandResult[ResultNode]:
        """
        Produce a new version from ``node_id`` using answers and instructions.

        Every version after ``node_id`` is discarded when the new one is
        committed. ``answered_questions`` defaults to the node's current
        question table.
        """

        async def body(run: _Run) -> ResultNode:
            source = self.session.history.get(node_id)
            document = self._require_document()
            self._require_credentials()
            if answered_questions is None:
                answered = self.session.node_artifacts(node_id).questions
            else:
                answered = [q.model_copy(deep=True) for q in answered_questions]

            stage = self.prompt_settings.stage(Stage.REFINE)
            bundle = self._bundle(
                stage,
                build_refinement_instruction(stage.user_prompt, source.content, answered, instructions),
            )

            parts = await self._ingest(run, document)
            bundle = bundle.model_copy(update={"parts": parts})
            self._report(run, "Refining document")
            result = await self.provider.complete(bundle)

            node = self._to_node(Stage.REFINE, bundle, result)
            removed = self._commit(
                run,
                lambda: self.session.commit_refinement(node_id, answered, instructions, node),
            )
            if removed:
                log_with_context(
                    logger,
                    logging.INFO,
                    f"Discarded {len(removed)} later version(s)",
                    command_id=run.token.command_id,
                    removed=",".join(removed),
                )
            return node

        return await self._execute(WorkflowState.REFINING, body)

    async def generate_diff(
        self, new_node_id: str, baseline_node_id: str | None = None
    ) -> CommandResult[str]:
        """Semantic diff of ``new_node_id`` against the baseline (first version by default)."""

        async def body(run: _Run) -> str:
            revised = self.session.history.get(new_node_id)
            if baseline_node_id is not None:
                baseline = self.session.history.get(baseline_node_id)
            else:
                baseline = self.session.history.baseline()
                if baseline is None:
                    raise PreconditionError("History is empty", PreconditionReason.UNKNOWN_NODE)
            self._require_credentials()

            stage = self.prompt_settings.stage(Stage.DIFF)
            bundle = self._bundle(
                stage, build_diff_instruction(stage.user_prompt, baseline.content, revised.content)
            )
            self._report(run, "Generating diff")
            result = await self.provider.complete(bundle)
            log_llm_usage(
                Stage.DIFF.value,
                self.provider.kind.value,
                bundle.model,
                merge_usage(result.usage, result.cost),
            )

            self._commit(run, lambda: self.session.set_diff(new_node_id, result.text))
            return result.text

        return await self._execute(WorkflowState.GENERATING_DIFF, body)

    # ------------------------------------------------------------------
    # Session edits
    # ------------------------------------------------------------------

    def select_document(self, document: SourceDocument | None) -> None:
        """Switch or clear the source document; any in-flight command is superseded."""
        self._generation += 1
        self._state = WorkflowState.IDLE
        self._progress_label = None
        self.session.select_document(document)
        logger.info(
            f"Selected document: {document.filename if document else None} "
            f"(version {self.session.document_version})"
        )
        self._save_session()

    def answer_question(self, node_id: str, question_id: str, answer: str) -> ClarificationQuestion:
        question = self.session.answer_question(node_id, question_id, answer)
        self._save_session()
        return question

    # ------------------------------------------------------------------
    # Provider and preferences
    # ------------------------------------------------------------------

    def set_provider(self, provider: ProviderAdapter) -> None:
        if self.is_busy:
            raise PreconditionError(
                "Cannot switch provider while an operation is in progress",
                PreconditionReason.BUSY,
            )
        self.provider = provider
        self._model_catalog = {}
        self.credentials = self.credentials.model_copy(
            update={"provider": provider.kind, "credentials_invalid": False}
        )
        self._save_credentials()
        logger.info(f"Provider set to {provider.kind.value}")

    def configure_provider(self, kind: ProviderKind, api_key: str | None = None) -> None:
        """Switch provider, optionally with a user-entered OpenRouter key."""
        if kind == ProviderKind.OPENROUTER:
            api_key = api_key or self.credentials.openrouter_api_key
            self.credentials = self.credentials.model_copy(update={"openrouter_api_key": api_key})
        self.set_provider(get_provider(kind, self.settings, api_key=api_key))

    def set_analysis_mode(self, mode: AnalysisMode) -> None:
        self.analysis_mode = mode
        self._save_preferences()

    def set_thinking(self, enabled: bool) -> None:
        self.thinking_enabled = enabled
        self._save_preferences()

    def set_stage_model(self, stage: Stage, model: str) -> None:
        self.prompt_settings.set_model(stage, model)
        self.save_prompt_settings()

    async def list_models(self) -> list[ProviderModel]:
        """
        Fetch and cache the provider's model catalog.

        Raises:
            ProviderError: If the catalog cannot be fetched
        """
        try:
            models = await self.provider.list_models()
        except AuthError:
            self._set_credentials_invalid(True)
            raise
        self._model_catalog = {model.id: model for model in models}
        return models

    def model_warnings(self, stage: Stage = Stage.ANALYZE) -> list[str]:
        """Warnings about the stage's selected model, based on the cached catalog."""
        if self.provider.kind != ProviderKind.OPENROUTER:
            return []
        model_id = self.prompt_settings.stage(stage).model or self.provider.default_model()
        entry = self._model_catalog.get(model_id or "")
        if entry is None:
            return []

        warnings = []
        if self.analysis_mode != AnalysisMode.RAW_DOCUMENT and not entry.supports_images:
            warnings.append(
                f"{entry.name} does not accept image input; page images will not be understood."
            )
        if entry.is_free:
            warnings.append(
                f"{entry.name} is a free model; requests may be rate limited or logged by the provider."
            )
        return warnings

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def history_snapshot(self) -> list[NodeSummary]:
        return self.session.summaries()

    def get_node(self, node_id: str) -> ResultNode:
        return self.session.history.get(node_id)

    def node_artifacts(self, node_id: str) -> NodeArtifacts:
        return self.session.node_artifacts(node_id)

    def export_node(self, node_id: str) -> tuple[str, str]:
        """Return ``(filename, markdown)`` for downloading a version."""
        node = self.session.history.get(node_id)
        return extract_filename_from_markdown(node.content), node.content

    def status(self) -> dict[str, Any]:
        document = self.session.document
        return {
            "state": self._state.value,
            "progress": self._progress_label,
            "document": document.filename if document else None,
            "document_version": self.session.document_version,
            "history_length": len(self.session.history),
            "provider": self.provider.kind.value,
            "provider_configured": self.provider.is_configured(),
            "credentials_invalid": self.credentials_invalid,
            "analysis_mode": self.analysis_mode.value,
            "thinking_enabled": self.thinking_enabled,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _save_session(self) -> None:
        if self.store is not None:
            self.store.save_session(self.session)

    def _save_credentials(self) -> None:
        if self.store is not None:
            self.store.save_credentials(self.credentials)

    def _save_preferences(self) -> None:
        if self.store is not None:
            self.store.save_preferences(
                Preferences(analysis_mode=self.analysis_mode, thinking_enabled=self.thinking_enabled)
            )

    def save_prompt_settings(self) -> None:
        if self.store is not None:
            self.store.save_prompt_settings(self.prompt_settings)
