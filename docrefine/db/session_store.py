"""Persistence of session state, prompt settings and credentials.

Every operation is best-effort: read failures fall back to defaults and write
failures are logged, never raised.
"""

from typing import Any

from pydantic import BaseModel, ValidationError

from docrefine.core.config import Settings
from docrefine.core.logging import get_logger
from docrefine.core.presets import PromptSettings
from docrefine.core.schemas import AnalysisMode, ProviderKind
from docrefine.core.session import DocumentSession
from docrefine.db.kv_store import KeyValueStore, KeyValueStoreError

logger = get_logger(__name__)

SESSION_KEY = "session"
PROMPT_SETTINGS_KEY = "prompt_settings"
CREDENTIALS_KEY = "credentials"
PREFERENCES_KEY = "preferences"


class Credentials(BaseModel):
    provider: ProviderKind | None = None
    openrouter_api_key: str | None = None
    credentials_invalid: bool = False


class Preferences(BaseModel):
    analysis_mode: AnalysisMode | None = None
    thinking_enabled: bool | None = None


class SessionStore:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def _load(self, key: str) -> Any | None:
        try:
            return self.store.get(key)
        except KeyValueStoreError as e:
            logger.warning(f"Could not load '{key}', using defaults: {e}")
            return None

    def _save(self, key: str, value: Any) -> bool:
        try:
            self.store.set(key, value)
            return True
        except KeyValueStoreError as e:
            logger.warning(f"Could not save '{key}': {e}")
            return False

    # Session ---------------------------------------------------------------

    def load_session(self) -> DocumentSession:
        state = self._load(SESSION_KEY)
        if not state:
            return DocumentSession()
        try:
            session = DocumentSession.from_state(state)
        except (ValidationError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Discarding unreadable session state: {e}")
            return DocumentSession()
        logger.info(f"Restored session with {len(session.history)} result(s)")
        return session

    def save_session(self, session: DocumentSession) -> bool:
        return self._save(SESSION_KEY, session.to_state())

    # Prompt settings -------------------------------------------------------

    def load_prompt_settings(self, settings: Settings) -> PromptSettings:
        data = self._load(PROMPT_SETTINGS_KEY)
        if not data:
            return PromptSettings.defaults(settings)
        try:
            return PromptSettings.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable prompt settings: {e}")
            return PromptSettings.defaults(settings)

    def save_prompt_settings(self, prompt_settings: PromptSettings) -> bool:
        return self._save(PROMPT_SETTINGS_KEY, prompt_settings.model_dump(mode="json"))

    # Credentials -----------------------------------------------------------

    def load_credentials(self) -> Credentials:
        data = self._load(CREDENTIALS_KEY)
        if not data:
            return Credentials()
        try:
            return Credentials.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable credentials: {e}")
            return Credentials()

    def save_credentials(self, credentials: Credentials) -> bool:
        return self._save(CREDENTIALS_KEY, credentials.model_dump(mode="json"))

    # Preferences -----------------------------------------------------------

    def load_preferences(self) -> Preferences:
        data = self._load(PREFERENCES_KEY)
        try:
            return Preferences.model_validate(data or {})
        except ValidationError as e:
            logger.warning(f"Discarding unreadable preferences: {e}")
            return Preferences()

    def save_preferences(self, preferences: Preferences) -> bool:
        return self._save(PREFERENCES_KEY, preferences.model_dump(mode="json"))
