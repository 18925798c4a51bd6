"""Error taxonomy for workflow commands.

Every failure a command can report is a ``DocRefineError`` subclass. The
orchestrator converts them into failed ``CommandResult`` values; nothing in
this hierarchy is retried internally.
"""

from enum import Enum
from typing import Any

AUTH_INDICATORS = (
    "authentication",
    "unauthenticated",
    "unauthorized",
    "no auth credentials",
    "api key not valid",
    "invalid api key",
)


def is_auth_failure(status: int | None, message: str | None) -> bool:
    """Whether a provider failure means the credentials were rejected."""
    if status == 401:
        return True
    lowered = (message or "").lower()
    return any(indicator in lowered for indicator in AUTH_INDICATORS)


class DocRefineError(Exception):
    """Base class for all engine errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class ProviderError(DocRefineError):
    """Transport or HTTP failure talking to a completion provider."""

    kind = "provider"

    def __init__(self, message: str, status_hint: int | None = None, provider: str | None = None):
        super().__init__(message)
        self.status_hint = status_hint
        self.provider = provider

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status_hint"] = self.status_hint
        data["provider"] = self.provider
        return data


class AuthError(ProviderError):
    """The provider rejected the configured credentials."""

    kind = "auth"


class ParseError(DocRefineError):
    """Structured output could not be recovered from completion text."""

    kind = "parse"

    def __init__(self, message: str, candidate: str | None = None, raw_text: str = ""):
        super().__init__(message)
        self.candidate = candidate
        self.raw_text = raw_text

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["candidate"] = self.candidate
        data["raw_text"] = self.raw_text
        return data


class PreconditionReason(str, Enum):
    BUSY = "busy"
    NO_DOCUMENT = "no_document"
    NO_CREDENTIALS = "no_credentials"
    NO_MODEL = "no_model"
    UNKNOWN_NODE = "unknown_node"


class PreconditionError(DocRefineError):
    """A command was issued without its required inputs or while another ran."""

    kind = "precondition"

    def __init__(self, message: str, reason: PreconditionReason):
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["reason"] = self.reason.value
        return data


class IngestionError(DocRefineError):
    """Raised when the source document cannot be turned into a multimodal payload."""

    kind = "ingestion"

    def __init__(self, message: str, ingestor: str | None = None, recoverable: bool = False):
        super().__init__(message)
        self.ingestor = ingestor
        self.recoverable = recoverable


class SupersededError(DocRefineError):
    """The command completed after its generation token went stale; result discarded."""

    kind = "superseded"


class SettingsImportError(DocRefineError):
    """An exported settings file could not be imported."""

    kind = "settings_import"
