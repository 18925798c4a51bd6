"""Shared API dependencies and error mapping."""

from functools import lru_cache

from fastapi import HTTPException

from docrefine.core.errors import (
    AuthError,
    DocRefineError,
    IngestionError,
    ParseError,
    PreconditionError,
    PreconditionReason,
    ProviderError,
    SettingsImportError,
    SupersededError,
)
from docrefine.db.kv_store import get_kv_store
from docrefine.db.session_store import SessionStore
from docrefine.services.workflow_orchestrator import CommandResult, WorkflowOrchestrator


@lru_cache(maxsize=1)
def get_orchestrator() -> WorkflowOrchestrator:
    """
    Get the process-wide orchestrator (cached singleton).

    State is restored from the key-value store on first use.
    """
    return WorkflowOrchestrator.from_store(SessionStore(get_kv_store()))


def status_for(error: DocRefineError) -> int:
    if isinstance(error, PreconditionError):
        if error.reason == PreconditionReason.BUSY:
            return 409
        if error.reason == PreconditionReason.UNKNOWN_NODE:
            return 404
        return 400
    if isinstance(error, AuthError):
        return 401
    if isinstance(error, ProviderError):
        return 502
    if isinstance(error, (ParseError, IngestionError)):
        return 422
    if isinstance(error, SupersededError):
        return 409
    if isinstance(error, SettingsImportError):
        return 400
    return 500


def http_error(error: DocRefineError) -> HTTPException:
    return HTTPException(status_code=status_for(error), detail=error.to_dict())


def unwrap(result: CommandResult):
    """Return a command's value or raise the mapped HTTP error."""
    if not result.ok:
        raise http_error(result.error)
    return result.value
