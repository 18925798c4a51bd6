"""Helpers for exporting result versions as Markdown files."""

import re

DEFAULT_FILENAME = "document.md"
MAX_FILENAME_LENGTH = 250

_UNSAFE_CHARS = re.compile(r'[/\\?%*:|"<>]')
_HEADING = re.compile(r"^#\s+([^\n]+)")


def sanitize_filename(name: str) -> str:
    """Make ``name`` safe as a file name and force a ``.md`` extension."""
    if not name:
        return DEFAULT_FILENAME
    sanitized = _UNSAFE_CHARS.sub("-", name)
    sanitized = re.sub(r"\s+", "_", sanitized)

    if not sanitized.lower().endswith(".md"):
        stem, dot, _ = sanitized.rpartition(".")
        if dot:
            sanitized = stem
        sanitized += ".md"
    return sanitized[:MAX_FILENAME_LENGTH]


def extract_filename_from_markdown(markdown: str) -> str:
    """Derive a file name from the document's leading ``# `` heading."""
    if not markdown:
        return DEFAULT_FILENAME
    match = _HEADING.match(markdown)
    if match and match.group(1).strip():
        return sanitize_filename(match.group(1).strip())
    return DEFAULT_FILENAME
