"""Recovery of structured payloads from LLM completion text.

Free-text providers wrap JSON in prose, code fences or both. The helpers here
bracket the embedded JSON object (or, failing that, a bare array), decode it,
and validate it into clarification questions. They are pure functions: text
in, questions or ``ParseError`` out.
"""

import json
from typing import Any

from docrefine.core.errors import ParseError
from docrefine.core.schemas import ClarificationQuestion


def _span(text: str, opener: str, closer: str) -> tuple[int, int] | None:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end == -1 or start >= end:
        return None
    return start, end


def extract_json_candidates(raw_output: str) -> list[tuple[str, bool]]:
    """
    Locate the JSON structures embedded in LLM output, most likely first.

    The object bracketing (first ``{`` .. last ``}``) comes first and the
    array bracketing (first ``[`` .. last ``]``) second. Prose such as ``[1]``
    or ``[end]`` around a JSON object widens the array bracketing past the
    object, so the array is only a fallback.

    Args:
        raw_output: Raw string from LLM response

    Returns:
        List of (candidate substring, whether the candidate is an array)

    Raises:
        ParseError: If no JSON structure is present
    """
    text = raw_output or ""
    candidates = []
    obj_span = _span(text, "{", "}")
    if obj_span:
        candidates.append((text[obj_span[0] : obj_span[1] + 1], False))
    arr_span = _span(text, "[", "]")
    if arr_span:
        candidates.append((text[arr_span[0] : arr_span[1] + 1], True))

    if not candidates:
        raise ParseError("no JSON structure found", candidate=None, raw_text=text)
    return candidates


def parse_llm_json_dict(raw_output: str) -> dict[str, Any]:
    """
    Parse LLM output as JSON, returning a raw dict.

    An object carrying a ``questions`` array is returned as is. Otherwise a
    bare array is wrapped as ``{"questions": array}``. An object without
    ``questions`` is returned when no array decodes, so validation can report
    it. When nothing decodes, the object's decode error is raised.

    Args:
        raw_output: Raw string from LLM response

    Returns:
        Parsed dict from JSON

    Raises:
        ParseError: If no JSON is found or it fails to decode
    """
    candidates = extract_json_candidates(raw_output)
    decode_error: ParseError | None = None
    fallback: dict[str, Any] | None = None

    for candidate, is_array in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as e:
            if decode_error is None:
                decode_error = ParseError(
                    f"invalid JSON in completion: {e.msg} (line {e.lineno}, column {e.colno})",
                    candidate=candidate,
                    raw_text=raw_output,
                )
            continue

        if is_array:
            if isinstance(parsed, list):
                return {"questions": parsed}
        elif isinstance(parsed, dict):
            if isinstance(parsed.get("questions"), list):
                return parsed
            fallback = parsed

    if fallback is not None:
        return fallback
    if decode_error is not None:
        raise decode_error
    raise ParseError(
        "expected a JSON object or array", candidate=candidates[0][0], raw_text=raw_output
    )

def validate_questions_payload(payload: Any, raw_text: str = "") -> list[ClarificationQuestion]:
    """
    Validate a decoded payload into clarification questions.

    Elements without a non-empty ``question`` string are dropped. Each
    accepted question gets a fresh id and an empty answer.

    Args:
        payload: Decoded JSON (dict with a ``questions`` list, or a bare list)
        raw_text: Original completion text, kept for diagnostics

    Returns:
        List of ClarificationQuestion

    Raises:
        ParseError: If the payload has no ``questions`` array
    """
    if isinstance(payload, list):
        payload = {"questions": payload}
    items = payload.get("questions") if isinstance(payload, dict) else None
    if not isinstance(items, list):
        raise ParseError(
            "response has no 'questions' array",
            candidate=json.dumps(payload, ensure_ascii=False, default=str),
            raw_text=raw_text,
        )

    questions: list[ClarificationQuestion] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        text = item.get("question")
        if not isinstance(text, str) or not text.strip():
            continue
        suggestions = item.get("suggestions")
        if not isinstance(suggestions, list):
            suggestions = []
        questions.append(
            ClarificationQuestion(
                question=text.strip(),
                suggestions=[s for s in suggestions if isinstance(s, str) and s.strip()],
            )
        )
    return questions


def parse_clarification_questions(raw_output: str) -> list[ClarificationQuestion]:
    """Parse free-text completion output into clarification questions."""
    return validate_questions_payload(parse_llm_json_dict(raw_output), raw_text=raw_output)
