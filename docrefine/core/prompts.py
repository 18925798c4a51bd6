"""Default prompts and request assembly for the four workflow stages."""

import json

from docrefine.core.schemas import ClarificationQuestion

# ============================================================================
# Analysis
# ============================================================================

DEFAULT_PERSONA_PROMPT = """You are a meticulous technical writer who converts scanned and exported design documents into clean, faithful Markdown.

## Rules
- Preserve every heading, list, table and caption in reading order.
- Reproduce tables as GitHub-flavoured Markdown tables; never summarise them.
- Describe figures and diagrams in a short blockquote where they appear.
- Do not invent content that is not present in the source.
- Output Markdown only, with no preamble or closing remarks."""

DEFAULT_USER_PROMPT = "Convert the attached document into a single, well-structured Markdown document."

DEFAULT_TEMPERATURE = 0.2

# ============================================================================
# Question generation
# ============================================================================

DEFAULT_QG_PERSONA_PROMPT = """You are a senior reviewer checking a Markdown conversion of a design document for ambiguity.

Ask only questions whose answers would change the document: unclear table structure, illegible values, ambiguous terminology, missing units, or content that could belong to more than one section.

For each question offer short suggested answers the author can pick from."""

DEFAULT_QG_USER_PROMPT = "Review the following Markdown document and list the clarification questions that would most improve its accuracy."

DEFAULT_QG_TEMPERATURE = 0.4

# ============================================================================
# Refinement
# ============================================================================

DEFAULT_REFINE_PERSONA_PROMPT = """You are a meticulous technical writer revising a Markdown conversion of a design document.

Apply the author's answers and instructions precisely, keep everything else unchanged, and output the complete revised Markdown document only."""

DEFAULT_REFINE_USER_PROMPT = "Revise the original document using the question-and-answer session and any additional instructions below. Re-check the attached source pages while doing so."

DEFAULT_REFINE_TEMPERATURE = 0.2

# ============================================================================
# Semantic diff
# ============================================================================

DEFAULT_DIFF_PERSONA_PROMPT = """You compare two versions of the same document and report how their meaning changed.

Ignore formatting, whitespace and wording changes that do not alter meaning. Report added, removed and modified facts as a concise Markdown bullet list grouped by section."""

DEFAULT_DIFF_USER_PROMPT = "List the semantic differences between the original version and the revised version below."

DEFAULT_DIFF_TEMPERATURE = 0.1

# ============================================================================
# Assembly
# ============================================================================

EXTRACTED_TEXT_PREAMBLE = """The text below was extracted from the same PDF the following page images were rendered from.
Image recognition alone can misread characters, so treat this text as the authoritative source for wording, numbers and names.
Use the images for layout, figures and table structure, and combine both to produce the final document.

--- BEGIN EXTRACTED TEXT ---
{text}
--- END EXTRACTED TEXT ---
"""

QUESTIONS_JSON_INSTRUCTION = """Respond with a single JSON object and nothing else, matching this JSON schema:
{schema}

Example:
{{"questions": [{{"question": "Is the value in the 'Timeout' row seconds or milliseconds?", "suggestions": ["seconds", "milliseconds"]}}]}}"""

NO_ANSWER = "(no answer)"


def _delimited(label: str, content: str) -> str:
    """Wrap embedded Markdown in markers that fenced code inside it cannot close."""
    return f"--- BEGIN {label} ---\n{content}\n--- END {label} ---"


def build_extracted_text_context(text: str) -> str:
    return EXTRACTED_TEXT_PREAMBLE.format(text=text)


def build_questions_json_instruction(schema: dict) -> str:
    """JSON-only instruction for providers without native schema enforcement."""
    return QUESTIONS_JSON_INSTRUCTION.format(schema=json.dumps(schema, ensure_ascii=False))


def build_question_instruction(user_prompt: str, document: str) -> str:
    return f"{user_prompt}\n\n# Document\n{_delimited('DOCUMENT', document)}"


def render_qa_transcript(questions: list[ClarificationQuestion]) -> str:
    """Render answered questions as a Q/A transcript."""
    return "\n\n".join(
        f"Q: {q.question}\nA: {q.answer.strip() or NO_ANSWER}" for q in questions
    )


def build_refinement_instruction(
    user_prompt: str,
    source_document: str,
    answered_questions: list[ClarificationQuestion],
    instructions: str,
) -> str:
    """
    Assemble the single instruction string for a refinement request.

    Embeds the source version verbatim, the Q/A transcript, and the free-form
    instructions, which take priority over the transcript where both cover
    the same point.
    """
    sections = [
        user_prompt,
        f"# Original document\n{_delimited('ORIGINAL DOCUMENT', source_document)}",
        f"# Questions and answers\n{render_qa_transcript(answered_questions) or NO_ANSWER}",
    ]
    if instructions.strip():
        sections.append(
            "# Additional instructions\n"
            "These instructions take priority over the questions and answers above "
            "wherever both address the same point.\n\n"
            f"{instructions.strip()}"
        )
    return "\n\n".join(sections)


def build_diff_instruction(user_prompt: str, baseline: str, revised: str) -> str:
    return (
        f"{user_prompt}\n\n"
        f"# Original version\n{_delimited('ORIGINAL VERSION', baseline)}\n\n"
        f"# Revised version\n{_delimited('REVISED VERSION', revised)}"
    )
