"""Per-node artifact side-tables.

Four maps keyed by result node id: generated questions, the answered
snapshot submitted with a refinement, the free-form instructions sent
alongside it, and the semantic diff against the baseline. Entries live
exactly as long as their node.
"""

from collections.abc import Iterable
from typing import Any

from docrefine.core.errors import PreconditionError, PreconditionReason
from docrefine.core.schemas import ClarificationQuestion, NodeArtifacts


class ArtifactTables:
    def __init__(self):
        self.questions: dict[str, list[ClarificationQuestion]] = {}
        self.answered: dict[str, list[ClarificationQuestion]] = {}
        self.instructions: dict[str, str] = {}
        self.diffs: dict[str, str] = {}

    def _tables(self) -> tuple[dict, ...]:
        return (self.questions, self.answered, self.instructions, self.diffs)

    def keys(self) -> set[str]:
        """Every node id referenced by any table."""
        keys: set[str] = set()
        for table in self._tables():
            keys.update(table)
        return keys

    def set_questions(self, node_id: str, questions: list[ClarificationQuestion]) -> None:
        self.questions[node_id] = list(questions)

    def answer_question(self, node_id: str, question_id: str, answer: str) -> ClarificationQuestion:
        """Record the user's answer; only ``answer`` is ever mutated."""
        for index, question in enumerate(self.questions.get(node_id, [])):
            if question.id == question_id:
                updated = question.model_copy(update={"answer": answer})
                self.questions[node_id][index] = updated
                return updated
        raise PreconditionError(
            f"Question {question_id} not found for result {node_id}",
            PreconditionReason.UNKNOWN_NODE,
        )

    def record_refinement(
        self, node_id: str, answered: list[ClarificationQuestion], instructions: str
    ) -> None:
        # Frozen copy, independent of later edits to the live questions
        self.answered[node_id] = [q.model_copy(deep=True) for q in answered]
        self.instructions[node_id] = instructions

    def set_diff(self, node_id: str, diff: str) -> None:
        self.diffs[node_id] = diff

    def purge(self, node_ids: Iterable[str]) -> None:
        for node_id in node_ids:
            for table in self._tables():
                table.pop(node_id, None)

    def clear(self) -> None:
        for table in self._tables():
            table.clear()

    def for_node(self, node_id: str) -> NodeArtifacts:
        answered = self.answered.get(node_id)
        return NodeArtifacts(
            node_id=node_id,
            questions=[q.model_copy() for q in self.questions.get(node_id, [])],
            answered_questions=[q.model_copy() for q in answered] if answered is not None else None,
            instructions=self.instructions.get(node_id),
            diff=self.diffs.get(node_id),
        )

    def to_state(self) -> dict[str, Any]:
        return {
            "questions": {
                k: [q.model_dump() for q in v] for k, v in self.questions.items()
            },
            "answered_questions": {
                k: [q.model_dump() for q in v] for k, v in self.answered.items()
            },
            "custom_instructions": dict(self.instructions),
            "diffs": dict(self.diffs),
        }

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> "ArtifactTables":
        tables = cls()
        for node_id, items in (state.get("questions") or {}).items():
            tables.questions[node_id] = [ClarificationQuestion.model_validate(q) for q in items]
        for node_id, items in (state.get("answered_questions") or {}).items():
            tables.answered[node_id] = [ClarificationQuestion.model_validate(q) for q in items]
        tables.instructions.update(state.get("custom_instructions") or {})
        tables.diffs.update(state.get("diffs") or {})
        return tables
