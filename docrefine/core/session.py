"""The document session aggregate.

Owns the selected source document, the result history and the artifact
tables. Every mutation is a synchronous method, so a commit can never be
interleaved with another coroutine: readers see either the state before a
commit or the state after it.
"""

from typing import Any

from docrefine.core.artifacts import ArtifactTables
from docrefine.core.document_processing.base import SourceDocument
from docrefine.core.history import ResultHistory
from docrefine.core.schemas import (
    ClarificationQuestion,
    NodeArtifacts,
    NodeSummary,
    ResultNode,
)


def _title(markdown: str) -> str:
    for line in markdown.splitlines():
        if line.startswith("# "):
            return line[2:].strip()
    return ""


class DocumentSession:
    def __init__(
        self,
        history: ResultHistory | None = None,
        artifacts: ArtifactTables | None = None,
    ):
        self.history = history or ResultHistory()
        self.artifacts = artifacts or ArtifactTables()
        self.document: SourceDocument | None = None
        # Advances whenever the source document changes
        self.document_version = 0
        self._drop_dangling_artifacts()

    def _drop_dangling_artifacts(self) -> None:
        live = set(self.history.ids)
        self.artifacts.purge([key for key in self.artifacts.keys() if key not in live])

    def select_document(self, document: SourceDocument | None) -> None:
        """Switch (or clear) the source document, discarding all results."""
        self.document = document
        self.document_version += 1
        self.history.clear()
        self.artifacts.clear()

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    def commit_analysis(self, node: ResultNode) -> list[str]:
        """Replace the whole history with a fresh baseline."""
        removed = self.history.clear()
        self.artifacts.clear()
        self.history.append(node)
        return removed

    def commit_refinement(
        self,
        source_id: str,
        answered: list[ClarificationQuestion],
        instructions: str,
        node: ResultNode,
    ) -> list[str]:
        """
        Truncate after ``source_id`` and append ``node`` as its only successor.

        Artifacts of the discarded nodes are purged in the same step.

        Returns:
            Ids of the discarded nodes
        """
        removed = self.history.truncate_after(source_id)
        self.artifacts.purge(removed)
        self.artifacts.record_refinement(source_id, answered, instructions)
        self.history.append(node)
        return removed

    def set_questions(self, node_id: str, questions: list[ClarificationQuestion]) -> None:
        self.history.index_of(node_id)
        self.artifacts.set_questions(node_id, questions)

    def answer_question(self, node_id: str, question_id: str, answer: str) -> ClarificationQuestion:
        self.history.index_of(node_id)
        return self.artifacts.answer_question(node_id, question_id, answer)

    def set_diff(self, node_id: str, diff: str) -> None:
        self.history.index_of(node_id)
        self.artifacts.set_diff(node_id, diff)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def summaries(self) -> list[NodeSummary]:
        return [
            NodeSummary(
                id=node.id,
                index=index,
                title=_title(node.content) or f"Version {index}",
                content_length=len(node.content),
                usage=node.usage,
                created_at=node.created_at,
                has_questions=bool(self.artifacts.questions.get(node.id)),
                has_diff=node.id in self.artifacts.diffs,
            )
            for index, node in enumerate(self.history)
        ]

    def node_artifacts(self, node_id: str) -> NodeArtifacts:
        self.history.index_of(node_id)
        return self.artifacts.for_node(node_id)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_state(self) -> dict[str, Any]:
        state = self.artifacts.to_state()
        state["history"] = [node.model_dump(mode="json") for node in self.history]
        return state

    @classmethod
    def from_state(cls, state: dict[str, Any]) -> "DocumentSession":
        history = ResultHistory(ResultNode.model_validate(n) for n in state.get("history") or [])
        return cls(history=history, artifacts=ArtifactTables.from_state(state))
