"""Single-branch result history.

Index 0 is the baseline produced by the first analysis; the current version
is always the last node. Refining from node ``k`` discards every node after
``k`` before the refined result is appended, so no node ever has more than
one successor.
"""

from collections.abc import Iterable, Iterator

from docrefine.core.errors import PreconditionError, PreconditionReason
from docrefine.core.schemas import ResultNode


class ResultHistory:
    """Ordered sequence of immutable result nodes."""

    def __init__(self, nodes: Iterable[ResultNode] = ()):
        self._nodes: list[ResultNode] = []
        for node in nodes:
            self.append(node)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ResultNode]:
        return iter(tuple(self._nodes))

    def __contains__(self, node_id: object) -> bool:
        return any(node.id == node_id for node in self._nodes)

    @property
    def ids(self) -> list[str]:
        return [node.id for node in self._nodes]

    def append(self, node: ResultNode) -> None:
        if node.id in self:
            raise ValueError(f"Node {node.id} is already in the history")
        self._nodes.append(node)

    def index_of(self, node_id: str) -> int:
        for index, node in enumerate(self._nodes):
            if node.id == node_id:
                return index
        raise PreconditionError(
            f"Result {node_id} is not in the history", PreconditionReason.UNKNOWN_NODE
        )

    def get(self, node_id: str) -> ResultNode:
        return self._nodes[self.index_of(node_id)]

    def truncate_after(self, node_id: str) -> list[str]:
        """
        Drop every node after ``node_id``.

        Returns:
            Ids of the discarded nodes, oldest first
        """
        keep = self.index_of(node_id) + 1
        removed = [node.id for node in self._nodes[keep:]]
        del self._nodes[keep:]
        return removed

    def current(self) -> ResultNode | None:
        """Latest node, or None before the first analysis."""
        return self._nodes[-1] if self._nodes else None

    def baseline(self) -> ResultNode | None:
        return self._nodes[0] if self._nodes else None

    def clear(self) -> list[str]:
        removed = self.ids
        self._nodes.clear()
        return removed

    def snapshot(self) -> tuple[ResultNode, ...]:
        return tuple(self._nodes)
