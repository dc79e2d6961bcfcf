"""Edge validation and integrity checks for the prompt graph."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import Iterable

from .errors import GraphIntegrityError
from .schema import GraphView, PromptNode, ValidationResult


class ConnectionValidator:
    """Decides whether a new dependency edge keeps the graph acyclic and well-formed.

    An edge ``source -> target`` means ``target.depends_on`` gains ``source``.
    It is illegal exactly when ``target`` is already an ancestor of ``source``.
    """

    def __init__(self, graph: GraphView):
        self.graph = graph

    def validate(self, source_id: str, target_id: str) -> ValidationResult:
        if source_id == target_id:
            return ValidationResult(is_valid=False, reason="A node cannot be connected to itself")

        source = self.graph.get(source_id)
        if source is None:
            return ValidationResult(is_valid=False, reason=f"Source node {source_id} does not exist")

        if self.graph.get(target_id) is None:
            return ValidationResult(is_valid=False, reason=f"Target node {target_id} does not exist")

        if self._is_ancestor(target_id, source):
            return ValidationResult(
                is_valid=False,
                reason=f"Connecting {source_id} to {target_id} would create a cycle: "
                f"{source_id} already depends on {target_id}",
            )

        return ValidationResult(is_valid=True)

    def _is_ancestor(self, ancestor_id: str, node: PromptNode) -> bool:
        """Breadth-first search backward along depends_on edges starting at node."""
        seen: set[str] = {node.id}
        queue: deque[str] = deque(node.depends_on)

        while queue:
            current_id = queue.popleft()
            if current_id == ancestor_id:
                return True
            if current_id in seen:
                continue
            seen.add(current_id)

            current = self.graph.get(current_id)
            if current is not None:
                queue.extend(current.depends_on)

        return False


def topological_order(nodes: Iterable[PromptNode]) -> list[str]:
    """Return node IDs in dependency order.

    Raises GraphIntegrityError on duplicate ids, dangling references,
    self-loops, repeated dependencies or cycles.
    """
    nodes = list(nodes)
    all_ids: list[str] = []
    known: set[str] = set()
    for node in nodes:
        if node.id in known:
            raise GraphIntegrityError(f"Duplicate node id: {node.id}")
        known.add(node.id)
        all_ids.append(node.id)

    in_degree: dict[str, int] = {nid: 0 for nid in all_ids}
    dependents: dict[str, list[str]] = defaultdict(list)

    for node in nodes:
        if len(set(node.depends_on)) != len(node.depends_on):
            raise GraphIntegrityError(f"Node {node.id} lists a dependency more than once")
        for dep in node.depends_on:
            if dep == node.id:
                raise GraphIntegrityError(f"Node {node.id} depends on itself")
            if dep not in known:
                raise GraphIntegrityError(f"Node {node.id} depends on unknown node {dep}")
            dependents[dep].append(node.id)
            in_degree[node.id] += 1

    queue: deque[str] = deque(nid for nid in all_ids if in_degree[nid] == 0)

    order: list[str] = []
    while queue:
        nid = queue.popleft()
        order.append(nid)
        for dependent in dependents[nid]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(order) != len(all_ids):
        missing = sorted(set(all_ids) - set(order))
        raise GraphIntegrityError(f"Cycle detected involving nodes: {', '.join(missing)}")

    return order
