"""In-memory prompt graph with validated edge operations."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Iterable

from pydantic import ValidationError

from .errors import GraphIntegrityError, GraphValidationError, SerializationError
from .schema import PERSISTED_FIELDS, FlowData, PromptNode, ValidationResult
from .validator import ConnectionValidator, topological_order

logger = logging.getLogger(__name__)


class GraphModel:
    """Owns the prompt nodes and their dependency edges. No I/O."""

    def __init__(self, nodes: Iterable[PromptNode] | None = None):
        initial = list(nodes or [])
        topological_order(initial)
        self._nodes: dict[str, PromptNode] = {node.id: node for node in initial}
        self.validator = ConnectionValidator(self)

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[PromptNode]:
        return list(self._nodes.values())

    def get(self, node_id: str) -> PromptNode | None:
        return self._nodes.get(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def edges(self) -> set[tuple[str, str]]:
        """Return all (source, target) pairs implied by depends_on."""
        return {(dep, node.id) for node in self._nodes.values() for dep in node.depends_on}

    # ------------------------------------------------------------------
    # Node CRUD
    # ------------------------------------------------------------------

    def add_node(self, x: float = 100, y: float = 100) -> str:
        """Create an empty node at (x, y) and return its id."""
        node_id = str(uuid.uuid4())
        self._nodes[node_id] = PromptNode(id=node_id, x=x, y=y)
        return node_id

    def remove_node(self, node_id: str) -> bool:
        """Remove a node and strip it from every other node's dependencies."""
        if self._nodes.pop(node_id, None) is None:
            return False
        for node in self._nodes.values():
            if node_id in node.depends_on:
                node.depends_on = [dep for dep in node.depends_on if dep != node_id]
        return True

    def set_position(self, node_id: str, x: float, y: float) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            return False
        node.x = x
        node.y = y
        return True

    def set_size(self, node_id: str, w: float, h: float) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            return False
        node.w = w
        node.h = h
        return True

    def update_text(
        self,
        node_id: str,
        system_prompt: str | None = None,
        input: str | None = None,
    ) -> bool:
        node = self._nodes.get(node_id)
        if node is None:
            return False
        if system_prompt is not None:
            node.system_prompt = system_prompt
        if input is not None:
            node.input = input
        return True

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def validate_dependency(self, target_id: str, source_id: str) -> ValidationResult:
        return self.validator.validate(source_id, target_id)

    def add_dependency(self, target_id: str, source_id: str) -> None:
        """Make target depend on source. Raises GraphValidationError if the edge is illegal."""
        result = self.validator.validate(source_id, target_id)
        if not result.is_valid:
            raise GraphValidationError(result.reason)

        target = self._nodes[target_id]
        if source_id not in target.depends_on:
            target.depends_on.append(source_id)

    def remove_dependency(self, target_id: str, source_id: str) -> bool:
        target = self._nodes.get(target_id)
        if target is None or source_id not in target.depends_on:
            return False
        target.depends_on.remove(source_id)
        return True

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self) -> str:
        """Dump all nodes, including their dependencies, as JSON."""
        return json.dumps(
            {
                "nodes": [
                    node.model_dump(by_alias=True, include=PERSISTED_FIELDS)
                    for node in self._nodes.values()
                ]
            }
        )

    def deserialize(self, data: str, keep_prior: bool = False) -> bool:
        """Replace the node set with parsed data.

        Never raises on malformed data: the failure is logged and the graph
        is left empty, or unchanged when keep_prior is set. Returns True when
        the new data was applied.
        """
        try:
            nodes = parse_flow_data(data)
        except SerializationError as e:
            logger.warning("Failed to deserialize flow data: %s", e)
            if not keep_prior:
                self._nodes = {}
            return False

        self._nodes = {node.id: node for node in nodes}
        return True


def parse_flow_data(data: str) -> list[PromptNode]:
    """Parse and check persisted flow data. Raises SerializationError."""
    try:
        parsed = json.loads(data)
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError(f"Invalid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise SerializationError(f"Expected a JSON object, got {type(parsed).__name__}")
    if parsed.get("nodes") is None:
        parsed = {**parsed, "nodes": []}

    try:
        flow = FlowData.model_validate(parsed)
    except ValidationError as e:
        raise SerializationError(str(e)) from e

    try:
        topological_order(flow.nodes)
    except GraphIntegrityError as e:
        raise SerializationError(str(e)) from e

    for node in flow.nodes:
        node.status = "idle"
        node.error_message = None
    return flow.nodes
