"""Pydantic models defining the prompt graph structure."""

from __future__ import annotations

from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

NodeStatus = Literal["idle", "waiting", "running", "complete", "error"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"complete", "error"})

DEFAULT_WIDTH = 200
DEFAULT_HEIGHT = 230

# Fields written to persisted flow data. Execution status is never persisted.
PERSISTED_FIELDS = {"id", "x", "y", "w", "h", "system_prompt", "input", "depends_on", "output"}


class PromptNode(BaseModel):
    """A single prompt node on the canvas."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    x: float = 100
    y: float = 100
    w: float = DEFAULT_WIDTH
    h: float = DEFAULT_HEIGHT
    system_prompt: str = Field("", alias="systemPrompt")
    input: str = ""  # only used when the node has no dependencies
    depends_on: list[str] = Field(default_factory=list, alias="dependsOn")
    output: str = ""
    status: NodeStatus = "idle"
    error_message: str | None = Field(None, alias="errorMessage")


class FlowData(BaseModel):
    """Persisted representation of a whole graph."""

    nodes: list[PromptNode] = []


class ValidationResult(BaseModel):
    """Outcome of checking whether an edge may be added."""

    is_valid: bool
    reason: str = ""


class GraphView(Protocol):
    """Read-only access to a graph's nodes."""

    @property
    def nodes(self) -> list[PromptNode]: ...

    def get(self, node_id: str) -> PromptNode | None: ...
