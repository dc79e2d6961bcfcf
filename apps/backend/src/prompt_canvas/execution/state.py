"""Per-run node state and the events published while a run proceeds."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

from ..graph.schema import TERMINAL_STATUSES, NodeStatus


class ExecutionNodeState(BaseModel):
    """Execution record for one node. Only that node's own task writes it."""

    node_id: str
    status: NodeStatus = "idle"
    input: str = ""
    output: str = ""
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class StatusEvent(BaseModel):
    """Published on every node status transition."""

    type: Literal["status"] = "status"
    run_id: str
    node_id: str
    status: NodeStatus
    output: str = ""
    error_message: str | None = None


class ChunkEvent(BaseModel):
    """Published for each streamed output fragment."""

    type: Literal["chunk"] = "chunk"
    run_id: str
    node_id: str
    chunk: str
