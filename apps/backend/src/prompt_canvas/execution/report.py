"""Execution report model with markdown rendering."""

from datetime import datetime

from pydantic import BaseModel

from .state import ExecutionNodeState


class ExecutionReport(BaseModel):
    """Summary of a flow execution run."""

    run_id: str
    total_nodes: int
    completed: int
    failed: int
    nodes: list[ExecutionNodeState] = []
    started_at: datetime
    completed_at: datetime | None = None

    def node(self, node_id: str) -> ExecutionNodeState | None:
        return next((state for state in self.nodes if state.node_id == node_id), None)

    def to_markdown(self) -> str:
        lines = [
            f"# Execution Report: `{self.run_id}`",
            "",
            f"**Total nodes:** {self.total_nodes}",
            f"**Completed:** {self.completed}",
            f"**Failed:** {self.failed}",
            "",
            "## Nodes",
            "",
            "| # | Node | Status | Detail |",
            "|---|------|--------|--------|",
        ]

        for i, state in enumerate(self.nodes, 1):
            if state.status == "error":
                detail = state.error_message or ""
            else:
                detail = state.output.replace("\n", " ")
                if len(detail) > 60:
                    detail = detail[:57] + "..."

            status_icon = {"complete": "OK", "error": "FAIL"}.get(state.status, state.status)
            lines.append(f"| {i} | `{state.node_id}` | {status_icon} | {detail} |")

        lines.append("")
        if self.completed_at:
            duration = (self.completed_at - self.started_at).total_seconds()
            lines.append(f"**Duration:** {duration:.2f}s")

        return "\n".join(lines)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
