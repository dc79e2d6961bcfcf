"""Application service tying the graph, the execution engine and persistence together."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, AsyncGenerator

from .execution.engine import ExecutionEngine
from .execution.report import ExecutionReport
from .generation import create_generation_service
from .graph.errors import GraphIntegrityError
from .graph.model import GraphModel
from .graph.schema import PromptNode, ValidationResult
from .storage.store import FileFlowStore, PersistencePort

if TYPE_CHECKING:
    from .config import Settings
    from .generation.base import GenerationService

logger = logging.getLogger(__name__)

# Position of the node seeded into an empty canvas
DEFAULT_NODE_POSITION = (200, 150)


class FlowController:
    """Owns one flow. Every edit is validated, applied and saved."""

    def __init__(
        self,
        store: PersistencePort,
        engine: ExecutionEngine,
        graph: GraphModel | None = None,
    ):
        self.store = store
        self.engine = engine
        self.graph = graph or GraphModel()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: PersistencePort | None = None,
        service: GenerationService | None = None,
    ) -> FlowController:
        store = store or FileFlowStore(settings.flow_data_dir, settings.flow_id)
        service = service or create_generation_service(settings)
        return cls(store=store, engine=ExecutionEngine.from_settings(settings, service))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> bool:
        """Load the saved flow. An empty store seeds a single node."""
        saved = self.store.load()
        if saved is None:
            self.graph = GraphModel()
            self.graph.add_node(*DEFAULT_NODE_POSITION)
            return False
        return self.graph.deserialize(saved)

    def save(self) -> None:
        self.store.save(self.graph.serialize())

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def add_node(self, x: float = 100, y: float = 100) -> PromptNode:
        node_id = self.graph.add_node(x, y)
        self.save()
        return self.graph.get(node_id)

    def remove_node(self, node_id: str) -> bool:
        if node_id not in self.graph:
            return False
        self.engine.cancel_node(node_id)
        self.graph.remove_node(node_id)
        self.save()
        return True

    def move_node(self, node_id: str, x: float, y: float) -> bool:
        return self._saved(self.graph.set_position(node_id, x, y))

    def resize_node(self, node_id: str, w: float, h: float) -> bool:
        return self._saved(self.graph.set_size(node_id, w, h))

    def update_node(
        self,
        node_id: str,
        system_prompt: str | None = None,
        input: str | None = None,
    ) -> bool:
        return self._saved(self.graph.update_text(node_id, system_prompt=system_prompt, input=input))

    def validate_connection(self, source_id: str, target_id: str) -> ValidationResult:
        return self.graph.validate_dependency(target_id, source_id)

    def connect(self, source_id: str, target_id: str) -> None:
        """Make target depend on source. Raises GraphValidationError if illegal."""
        self.graph.add_dependency(target_id, source_id)
        self.save()

    def disconnect(self, source_id: str, target_id: str) -> bool:
        return self._saved(self.graph.remove_dependency(target_id, source_id))

    def _saved(self, changed: bool) -> bool:
        if changed:
            self.save()
        return changed

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def run(self) -> ExecutionReport:
        """Run the flow, superseding any active run, and persist terminal outputs."""
        for node in self.graph.nodes:
            node.status = "idle"
            node.output = ""
            node.error_message = None

        report = await self.engine.run(self.graph)

        for state in report.nodes:
            node = self.graph.get(state.node_id)
            if node is None:  # deleted mid-run
                continue
            node.status = state.status
            node.output = state.output
            node.error_message = state.error_message

        self.save()
        return report

    def cancel_run(self) -> bool:
        return self.engine.cancel()

    async def run_events(self, stream: bool = False) -> AsyncGenerator[dict[str, Any], None]:
        """Run the flow and yield events as they happen.

        Yields dicts with:
          - type: "status" | "chunk" | "report" | "cancelled" | "error"
        """
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        unsubscribe = [self.engine.add_status_listener(lambda e: queue.put_nowait(e.model_dump()))]
        if stream:
            unsubscribe.append(self.engine.add_chunk_listener(lambda e: queue.put_nowait(e.model_dump())))

        run_task = asyncio.create_task(self.run())
        try:
            while True:
                next_event = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait(
                    {next_event, run_task}, return_when=asyncio.FIRST_COMPLETED
                )
                if next_event in done:
                    yield next_event.result()
                    continue
                next_event.cancel()
                break

            while not queue.empty():
                yield queue.get_nowait()

            if run_task.cancelled():
                yield {"type": "cancelled", "content": "Run was cancelled"}
            elif isinstance(run_task.exception(), GraphIntegrityError):
                yield {"type": "error", "content": str(run_task.exception())}
            else:
                yield {"type": "report", "content": run_task.result().to_dict()}
        finally:
            for remove in unsubscribe:
                remove()
            if not run_task.done():
                run_task.cancel()

    def snapshot(self) -> dict[str, Any]:
        """Graph as JSON-ready dicts, with live status while a run is active."""
        live = self.engine.get_node_states() if self.engine.is_running else {}
        nodes = []
        for node in self.graph.nodes:
            data = node.model_dump(mode="json")
            state = live.get(node.id)
            if state is not None:
                data.update(
                    status=state.status,
                    output=state.output,
                    error_message=state.error_message,
                )
            nodes.append(data)
        return {"nodes": nodes, "running": self.engine.is_running}

    async def aclose(self) -> None:
        self.engine.cancel()
        await self.engine.service.aclose()
