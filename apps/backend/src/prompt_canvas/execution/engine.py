"""Concurrent executor which runs every node of a prompt graph exactly once."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Literal

from ..generation.base import GenerationResult, GenerationService
from ..graph.schema import GraphView, NodeStatus
from ..graph.validator import topological_order
from .report import ExecutionReport
from .state import ChunkEvent, ExecutionNodeState, StatusEvent

if TYPE_CHECKING:
    from ..config import Settings

logger = logging.getLogger(__name__)

INPUT_SEPARATOR = "\n\n"
CANCELLED_MESSAGE = "Execution cancelled"

FailurePolicy = Literal["substitute", "propagate"]
StatusListener = Callable[[StatusEvent], None]
ChunkListener = Callable[[ChunkEvent], None]


@dataclass(frozen=True)
class NodeSpec:
    """The parts of a node a run reads, frozen when the run starts."""

    id: str
    system_prompt: str
    input: str
    depends_on: tuple[str, ...]


class FlowRun:
    """One execution of a graph snapshot.

    Each node gets exactly one task per run. Tasks are created on first
    reference and memoized, so every dependent awaiting a node awaits the
    same task and the node's generation call happens once.
    """

    def __init__(self, engine: ExecutionEngine, specs: list[NodeSpec]):
        self.engine = engine
        self.run_id = uuid.uuid4().hex[:12]
        self.specs: dict[str, NodeSpec] = {spec.id: spec for spec in specs}
        self.states: dict[str, ExecutionNodeState] = {
            spec.id: ExecutionNodeState(node_id=spec.id) for spec in specs
        }
        self.tasks: dict[str, asyncio.Task] = {}
        self.started_at = datetime.now()
        self.cancelled = False

    async def execute(self) -> ExecutionReport:
        for state in self.states.values():
            self._publish(state)

        for node_id in self.specs:
            self._task_for(node_id)

        await asyncio.gather(*self.tasks.values(), return_exceptions=True)

        # Tasks cancelled before their first step never recorded a terminal state
        for node_id, state in self.states.items():
            if not state.is_terminal:
                self._finish(state, error=CANCELLED_MESSAGE)

        if self.cancelled:
            raise asyncio.CancelledError(f"Run {self.run_id} was cancelled")

        return self.report()

    def report(self) -> ExecutionReport:
        states = list(self.states.values())
        return ExecutionReport(
            run_id=self.run_id,
            total_nodes=len(states),
            completed=sum(1 for s in states if s.status == "complete"),
            failed=sum(1 for s in states if s.status == "error"),
            nodes=[s.model_copy() for s in states],
            started_at=self.started_at,
            completed_at=datetime.now(),
        )

    def cancel(self) -> None:
        self.cancelled = True
        for task in self.tasks.values():
            task.cancel()

    def cancel_node(self, node_id: str) -> bool:
        task = self.tasks.get(node_id)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def _task_for(self, node_id: str) -> asyncio.Task:
        task = self.tasks.get(node_id)
        if task is None:
            task = asyncio.create_task(self._execute_node(node_id), name=f"node-{node_id}")
            self.tasks[node_id] = task
        return task

    async def _execute_node(self, node_id: str) -> None:
        spec = self.specs[node_id]
        state = self.states[node_id]

        try:
            if spec.depends_on:
                self._set_status(state, "waiting")
                effective_input = await self._wait_for_dependencies(spec)
                if effective_input is None:
                    return
            else:
                effective_input = spec.input

            state.input = effective_input
            state.started_at = datetime.now()
            self._set_status(state, "running")

            result = await self._generate(spec, effective_input)
            if result.error is not None:
                logger.warning("Node %s failed: %s", node_id, result.error)
                self._finish(state, error=result.error)
            else:
                self._finish(state, output=result.text)
        except asyncio.CancelledError:
            logger.info("Node %s cancelled in run %s", node_id, self.run_id)
            self._finish(state, error=CANCELLED_MESSAGE)
            raise
        except Exception as e:
            logger.exception("Unexpected failure executing node %s", node_id)
            self._finish(state, error=f"Unexpected error: {e}")

    async def _wait_for_dependencies(self, spec: NodeSpec) -> str | None:
        """Suspend until every dependency is terminal, then compose the node's input.

        Returns None when the node was settled here (propagate policy).
        """
        dep_tasks = [self._task_for(dep) for dep in spec.depends_on]
        # asyncio.wait leaves the dependency tasks running if this task is cancelled
        await asyncio.wait(dep_tasks)

        cancelled = {dep for dep, task in zip(spec.depends_on, dep_tasks) if task.cancelled()}
        if len(cancelled) == len(dep_tasks):
            raise asyncio.CancelledError(f"All dependencies cancelled: {', '.join(spec.depends_on)}")

        # A cancelled dependency counts as failed; a task cancelled before its
        # first step is still idle here, so test membership too
        failed = [
            dep
            for dep in spec.depends_on
            if dep in cancelled or self.states[dep].status == "error"
        ]
        if failed and self.engine.failure_policy == "propagate":
            self._finish(self.states[spec.id], error=f"Upstream dependency failed: {', '.join(failed)}")
            return None

        # Errored and cancelled dependencies have an empty output and contribute ""
        return INPUT_SEPARATOR.join(self.states[dep].output for dep in spec.depends_on)

    async def _generate(self, spec: NodeSpec, effective_input: str) -> GenerationResult:
        service = self.engine.service
        if self.engine.streams:
            call = self._generate_streaming(spec, effective_input)
        else:
            call = service.generate(spec.system_prompt, effective_input)

        timeout = self.engine.timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError:
            return GenerationResult(error=f"Generation timed out after {timeout}s")
        except Exception as e:
            logger.exception("Generation backend raised for node %s", spec.id)
            return GenerationResult(error=str(e) or type(e).__name__)

    async def _generate_streaming(self, spec: NodeSpec, effective_input: str) -> GenerationResult:
        outcome = GenerationResult(error="Stream ended without a result")

        def on_chunk(chunk: str) -> None:
            self.engine._publish_chunk(ChunkEvent(run_id=self.run_id, node_id=spec.id, chunk=chunk))

        def on_complete(text: str) -> None:
            nonlocal outcome
            outcome = GenerationResult(text=text)

        def on_error(message: str) -> None:
            nonlocal outcome
            outcome = GenerationResult(error=message)

        await self.engine.service.generate_streaming(
            spec.system_prompt, effective_input, on_chunk, on_complete, on_error
        )
        return outcome

    def _set_status(self, state: ExecutionNodeState, status: NodeStatus) -> None:
        state.status = status
        self._publish(state)

    def _finish(self, state: ExecutionNodeState, output: str = "", error: str | None = None) -> None:
        state.output = "" if error is not None else output
        state.error_message = error
        state.completed_at = datetime.now()
        self._set_status(state, "error" if error is not None else "complete")

    def _publish(self, state: ExecutionNodeState) -> None:
        self.engine._publish_status(
            StatusEvent(
                run_id=self.run_id,
                node_id=state.node_id,
                status=state.status,
                output=state.output,
                error_message=state.error_message,
            )
        )


class ExecutionEngine:
    """Runs a prompt graph with one concurrent task per node."""

    def __init__(
        self,
        service: GenerationService,
        timeout_seconds: float | None = 60.0,
        failure_policy: FailurePolicy = "substitute",
    ):
        self.service = service
        self.timeout_seconds = timeout_seconds
        self.failure_policy = failure_policy
        self._status_listeners: list[StatusListener] = []
        self._chunk_listeners: list[ChunkListener] = []
        self._active: FlowRun | None = None
        self._last: FlowRun | None = None

    @classmethod
    def from_settings(cls, settings: Settings, service: GenerationService) -> ExecutionEngine:
        return cls(
            service=service,
            timeout_seconds=settings.generation_timeout_seconds,
            failure_policy=settings.dependency_failure_policy,
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status listener. Returns a function that removes it."""
        self._status_listeners.append(listener)
        return lambda: self._status_listeners.remove(listener)

    def add_chunk_listener(self, listener: ChunkListener) -> Callable[[], None]:
        """Register a chunk listener; while any is registered, generation streams."""
        self._chunk_listeners.append(listener)
        return lambda: self._chunk_listeners.remove(listener)

    @property
    def streams(self) -> bool:
        return bool(self._chunk_listeners)

    def _publish_status(self, event: StatusEvent) -> None:
        for listener in list(self._status_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Status listener failed")

    def _publish_chunk(self, event: ChunkEvent) -> None:
        for listener in list(self._chunk_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Chunk listener failed")

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._active is not None

    def get_node_states(self) -> dict[str, ExecutionNodeState]:
        """Return the node states of the active run, or of the last finished one."""
        current = self._active or self._last
        if current is None:
            return {}
        return dict(current.states)

    async def run(self, graph: GraphView) -> ExecutionReport:
        """Execute every node once and return when all of them are terminal.

        A run already in progress is cancelled first. Raises GraphIntegrityError
        if the graph is malformed, and asyncio.CancelledError if this run is
        superseded or cancelled.
        """
        specs = self._snapshot(graph)

        if self._active is not None:
            logger.info("Superseding run %s", self._active.run_id)
            self._active.cancel()

        flow_run = FlowRun(self, specs)
        self._active = flow_run
        logger.info("Starting run %s with %d nodes", flow_run.run_id, len(specs))

        try:
            report = await flow_run.execute()
        except asyncio.CancelledError:
            logger.info("Run %s cancelled", flow_run.run_id)
            raise
        finally:
            if self._active is flow_run:
                self._active = None
                self._last = flow_run

        logger.info(
            "Run %s finished: %d complete, %d failed",
            report.run_id,
            report.completed,
            report.failed,
        )
        return report

    def cancel(self) -> bool:
        """Cancel the active run. Returns False if nothing was running."""
        if self._active is None:
            return False
        self._active.cancel()
        return True

    def cancel_node(self, node_id: str) -> bool:
        """Cancel one node's task in the active run. Returns False if it is not running."""
        if self._active is None:
            return False
        return self._active.cancel_node(node_id)

    @staticmethod
    def _snapshot(graph: GraphView) -> list[NodeSpec]:
        nodes = graph.nodes
        topological_order(nodes)
        return [
            NodeSpec(
                id=node.id,
                system_prompt=node.system_prompt,
                input=node.input,
                depends_on=tuple(node.depends_on),
            )
            for node in nodes
        ]
