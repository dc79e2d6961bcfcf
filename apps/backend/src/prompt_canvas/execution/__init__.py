from .engine import ExecutionEngine, FlowRun, NodeSpec
from .report import ExecutionReport
from .state import ChunkEvent, ExecutionNodeState, StatusEvent

__all__ = [
    "ChunkEvent",
    "ExecutionEngine",
    "ExecutionNodeState",
    "ExecutionReport",
    "FlowRun",
    "NodeSpec",
    "StatusEvent",
]
