from .errors import GraphError, GraphIntegrityError, GraphValidationError, SerializationError
from .model import GraphModel
from .schema import TERMINAL_STATUSES, GraphView, NodeStatus, PromptNode, ValidationResult
from .validator import ConnectionValidator, topological_order

__all__ = [
    "ConnectionValidator",
    "GraphError",
    "GraphIntegrityError",
    "GraphModel",
    "GraphValidationError",
    "GraphView",
    "NodeStatus",
    "PromptNode",
    "SerializationError",
    "TERMINAL_STATUSES",
    "ValidationResult",
    "topological_order",
]
