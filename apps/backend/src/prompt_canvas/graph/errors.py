"""Exceptions raised by the graph model and its validator."""


class GraphError(Exception):
    """Base class for graph errors."""


class GraphValidationError(GraphError):
    """Raised when an edit would break a graph invariant. The graph is left unchanged."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class GraphIntegrityError(GraphError):
    """Raised when an existing node collection violates a graph invariant."""


class SerializationError(GraphError):
    """Raised when persisted flow data cannot be parsed into a consistent graph."""
