from .store import FileFlowStore, InMemoryFlowStore, PersistencePort

__all__ = [
    "FileFlowStore",
    "InMemoryFlowStore",
    "PersistencePort",
]
