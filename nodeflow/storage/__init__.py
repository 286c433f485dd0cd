"""Persistence for workflow graphs and execution records."""

from nodeflow.storage.base import (
    ExecutionStore,
    GraphStore,
    RecordNotFoundError,
    StepAlreadyExistsError,
    StorageError,
)
from nodeflow.storage.in_memory import InMemoryExecutionStore, InMemoryGraphStore
from nodeflow.storage.sql import SqlExecutionStore, SqlGraphStore

__all__ = [
    "ExecutionStore",
    "GraphStore",
    "InMemoryExecutionStore",
    "InMemoryGraphStore",
    "RecordNotFoundError",
    "SqlExecutionStore",
    "SqlGraphStore",
    "StepAlreadyExistsError",
    "StorageError",
]
