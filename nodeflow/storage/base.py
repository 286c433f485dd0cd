"""Persistence interfaces used by the execution engine.

The orchestrator only talks to these two abstractions, so a run can be
driven against SQL in production or plain dictionaries in tests.
"""

from abc import ABC, abstractmethod
from typing import Any

from nodeflow.models.execution import Execution, ExecutionStatus, ExecutionStep
from nodeflow.models.workflow import WorkflowGraph


class StorageError(Exception):
    """Base exception for store operations."""

    def __init__(self, message: str, error_code: str = "STORAGE_ERROR") -> None:
        super().__init__(message)
        self.error_code = error_code


class RecordNotFoundError(StorageError):
    """Execution or step does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "NOT_FOUND")


class StepAlreadyExistsError(StorageError):
    """A step for this (execution, node) pair was already recorded."""

    def __init__(self, execution_id: str, node_id: str) -> None:
        super().__init__(
            f"Step for node '{node_id}' already exists in execution '{execution_id}'",
            "STEP_EXISTS",
        )
        self.execution_id = execution_id
        self.node_id = node_id


class GraphStore(ABC):
    """Read access to saved workflow graphs."""

    @abstractmethod
    async def load_graph(self, workflow_id: str) -> WorkflowGraph | None:
        """Load the graph snapshot of a workflow, or None if it is missing."""
        pass


class ExecutionStore(ABC):
    """Execution and step records.

    Every write is visible to the next read (read-after-write), including
    reads from other tasks of the same run.
    """

    @abstractmethod
    async def create_execution(
        self,
        workflow_id: str,
        user_id: str,
        scope: str = "full",
    ) -> Execution:
        """Create a QUEUED execution."""
        pass

    @abstractmethod
    async def get_execution(self, execution_id: str) -> Execution | None:
        pass

    @abstractmethod
    async def transition_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error: str | None = None,
    ) -> Execution:
        """Move an execution to ``status``.

        Raises:
            RecordNotFoundError: If the execution does not exist
            InvalidStatusTransitionError: If the lifecycle forbids the move
        """
        pass

    @abstractmethod
    async def create_step(
        self,
        execution_id: str,
        node_id: str,
        node_type: str | None,
        logs: list[str] | None = None,
    ) -> ExecutionStep:
        """Record a RUNNING step for a node.

        Raises:
            StepAlreadyExistsError: If the node already has a step in this run
        """
        pass

    @abstractmethod
    async def complete_step(
        self,
        step_id: str,
        output: Any,
        logs: list[str] | None = None,
    ) -> ExecutionStep:
        pass

    @abstractmethod
    async def fail_step(
        self,
        step_id: str,
        error: str,
        logs: list[str] | None = None,
    ) -> ExecutionStep:
        pass

    @abstractmethod
    async def list_steps(self, execution_id: str) -> list[ExecutionStep]:
        """Steps of an execution in creation order."""
        pass
