"""Dictionary-backed stores for tests and single-process use."""

from typing import Any

from nodeflow.models.execution import (
    Execution,
    ExecutionStatus,
    ExecutionStep,
    StepStatus,
    utc_now,
)
from nodeflow.models.workflow import WorkflowGraph
from nodeflow.storage.base import (
    ExecutionStore,
    GraphStore,
    RecordNotFoundError,
    StepAlreadyExistsError,
)


class InMemoryGraphStore(GraphStore):
    """Graph store holding graphs by workflow id."""

    def __init__(self, graphs: dict[str, WorkflowGraph] | None = None) -> None:
        self._graphs: dict[str, WorkflowGraph] = dict(graphs or {})

    def save_graph(self, workflow_id: str, graph: WorkflowGraph) -> None:
        self._graphs[workflow_id] = graph

    async def load_graph(self, workflow_id: str) -> WorkflowGraph | None:
        return self._graphs.get(workflow_id)


class InMemoryExecutionStore(ExecutionStore):
    """Execution store keeping records in process memory."""

    def __init__(self) -> None:
        self._executions: dict[str, Execution] = {}
        self._steps: dict[str, ExecutionStep] = {}

    async def create_execution(
        self,
        workflow_id: str,
        user_id: str,
        scope: str = "full",
    ) -> Execution:
        execution = Execution(workflow_id=workflow_id, user_id=user_id, scope=scope)
        self._executions[execution.id] = execution
        return execution

    async def get_execution(self, execution_id: str) -> Execution | None:
        return self._executions.get(execution_id)

    async def transition_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        error: str | None = None,
    ) -> Execution:
        execution = self._get(execution_id)
        execution.apply_status(status, error)
        return execution

    async def create_step(
        self,
        execution_id: str,
        node_id: str,
        node_type: str | None,
        logs: list[str] | None = None,
    ) -> ExecutionStep:
        self._get(execution_id)
        if any(
            s.execution_id == execution_id and s.node_id == node_id
            for s in self._steps.values()
        ):
            raise StepAlreadyExistsError(execution_id, node_id)

        step = ExecutionStep(
            execution_id=execution_id,
            node_id=node_id,
            node_type=node_type,
            status=StepStatus.RUNNING,
            started_at=utc_now(),
        )
        step.set_logs(logs or [])
        self._steps[step.id] = step
        return step

    async def complete_step(
        self,
        step_id: str,
        output: Any,
        logs: list[str] | None = None,
    ) -> ExecutionStep:
        step = self._get_step(step_id)
        step.mark_completed(output)
        if logs is not None:
            step.set_logs(logs)
        return step

    async def fail_step(
        self,
        step_id: str,
        error: str,
        logs: list[str] | None = None,
    ) -> ExecutionStep:
        step = self._get_step(step_id)
        step.mark_failed(error)
        if logs is not None:
            step.set_logs(logs)
        return step

    async def list_steps(self, execution_id: str) -> list[ExecutionStep]:
        # dicts keep insertion order
        return [s for s in self._steps.values() if s.execution_id == execution_id]

    def _get(self, execution_id: str) -> Execution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise RecordNotFoundError(f"Execution '{execution_id}' not found")
        return execution

    def _get_step(self, step_id: str) -> ExecutionStep:
        step = self._steps.get(step_id)
        if step is None:
            raise RecordNotFoundError(f"Step '{step_id}' not found")
        return step
