"""Workflow orchestrator.

Drives one run of a workflow: loads the graph snapshot, plans the levels,
executes each level concurrently and persists every lifecycle transition.
"""

import asyncio
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from nodeflow.core.graph import GraphInvalidError, RunPlan, ensure_valid_graph, plan_run
from nodeflow.core.node_executor import NodeExecutor
from nodeflow.integrations.base import Effectors
from nodeflow.models.execution import ExecutionStatus, RunRequest, StepStatus
from nodeflow.models.node import GraphNode
from nodeflow.nodes.registry import NodeRegistry
from nodeflow.storage.base import ExecutionStore, GraphStore, RecordNotFoundError

logger = structlog.get_logger()

CANCELED_STEP_ERROR = "Execution canceled"


class ExecutionError(Exception):
    """Base exception for execution errors."""

    def __init__(self, message: str, error_code: str = "EXECUTION_ERROR") -> None:
        super().__init__(message)
        self.error_code = error_code


class WorkflowRunError(ExecutionError):
    """One or more nodes failed; the run was marked FAILED."""

    def __init__(self, message: str, failures: list[Exception]) -> None:
        super().__init__(message, "RUN_FAILED")
        self.failures = failures


class OutputTable(Mapping[str, Any]):
    """Outputs of completed nodes, keyed by node id.

    Each node's output is written once; later writers are rejected. Reads
    go through the ``Mapping`` interface.
    """

    def __init__(self) -> None:
        self._outputs: dict[str, Any] = {}

    def record(self, node_id: str, output: Any) -> None:
        if node_id in self._outputs:
            raise ExecutionError(
                f"Output for node '{node_id}' already recorded",
                "OUTPUT_CONFLICT",
            )
        self._outputs[node_id] = output

    def __getitem__(self, node_id: str) -> Any:
        return self._outputs[node_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._outputs)

    def __len__(self) -> int:
        return len(self._outputs)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._outputs)


@dataclass
class RunResult:
    """Outcome of a finished run."""

    execution_id: str
    status: ExecutionStatus
    levels: int = 0
    outputs: dict[str, Any] = field(default_factory=dict)


def _describe_failures(failures: list[tuple[GraphNode, Exception]]) -> str:
    if len(failures) == 1:
        node, failure = failures[0]
        return f"Node {node.id} failed: {failure}"
    return f"{len(failures)} nodes failed: " + "; ".join(str(f) for _, f in failures)


class WorkflowOrchestrator:
    """Executes workflow runs level by level.

    Nodes within a level run concurrently; the next level starts only once
    every node of the current one has settled. A failing node never aborts
    its siblings, but no further level is scheduled.

    Example usage:
        orchestrator = WorkflowOrchestrator(execution_store, graph_store, registry, effectors)
        result = await orchestrator.run(RunRequest(execution_id=..., workflow_id=...))
    """

    def __init__(
        self,
        execution_store: ExecutionStore,
        graph_store: GraphStore,
        registry: NodeRegistry,
        effectors: Effectors,
    ) -> None:
        self._executions = execution_store
        self._graphs = graph_store
        self._node_executor = NodeExecutor(execution_store, registry, effectors)

    async def run(self, request: RunRequest) -> RunResult:
        """Run a queued execution to completion.

        Args:
            request: Execution, workflow and optional selected node ids

        Returns:
            RunResult for a COMPLETED run (or the current status when the
            execution was already finished before it started)

        Raises:
            ExecutionError: If the execution or workflow cannot be loaded
            GraphInvalidError: If the saved graph is invalid
            WorkflowRunError: If any node failed
        """
        execution_id = request.execution_id

        execution = await self._executions.get_execution(execution_id)
        if execution is None:
            raise ExecutionError(f"Execution '{execution_id}' not found", "NOT_FOUND")
        if ExecutionStatus(execution.status).is_terminal:
            # Canceled while still queued
            logger.info(
                "execution_skipped",
                execution_id=execution_id,
                status=ExecutionStatus(execution.status).value,
            )
            return RunResult(execution_id=execution_id, status=ExecutionStatus(execution.status))

        await self._executions.transition_execution(execution_id, ExecutionStatus.RUNNING)

        logger.info(
            "execution_started",
            execution_id=execution_id,
            workflow_id=request.workflow_id,
            mode="partial" if request.is_partial else "full",
            selected_count=len(request.selected_node_ids or []),
        )

        graph = await self._graphs.load_graph(request.workflow_id)
        if graph is None:
            message = f"Workflow '{request.workflow_id}' not found"
            await self._fail(execution_id, message)
            raise ExecutionError(message, "WORKFLOW_NOT_FOUND")

        nodes = graph.runtime_nodes()
        edges = graph.runtime_edges()

        try:
            ensure_valid_graph(nodes, edges)
        except GraphInvalidError as e:
            await self._fail(execution_id, "; ".join(e.errors))
            raise

        plan = plan_run(nodes, edges, request.selected_node_ids)
        logger.info(
            "execution_planned",
            execution_id=execution_id,
            node_count=len(plan.nodes),
            levels=len(plan.levels),
            level_sizes=plan.level_sizes,
        )

        outputs = await self._run_levels(execution_id, plan)

        await self._executions.transition_execution(execution_id, ExecutionStatus.COMPLETED)
        logger.info(
            "execution_completed",
            execution_id=execution_id,
            levels=len(plan.levels),
        )

        return RunResult(
            execution_id=execution_id,
            status=ExecutionStatus.COMPLETED,
            levels=len(plan.levels),
            outputs=outputs.to_dict(),
        )

    async def _run_levels(self, execution_id: str, plan: RunPlan) -> OutputTable:
        outputs = OutputTable()

        for index, level in enumerate(plan.levels):
            logger.debug(
                "level_started",
                execution_id=execution_id,
                level=index + 1,
                total_levels=len(plan.levels),
                size=len(level),
            )

            results = await asyncio.gather(
                *(
                    self._node_executor.execute(node, plan.edges, outputs, execution_id)
                    for node in level
                ),
                return_exceptions=True,
            )

            failures: list[tuple[GraphNode, Exception]] = []
            for node, result in zip(level, results):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, Exception):
                    failures.append((node, result))
                else:
                    outputs.record(node.id, result)

            if failures:
                message = _describe_failures(failures)
                await self._fail(execution_id, message)
                logger.warning(
                    "execution_failed",
                    execution_id=execution_id,
                    level=index + 1,
                    failed_count=len(failures),
                    error=message,
                )
                raise WorkflowRunError(message, [f for _, f in failures])

        return outputs

    async def _fail(self, execution_id: str, message: str) -> None:
        await self._executions.transition_execution(
            execution_id,
            ExecutionStatus.FAILED,
            error=message,
        )

    async def reconcile_canceled(self, execution_id: str) -> None:
        """Finalize records after the task runtime canceled a run.

        Marks the execution CANCELED unless it already finished, and fails
        every step still RUNNING with "Execution canceled".
        """
        execution = await self._executions.get_execution(execution_id)
        if execution is None:
            raise RecordNotFoundError(f"Execution '{execution_id}' not found")

        if not ExecutionStatus(execution.status).is_terminal:
            await self._executions.transition_execution(execution_id, ExecutionStatus.CANCELED)

        orphaned = 0
        for step in await self._executions.list_steps(execution_id):
            if StepStatus(step.status) == StepStatus.RUNNING:
                await self._executions.fail_step(step.id, CANCELED_STEP_ERROR)
                orphaned += 1

        logger.info(
            "execution_canceled",
            execution_id=execution_id,
            orphaned_steps=orphaned,
        )
