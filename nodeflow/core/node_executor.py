"""Single-node execution with step bookkeeping."""

from typing import Any, Mapping, Sequence

import structlog

from nodeflow.integrations.base import Effectors
from nodeflow.models.execution import InvalidStatusTransitionError
from nodeflow.models.node import GraphEdge, GraphNode
from nodeflow.nodes.base import InputResolver, NodeContext
from nodeflow.nodes.registry import NodeRegistry
from nodeflow.storage.base import ExecutionStore, StorageError

logger = structlog.get_logger()


class NodeExecutor:
    """Runs one node and records it as an execution step.

    The step is created RUNNING before any work starts and is finalized
    exactly once: COMPLETED with the node output, or FAILED with the error
    message. Failures are re-raised so the orchestrator can fail the run.
    """

    def __init__(
        self,
        store: ExecutionStore,
        registry: NodeRegistry,
        effectors: Effectors,
    ) -> None:
        self._store = store
        self._registry = registry
        self._effectors = effectors

    async def execute(
        self,
        node: GraphNode,
        edges: Sequence[GraphEdge],
        outputs: Mapping[str, Any],
        execution_id: str,
    ) -> Any:
        """Execute ``node`` against the outputs produced so far.

        Args:
            node: Node snapshot to run
            edges: Edges of the run plan
            outputs: Outputs of nodes in earlier levels, keyed by node id
            execution_id: Owning execution

        Returns:
            The node output (``{}`` when the node produced nothing)

        Raises:
            NodeExecutionError: If the node failed; its step is FAILED
            StorageError: If a step write failed; the step is failed when possible
        """
        context = NodeContext(
            execution_id=execution_id,
            node_id=node.id,
            effectors=self._effectors,
            logs=[f"Starting {node.type} node"],
        )
        step = await self._store.create_step(
            execution_id=execution_id,
            node_id=node.id,
            node_type=node.type,
            logs=list(context.logs),
        )

        logger.debug(
            "node_started",
            execution_id=execution_id,
            node_id=node.id,
            node_type=node.type,
        )

        behavior = self._registry.resolve(node.type)
        inputs = InputResolver(node.id, edges, outputs)

        try:
            output = await behavior.run(node, inputs, context) or {}
            await self._store.complete_step(step.id, output, logs=[*context.logs, "Completed"])
        except Exception as e:
            context.log(f"Error: {e}")
            await self._fail_step(step.id, str(e), context.logs, node.id)
            logger.warning(
                "node_failed",
                execution_id=execution_id,
                node_id=node.id,
                node_type=node.type,
                error=str(e),
                error_code=getattr(e, "error_code", None),
            )
            raise

        logger.debug(
            "node_completed",
            execution_id=execution_id,
            node_id=node.id,
        )
        return output

    async def _fail_step(self, step_id: str, error: str, logs: list[str], node_id: str) -> None:
        # The original error is what propagates; a failed finalize is only logged.
        try:
            await self._store.fail_step(step_id, error, logs=logs)
        except (StorageError, InvalidStatusTransitionError) as e:
            logger.error(
                "step_finalize_failed",
                step_id=step_id,
                node_id=node_id,
                error=str(e),
            )
