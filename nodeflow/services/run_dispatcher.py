"""Run dispatcher.

In-process task runtime: every run executes as an asyncio task keyed by
its execution id, which makes it cancellable from another request.
"""

import asyncio
from uuid import uuid4

import structlog

from nodeflow.core.graph import GraphInvalidError
from nodeflow.core.orchestrator import ExecutionError, WorkflowOrchestrator
from nodeflow.models.execution import ExecutionStatus, InvalidStatusTransitionError, RunRequest
from nodeflow.storage.base import ExecutionStore, StorageError

logger = structlog.get_logger()


class RunDispatcher:
    """Schedules orchestrator runs as background tasks.

    Example usage:
        dispatcher = RunDispatcher(orchestrator, execution_store)
        trigger_id = dispatcher.dispatch(RunRequest(execution_id=..., workflow_id=...))
        ...
        await dispatcher.cancel(execution_id)
    """

    def __init__(
        self,
        orchestrator: WorkflowOrchestrator,
        execution_store: ExecutionStore,
    ) -> None:
        self._orchestrator = orchestrator
        self._store = execution_store
        self._tasks: dict[str, asyncio.Task] = {}

    def dispatch(self, request: RunRequest) -> str:
        """Start a run in the background.

        Returns:
            Trigger id identifying the background run
        """
        trigger_id = f"run_{uuid4().hex}"
        task = asyncio.create_task(
            self._run(request),
            name=f"workflow-run-{request.execution_id}",
        )
        self._tasks[request.execution_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(request.execution_id, None))

        logger.info(
            "run_dispatched",
            execution_id=request.execution_id,
            workflow_id=request.workflow_id,
            trigger_id=trigger_id,
        )
        return trigger_id

    def is_running(self, execution_id: str) -> bool:
        task = self._tasks.get(execution_id)
        return task is not None and not task.done()

    async def wait(self, execution_id: str) -> None:
        """Wait until the run of ``execution_id`` settles, if one is active."""
        task = self._tasks.get(execution_id)
        if task is not None:
            await asyncio.wait({task})

    async def cancel(self, execution_id: str) -> None:
        """Cancel a run and reconcile its records.

        Works for runs that never started or already exited: reconciliation
        alone then moves the execution to CANCELED.
        """
        task = self._tasks.get(execution_id)
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

        await self._orchestrator.reconcile_canceled(execution_id)

    async def shutdown(self) -> None:
        """Cancel every active run, e.g. on application shutdown."""
        execution_ids = [eid for eid, task in self._tasks.items() if not task.done()]
        for execution_id in execution_ids:
            await self.cancel(execution_id)
        logger.info("run_dispatcher_shutdown", canceled=len(execution_ids))

    async def _run(self, request: RunRequest) -> None:
        try:
            result = await self._orchestrator.run(request)
            logger.info(
                "run_finished",
                execution_id=request.execution_id,
                status=result.status.value,
                levels=result.levels,
            )
        except (ExecutionError, GraphInvalidError) as e:
            # Already persisted as FAILED by the orchestrator
            logger.warning(
                "run_failed",
                execution_id=request.execution_id,
                error=str(e),
                error_code=e.error_code,
            )
        except Exception as e:
            logger.exception(
                "run_failed_unexpected",
                execution_id=request.execution_id,
            )
            await self._mark_failed(request.execution_id, str(e))

    async def _mark_failed(self, execution_id: str, error: str) -> None:
        try:
            await self._store.transition_execution(
                execution_id,
                ExecutionStatus.FAILED,
                error=error,
            )
        except (InvalidStatusTransitionError, StorageError) as e:
            logger.error(
                "run_failure_not_recorded",
                execution_id=execution_id,
                error=str(e),
            )
