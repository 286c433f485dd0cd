"""Execution and execution step entity models.

Defines the Execution table (one run of a workflow, full or partial) and the
ExecutionStep table (one node's outcome within a run). Status changes go
through the ``mark_*`` methods, which refuse any transition out of a
terminal state.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4
import json

from sqlalchemy import UniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel, Text

if TYPE_CHECKING:
    from nodeflow.models.workflow import Workflow


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class InvalidStatusTransitionError(Exception):
    """Attempted status change that would break the lifecycle ordering."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot transition from {current} to {requested}")
        self.current = current
        self.requested = requested
        self.error_code = "INVALID_TRANSITION"


class ExecutionStatus(str, Enum):
    """Execution lifecycle status."""

    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELED,
        )


EXECUTION_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.QUEUED: frozenset({ExecutionStatus.RUNNING, ExecutionStatus.CANCELED}),
    ExecutionStatus.RUNNING: frozenset(
        {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELED}
    ),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
    ExecutionStatus.CANCELED: frozenset(),
}


class StepStatus(str, Enum):
    """Execution step lifecycle status."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


def build_scope(selected_node_ids: list[str] | None) -> str:
    """Describe the run scope for a set of requested target nodes."""
    if not selected_node_ids:
        return "full"
    if len(selected_node_ids) == 1:
        return f"single:{selected_node_ids[0]}"
    return f"partial:{len(selected_node_ids)}"


class Execution(SQLModel, table=True):
    """Execution database entity.

    Status moves QUEUED -> RUNNING -> COMPLETED | FAILED | CANCELED, and a
    queued run may be canceled before it starts. Terminal executions are
    immutable.
    """

    __tablename__ = "execution"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique execution identifier (UUID)",
    )
    workflow_id: str = Field(
        foreign_key="workflow.id",
        index=True,
        description="Associated workflow ID",
    )
    user_id: str = Field(
        index=True,
        max_length=255,
        description="User who triggered the execution",
    )
    status: ExecutionStatus = Field(
        default=ExecutionStatus.QUEUED,
        index=True,
        description="Current execution status",
    )
    scope: str = Field(
        default="full",
        max_length=255,
        description="Run scope: 'full', 'single:<nodeId>' or 'partial:<n>'",
    )
    error: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Run-level error message if execution failed",
    )
    trigger_id: str | None = Field(
        default=None,
        max_length=255,
        description="Task runtime handle for the dispatched run",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Creation timestamp (UTC)",
    )
    started_at: datetime | None = Field(
        default=None,
        description="Execution start timestamp (UTC)",
    )
    ended_at: datetime | None = Field(
        default=None,
        description="Execution end timestamp (UTC)",
    )

    # Relationships
    workflow: "Workflow" = Relationship(back_populates="executions")
    steps: list["ExecutionStep"] = Relationship(back_populates="execution")

    @property
    def duration_ms(self) -> int | None:
        """Calculate execution duration in milliseconds."""
        if self.started_at is None or self.ended_at is None:
            return None
        delta = self.ended_at - self.started_at
        return int(delta.total_seconds() * 1000)

    def _transition(self, status: ExecutionStatus) -> None:
        current = ExecutionStatus(self.status)
        if status not in EXECUTION_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current.value, status.value)
        self.status = status

    def mark_running(self) -> None:
        """Mark execution as running."""
        self._transition(ExecutionStatus.RUNNING)
        self.started_at = utc_now()

    def mark_completed(self) -> None:
        """Mark execution as completed."""
        self._transition(ExecutionStatus.COMPLETED)
        self.ended_at = utc_now()

    def mark_failed(self, error: str | None = None) -> None:
        """Mark execution as failed with an optional run-level error."""
        self._transition(ExecutionStatus.FAILED)
        self.error = error
        self.ended_at = utc_now()

    def mark_canceled(self) -> None:
        """Mark execution as canceled."""
        self._transition(ExecutionStatus.CANCELED)
        self.ended_at = utc_now()

    def apply_status(self, status: ExecutionStatus, error: str | None = None) -> None:
        """Apply a status change through the matching ``mark_*`` method."""
        if status == ExecutionStatus.RUNNING:
            self.mark_running()
        elif status == ExecutionStatus.COMPLETED:
            self.mark_completed()
        elif status == ExecutionStatus.FAILED:
            self.mark_failed(error)
        elif status == ExecutionStatus.CANCELED:
            self.mark_canceled()
        else:
            raise InvalidStatusTransitionError(ExecutionStatus(self.status).value, status.value)


class ExecutionStep(SQLModel, table=True):
    """One node's execution record within an Execution.

    Created RUNNING, finalized once to COMPLETED or FAILED, never re-opened.
    """

    __tablename__ = "execution_step"
    __table_args__ = (
        UniqueConstraint("execution_id", "node_id", name="uq_execution_step_node"),
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique step identifier (UUID)",
    )
    execution_id: str = Field(
        foreign_key="execution.id",
        index=True,
        description="Owning execution ID",
    )
    node_id: str = Field(
        max_length=255,
        description="Workflow node this step executed",
    )
    node_type: str | None = Field(
        default=None,
        max_length=100,
        description="Node type at the time of the run",
    )
    status: StepStatus = Field(
        default=StepStatus.PENDING,
        description="Current step status",
    )
    output: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="JSON output produced by the node",
    )
    error: str | None = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Error message if the node failed",
    )
    logs: str = Field(
        default="[]",
        sa_column=Column(Text, nullable=False),
        description="JSON list of log lines",
    )
    started_at: datetime | None = Field(
        default=None,
        description="Step start timestamp (UTC)",
    )
    ended_at: datetime | None = Field(
        default=None,
        description="Step end timestamp (UTC)",
    )

    execution: Execution = Relationship(back_populates="steps")

    def get_output(self) -> Any:
        """Parse and return the step output."""
        if self.output is None:
            return None
        return json.loads(self.output)

    def set_output(self, output: Any) -> None:
        """Store the step output as JSON."""
        self.output = json.dumps(output, default=str)

    def get_logs(self) -> list[str]:
        """Parse and return step log lines."""
        return json.loads(self.logs or "[]")

    def set_logs(self, logs: list[str]) -> None:
        self.logs = json.dumps(logs)

    def mark_running(self) -> None:
        """Mark step as running."""
        if StepStatus(self.status) != StepStatus.PENDING:
            raise InvalidStatusTransitionError(StepStatus(self.status).value, StepStatus.RUNNING.value)
        self.status = StepStatus.RUNNING
        self.started_at = utc_now()

    def mark_completed(self, output: Any) -> None:
        """Finalize step as completed with its output."""
        if StepStatus(self.status) != StepStatus.RUNNING:
            raise InvalidStatusTransitionError(StepStatus(self.status).value, StepStatus.COMPLETED.value)
        self.status = StepStatus.COMPLETED
        self.set_output(output)
        self.ended_at = utc_now()

    def mark_failed(self, error: str) -> None:
        """Finalize step as failed with an error message."""
        if StepStatus(self.status).is_terminal:
            raise InvalidStatusTransitionError(StepStatus(self.status).value, StepStatus.FAILED.value)
        self.status = StepStatus.FAILED
        self.error = error
        self.ended_at = utc_now()


class RunRequest(SQLModel):
    """Payload handed to the task runtime to execute one run."""

    execution_id: str
    workflow_id: str
    selected_node_ids: list[str] | None = None

    @property
    def is_partial(self) -> bool:
        return bool(self.selected_node_ids)


class RunTriggerBody(SQLModel):
    """Request body for triggering a run."""

    selectedNodeIds: list[str] | None = None


class RunTriggerResponse(SQLModel):
    """Response returned when a run has been queued."""

    success: bool = True
    executionId: str
    triggerRunId: str | None = None
    scope: str


class ExecutionStepRead(SQLModel):
    """Schema for reading execution step data."""

    id: str
    execution_id: str
    node_id: str
    node_type: str | None = None
    status: StepStatus
    output: Any = None
    error: str | None = None
    logs: list[str] = Field(default_factory=list)
    started_at: datetime | None = None
    ended_at: datetime | None = None


class ExecutionRead(SQLModel):
    """Schema for reading execution data."""

    id: str
    workflow_id: str
    user_id: str
    status: ExecutionStatus
    scope: str
    error: str | None = None
    trigger_id: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_ms: int | None = None
    steps: list[ExecutionStepRead] = Field(default_factory=list)
