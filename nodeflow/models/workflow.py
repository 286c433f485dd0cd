"""Workflow entity model.

Defines the Workflow table for storing workflow definitions.
Workflows are stored as JSON graphs with nodes and edges.
"""

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4
import json

from pydantic import field_validator
from sqlmodel import Column, Field, Relationship, SQLModel, Text

from nodeflow.models.node import GraphEdge, GraphNode

if TYPE_CHECKING:
    from nodeflow.models.execution import Execution


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class WorkflowBase(SQLModel):
    """Base workflow fields shared across models."""

    name: str = Field(
        max_length=255,
        min_length=1,
        description="Workflow name",
    )
    description: str | None = Field(
        default=None,
        max_length=2000,
        description="Workflow description",
    )


class Workflow(WorkflowBase, table=True):
    """Workflow database entity.

    Stores workflow definitions as JSON graphs.
    Graph schema:
    {
        "nodes": [{"id": str, "type": str, "data": dict, "position": {"x": float, "y": float}}],
        "edges": [{"source": str, "target": str, "sourceHandle": str?, "targetHandle": str?}]
    }
    """

    __tablename__ = "workflow"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique workflow identifier (UUID)",
    )
    user_id: str = Field(
        index=True,
        max_length=255,
        description="Owner identity (subject issued by the identity provider)",
    )
    graph: str = Field(
        sa_column=Column(Text, nullable=False),
        description="JSON workflow graph definition",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Creation timestamp (UTC)",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column_kwargs={"onupdate": utc_now},
        description="Last update timestamp (UTC)",
    )

    # Relationships
    executions: list["Execution"] = Relationship(back_populates="workflow")

    def get_graph(self) -> "WorkflowGraph":
        """Parse and return the workflow graph."""
        return WorkflowGraph.model_validate_json(self.graph)

    def set_graph(self, graph: "WorkflowGraph") -> None:
        """Store the workflow graph."""
        self.graph = graph.model_dump_json()


class WorkflowGraphNode(SQLModel):
    """Schema for a node in the workflow graph."""

    id: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    position: dict[str, float] = Field(default_factory=lambda: {"x": 0, "y": 0})

    def to_runtime(self) -> GraphNode:
        return GraphNode(
            id=self.id,
            type=self.type,
            data=dict(self.data),
            position=dict(self.position),
        )


class WorkflowGraphEdge(SQLModel):
    """Schema for an edge in the workflow graph."""

    id: str | None = None
    source: str
    target: str
    sourceHandle: str | None = None
    targetHandle: str | None = None

    def to_runtime(self) -> GraphEdge:
        return GraphEdge(
            source=self.source,
            target=self.target,
            source_handle=self.sourceHandle,
            target_handle=self.targetHandle,
        )


class WorkflowGraph(SQLModel):
    """Schema for the complete workflow graph."""

    nodes: list[WorkflowGraphNode] = Field(default_factory=list)
    edges: list[WorkflowGraphEdge] = Field(default_factory=list)

    def runtime_nodes(self) -> list[GraphNode]:
        """Node snapshots for the execution engine."""
        return [n.to_runtime() for n in self.nodes]

    def runtime_edges(self) -> list[GraphEdge]:
        """Edge snapshots for the execution engine."""
        return [e.to_runtime() for e in self.edges]


def _parse_graph(v: Any) -> Any:
    if isinstance(v, str):
        return WorkflowGraph(**json.loads(v))
    if isinstance(v, dict):
        return WorkflowGraph(**v)
    return v


class WorkflowCreate(WorkflowBase):
    """Schema for creating a new workflow."""

    graph: WorkflowGraph = Field(default_factory=WorkflowGraph)

    @field_validator("graph", mode="before")
    @classmethod
    def validate_graph(cls, v: Any) -> WorkflowGraph:
        """Validate and parse graph input."""
        return _parse_graph(v)


class WorkflowUpdate(SQLModel):
    """Schema for updating a workflow."""

    name: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    graph: WorkflowGraph | None = None


class WorkflowRead(WorkflowBase):
    """Schema for reading workflow data."""

    id: str
    user_id: str
    graph: WorkflowGraph
    created_at: datetime
    updated_at: datetime

    @field_validator("graph", mode="before")
    @classmethod
    def parse_graph(cls, v: Any) -> WorkflowGraph:
        """Parse graph from JSON string or dict."""
        return _parse_graph(v)


class ConnectionPayload(SQLModel):
    """A proposed edge as sent by the editor."""

    source: str
    target: str
    sourceHandle: str | None = None
    targetHandle: str | None = None


class ConnectionValidateRequest(SQLModel):
    """Request body for edit-time connection validation."""

    connection: ConnectionPayload
    sourceNode: WorkflowGraphNode | None = None
    targetNode: WorkflowGraphNode | None = None
    edges: list[WorkflowGraphEdge] = Field(default_factory=list)


class ConnectionValidateResponse(SQLModel):
    """Decision on a proposed connection."""

    allowed: bool
    reason: str
    sourceType: str | None = None
    targetType: str | None = None
