"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

execution_status = sa.Enum(
    "QUEUED", "RUNNING", "COMPLETED", "FAILED", "CANCELED",
    name="executionstatus",
)
step_status = sa.Enum(
    "PENDING", "RUNNING", "COMPLETED", "FAILED",
    name="stepstatus",
)


def upgrade() -> None:
    # Create workflow table
    op.create_table(
        "workflow",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("graph", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_workflow_user_id"), "workflow", ["user_id"], unique=False)

    # Create execution table
    op.create_table(
        "execution",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("workflow_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("status", execution_status, nullable=False),
        sa.Column("scope", sa.String(length=255), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("trigger_id", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["workflow_id"], ["workflow.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_execution_workflow_id"), "execution", ["workflow_id"], unique=False)
    op.create_index(op.f("ix_execution_user_id"), "execution", ["user_id"], unique=False)
    op.create_index(op.f("ix_execution_status"), "execution", ["status"], unique=False)

    # Create execution_step table
    op.create_table(
        "execution_step",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("execution_id", sa.String(), nullable=False),
        sa.Column("node_id", sa.String(length=255), nullable=False),
        sa.Column("node_type", sa.String(length=100), nullable=True),
        sa.Column("status", step_status, nullable=False),
        sa.Column("output", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("logs", sa.Text(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["execution_id"], ["execution.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("execution_id", "node_id", name="uq_execution_step_node"),
    )
    op.create_index(
        op.f("ix_execution_step_execution_id"), "execution_step", ["execution_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_execution_step_execution_id"), table_name="execution_step")
    op.drop_table("execution_step")
    op.drop_index(op.f("ix_execution_status"), table_name="execution")
    op.drop_index(op.f("ix_execution_user_id"), table_name="execution")
    op.drop_index(op.f("ix_execution_workflow_id"), table_name="execution")
    op.drop_table("execution")
    op.drop_index(op.f("ix_workflow_user_id"), table_name="workflow")
    op.drop_table("workflow")
    step_status.drop(op.get_bind(), checkfirst=True)
    execution_status.drop(op.get_bind(), checkfirst=True)
