"""Tests for execution lifecycle rules and node data parsing."""

import pytest

from nodeflow.models.execution import (
    Execution,
    ExecutionStatus,
    ExecutionStep,
    InvalidStatusTransitionError,
    StepStatus,
    build_scope,
)
from nodeflow.models.node import (
    CropImageData,
    LLMNodeData,
    NodeKind,
    UnknownNodeData,
    parse_node_data,
    resolve_node_kind,
)


class TestExecutionLifecycle:
    """Tests for execution status transitions."""

    def test_happy_path(self):
        """Test QUEUED -> RUNNING -> COMPLETED."""
        execution = Execution(workflow_id="wf", user_id="u")

        execution.mark_running()
        execution.mark_completed()

        assert execution.status == ExecutionStatus.COMPLETED
        assert execution.duration_ms is not None and execution.duration_ms >= 0

    def test_queued_can_be_canceled(self):
        """Test canceling a run before it starts."""
        execution = Execution(workflow_id="wf", user_id="u")

        execution.apply_status(ExecutionStatus.CANCELED)

        assert execution.status == ExecutionStatus.CANCELED
        assert execution.started_at is None

    def test_failed_records_error(self):
        """Test that failing a run stores its error."""
        execution = Execution(workflow_id="wf", user_id="u")
        execution.mark_running()

        execution.apply_status(ExecutionStatus.FAILED, error="Node x failed: boom")

        assert execution.error == "Node x failed: boom"

    @pytest.mark.parametrize(
        "terminal",
        [ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELED],
    )
    def test_terminal_is_final(self, terminal):
        """Test that terminal statuses cannot change."""
        execution = Execution(workflow_id="wf", user_id="u")
        execution.mark_running()
        execution.apply_status(terminal)

        for status in (ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED, ExecutionStatus.CANCELED):
            with pytest.raises(InvalidStatusTransitionError):
                execution.apply_status(status)

    def test_queued_cannot_complete(self):
        """Test that a queued run cannot skip RUNNING."""
        execution = Execution(workflow_id="wf", user_id="u")

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            execution.mark_completed()

        assert str(exc_info.value) == "Cannot transition from QUEUED to COMPLETED"


class TestStepLifecycle:
    """Tests for execution step transitions."""

    def test_complete_once(self):
        """Test that a completed step cannot change."""
        step = ExecutionStep(execution_id="e", node_id="n")
        step.mark_running()
        step.mark_completed({"output": "x"})

        assert step.get_output() == {"output": "x"}
        with pytest.raises(InvalidStatusTransitionError):
            step.mark_failed("late")
        with pytest.raises(InvalidStatusTransitionError):
            step.mark_running()

    def test_fail_running_step(self):
        """Test failing a running step."""
        step = ExecutionStep(execution_id="e", node_id="n", status=StepStatus.RUNNING)
        step.mark_failed("boom")

        assert step.status == StepStatus.FAILED
        assert step.error == "boom"
        assert step.get_output() is None


class TestScope:
    """Tests for run scope labels."""

    def test_build_scope(self):
        """Test scope labels for full, single and partial runs."""
        assert build_scope(None) == "full"
        assert build_scope([]) == "full"
        assert build_scope(["n1"]) == "single:n1"
        assert build_scope(["n1", "n2", "n3"]) == "partial:3"


class TestNodeData:
    """Tests for node kind resolution and typed config."""

    def test_resolve_node_kind(self):
        """Test node type spellings map to kinds."""
        assert resolve_node_kind("runAnyLLM") == NodeKind.LLM
        assert resolve_node_kind("run-all-llm") == NodeKind.LLM
        assert resolve_node_kind("crop-image") == NodeKind.CROP_IMAGE
        assert resolve_node_kind("") == NodeKind.UNKNOWN
        assert resolve_node_kind("something") == NodeKind.UNKNOWN

    def test_parse_llm_data(self):
        """Test parsing LLM node config."""
        data = parse_node_data(NodeKind.LLM, {"model": "m", "systemPrompt": "s", "label": "x"})
        assert data == LLMNodeData(model="m", prompt=None, system_prompt="s")

    def test_numeric_strings_coerced(self):
        """Test that numeric strings become numbers."""
        data = parse_node_data(NodeKind.CROP_IMAGE, {"width": "120", "x": "bad", "y": 3})
        assert data == CropImageData(width=120, x=None, y=3)

    def test_unknown_keeps_raw_bag(self):
        """Test that unknown node data keeps the raw bag."""
        data = parse_node_data(NodeKind.UNKNOWN, {"foo": 1})
        assert data == UnknownNodeData(raw={"foo": 1})
