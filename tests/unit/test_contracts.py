"""Tests for workflow and execution data contracts."""

import pytest
from pydantic import ValidationError

from agentchain.contracts import (
    ExecutionRecord,
    OnError,
    RunStatus,
    StepResult,
    StepSpec,
    StepStatus,
    Trigger,
    load_workflow,
)
from agentchain.errors import InvalidTransitionError


def test_step_defaults() -> None:
    step = StepSpec(agent_id="a", order=3)
    assert step.step_id == "3"
    assert step.on_error == OnError.STOP
    assert step.max_retries == 2
    assert step.use_internet_context is True
    assert step.depends_on == []


def test_dependency_refs_accept_orders_and_ids() -> None:
    step = StepSpec(agent_id="a", order=2, depends_on=[0, "review"], condition_source=1)
    assert step.depends_on == ["0", "review"]
    assert step.condition_source == "1"


def test_negative_retries_rejected() -> None:
    with pytest.raises(ValidationError):
        StepSpec(agent_id="a", order=0, max_retries=-1)


def test_step_lifecycle_transitions() -> None:
    result = StepResult(step_id="A", agent_id="a", order=0)
    result.transition(StepStatus.RUNNING)
    assert result.started_at is not None
    result.transition(StepStatus.SUCCEEDED)
    assert result.finished_at >= result.started_at
    assert result.duration_ms >= 0

    with pytest.raises(InvalidTransitionError):
        result.transition(StepStatus.RUNNING)


@pytest.mark.parametrize(
    "path",
    [
        [StepStatus.SKIPPED, StepStatus.RUNNING],
        [StepStatus.SUCCEEDED],
        [StepStatus.RUNNING, StepStatus.FAILED, StepStatus.SUCCEEDED],
    ],
)
def test_invalid_transitions(path) -> None:
    result = StepResult(step_id="A", agent_id="a", order=0)
    *allowed, last = path
    for status in allowed:
        result.transition(status)
    with pytest.raises(InvalidTransitionError):
        result.transition(last)


def test_skipping_pending_step_leaves_start_unset() -> None:
    result = StepResult(step_id="A", agent_id="a", order=0)
    result.transition(StepStatus.SKIPPED)
    assert result.started_at is None
    assert result.finished_at is not None
    assert result.duration_ms is None


def test_record_outputs_and_json() -> None:
    record = ExecutionRecord(
        workflow_name="wf",
        project_id="p1",
        steps=[
            StepResult(step_id="A", agent_id="a", order=0, status=StepStatus.SUCCEEDED, output={"x": 1}),
            StepResult(step_id="B", agent_id="b", order=1, status=StepStatus.FAILED, error="boom"),
        ],
    )
    assert record.outputs() == {"A": {"x": 1}}
    assert record.status == RunStatus.PENDING
    assert ExecutionRecord.from_json(record.to_json()) == record
    with pytest.raises(KeyError):
        record.get_step("Z")


def test_load_workflow_from_yaml(tmp_path) -> None:
    path = tmp_path / "review.yaml"
    path.write_text(
        """
id: wf-review
name: Code review
trigger: manual
steps:
  - agent_id: analyzer
    order: 0
  - id: security
    agent_id: auditor
    order: 1
    depends_on: [0]
    on_error: continue
    condition: "output.score > 0.8"
    config:
      depth: deep
"""
    )
    workflow = load_workflow(path)

    assert workflow.name == "Code review"
    assert workflow.trigger == Trigger.MANUAL
    assert [s.step_id for s in workflow.ordered_steps()] == ["0", "security"]
    security = workflow.get_step("security")
    assert security.depends_on == ["0"]
    assert security.on_error == OnError.CONTINUE
    assert security.config == {"depth": "deep"}
    assert workflow.get_step("missing") is None
