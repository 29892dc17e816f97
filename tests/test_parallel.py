"""Parallel discipline: waves, concurrency limits and ordering."""

import pytest

from agentchain import WorkflowDefinition
from agentchain.config import AgentChainConfig, EngineConfig, RetryConfig
from agentchain.contracts import RunStatus, SkipReason, StepStatus
from agentchain.errors import InvocationError


def _diamond(a_on_error="stop"):
    return WorkflowDefinition.model_validate(
        {
            "name": "diamond",
            "steps": [
                {"id": "A", "agent_id": "a", "order": 0, "on_error": a_on_error, "max_retries": 0},
                {"id": "B", "agent_id": "b", "order": 1},
                {"id": "C", "agent_id": "c", "order": 2, "depends_on": ["A", "B"]},
                {"id": "D", "agent_id": "d", "order": 3, "depends_on": ["C"]},
            ],
        }
    )


@pytest.mark.asyncio
async def test_independent_steps_run_concurrently(make_orchestrator, make_invoker, project):
    invoker = make_invoker()
    record = await make_orchestrator(invoker).execute(_diamond(), project, discipline="parallel")

    assert record.status == RunStatus.COMPLETED
    assert invoker.max_active == 2
    assert [agent for agent, _, _ in invoker.calls][2:] == ["c", "d"]


@pytest.mark.asyncio
async def test_sequential_runs_one_at_a_time(make_orchestrator, make_invoker, project):
    invoker = make_invoker()
    record = await make_orchestrator(invoker).execute(_diamond(), project, discipline="sequential")

    assert record.status == RunStatus.COMPLETED
    assert invoker.max_active == 1
    assert [agent for agent, _, _ in invoker.calls] == ["a", "b", "c", "d"]


@pytest.mark.asyncio
async def test_max_parallel_bounds_in_flight_calls(make_orchestrator, make_invoker, project):
    invoker = make_invoker()
    config = AgentChainConfig(
        engine=EngineConfig(discipline="parallel", max_parallel=1, step_timeout_seconds=2),
        retry=RetryConfig(initial_delay=0),
    )
    record = await make_orchestrator(invoker, config=config).execute(_diamond(), project)

    assert record.discipline.value == "parallel"
    assert record.status == RunStatus.COMPLETED
    assert invoker.max_active == 1


@pytest.mark.asyncio
async def test_dependents_start_after_dependencies_finish(make_orchestrator, make_invoker, project):
    invoker = make_invoker()
    orchestrator = make_orchestrator(invoker)
    queue = orchestrator.progress.listen()

    await orchestrator.execute(_diamond(), project, discipline="parallel")

    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    step_events = [(e.step_id, e.status) for e in events if e.step_id is not None]

    def index(step_id, status):
        return step_events.index((step_id, status))

    c_start = index("C", StepStatus.RUNNING)
    assert index("A", StepStatus.SUCCEEDED) < c_start
    assert index("B", StepStatus.SUCCEEDED) < c_start
    assert index("C", StepStatus.SUCCEEDED) < index("D", StepStatus.RUNNING)
    assert events[-1].run_status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_stop_in_parallel_lets_in_flight_siblings_finish(make_orchestrator, make_invoker, project):
    invoker = make_invoker({"a": [InvocationError("boom")]})
    record = await make_orchestrator(invoker).execute(_diamond(), project, discipline="parallel")

    assert record.status == RunStatus.STOPPED
    assert record.get_step("A").status == StepStatus.FAILED
    assert record.get_step("B").status == StepStatus.SUCCEEDED
    for step_id in ("C", "D"):
        assert record.get_step(step_id).status == StepStatus.SKIPPED
        assert record.get_step(step_id).skip_reason == SkipReason.RUN_STOPPED


@pytest.mark.asyncio
async def test_continue_in_parallel_skips_transitive_dependents(make_orchestrator, make_invoker, project):
    invoker = make_invoker({"a": [InvocationError("boom")]})
    record = await make_orchestrator(invoker).execute(
        _diamond(a_on_error="continue"), project, discipline="parallel"
    )

    assert record.status == RunStatus.COMPLETED
    assert record.get_step("B").status == StepStatus.SUCCEEDED
    assert record.get_step("C").skip_reason == SkipReason.DEPENDENCY_FAILED
    assert record.get_step("D").skip_reason == SkipReason.DEPENDENCY_FAILED
    assert invoker.calls_for("d") == 0


@pytest.mark.asyncio
async def test_wide_wave_records_every_outcome(make_orchestrator, make_invoker, project):
    invoker = make_invoker({agent: [{"next_action": agent}] for agent in "abcde"})
    workflow = WorkflowDefinition.model_validate(
        {
            "name": "fan-out",
            "steps": [{"agent_id": agent, "order": i} for i, agent in enumerate("abcde")],
        }
    )
    record = await make_orchestrator(invoker).execute(workflow, project, discipline="parallel")

    assert invoker.max_active == 4
    assert [s.step_id for s in record.steps] == ["0", "1", "2", "3", "4"]
    assert [s.output["next_action"] for s in record.steps] == list("abcde")
    assert all(s.status == StepStatus.SUCCEEDED for s in record.steps)


@pytest.mark.asyncio
@pytest.mark.parametrize("discipline", ["sequential", "parallel"])
async def test_conditions_read_the_same_outputs_under_both_disciplines(
    make_orchestrator, make_invoker, project, discipline
):
    invoker = make_invoker({"a": [{"score": 0.9}]})
    workflow = WorkflowDefinition.model_validate(
        {
            "name": "gated",
            "steps": [
                {"id": "A", "agent_id": "a", "order": 0},
                {"id": "B", "agent_id": "b", "order": 1, "condition": "output.score > 0.8"},
                {"id": "C", "agent_id": "c", "order": 2, "depends_on": ["A"], "condition": "output.score > 0.8"},
            ],
        }
    )

    record = await make_orchestrator(invoker).execute(workflow, project, discipline=discipline)

    assert record.status == RunStatus.COMPLETED
    a, b, c = record.steps
    assert a.status == StepStatus.SUCCEEDED
    assert b.status == StepStatus.SKIPPED
    assert b.skip_reason == SkipReason.CONDITION_NOT_MET
    assert c.status == StepStatus.SUCCEEDED
    assert invoker.calls_for("b") == 0
