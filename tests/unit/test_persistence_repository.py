import pytest

from agentchain.contracts import ExecutionRecord, RunStatus, StepResult, StepStatus
from agentchain.persistence import InMemoryExecutionRepository, SQLiteExecutionRepository


def _record(project_id="p1", workflow_id="wf-1"):
    return ExecutionRecord(
        workflow_id=workflow_id,
        workflow_name="review",
        project_id=project_id,
        steps=[StepResult(step_id="A", agent_id="a", order=0)],
    )


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "memory":
        yield InMemoryExecutionRepository()
        return
    repo = SQLiteExecutionRepository(tmp_path / "runs.db")
    yield repo
    repo.close()


@pytest.mark.asyncio
async def test_repository_crud(repo):
    record = _record()
    await repo.create_execution(record)

    record.status = RunStatus.COMPLETED
    step = record.get_step("A")
    step.transition(StepStatus.RUNNING)
    step.output = {"x": 1}
    step.transition(StepStatus.SUCCEEDED)
    await repo.update_execution(record)

    stored = await repo.get_execution(record.id)
    assert stored is not None
    assert stored.status == RunStatus.COMPLETED
    assert stored.get_step("A").status == StepStatus.SUCCEEDED
    assert stored.get_step("A").output == {"x": 1}
    assert await repo.get_execution("missing") is None


@pytest.mark.asyncio
async def test_repository_list_filters(repo):
    first = _record(project_id="p1")
    second = _record(project_id="p2", workflow_id="wf-2")
    await repo.create_execution(first)
    await repo.create_execution(second)
    second.status = RunStatus.STOPPED
    await repo.update_execution(second)

    assert {r.id for r in await repo.list_executions()} == {first.id, second.id}
    assert [r.id for r in await repo.list_executions(project_id="p1")] == [first.id]
    assert [r.id for r in await repo.list_executions(workflow_id="wf-2")] == [second.id]
    assert [r.id for r in await repo.list_executions(status=RunStatus.STOPPED)] == [second.id]
    assert await repo.list_executions(project_id="p1", status=RunStatus.STOPPED) == []


@pytest.mark.asyncio
async def test_update_of_unknown_execution_raises(repo):
    with pytest.raises(KeyError):
        await repo.update_execution(_record())


@pytest.mark.asyncio
async def test_stored_records_are_snapshots():
    repo = InMemoryExecutionRepository()
    record = _record()
    await repo.create_execution(record)

    record.status = RunStatus.RUNNING
    assert (await repo.get_execution(record.id)).status == RunStatus.PENDING

    with pytest.raises(ValueError):
        await repo.create_execution(record)
