"""Command line interface for running and inspecting agentchain workflows."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
import yaml

from agentchain import (
    ProjectRef,
    RunStatus,
    WorkflowDefinitionError,
    WorkflowOrchestrator,
    get_invoker,
    get_repository,
    load_registry,
    load_workflow,
)
from agentchain.contracts import Discipline, StepStatus
from agentchain.scheduler import validate_workflow

app = typer.Typer(help="CLI for agentchain workflows")

execution_app = typer.Typer(help="Commands for inspecting executions")

app.add_typer(execution_app, name="execution")

_STATUS_COLORS = {
    StepStatus.SUCCEEDED: typer.colors.GREEN,
    StepStatus.FAILED: typer.colors.RED,
    StepStatus.SKIPPED: typer.colors.YELLOW,
}


@app.callback()
def main() -> None:
    """agentchain CLI entry point."""
    pass


def _load_inputs(workflow_file: Path, agents_file: Path):
    for path in (workflow_file, agents_file):
        if not path.exists():
            typer.secho(f"File not found: {path}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
    try:
        workflow = load_workflow(workflow_file)
    except (ValueError, yaml.YAMLError) as exc:
        raise _invalid_file(workflow_file, exc)
    try:
        registry = load_registry(agents_file)
    except (ValueError, yaml.YAMLError) as exc:
        raise _invalid_file(agents_file, exc)
    return workflow, registry


def _invalid_file(path: Path, exc: Exception) -> typer.Exit:
    # pydantic ValidationError is a ValueError
    typer.secho(f"Invalid file {path}: {exc}", fg=typer.colors.RED)
    return typer.Exit(code=1)


@app.command("validate")
def validate(
    workflow_file: Path,
    agents: Path = typer.Option(..., "--agents", "-a", help="YAML file of agent definitions"),
) -> None:
    """
    Check a workflow file for definition errors without running it.

    Reports dangling or cyclic dependencies, unknown agents and invalid
    conditions.

    Example:
        agentchain validate review.yaml --agents agents.yaml
    """
    workflow, registry = _load_inputs(workflow_file, agents)
    try:
        plan = validate_workflow(workflow, registry)
    except WorkflowDefinitionError as exc:
        typer.secho(f"Workflow {workflow.name} is invalid:", fg=typer.colors.RED)
        for problem in exc.problems:
            typer.echo(f"- {problem}")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {workflow.name} is valid ({len(plan.steps)} steps)")


@app.command("run")
def run(
    workflow_file: Path,
    agents: Path = typer.Option(..., "--agents", "-a", help="YAML file of agent definitions"),
    project_id: str = typer.Option(..., "--project-id", help="Project identifier"),
    project_name: str = typer.Option("", "--project-name"),
    project_description: Optional[str] = typer.Option(None, "--project-description"),
    discipline: Optional[Discipline] = typer.Option(None, "--discipline"),
    model: Optional[str] = typer.Option(None, "--model", help="pydantic-ai model name"),
) -> None:
    """
    Execute a workflow against a project and print the per-step outcome.

    Exits with code 1 unless the run completes.

    Example:
        agentchain run review.yaml --agents agents.yaml --project-id web-shop
        agentchain run review.yaml -a agents.yaml --project-id p1 --discipline parallel
    """
    workflow, registry = _load_inputs(workflow_file, agents)
    project = ProjectRef(id=project_id, name=project_name, description=project_description)
    try:
        invoker = get_invoker(model)
    except ValueError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    orchestrator = WorkflowOrchestrator(registry, invoker, repository=get_repository())
    try:
        record = asyncio.run(orchestrator.execute(workflow, project, discipline=discipline))
    except WorkflowDefinitionError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Execution {record.id}: {record.status.value}")
    for step in record.steps:
        line = f"- {step.step_id} ({step.agent_name or step.agent_id}): {step.status.value}"
        if step.fallback_used:
            line += " [fallback]"
        if step.error:
            line += f" - {step.error}"
        typer.secho(line, fg=_STATUS_COLORS.get(step.status))
    if record.status != RunStatus.COMPLETED:
        raise typer.Exit(code=1)


@execution_app.command("list")
def execution_list(
    status: Optional[RunStatus] = typer.Option(None, "--status"),
    project_id: Optional[str] = typer.Option(None, "--project-id"),
) -> None:
    """
    List persisted executions with their status.

    Example:
        agentchain execution list --status stopped
        # Output: 5f0c...    review    stopped
    """
    repo = get_repository()
    executions = asyncio.run(repo.list_executions(project_id=project_id, status=status))
    if not executions:
        typer.echo("No executions found")
        return
    for record in executions:
        typer.echo(f"{record.id}\t{record.workflow_name}\t{record.status.value}")


@execution_app.command("show")
def execution_show(
    execution_id: str,
    logs: bool = typer.Option(False, "--logs", help="Include the run log"),
) -> None:
    """
    Show step-by-step details of one execution.

    Example:
        agentchain execution show 5f0c... --logs
    """
    repo = get_repository()
    record = asyncio.run(repo.get_execution(execution_id))
    if record is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {record.id}: {record.status.value}")
    typer.echo(f"Workflow: {record.workflow_name}  Project: {record.project_id}")
    if record.error:
        typer.echo(f"Error: {record.error}")
    for step in record.steps:
        typer.echo(
            f"- {step.step_id}: {step.status.value} (attempts={step.attempts})"
            + (f" ({step.started_at} -> {step.finished_at})" if step.started_at else "")
        )
        if step.output is not None:
            typer.echo(f"    output: {json.dumps(step.output, default=str)}")
    if logs:
        for entry in record.logs:
            typer.echo(f"[{entry.timestamp.isoformat()}] [{entry.level.upper()}] {entry.message}")


if __name__ == "__main__":
    app()
