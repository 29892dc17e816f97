"""Workflow orchestrator - runs agent workflows against a project."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from .aggregator import ResultAggregator
from .config import AgentChainConfig, load_config
from .contracts import (
    Discipline,
    ExecutionRecord,
    OnError,
    ProjectRef,
    SkipReason,
    StepResult,
    StepSpec,
    StepStatus,
    WorkflowDefinition,
)
from .errors import SchedulingError
from .evaluator import StepEvaluator
from .invocation import BaseInvoker
from .persistence import ExecutionRepository, get_repository
from .progress import ProgressChannel
from .prompts import AgentResponse, empty_output
from .registry import AgentRegistry
from .retry import RetryController
from .scheduler import ExecutionPlan, ExecutionScheduler, validate_workflow

logger = logging.getLogger(__name__)


class _Run:
    """Per-execution state shared by the control loop and its step tasks."""

    def __init__(
        self,
        plan: ExecutionPlan,
        project: ProjectRef,
        aggregator: ResultAggregator,
        evaluator: StepEvaluator,
        semaphore: asyncio.Semaphore,
    ) -> None:
        self.plan = plan
        self.project = project
        self.aggregator = aggregator
        self.evaluator = evaluator
        self.semaphore = semaphore
        self.cancel_event = asyncio.Event()

    @property
    def record(self) -> ExecutionRecord:
        return self.aggregator.record


class WorkflowOrchestrator:
    """Public entry point for executing workflows.

    Validates the definition, then drives the dependency graph either one
    step at a time (``sequential``) or in readiness waves (``parallel``) until
    no step remains runnable, and returns the terminal execution record.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        invoker: BaseInvoker,
        repository: Optional[ExecutionRepository] = None,
        progress: Optional[ProgressChannel] = None,
        config: Optional[AgentChainConfig] = None,
        response_model: type[BaseModel] = AgentResponse,
    ) -> None:
        self._registry = registry
        self._config = config or load_config()
        self._repository = repository or get_repository(config=self._config)
        self.progress = progress or ProgressChannel()
        self._response_model = response_model
        self._retry = RetryController(
            invoker,
            retry=self._config.retry,
            default_timeout=self._config.engine.step_timeout_seconds,
            response_model=response_model,
        )
        self._runs: Dict[str, _Run] = {}

    @property
    def repository(self) -> ExecutionRepository:
        return self._repository

    def active_executions(self) -> List[str]:
        return list(self._runs)

    def validate(self, workflow: WorkflowDefinition) -> ExecutionPlan:
        """Validate ``workflow`` without running it."""
        return validate_workflow(workflow, self._registry)

    async def execute(
        self,
        workflow: WorkflowDefinition,
        project: ProjectRef,
        discipline: Union[Discipline, str, None] = None,
        execution_id: Optional[str] = None,
    ) -> ExecutionRecord:
        """Run ``workflow`` against ``project`` to a terminal status.

        Args:
            workflow: Definition to execute.
            project: Project the agents work on.
            discipline: ``sequential`` or ``parallel``; defaults to config.
            execution_id: Optional id for the new record, useful to cancel
                the run from another task.

        Raises:
            WorkflowDefinitionError: If the definition is invalid. No record
                is created in that case.
        """
        plan = self.validate(workflow)
        discipline = Discipline(discipline or self._config.engine.discipline)

        record = ExecutionRecord(
            workflow_id=workflow.id,
            workflow_name=workflow.name,
            project_id=project.id,
            discipline=discipline,
            steps=[self._initial_result(step) for step in plan.ordered()],
        )
        if execution_id is not None:
            record.id = execution_id

        aggregator = ResultAggregator(record, plan, self._repository, self.progress)
        max_parallel = (
            self._config.engine.max_parallel if discipline == Discipline.PARALLEL else 1
        )
        run = _Run(
            plan=plan,
            project=project,
            aggregator=aggregator,
            evaluator=StepEvaluator(plan, self._registry),
            semaphore=asyncio.Semaphore(max_parallel),
        )

        logger.info(
            f"Executing workflow {workflow.name} ({record.id}) for project {project.id} "
            f"with {len(plan.steps)} steps, discipline={discipline.value}"
        )
        self._runs[record.id] = run
        try:
            await aggregator.open()
            await self._drive(run, ExecutionScheduler(plan, discipline))
            if run.cancel_event.is_set():
                await aggregator.cancel()
        finally:
            self._runs.pop(record.id, None)

        record = await aggregator.finalize()
        logger.info(f"Workflow {workflow.name} ({record.id}) finished: {record.status.value}")
        return record

    def cancel(self, execution_id: str) -> bool:
        """Request cancellation of a running execution.

        Returns:
            ``True`` if the execution still had steps to run and is now being
            cancelled.
        """
        run = self._runs.get(execution_id)
        if run is None or run.cancel_event.is_set():
            return False
        if not any(
            r.status in (StepStatus.PENDING, StepStatus.RUNNING) for r in run.record.steps
        ):
            return False
        logger.info(f"Cancellation requested for execution {execution_id}")
        run.cancel_event.set()
        return True

    # ------------------------------------------------------------------
    def _initial_result(self, step: StepSpec) -> StepResult:
        agent = self._registry.get(step.agent_id)
        return StepResult(
            step_id=step.step_id,
            agent_id=step.agent_id,
            agent_name=agent.name if agent else None,
            order=step.order,
        )

    async def _drive(self, run: _Run, scheduler: ExecutionScheduler) -> None:
        while not run.aggregator.halted and not run.cancel_event.is_set():
            try:
                batch = scheduler.next_batch(run.record)
            except SchedulingError as exc:
                await run.aggregator.fail_run(str(exc))
                return
            if not batch:
                return

            tasks: Dict[asyncio.Task, str] = {}
            for step in batch:
                if not run.evaluator.should_run(step, run.record, run.project):
                    await run.aggregator.skip(step.step_id, SkipReason.CONDITION_NOT_MET)
                    continue
                task = asyncio.create_task(self._run_step(run, step))
                tasks[task] = step.step_id
            if tasks:
                await self._await_wave(run, tasks)

    async def _await_wave(self, run: _Run, tasks: Dict[asyncio.Task, str]) -> None:
        """Wait for every task of the wave, honoring cancellation."""
        pending = set(tasks)
        cancel_waiter = asyncio.create_task(run.cancel_event.wait())
        try:
            while pending:
                done, _ = await asyncio.wait(
                    pending | {cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                finished = done - {cancel_waiter}
                pending -= finished
                for task in finished:
                    task.result()
                if cancel_waiter in done:
                    break

            grace = self._config.engine.cancel_grace_period
            if pending and grace > 0:
                done, pending = await asyncio.wait(pending, timeout=grace)
                for task in done:
                    task.result()
        except BaseException:
            # a failing step or an outer cancel must not orphan the rest of the wave
            await self._discard(pending)
            raise
        finally:
            cancel_waiter.cancel()

        if not pending:
            return
        await self._discard(pending)
        for task in pending:
            await run.aggregator.abandon(tasks[task])

    @staticmethod
    async def _discard(tasks) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_step(self, run: _Run, step: StepSpec) -> None:
        async with run.semaphore:
            aggregator = run.aggregator
            # a stop or cancel may have landed while this step waited for a slot
            if (
                aggregator.halted
                or run.cancel_event.is_set()
                or run.record.get_step(step.step_id).status != StepStatus.PENDING
            ):
                return
            resolved = run.evaluator.resolve(step, run.record, run.project)
            await aggregator.dispatch(step.step_id, resolved.agent.name)

            async def _on_attempt_failed(attempt: int, error: str) -> None:
                await aggregator.log("error", f"Attempt {attempt} failed: {error}", step.step_id)

            outcome = await self._retry.run(
                resolved,
                max_retries=step.max_retries,
                timeout=step.timeout_seconds,
                on_attempt_failed=_on_attempt_failed,
            )
            if outcome.succeeded:
                await aggregator.succeed(step.step_id, outcome.output, outcome.attempts)
                return

            if step.on_error == OnError.FALLBACK:
                output = await self._fallback_output(run, step)
                await aggregator.succeed(
                    step.step_id,
                    output,
                    outcome.attempts,
                    fallback_used=True,
                    error=outcome.error,
                )
                return

            await aggregator.fail(step.step_id, outcome.error, outcome.attempts, step.on_error)

    async def _fallback_output(self, run: _Run, step: StepSpec) -> Any:
        """Output substituted for a step whose ``fallback`` policy fired.

        The fallback agent's output when one is configured and succeeds,
        otherwise the step's ``fallback_output``, otherwise a typed empty
        payload.
        """
        if step.fallback_agent_id is not None:
            await run.aggregator.log(
                "info", f"Executing fallback agent {step.fallback_agent_id}", step.step_id
            )
            resolved = run.evaluator.resolve(
                step, run.record, run.project, agent_id=step.fallback_agent_id
            )
            outcome = await self._retry.run(
                resolved, max_retries=step.max_retries, timeout=step.timeout_seconds
            )
            if outcome.succeeded:
                return outcome.output
            await run.aggregator.log(
                "error", f"Fallback agent failed: {outcome.error}", step.step_id
            )
        if step.fallback_output is not None:
            return dict(step.fallback_output)
        return empty_output(self._response_model)
