"""Serialized writer of the execution record."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional

from .contracts import (
    ExecutionRecord,
    LogEntry,
    OnError,
    RunStatus,
    SkipReason,
    StepResult,
    StepStatus,
    utc_now,
)
from .persistence import ExecutionRepository
from .progress import ProgressChannel, ProgressEvent
from .scheduler import ExecutionPlan

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ResultAggregator:
    """Applies step outcomes to an :class:`ExecutionRecord` one at a time.

    All mutation of the record goes through this class and happens under a
    single ``asyncio.Lock``, so concurrently finishing steps cannot interleave
    their updates. Each applied change is published on the progress channel
    and terminal step changes are persisted.
    """

    def __init__(
        self,
        record: ExecutionRecord,
        plan: ExecutionPlan,
        repository: Optional[ExecutionRepository] = None,
        progress: Optional[ProgressChannel] = None,
    ) -> None:
        self.record = record
        self._plan = plan
        self._repository = repository
        self._progress = progress
        self._lock = asyncio.Lock()
        self._stopped = False
        self._scheduling_failed = False
        self._cancelled = False

    @property
    def halted(self) -> bool:
        """True once no further steps may be dispatched."""
        return self._stopped or self._scheduling_failed or self._cancelled

    # ------------------------------------------------------------------
    # Internal helpers (lock must be held)
    def _log(self, level: str, message: str, step_id: Optional[str] = None) -> None:
        self.record.logs.append(LogEntry(level=level, message=message, step_id=step_id))
        prefix = f"[{self.record.id}]" + (f"[{step_id}]" if step_id else "")
        logger.log(_LOG_LEVELS.get(level, logging.INFO), f"{prefix} {message}")

    async def _publish(self, result: Optional[StepResult] = None) -> None:
        if self._progress is None:
            return
        event = ProgressEvent(
            execution_id=self.record.id,
            run_status=self.record.status,
            step_id=result.step_id if result else None,
            status=result.status if result else None,
            attempts=result.attempts if result else 0,
        )
        await self._progress.publish(event)

    async def _persist(self) -> None:
        if self._repository is not None:
            await self._repository.update_execution(self.record)

    async def _skip(self, step_id: str, reason: SkipReason) -> None:
        result = self.record.get_step(step_id)
        if result.status != StepStatus.PENDING:
            return
        result.skip_reason = reason
        result.transition(StepStatus.SKIPPED)
        self._log("info", f"Skipped ({reason.value})", step_id)
        await self._publish(result)

    async def _skip_pending(self, reason: SkipReason) -> List[str]:
        skipped = [r.step_id for r in self.record.steps if r.status == StepStatus.PENDING]
        for step_id in skipped:
            await self._skip(step_id, reason)
        return skipped

    # ------------------------------------------------------------------
    # Public API
    async def open(self) -> None:
        """Persist the fresh record and announce the run."""
        async with self._lock:
            self._log("info", f"Starting workflow: {self.record.workflow_name}")
            if self._repository is not None:
                await self._repository.create_execution(self.record)
            await self._publish()

    async def log(self, level: str, message: str, step_id: Optional[str] = None) -> None:
        async with self._lock:
            self._log(level, message, step_id)

    async def dispatch(self, step_id: str, agent_name: Optional[str] = None) -> None:
        """Mark ``step_id`` as running; the first dispatch starts the run."""
        async with self._lock:
            result = self.record.get_step(step_id)
            result.transition(StepStatus.RUNNING)
            if agent_name:
                result.agent_name = agent_name
            if self.record.status == RunStatus.PENDING:
                self.record.status = RunStatus.RUNNING
            self._log("info", f"Starting {result.agent_name or result.agent_id}", step_id)
            await self._publish(result)

    async def skip(self, step_id: str, reason: SkipReason) -> None:
        async with self._lock:
            await self._skip(step_id, reason)
            await self._persist()

    async def succeed(
        self,
        step_id: str,
        output: Any,
        attempts: int,
        fallback_used: bool = False,
        error: Optional[str] = None,
    ) -> None:
        """Record a successful step, or a fallback substitution when ``fallback_used``."""
        async with self._lock:
            result = self.record.get_step(step_id)
            result.output = output
            result.attempts = attempts
            result.fallback_used = fallback_used
            result.error = error
            result.transition(StepStatus.SUCCEEDED)
            if fallback_used:
                self._log("warning", "Failed, fallback output substituted", step_id)
            else:
                self._log("success", f"Completed in {result.duration_ms}ms", step_id)
            await self._publish(result)
            await self._persist()

    async def fail(self, step_id: str, error: Optional[str], attempts: int, on_error: OnError) -> None:
        """Record an exhausted step and apply its ``on_error`` policy.

        ``continue`` skips every transitive dependent; ``stop`` skips every
        step that has not started and halts dispatch.
        """
        async with self._lock:
            result = self.record.get_step(step_id)
            result.error = error
            result.attempts = attempts
            result.transition(StepStatus.FAILED)
            self._log("error", f"Failed after {attempts} attempts: {error}", step_id)
            await self._publish(result)

            if on_error == OnError.STOP:
                self._stopped = True
                self.record.failed_step_id = step_id
                self.record.error = error
                self._log("error", f"Workflow stopped at step {step_id}")
                await self._skip_pending(SkipReason.RUN_STOPPED)
            else:
                self._log("warning", "Continuing despite error...", step_id)
                for dependent in self._plan.transitive_dependents(step_id):
                    await self._skip(dependent, SkipReason.DEPENDENCY_FAILED)
            await self._persist()

    async def abandon(self, step_id: str, error: str = "cancelled") -> None:
        """Fail a step whose in-flight call was abandoned."""
        async with self._lock:
            result = self.record.get_step(step_id)
            if result.status != StepStatus.RUNNING:
                return
            result.error = error
            result.transition(StepStatus.FAILED)
            self._log("warning", "Abandoned after cancellation", step_id)
            await self._publish(result)
            await self._persist()

    async def cancel(self) -> None:
        """Halt dispatch and skip every step that has not started."""
        async with self._lock:
            self._cancelled = True
            self._log("warning", "Cancellation requested")
            await self._skip_pending(SkipReason.CANCELLED)
            await self._persist()

    async def fail_run(self, error: str) -> None:
        """Record a fatal scheduling error."""
        async with self._lock:
            self._scheduling_failed = True
            self.record.error = error
            self._log("error", f"Scheduling failed: {error}")
            await self._skip_pending(SkipReason.UNSCHEDULABLE)
            await self._persist()

    async def finalize(self) -> ExecutionRecord:
        """Derive the terminal run status, persist and return the record."""
        async with self._lock:
            if self._scheduling_failed:
                status = RunStatus.FAILED
            elif self._stopped or self._cancelled:
                status = RunStatus.STOPPED
            else:
                status = RunStatus.COMPLETED
            self.record.status = status
            self.record.finished_at = utc_now()
            self.record.duration_ms = int(
                (self.record.finished_at - self.record.started_at).total_seconds() * 1000
            )
            self._log(
                "success" if status == RunStatus.COMPLETED else "warning",
                f"Workflow {status.value} in {self.record.duration_ms / 1000:.2f}s",
            )
            await self._persist()
            await self._publish()
            return self.record
