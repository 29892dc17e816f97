"""Core data contracts for agentchain workflows and executions."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .constants import DEFAULT_MAX_RETRIES
from .errors import InvalidTransitionError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Trigger(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    EVENT = "event"


class OnError(str, Enum):
    STOP = "stop"
    CONTINUE = "continue"
    FALLBACK = "fallback"


class Discipline(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SKIPPED, StepStatus.SUCCEEDED, StepStatus.FAILED)


class SkipReason(str, Enum):
    CONDITION_NOT_MET = "condition_not_met"
    DEPENDENCY_FAILED = "dependency_failed"
    RUN_STOPPED = "run_stopped"
    CANCELLED = "cancelled"
    UNSCHEDULABLE = "unschedulable"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.STOPPED)


_ALLOWED_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.RUNNING, StepStatus.SKIPPED},
    StepStatus.RUNNING: {StepStatus.SKIPPED, StepStatus.SUCCEEDED, StepStatus.FAILED},
}


class ProjectRef(BaseModel):
    """The project a workflow runs against."""

    id: str
    name: str = ""
    description: Optional[str] = None


class StepSpec(BaseModel):
    """One agent invocation within a workflow."""

    id: Optional[str] = None
    agent_id: str
    order: int
    depends_on: List[str] = Field(default_factory=list)
    condition: Optional[str] = None
    condition_source: Optional[str] = None
    instructions: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    on_error: OnError = OnError.STOP
    fallback_agent_id: Optional[str] = None
    fallback_output: Optional[Dict[str, Any]] = None
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    use_internet_context: bool = True

    @field_validator("depends_on", mode="before")
    @classmethod
    def _coerce_dependency_refs(cls, v: Any) -> Any:
        # dependencies may be given by order (int) or by explicit id
        if v is None:
            return []
        if isinstance(v, (list, tuple, set)):
            return [str(item) for item in v]
        return v

    @field_validator("id", "condition_source", mode="before")
    @classmethod
    def _coerce_identifier(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v

    @property
    def step_id(self) -> str:
        """Effective identifier: the explicit ``id`` or the ``order``."""
        return self.id if self.id is not None else str(self.order)


class WorkflowDefinition(BaseModel):
    """A named chain of agent steps."""

    id: Optional[str] = None
    name: str
    description: str = ""
    trigger: Trigger = Trigger.MANUAL
    steps: List[StepSpec] = Field(default_factory=list)

    def ordered_steps(self) -> List[StepSpec]:
        return sorted(self.steps, key=lambda s: s.order)

    def get_step(self, step_id: str) -> Optional[StepSpec]:
        return next((s for s in self.steps if s.step_id == step_id), None)


class LogEntry(BaseModel):
    """A line of the user-facing run log."""

    timestamp: datetime = Field(default_factory=utc_now)
    level: str = "info"
    message: str
    step_id: Optional[str] = None


class StepResult(BaseModel):
    """Outcome of a single step within one execution."""

    step_id: str
    agent_id: str
    agent_name: Optional[str] = None
    order: int
    status: StepStatus = StepStatus.PENDING
    attempts: int = 0
    output: Any = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    fallback_used: bool = False
    skip_reason: Optional[SkipReason] = None

    def transition(self, status: StepStatus) -> None:
        """Move to ``status``, enforcing the monotonic lifecycle."""
        allowed = _ALLOWED_TRANSITIONS.get(self.status, set())
        if status not in allowed:
            raise InvalidTransitionError(
                f"Step {self.step_id}: cannot move from {self.status.value} to {status.value}"
            )
        now = utc_now()
        if status == StepStatus.RUNNING:
            self.started_at = now
        elif status.is_terminal:
            self.finished_at = now
            if self.started_at is not None:
                self.duration_ms = int((now - self.started_at).total_seconds() * 1000)
        self.status = status


class ExecutionRecord(BaseModel):
    """State of one workflow run, owned by the aggregator while running."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: Optional[str] = None
    workflow_name: str
    project_id: str
    discipline: Discipline = Discipline.SEQUENTIAL
    status: RunStatus = RunStatus.PENDING
    steps: List[StepResult] = Field(default_factory=list)
    logs: List[LogEntry] = Field(default_factory=list)
    error: Optional[str] = None
    failed_step_id: Optional[str] = None
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    duration_ms: Optional[int] = None

    def get_step(self, step_id: str) -> StepResult:
        for result in self.steps:
            if result.step_id == step_id:
                return result
        raise KeyError(step_id)

    def outputs(self) -> Dict[str, Any]:
        """Outputs of steps that have produced one, keyed by step id."""
        return {
            r.step_id: r.output
            for r in self.steps
            if r.status == StepStatus.SUCCEEDED
        }

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "ExecutionRecord":
        return cls.model_validate_json(data)


def load_workflow(path: str | Path) -> WorkflowDefinition:
    """Load a workflow definition from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    workflow = WorkflowDefinition.model_validate(data)
    logger.debug(f"Loaded workflow {workflow.name} with {len(workflow.steps)} steps from {path}")
    return workflow
