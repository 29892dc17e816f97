"""agentchain: dependency-aware orchestration of AI agent workflows."""

from .contracts import (
    Discipline,
    ExecutionRecord,
    OnError,
    ProjectRef,
    RunStatus,
    StepResult,
    StepSpec,
    StepStatus,
    WorkflowDefinition,
    load_workflow,
)
from .errors import WorkflowDefinitionError
from .invocation import BaseInvoker, CallableInvoker, LLMInvoker, get_invoker
from .orchestrator import WorkflowOrchestrator
from .persistence import get_repository
from .progress import ProgressChannel, ProgressEvent
from .registry import AgentDefinition, AgentRegistry, load_registry

__version__ = "0.1.0"
__all__ = [
    "AgentDefinition",
    "AgentRegistry",
    "BaseInvoker",
    "CallableInvoker",
    "Discipline",
    "ExecutionRecord",
    "LLMInvoker",
    "OnError",
    "ProgressChannel",
    "ProgressEvent",
    "ProjectRef",
    "RunStatus",
    "StepResult",
    "StepSpec",
    "StepStatus",
    "WorkflowDefinition",
    "WorkflowDefinitionError",
    "WorkflowOrchestrator",
    "get_invoker",
    "get_repository",
    "load_registry",
    "load_workflow",
]
