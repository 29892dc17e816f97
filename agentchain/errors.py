"""Exception hierarchy for agentchain."""

from __future__ import annotations

from typing import Iterable, List


class AgentChainError(Exception):
    """Base class for all engine errors."""


class WorkflowDefinitionError(AgentChainError):
    """Raised before execution when a workflow definition is invalid."""

    def __init__(self, problems: Iterable[str]) -> None:
        self.problems: List[str] = list(problems)
        super().__init__("Invalid workflow definition: " + "; ".join(self.problems))


class SchedulingError(AgentChainError):
    """No step can make progress although some remain pending."""


class InvocationError(AgentChainError):
    """The external agent call failed."""


class MalformedResponseError(InvocationError):
    """The agent call returned a payload that does not match the schema."""


class ConditionError(AgentChainError):
    """A step condition could not be parsed or evaluated."""


class InvalidTransitionError(AgentChainError):
    """A step result was moved out of order or out of a terminal state."""
