"""Base interface for the agent invocation call."""

from __future__ import annotations

import abc
from typing import Any, Dict

from pydantic import BaseModel


class InvocationOptions(BaseModel):
    """Per-call options forwarded to the invocation service."""

    use_internet_context: bool = True


class BaseInvoker(metaclass=abc.ABCMeta):
    """Abstract asynchronous call to a language model service."""

    @abc.abstractmethod
    async def invoke(
        self,
        prompt: str,
        response_schema: Dict[str, Any],
        options: InvocationOptions,
    ) -> Any:
        """Return the response payload or raise on failure.

        Args:
            prompt: Fully assembled prompt text.
            response_schema: JSON schema the payload must conform to.
            options: Call options such as internet context.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release underlying resources (no-op by default)."""
        pass
