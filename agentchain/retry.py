"""Bounded retry execution of a single agent call."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ValidationError

from .config import RetryConfig
from .constants import DEFAULT_STEP_TIMEOUT_SECONDS
from .errors import MalformedResponseError
from .evaluator import ResolvedStep
from .invocation import BaseInvoker, InvocationOptions
from .prompts import AgentResponse, response_schema
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)

AttemptFailedHook = Callable[[int, str], Awaitable[None]]


class AttemptOutcome(BaseModel):
    """Final result of running one step through the retry loop."""

    succeeded: bool
    attempts: int
    output: Any = None
    error: Optional[str] = None


class RetryController:
    """Runs an agent call up to ``max_retries + 1`` times.

    Each attempt is bounded by a timeout. Timeouts, raised errors and payloads
    that fail ``response_model`` validation all count as failed attempts.
    """

    def __init__(
        self,
        invoker: BaseInvoker,
        retry: Optional[RetryConfig] = None,
        default_timeout: float = DEFAULT_STEP_TIMEOUT_SECONDS,
        response_model: type[BaseModel] = AgentResponse,
    ) -> None:
        self._invoker = invoker
        self._retry = retry or RetryConfig()
        self._default_timeout = default_timeout
        self._response_model = response_model
        self._schema = response_schema(response_model)

    def _validate(self, payload: Any) -> Any:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        try:
            model = self._response_model.model_validate(payload)
        except ValidationError as exc:
            raise MalformedResponseError(f"Malformed response: {exc}") from exc
        return model.model_dump(mode="json")

    async def _attempt(self, resolved: ResolvedStep, timeout: float) -> Any:
        options = InvocationOptions(use_internet_context=resolved.use_internet_context)
        try:
            payload = await asyncio.wait_for(
                self._invoker.invoke(resolved.prompt, self._schema, options),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"Attempt timed out after {timeout}s") from exc
        return self._validate(payload)

    async def run(
        self,
        resolved: ResolvedStep,
        max_retries: int,
        timeout: Optional[float] = None,
        on_attempt_failed: Optional[AttemptFailedHook] = None,
    ) -> AttemptOutcome:
        max_attempts = max_retries + 1
        timeout = timeout or self._default_timeout
        last_error: Optional[str] = None

        for attempt in range(1, max_attempts + 1):
            try:
                output = await self._attempt(resolved, timeout)
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning(
                    f"Step {resolved.step_id} attempt {attempt}/{max_attempts} failed: {last_error}"
                )
                if on_attempt_failed is not None:
                    await on_attempt_failed(attempt, last_error)
                if attempt < max_attempts:
                    await schedule_retry(
                        attempt,
                        initial=self._retry.initial_delay,
                        factor=self._retry.factor,
                        max_delay=self._retry.max_delay,
                    )
                continue

            logger.info(f"Step {resolved.step_id} succeeded on attempt {attempt}")
            return AttemptOutcome(succeeded=True, attempts=attempt, output=output)

        return AttemptOutcome(succeeded=False, attempts=max_attempts, error=last_error)
