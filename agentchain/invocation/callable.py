"""Invoker adapting a plain coroutine function."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict

from .base import BaseInvoker, InvocationOptions

InvokeFunc = Callable[[str, Dict[str, Any], InvocationOptions], Awaitable[Any]]


class CallableInvoker(BaseInvoker):
    """Delegates every call to ``func(prompt, response_schema, options)``."""

    def __init__(self, func: InvokeFunc) -> None:
        self._func = func

    async def invoke(
        self,
        prompt: str,
        response_schema: Dict[str, Any],
        options: InvocationOptions,
    ) -> Any:
        return await self._func(prompt, response_schema, options)
