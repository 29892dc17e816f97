"""Invoker factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import AgentChainConfig, load_config
from .base import BaseInvoker, InvocationOptions
from .callable import CallableInvoker
from .llm import LLMInvoker


def get_invoker(
    model: Optional[str] = None, config: Optional[AgentChainConfig] = None
) -> BaseInvoker:
    """Factory function to get an invoker for the configured model."""

    config = config or load_config()
    model = model or os.getenv("AGENTCHAIN_MODEL") or config.invoker.model
    if not model:
        raise ValueError("No model configured for the agent invoker")
    return LLMInvoker(model)


__all__ = [
    "BaseInvoker",
    "CallableInvoker",
    "InvocationOptions",
    "LLMInvoker",
    "get_invoker",
]
