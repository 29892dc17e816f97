from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_BACKOFF_INITIAL,
    DEFAULT_BACKOFF_MAX,
    DEFAULT_CANCEL_GRACE_PERIOD,
    DEFAULT_CONFIG_PATH,
    DEFAULT_MAX_PARALLEL,
    DEFAULT_STEP_TIMEOUT_SECONDS,
)
from .contracts import Discipline


class RetryConfig(BaseModel):
    """Backoff curve applied between step attempts."""

    initial_delay: float = Field(default=DEFAULT_BACKOFF_INITIAL, ge=0)
    factor: float = Field(default=DEFAULT_BACKOFF_FACTOR, ge=1)
    max_delay: float = Field(default=DEFAULT_BACKOFF_MAX, ge=0)


class EngineConfig(BaseModel):
    """Scheduling and timeout settings."""

    discipline: Discipline = Discipline.SEQUENTIAL
    max_parallel: int = Field(default=DEFAULT_MAX_PARALLEL, ge=1)
    step_timeout_seconds: float = Field(default=DEFAULT_STEP_TIMEOUT_SECONDS, gt=0)
    cancel_grace_period: float = Field(default=DEFAULT_CANCEL_GRACE_PERIOD, ge=0)


class InvokerConfig(BaseModel):
    """Language model used by the default invoker."""

    model: Optional[str] = None


class AgentChainConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineConfig = EngineConfig()
    retry: RetryConfig = RetryConfig()
    invoker: InvokerConfig = InvokerConfig()
    database_url: Optional[str] = None


def load_config(path: Optional[str] = None) -> AgentChainConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to AGENTCHAIN_CONFIG env
            variable or 'agentchain.yaml' in the current directory.
    """

    config_path = path or os.getenv("AGENTCHAIN_CONFIG", DEFAULT_CONFIG_PATH)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = AgentChainConfig(**data)
    else:
        config = AgentChainConfig()

    env_db_url = os.getenv("AGENTCHAIN_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
