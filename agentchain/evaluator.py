"""Step gating and input resolution."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from .conditions import evaluate_condition
from .contracts import ExecutionRecord, ProjectRef, StepSpec, StepStatus
from .prompts import build_prompt
from .registry import AgentDefinition, AgentRegistry
from .scheduler import ExecutionPlan

logger = logging.getLogger(__name__)


class ResolvedStep(BaseModel):
    """Everything the retry controller needs to call an agent."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    agent: AgentDefinition
    config: Dict[str, Any]
    prompt: str
    use_internet_context: bool


def merge_config(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Shallow merge where step level keys win."""
    merged = dict(defaults)
    merged.update(overrides)
    return merged


class StepEvaluator:
    """Decides whether a ready step runs and what it runs with."""

    def __init__(self, plan: ExecutionPlan, registry: AgentRegistry) -> None:
        self._plan = plan
        self._registry = registry

    def condition_scope(
        self, step: StepSpec, record: ExecutionRecord, project: ProjectRef
    ) -> Mapping[str, Any]:
        """Read-only view of the dependency outputs visible to ``step``'s condition."""
        ancestors = self._plan.ancestors(step.step_id)
        outputs = {sid: out for sid, out in record.outputs().items() if sid in ancestors}
        scope: Dict[str, Any] = {
            "outputs": MappingProxyType(outputs),
            "project": project.model_dump(mode="json"),
        }
        source = self.output_source(step)
        if source is not None and source in outputs:
            scope["output"] = outputs[source]
        return MappingProxyType(scope)

    def output_source(self, step: StepSpec) -> Optional[str]:
        """Step id the bare name ``output`` refers to for ``step``."""
        if step.condition_source is not None:
            return step.condition_source
        deps = self._plan.dependencies[step.step_id]
        if deps:
            return max(deps, key=lambda dep: self._plan.steps[dep].order)
        return None

    def should_run(
        self, step: StepSpec, record: ExecutionRecord, project: ProjectRef
    ) -> bool:
        expr = self._plan.conditions.get(step.step_id)
        if expr is None:
            return True
        result = evaluate_condition(expr, self.condition_scope(step, record, project))
        logger.debug(f"Condition for step {step.step_id} ({step.condition!r}) -> {result}")
        return result

    def resolve(
        self,
        step: StepSpec,
        record: ExecutionRecord,
        project: ProjectRef,
        agent_id: Optional[str] = None,
    ) -> ResolvedStep:
        """Resolve agent, merged config and prompt for ``step``.

        ``agent_id`` overrides the step's own agent, as used for fallbacks.
        """
        agent = self._registry[agent_id or step.agent_id]
        config = merge_config(agent.default_config, step.config)
        previous = [
            {"step": r.step_id, "agent": r.agent_name, "output": r.output}
            for r in record.steps
            if r.status == StepStatus.SUCCEEDED
        ]
        prompt = build_prompt(agent, project, config, previous, step.instructions)
        return ResolvedStep(
            step_id=step.step_id,
            agent=agent,
            config=config,
            prompt=prompt,
            use_internet_context=step.use_internet_context,
        )
