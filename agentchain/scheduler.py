"""Definition validation and readiness scheduling over the step graph."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, Field

from .conditions import Expr, parse_condition
from .contracts import (
    Discipline,
    ExecutionRecord,
    StepSpec,
    StepStatus,
    WorkflowDefinition,
)
from .errors import ConditionError, SchedulingError, WorkflowDefinitionError
from .registry import AgentRegistry

logger = logging.getLogger(__name__)

_SATISFIED = (StepStatus.SUCCEEDED, StepStatus.SKIPPED)


class ExecutionPlan(BaseModel):
    """A validated workflow with its dependency graph resolved to step ids."""

    workflow: WorkflowDefinition
    steps: Dict[str, StepSpec]
    dependencies: Dict[str, List[str]]
    dependents: Dict[str, List[str]] = Field(default_factory=dict)
    conditions: Dict[str, Expr] = Field(default_factory=dict)

    def ordered(self) -> List[StepSpec]:
        return sorted(self.steps.values(), key=lambda s: s.order)

    def transitive_dependents(self, step_id: str) -> List[str]:
        """All steps that directly or indirectly depend on ``step_id``."""
        return sorted(
            _reachable(self.dependents, step_id), key=lambda sid: self.steps[sid].order
        )

    def ancestors(self, step_id: str) -> Set[str]:
        """All steps ``step_id`` directly or indirectly depends on."""
        return _reachable(self.dependencies, step_id)


def _reachable(edges: Dict[str, List[str]], start: str) -> Set[str]:
    seen: Set[str] = set()
    stack = list(edges.get(start, []))
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        stack.extend(edges.get(current, []))
    seen.discard(start)
    return seen


def _resolve_reference(
    ref: str, ids: Set[str], by_order: Dict[str, str]
) -> Optional[str]:
    if ref in ids:
        return ref
    return by_order.get(ref)


def _find_cycle(dependencies: Dict[str, List[str]], order: List[str]) -> Optional[List[str]]:
    """Return one dependency cycle as a path, or ``None`` if the graph is acyclic."""
    white, grey, black = 0, 1, 2
    color = {sid: white for sid in dependencies}
    parent: Dict[str, str] = {}

    for start in order:
        if color[start] != white:
            continue
        stack = [(start, iter(dependencies[start]))]
        color[start] = grey
        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                color[node] = black
                stack.pop()
                continue
            if color[child] == grey:
                cycle = [child]
                current = node
                while current != child:
                    cycle.append(current)
                    current = parent[current]
                cycle.append(child)
                cycle.reverse()
                return cycle
            if color[child] == white:
                parent[child] = node
                color[child] = grey
                stack.append((child, iter(dependencies[child])))
    return None


def validate_workflow(
    workflow: WorkflowDefinition, registry: AgentRegistry
) -> ExecutionPlan:
    """Check ``workflow`` against ``registry`` and build its execution plan.

    Every problem found is collected before raising so callers can report
    them all at once.

    Raises:
        WorkflowDefinitionError: On duplicate identifiers or orders, dangling
            or self dependencies, cycles, unknown agents or unparsable
            conditions.
    """
    problems: List[str] = []
    steps: Dict[str, StepSpec] = {}
    by_order: Dict[str, str] = {}

    for step in workflow.ordered_steps():
        if step.step_id in steps:
            problems.append(f"Duplicate step id '{step.step_id}'")
            continue
        if str(step.order) in by_order:
            problems.append(f"Duplicate step order {step.order}")
        steps[step.step_id] = step
        by_order.setdefault(str(step.order), step.step_id)

    ids = set(steps)
    dependencies: Dict[str, List[str]] = {}
    for sid, step in steps.items():
        resolved: List[str] = []
        for ref in step.depends_on:
            target = _resolve_reference(ref, ids, by_order)
            if target is None:
                problems.append(f"Step '{sid}' depends on unknown step '{ref}'")
            elif target == sid:
                problems.append(f"Step '{sid}' depends on itself")
            elif target not in resolved:
                resolved.append(target)
        dependencies[sid] = resolved

        if step.agent_id not in registry:
            problems.append(f"Step '{sid}' references unknown agent '{step.agent_id}'")
        if step.fallback_agent_id is not None and step.fallback_agent_id not in registry:
            problems.append(
                f"Step '{sid}' references unknown fallback agent '{step.fallback_agent_id}'"
            )
        if step.condition_source is not None and step.condition_source not in ids:
            problems.append(
                f"Step '{sid}' binds its condition to unknown step '{step.condition_source}'"
            )

    conditions: Dict[str, Expr] = {}
    for sid, step in steps.items():
        if step.condition is None or not step.condition.strip():
            continue
        try:
            conditions[sid] = parse_condition(step.condition)
        except ConditionError as exc:
            problems.append(f"Step '{sid}' has an invalid condition: {exc}")

    order = [s.step_id for s in sorted(steps.values(), key=lambda s: s.order)]
    cycle = _find_cycle(dependencies, order)
    if cycle:
        problems.append("Dependency cycle: " + " -> ".join(cycle))

    for sid, step in steps.items():
        source = step.condition_source
        if source is None or source not in ids or source == sid:
            continue
        if source not in _reachable(dependencies, sid):
            problems.append(
                f"Step '{sid}' binds its condition to step '{source}', "
                f"which is not one of its dependencies"
            )

    if problems:
        logger.warning(f"Workflow {workflow.name} failed validation: {problems}")
        raise WorkflowDefinitionError(problems)

    dependents: Dict[str, List[str]] = {sid: [] for sid in steps}
    for sid, deps in dependencies.items():
        for dep in deps:
            dependents[dep].append(sid)

    return ExecutionPlan(
        workflow=workflow,
        steps=steps,
        dependencies=dependencies,
        dependents=dependents,
        conditions=conditions,
    )


class ExecutionScheduler:
    """Chooses which steps may start next."""

    def __init__(
        self, plan: ExecutionPlan, discipline: Discipline = Discipline.SEQUENTIAL
    ) -> None:
        self.plan = plan
        self.discipline = discipline

    def is_ready(self, step: StepSpec, record: ExecutionRecord) -> bool:
        if record.get_step(step.step_id).status != StepStatus.PENDING:
            return False
        return all(
            record.get_step(dep).status in _SATISFIED
            for dep in self.plan.dependencies[step.step_id]
        )

    def ready_steps(self, record: ExecutionRecord) -> List[StepSpec]:
        """Ready steps in ascending ``order``."""
        return [s for s in self.plan.ordered() if self.is_ready(s, record)]

    def pending_steps(self, record: ExecutionRecord) -> List[str]:
        return [r.step_id for r in record.steps if r.status == StepStatus.PENDING]

    def next_batch(self, record: ExecutionRecord) -> List[StepSpec]:
        """Steps to dispatch next; empty once nothing is pending.

        Raises:
            SchedulingError: If steps remain pending but none is ready.
        """
        ready = self.ready_steps(record)
        if not ready:
            pending = self.pending_steps(record)
            if pending:
                raise SchedulingError(
                    f"No runnable steps while {len(pending)} remain pending: {pending}"
                )
            return []
        if self.discipline == Discipline.SEQUENTIAL:
            return ready[:1]
        return ready
