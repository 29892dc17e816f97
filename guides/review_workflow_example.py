"""Code review workflow example using agentchain.

Runs offline with a canned invoker; pass ``get_invoker("openai:gpt-4o")`` (or
any pydantic-ai model name) instead to call a real model.
"""

import asyncio
import logging
from pathlib import Path

from agentchain import (
    CallableInvoker,
    ProjectRef,
    WorkflowOrchestrator,
    load_registry,
    load_workflow,
)

GUIDES = Path(__file__).parent

CANNED = {
    "You are a senior engineer": {"metrics": {"score": 0.6}, "next_action": "audit"},
    "You audit web applications": {
        "recommendations": [{"title": "Rotate API keys", "priority": "high"}]
    },
}


async def canned_answer(prompt, response_schema, options):
    await asyncio.sleep(0.1)
    for prefix, payload in CANNED.items():
        if prompt.startswith(prefix):
            return payload
    return {"next_action": "done"}


async def main():
    logging.basicConfig(level=logging.INFO)
    registry = load_registry(GUIDES / "agents.yaml")
    workflow = load_workflow(GUIDES / "review_workflow.yaml")
    project = ProjectRef(id="shop", name="Web Shop", description="An online store")

    orchestrator = WorkflowOrchestrator(registry, CallableInvoker(canned_answer))

    async def show(event):
        if event.step_id:
            print(f"  {event.step_id}: {event.status.value}")

    orchestrator.progress.subscribe(show)
    record = await orchestrator.execute(workflow, project, discipline="parallel")

    print(f"Execution {record.id}: {record.status.value}")
    for step in record.steps:
        print(f"- {step.step_id}: {step.status.value} -> {step.output}")


if __name__ == "__main__":
    asyncio.run(main())
