"""Repository abstraction for execution record persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from ..contracts import ExecutionRecord, RunStatus


class ExecutionRepository(Protocol):
    """Protocol for execution record persistence backends."""

    async def create_execution(self, record: ExecutionRecord) -> None:
        """Persist a newly started execution."""

    async def update_execution(self, record: ExecutionRecord) -> None:
        """Replace the stored state of an existing execution."""

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        """Retrieve an execution by id."""

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        project_id: Optional[str] = None,
        status: Optional[RunStatus] = None,
    ) -> list[ExecutionRecord]:
        """Return executions matching every filter given."""
