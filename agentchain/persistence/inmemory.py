"""In-memory implementation of the execution repository."""

from __future__ import annotations

from typing import Dict, Optional

from ..contracts import ExecutionRecord, RunStatus
from .repository import ExecutionRepository


class InMemoryExecutionRepository(ExecutionRepository):
    """Store execution records in local memory.

    Useful for tests or when no database is configured. Records are stored
    as copies so later mutation by a running orchestrator is only visible
    after an explicit update.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, ExecutionRecord] = {}

    async def create_execution(self, record: ExecutionRecord) -> None:
        if record.id in self._executions:
            raise ValueError(f"Execution {record.id} already exists")
        self._executions[record.id] = record.model_copy(deep=True)

    async def update_execution(self, record: ExecutionRecord) -> None:
        if record.id not in self._executions:
            raise KeyError(record.id)
        self._executions[record.id] = record.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        record = self._executions.get(execution_id)
        return record.model_copy(deep=True) if record else None

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        project_id: Optional[str] = None,
        status: Optional[RunStatus] = None,
    ) -> list[ExecutionRecord]:
        return [
            r.model_copy(deep=True)
            for r in self._executions.values()
            if (workflow_id is None or r.workflow_id == workflow_id)
            and (project_id is None or r.project_id == project_id)
            and (status is None or r.status == status)
        ]
