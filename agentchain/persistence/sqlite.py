"""SQLite implementation of the execution repository."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, Optional

from ..contracts import ExecutionRecord, RunStatus
from .repository import ExecutionRepository


class SQLiteExecutionRepository(ExecutionRepository):
    """Persist execution records using SQLite.

    Filterable attributes live in their own columns; the full record is kept
    as a JSON document.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT,
                project_id TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                record TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()
        return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Repository API
    async def create_execution(self, record: ExecutionRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO executions (id, workflow_id, project_id, status, started_at, record) VALUES (?, ?, ?, ?, ?, ?)",
            record.id,
            record.workflow_id,
            record.project_id,
            record.status.value,
            record.started_at.isoformat(),
            record.to_json(),
        )

    async def update_execution(self, record: ExecutionRecord) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE executions SET status = ?, record = ? WHERE id = ?",
            record.status.value,
            record.to_json(),
            record.id,
        )
        if not updated:
            raise KeyError(record.id)

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT record FROM executions WHERE id = ?",
            execution_id,
        )
        if not row:
            return None
        return ExecutionRecord.from_json(row["record"])

    async def list_executions(
        self,
        workflow_id: Optional[str] = None,
        project_id: Optional[str] = None,
        status: Optional[RunStatus] = None,
    ) -> list[ExecutionRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if workflow_id is not None:
            clauses.append("workflow_id = ?")
            params.append(workflow_id)
        if project_id is not None:
            clauses.append("project_id = ?")
            params.append(project_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(RunStatus(status).value)
        query = "SELECT record FROM executions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY started_at"
        rows = await asyncio.to_thread(self._fetchall, query, *params)
        return [ExecutionRecord.from_json(row["record"]) for row in rows]
