"""SQLite implementation of the trace repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from .models import ExecutionRecord, ExecutionStatus, StepRecord
from .repository import TraceRepository


class SQLiteTraceRepository(TraceRepository):
    """Persist traces using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        # step writes arrive from several worker threads at once
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS executions (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS steps (
                    id TEXT PRIMARY KEY,
                    execution_id TEXT NOT NULL REFERENCES executions(id),
                    step_name TEXT NOT NULL,
                    step_order INTEGER NOT NULL,
                    input TEXT,
                    output TEXT,
                    reasoning TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    duration_ms INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (execution_id, step_order)
                )
                """
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _to_execution(row: sqlite3.Row) -> ExecutionRecord:
        return ExecutionRecord(
            id=row["id"],
            name=row["name"],
            metadata=json.loads(row["metadata"]),
            status=row["status"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Repository API
    async def insert_execution(self, record: ExecutionRecord) -> str:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO executions (id, name, metadata, status, created_at) VALUES (?, ?, ?, ?, ?)",
            record.id,
            record.name,
            json.dumps(record.metadata),
            record.status,
            record.created_at.isoformat(),
        )
        return record.id

    async def update_execution_status(
        self, execution_id: str, status: ExecutionStatus
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE executions SET status = ? WHERE id = ?",
            status,
            execution_id,
        )

    async def insert_step(self, record: StepRecord) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO steps (
                id, execution_id, step_name, step_order, input, output,
                reasoning, status, duration_ms, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            record.id,
            record.execution_id,
            record.step_name,
            record.step_order,
            json.dumps(record.input),
            json.dumps(record.output),
            record.reasoning,
            record.status,
            record.duration_ms,
            record.created_at.isoformat(),
        )

    async def list_executions(self, limit: int = 50) -> list[ExecutionRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, name, metadata, status, created_at FROM executions ORDER BY created_at DESC LIMIT ?",
            limit,
        )
        return [self._to_execution(row) for row in rows]

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT id, name, metadata, status, created_at FROM executions WHERE id = ?",
            execution_id,
        )
        if not row:
            return None
        return self._to_execution(row)

    async def list_steps(self, execution_id: str) -> list[StepRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            """
            SELECT id, execution_id, step_name, step_order, input, output,
                   reasoning, status, duration_ms, created_at
            FROM steps WHERE execution_id = ? ORDER BY step_order
            """,
            execution_id,
        )
        return [
            StepRecord(
                id=r["id"],
                execution_id=r["execution_id"],
                step_name=r["step_name"],
                step_order=r["step_order"],
                input=json.loads(r["input"]) if r["input"] else None,
                output=json.loads(r["output"]) if r["output"] else None,
                reasoning=r["reasoning"] or "",
                status=r["status"],
                duration_ms=r["duration_ms"],
                created_at=datetime.fromisoformat(r["created_at"]),
            )
            for r in rows
        ]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
