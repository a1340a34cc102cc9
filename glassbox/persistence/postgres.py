"""PostgreSQL implementation of the trace repository."""

from __future__ import annotations

import json

import asyncpg

from .models import ExecutionRecord, ExecutionStatus, StepRecord
from .repository import TraceRepository


def _load_json(value):
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresTraceRepository(TraceRepository):
    """Persist traces using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                metadata JSONB NOT NULL,
                status TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS steps (
                id TEXT PRIMARY KEY,
                execution_id TEXT NOT NULL REFERENCES executions(id),
                step_name TEXT NOT NULL,
                step_order INTEGER NOT NULL,
                input JSONB,
                output JSONB,
                reasoning TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL,
                duration_ms INTEGER NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                UNIQUE (execution_id, step_order)
            )
            """
        )

    # ------------------------------------------------------------------
    async def insert_execution(self, record: ExecutionRecord) -> str:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO executions (id, name, metadata, status, created_at) VALUES ($1, $2, $3, $4, $5)",
                record.id,
                record.name,
                json.dumps(record.metadata),
                record.status,
                record.created_at,
            )
        finally:
            await conn.close()
        return record.id

    async def update_execution_status(
        self, execution_id: str, status: ExecutionStatus
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "UPDATE executions SET status = $1 WHERE id = $2",
                status,
                execution_id,
            )
        finally:
            await conn.close()

    async def insert_step(self, record: StepRecord) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO steps (
                    id, execution_id, step_name, step_order, input, output,
                    reasoning, status, duration_ms, created_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
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
                record.created_at,
            )
        finally:
            await conn.close()

    async def list_executions(self, limit: int = 50) -> list[ExecutionRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT id, name, metadata, status, created_at FROM executions ORDER BY created_at DESC LIMIT $1",
                limit,
            )
        finally:
            await conn.close()
        return [
            ExecutionRecord(
                id=r["id"],
                name=r["name"],
                metadata=_load_json(r["metadata"]),
                status=r["status"],
                created_at=r["created_at"],
            )
            for r in rows
        ]

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT id, name, metadata, status, created_at FROM executions WHERE id = $1",
                execution_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return ExecutionRecord(
            id=row["id"],
            name=row["name"],
            metadata=_load_json(row["metadata"]),
            status=row["status"],
            created_at=row["created_at"],
        )

    async def list_steps(self, execution_id: str) -> list[StepRecord]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                """
                SELECT id, execution_id, step_name, step_order, input, output,
                       reasoning, status, duration_ms, created_at
                FROM steps WHERE execution_id = $1 ORDER BY step_order
                """,
                execution_id,
            )
        finally:
            await conn.close()
        return [
            StepRecord(
                id=r["id"],
                execution_id=r["execution_id"],
                step_name=r["step_name"],
                step_order=r["step_order"],
                input=_load_json(r["input"]),
                output=_load_json(r["output"]),
                reasoning=r["reasoning"],
                status=r["status"],
                duration_ms=r["duration_ms"],
                created_at=r["created_at"],
            )
            for r in rows
        ]
