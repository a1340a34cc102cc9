"""In-memory implementation of the trace repository."""

from __future__ import annotations

from typing import Dict, List

from .models import ExecutionRecord, ExecutionStatus, StepRecord
from .repository import TraceRepository


class InMemoryTraceRepository(TraceRepository):
    """Store traces in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, ExecutionRecord] = {}
        self._steps: Dict[str, List[StepRecord]] = {}

    # ------------------------------------------------------------------
    async def insert_execution(self, record: ExecutionRecord) -> str:
        if record.id in self._executions:
            raise ValueError(f"Execution {record.id} already exists")
        self._executions[record.id] = record.model_copy(deep=True)
        self._steps.setdefault(record.id, [])
        return record.id

    async def update_execution_status(
        self, execution_id: str, status: ExecutionStatus
    ) -> None:
        execution = self._executions.get(execution_id)
        if execution:
            execution.status = status

    async def insert_step(self, record: StepRecord) -> None:
        steps = self._steps.setdefault(record.execution_id, [])
        if any(s.step_order == record.step_order for s in steps):
            raise ValueError(
                f"Step order {record.step_order} already recorded for execution {record.execution_id}"
            )
        steps.append(record.model_copy(deep=True))

    async def list_executions(self, limit: int = 50) -> list[ExecutionRecord]:
        executions = sorted(
            self._executions.values(), key=lambda e: e.created_at, reverse=True
        )
        return [e.model_copy(deep=True) for e in executions[:limit]]

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_steps(self, execution_id: str) -> list[StepRecord]:
        steps = sorted(self._steps.get(execution_id, []), key=lambda s: s.step_order)
        return [s.model_copy(deep=True) for s in steps]
