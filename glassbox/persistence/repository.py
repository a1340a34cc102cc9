"""Repository abstraction for trace persistence."""

from __future__ import annotations

from typing import Protocol

from .models import ExecutionRecord, ExecutionStatus, StepRecord


class TraceRepository(Protocol):
    """Protocol for trace persistence backends."""

    async def insert_execution(self, record: ExecutionRecord) -> str:
        """Persist a new execution and return its id."""

    async def update_execution_status(
        self, execution_id: str, status: ExecutionStatus
    ) -> None:
        """Set the status of an existing execution."""

    async def insert_step(self, record: StepRecord) -> None:
        """Persist a fully populated step."""

    async def list_executions(self, limit: int = 50) -> list[ExecutionRecord]:
        """Return execution summaries, newest first."""

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        """Retrieve an execution by id."""

    async def list_steps(self, execution_id: str) -> list[StepRecord]:
        """Return the steps of an execution ordered by ``step_order``."""
