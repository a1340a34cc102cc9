"""Data models for persisted execution traces."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

ExecutionStatus = Literal["running", "completed", "failed"]
StepStatus = Literal["success", "failed"]


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionRecord(BaseModel):
    """One end-to-end run of a traced pipeline."""

    id: str = Field(default_factory=_new_id)
    name: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: ExecutionStatus = "running"
    created_at: datetime = Field(default_factory=_utcnow)


class StepRecord(BaseModel):
    """Record of a single traced step, written exactly once."""

    id: str = Field(default_factory=_new_id)
    execution_id: str
    step_name: str
    step_order: int = Field(ge=1)
    input: Any = None
    output: Any = None
    reasoning: str = ""
    status: StepStatus
    duration_ms: int = Field(ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
