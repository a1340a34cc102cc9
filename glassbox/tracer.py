"""Step-by-step execution tracing for multi-step pipelines.

Usage:
    tracer = Tracer(repository)
    await tracer.begin("Competitor Analysis: water bottle", {"user_intent": "..."})

    keywords = await tracer.run_step(
        "keyword_generation",
        lambda: StepResult(output=["bottle"], reasoning="..."),
        {"input_product": "water bottle"},
    )

    await tracer.end("completed")

Tracing is purely observational: ``run_step`` returns whatever the wrapped
work returns and re-raises whatever it raises. Storage failures are logged
and never reach the pipeline.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import time
import traceback
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python

from .persistence import (
    ExecutionRecord,
    ExecutionStatus,
    StepRecord,
    TraceRepository,
    get_repository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXCEPTION_REASONING = "Step threw an exception"
TERMINAL_STATUSES = ("completed", "failed")


@dataclass
class StepResult(Generic[T]):
    """Value produced by a unit of work plus the reason it was produced."""

    output: T
    reasoning: str = ""


Work = Callable[[], Union[StepResult[T], T, Awaitable[Union[StepResult[T], T]]]]


class TracerState(str, enum.Enum):
    UNSTARTED = "unstarted"
    ACTIVE = "active"
    ENDED = "ended"


class TraceSession(BaseModel):
    """Serializable handle for continuing an execution elsewhere."""

    execution_id: str
    next_step_order: int = Field(default=1, ge=1)

    def advance(self) -> "TraceSession":
        return self.model_copy(update={"next_step_order": self.next_step_order + 1})


def to_json_value(value: Any) -> Any:
    """Convert ``value`` into something ``json.dumps`` accepts."""
    try:
        return to_jsonable_python(value, fallback=repr)
    except Exception:
        logger.warning(f"Could not serialize {type(value).__name__} for tracing", exc_info=True)
        return repr(value)


def describe_error(exc: BaseException) -> dict[str, Any]:
    """Structured description of a failed step, stored as its output."""
    return {
        "kind": "error",
        "error": str(exc) or type(exc).__name__,
        "error_type": type(exc).__name__,
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }


async def _call_work(work: Work[T]) -> StepResult[T]:
    result = work()
    if inspect.isawaitable(result):
        result = await result
    if isinstance(result, StepResult):
        return result
    return StepResult(output=result)


class Tracer:
    """Records one execution and its ordered steps.

    One instance is one execution attempt. The instance moves from
    ``UNSTARTED`` to ``ACTIVE`` on a successful :meth:`begin` and to
    ``ENDED`` on :meth:`end`. Steps run outside ``ACTIVE`` execute without
    being recorded.
    """

    def __init__(
        self,
        repository: TraceRepository | None = None,
        *,
        flush_timeout: float = 5.0,
    ) -> None:
        self._repository = repository or get_repository()
        self._flush_timeout = flush_timeout
        self._session: TraceSession | None = None
        self._state = TracerState.UNSTARTED
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def resume(
        cls,
        session: TraceSession,
        repository: TraceRepository | None = None,
        **kwargs: Any,
    ) -> "Tracer":
        """Rebuild an active tracer from a session handle."""
        tracer = cls(repository, **kwargs)
        tracer._session = session.model_copy()
        tracer._state = TracerState.ACTIVE
        return tracer

    @property
    def state(self) -> TracerState:
        return self._state

    @property
    def execution_id(self) -> Optional[str]:
        return self._session.execution_id if self._session else None

    @property
    def session(self) -> Optional[TraceSession]:
        return self._session.model_copy() if self._session else None

    # ------------------------------------------------------------------
    async def begin(self, name: str, metadata: dict[str, Any] | None = None) -> Optional[str]:
        """Persist a new running execution.

        Args:
            name: Human-readable label for the run.
            metadata: Attributes describing the triggering intent.

        Returns:
            The execution id, or ``None`` when the execution could not be
            stored. The tracer then stays unstarted and steps run untraced.
        """
        if self._state is not TracerState.UNSTARTED:
            logger.warning(
                f"Tracer already bound to execution {self.execution_id}; ignoring begin({name!r})"
            )
            return self.execution_id

        try:
            record = ExecutionRecord(name=name, metadata=to_json_value(metadata or {}))
            execution_id = await self._repository.insert_execution(record)
        except Exception:
            logger.warning(f"Failed to start execution {name!r}", exc_info=True)
            return None

        self._session = TraceSession(execution_id=execution_id)
        self._state = TracerState.ACTIVE
        logger.debug(f"Execution {execution_id} started: {name}")
        return execution_id

    async def run_step(
        self,
        step_name: str,
        work: Work[T],
        input_snapshot: Any = None,
    ) -> T:
        """Run ``work`` as a traced step and return its output.

        The step record is written in the background once ``work`` has
        finished; the write is never awaited here and its failure is only
        logged. Exceptions raised by ``work`` are recorded and re-raised
        unchanged.
        """
        if self._state is not TracerState.ACTIVE or self._session is None:
            result = await _call_work(work)
            return result.output

        # read and increment without a suspension point in between
        session = self._session
        step_order = session.next_step_order
        self._session = session.advance()
        # captured before work can mutate it
        snapshot = to_json_value(input_snapshot)

        status = "success"
        output: Any = None
        reasoning = ""
        start = time.perf_counter()
        try:
            result = await _call_work(work)
            output = result.output
            reasoning = result.reasoning or ""
            return result.output
        except BaseException as exc:
            status = "failed"
            output = describe_error(exc)
            reasoning = EXCEPTION_REASONING
            raise
        finally:
            duration_ms = max(0, int((time.perf_counter() - start) * 1000))
            self._dispatch_step(
                execution_id=session.execution_id,
                step_name=step_name,
                step_order=step_order,
                input=snapshot,
                output=output,
                reasoning=reasoning,
                status=status,
                duration_ms=duration_ms,
            )

    async def end(self, status: ExecutionStatus = "completed") -> None:
        """Mark the execution as finished.

        Pending step writes are drained first (bounded by the flush
        timeout). Does nothing when no execution was ever started.
        """
        if self._session is None:
            return
        if status not in TERMINAL_STATUSES:
            logger.warning(f"Ignoring non-terminal status {status!r} for execution {self.execution_id}")
            return

        await self.flush(self._flush_timeout)
        try:
            await self._repository.update_execution_status(self._session.execution_id, status)
        except Exception:
            logger.warning(
                f"Failed to finish execution {self._session.execution_id} as {status}",
                exc_info=True,
            )
        self._state = TracerState.ENDED
        logger.info(f"Execution {self._session.execution_id} finished: {status}")

    async def flush(self, timeout: float | None = None) -> bool:
        """Wait for in-flight step writes. Returns ``False`` on timeout."""
        if not self._pending:
            return True
        _, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if still_pending:
            logger.warning(
                f"{len(still_pending)} step writes still pending for execution {self.execution_id}"
            )
        return not still_pending

    @asynccontextmanager
    async def execution(
        self, name: str, metadata: dict[str, Any] | None = None
    ) -> AsyncIterator["Tracer"]:
        """Begin an execution and end it as completed or failed on exit."""
        await self.begin(name, metadata)
        try:
            yield self
        except BaseException:
            await self.end("failed")
            raise
        await self.end("completed")

    # ------------------------------------------------------------------
    def _dispatch_step(self, **fields: Any) -> None:
        execution_id = fields["execution_id"]
        step_name = fields["step_name"]
        step_order = fields["step_order"]
        try:
            record = StepRecord(
                **{
                    **fields,
                    "output": to_json_value(fields["output"]),
                }
            )
            task = asyncio.get_running_loop().create_task(self._repository.insert_step(record))
        except Exception:
            logger.warning(
                f"Failed to dispatch step {step_name} (#{step_order}) for execution {execution_id}",
                exc_info=True,
            )
            return

        self._pending.add(task)
        task.add_done_callback(
            partial(
                self._on_step_written,
                execution_id=execution_id,
                step_name=step_name,
                step_order=step_order,
            )
        )

    def _on_step_written(
        self,
        task: asyncio.Task,
        *,
        execution_id: str,
        step_name: str,
        step_order: int,
    ) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning(f"Step write cancelled: {step_name} (#{step_order}) for execution {execution_id}")
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                f"Failed to log step {step_name} (#{step_order}) for execution {execution_id}: {exc}"
            )
        else:
            logger.debug(f"Trace step [{execution_id}] #{step_order}: {step_name}")
