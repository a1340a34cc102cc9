"""glassbox: step-by-step decision tracing for multi-step pipelines."""

from .outputs import StepOutput, parse_step_output
from .persistence import ExecutionRecord, StepRecord, TraceRepository, get_repository
from .tracer import StepResult, Tracer, TracerState, TraceSession

__version__ = "0.1.0"
__all__ = [
    "ExecutionRecord",
    "StepOutput",
    "StepRecord",
    "StepResult",
    "TraceRepository",
    "TraceSession",
    "Tracer",
    "TracerState",
    "get_repository",
    "parse_step_output",
]
