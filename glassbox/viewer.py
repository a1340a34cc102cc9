"""Plain-text rendering of stored executions and their steps."""

from __future__ import annotations

import json
from typing import Callable, Iterable, Optional

from .outputs import (
    ErrorOutput,
    FilterEvaluationOutput,
    GenericOutput,
    ProductMetrics,
    RankingOutput,
    RelevanceEvaluationOutput,
    StepOutput,
    parse_step_output,
)
from .persistence import ExecutionRecord, StepRecord

MAX_GENERIC_CHARS = 2000
STACK_TAIL_LINES = 6

_STEP_LABELS = (
    ("keyword", "keywords"),
    ("search", "search"),
    ("filter", "filter"),
    ("relevance", "relevance"),
    ("select", "rank"),
    ("rank", "rank"),
)


def step_label(step_name: str) -> str:
    """Short category label for a step, derived from its name."""
    for needle, label in _STEP_LABELS:
        if needle in step_name:
            return label
    return "step"


def _format_metrics(metrics: Optional[ProductMetrics]) -> str:
    if metrics is None:
        return ""
    return f"${metrics.price:.2f}  {metrics.rating} stars  {metrics.reviews:,} reviews"


def _indent(lines: Iterable[str], prefix: str = "    ") -> list[str]:
    return [f"{prefix}{line}" for line in lines]


def render_execution_list(executions: list[ExecutionRecord]) -> list[str]:
    if not executions:
        return ["No executions found"]
    return [
        f"{e.id}\t{e.status}\t{e.created_at.isoformat(timespec='seconds')}\t{e.name}"
        for e in executions
    ]


# ----------------------------------------------------------------------
# Output shapes
def _render_filter_evaluation(output: FilterEvaluationOutput) -> list[str]:
    lines = []
    if output.filters_applied:
        rules = ", ".join(rule.rule for rule in output.filters_applied.values())
        lines.append(f"Filters applied: {rules}")
    lines.append(
        f"Evaluated: {output.total_evaluated}  Passed: {output.passed_count}  Rejected: {output.failed_count}"
    )
    # rejected candidates first
    for item in sorted(output.evaluations, key=lambda e: e.qualified):
        verdict = "PASSED" if item.qualified else "REJECTED"
        header = f"[{verdict}] {item.title}"
        metrics = _format_metrics(item.metrics)
        if metrics:
            header += f" ({metrics})"
        lines.append(header)
        if item.rejection_reason:
            lines.append(f"  Why rejected: {item.rejection_reason}")
        checks = [
            f"{'ok' if check.passed else 'x'} {name.replace('min_', '')}: {check.detail}"
            for name, check in item.filter_results.items()
        ]
        if checks:
            lines.append("  " + " | ".join(checks))
    return lines


def _render_relevance_evaluation(output: RelevanceEvaluationOutput) -> list[str]:
    summary = output.summary
    lines = [
        f'User searched for: "{output.user_query}"',
        f"True matches: {summary.true_matches}  Alternatives: {summary.close_alternatives}  "
        f"False positives: {summary.false_positives_removed}",
    ]
    for item in output.ranked_list or output.evaluations:
        header = f"[{item.match_type.replace('_', ' ')}] {item.title} {item.relevance_score}/100"
        metrics = _format_metrics(item.metrics)
        if metrics:
            header += f" ({metrics})"
        lines.append(header)
        if item.reason:
            lines.append(f"  Analysis: {item.reason}")
    return lines


def _render_ranking(output: RankingOutput) -> list[str]:
    if output.selected is None:
        return ["No suitable product selected"]
    selected = output.selected
    lines = [f"Selected: {selected.title} ({selected.relevance_score}/100)"]
    if selected.reason_selected:
        lines.append(f"  Why: {selected.reason_selected}")
    for idx, alt in enumerate(output.alternatives, start=2):
        lines.append(f"#{idx} {alt.title} ({alt.relevance_score}/100)")
        if alt.reason_not_selected:
            lines.append(f"  Not selected: {alt.reason_not_selected}")
    lines.append(f"Total relevant: {output.total_relevant}")
    return lines


def _render_error(output: ErrorOutput) -> list[str]:
    lines = [f"{output.error_type or 'Error'}: {output.error}"]
    if output.stack:
        tail = output.stack.rstrip().splitlines()[-STACK_TAIL_LINES:]
        lines.extend(_indent(tail, "  "))
    return lines


def _render_generic(output: GenericOutput) -> list[str]:
    if output.data is None:
        return ["(no output)"]
    try:
        text = json.dumps(output.data, indent=2, default=str)
    except (TypeError, ValueError):
        text = repr(output.data)
    if len(text) > MAX_GENERIC_CHARS:
        text = text[:MAX_GENERIC_CHARS] + "..."
    return text.splitlines()


_RENDERERS: dict[type, Callable[..., list[str]]] = {
    FilterEvaluationOutput: _render_filter_evaluation,
    RelevanceEvaluationOutput: _render_relevance_evaluation,
    RankingOutput: _render_ranking,
    ErrorOutput: _render_error,
    GenericOutput: _render_generic,
}


def render_output(output: StepOutput) -> list[str]:
    return _RENDERERS[type(output)](output)


# ----------------------------------------------------------------------
def render_step(step: StepRecord) -> list[str]:
    lines = [
        f"#{step.step_order} [{step_label(step.step_name)}] {step.step_name} "
        f"[{step.status}] {step.duration_ms}ms"
    ]
    if step.reasoning:
        lines.append(f"    Reasoning: {step.reasoning}")
    lines.extend(_indent(render_output(parse_step_output(step.output))))
    return lines


def render_execution_detail(
    execution: ExecutionRecord, steps: list[StepRecord]
) -> list[str]:
    """Render an execution header followed by its steps in order."""
    lines = [
        f"{execution.name} [{execution.status}]",
        f"Id: {execution.id}",
        f"Created: {execution.created_at.isoformat(timespec='seconds')}",
    ]
    if execution.metadata:
        lines.append(f"Metadata: {json.dumps(execution.metadata, default=str)}")
    if not steps:
        lines.append("No steps recorded")
        return lines
    for step in sorted(steps, key=lambda s: s.step_order):
        lines.append("")
        lines.extend(render_step(step))
    return lines
