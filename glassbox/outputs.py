"""Known shapes of step outputs.

Step outputs are stored as plain JSON. Shapes the viewer knows how to
render carry a ``kind`` discriminator; everything else is a generic blob.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .config import FilterRule

logger = logging.getLogger(__name__)

MatchType = Literal["TRUE_MATCH", "CLOSE_ALTERNATIVE", "FALSE_POSITIVE"]


class ProductMetrics(BaseModel):
    price: float
    rating: float
    reviews: int


class FilterCheck(BaseModel):
    passed: bool
    detail: str = ""


class FilterEvaluation(BaseModel):
    """Outcome of the quality filters for one candidate."""

    id: Optional[str] = None
    title: str
    metrics: Optional[ProductMetrics] = None
    filter_results: dict[str, FilterCheck] = Field(default_factory=dict)
    qualified: bool
    failed_filters: list[str] = Field(default_factory=list)
    rejection_reason: Optional[str] = None


class FilterEvaluationOutput(BaseModel):
    kind: Literal["filter_evaluation"] = "filter_evaluation"
    filters_applied: dict[str, FilterRule] = Field(default_factory=dict)
    total_evaluated: int = 0
    passed_count: int = 0
    failed_count: int = 0
    evaluations: list[FilterEvaluation] = Field(default_factory=list)


class RelevanceJudgment(BaseModel):
    """How well a candidate matches what the user asked for."""

    title: str
    match_type: MatchType
    relevance_score: int = Field(ge=0, le=100)
    reason: str = ""


class RankedCandidate(RelevanceJudgment):
    id: Optional[str] = None
    metrics: Optional[ProductMetrics] = None


class RelevanceSummary(BaseModel):
    true_matches: int = 0
    close_alternatives: int = 0
    false_positives_removed: int = 0


class RelevanceEvaluationOutput(BaseModel):
    kind: Literal["relevance_evaluation"] = "relevance_evaluation"
    user_query: str
    evaluations: list[RankedCandidate] = Field(default_factory=list)
    ranked_list: list[RankedCandidate] = Field(default_factory=list)
    summary: RelevanceSummary = RelevanceSummary()


class SelectedCandidate(RankedCandidate):
    reason_selected: str = ""


class AlternativeCandidate(RankedCandidate):
    reason_not_selected: str = ""


class RankingOutput(BaseModel):
    kind: Literal["ranking"] = "ranking"
    selected: Optional[SelectedCandidate] = None
    alternatives: list[AlternativeCandidate] = Field(default_factory=list)
    total_relevant: int = 0


class ErrorOutput(BaseModel):
    kind: Literal["error"] = "error"
    error: str
    error_type: Optional[str] = None
    stack: Optional[str] = None


class GenericOutput(BaseModel):
    """Any output without a recognised shape."""

    kind: Literal["generic"] = "generic"
    data: Any = None


KnownOutput = Annotated[
    Union[FilterEvaluationOutput, RelevanceEvaluationOutput, RankingOutput, ErrorOutput],
    Field(discriminator="kind"),
]
StepOutput = Union[
    FilterEvaluationOutput,
    RelevanceEvaluationOutput,
    RankingOutput,
    ErrorOutput,
    GenericOutput,
]

KNOWN_KINDS = frozenset({"filter_evaluation", "relevance_evaluation", "ranking", "error"})

_known_output = TypeAdapter(KnownOutput)


def parse_step_output(raw: Any) -> StepOutput:
    """Parse a stored output into one of the known shapes.

    Never raises: unknown kinds and malformed payloads come back as
    :class:`GenericOutput` wrapping the raw value.
    """
    if isinstance(raw, dict) and raw.get("kind") in KNOWN_KINDS:
        try:
            return _known_output.validate_python(raw)
        except ValidationError as exc:
            logger.debug(f"Output tagged {raw.get('kind')!r} did not validate: {exc}")
    return GenericOutput(data=raw)
