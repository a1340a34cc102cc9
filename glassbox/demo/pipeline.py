"""Product matching pipeline traced step by step."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import FilterRules, GlassboxConfig, load_config
from ..outputs import (
    AlternativeCandidate,
    FilterEvaluation,
    FilterEvaluationOutput,
    RankedCandidate,
    RankingOutput,
    RelevanceEvaluationOutput,
    RelevanceSummary,
    SelectedCandidate,
)
from ..persistence import TraceRepository, get_repository
from ..tracer import StepResult, Tracer
from .agents import KeywordGenerator, RelevanceJudge, default_helpers
from .catalog import Product, load_catalog, search_products
from .filters import evaluate_filters

logger = logging.getLogger(__name__)

USER_INTENT = "find_benchmark_product"


@dataclass
class MatchResult:
    """Outcome of one pipeline run."""

    execution_id: Optional[str]
    selected: Optional[SelectedCandidate]


def rank_candidates(
    judgments, qualified: list[FilterEvaluation]
) -> list[RankedCandidate]:
    """Attach product details to judgments and sort by relevance score."""
    by_title = {q.title: q for q in qualified}
    enriched = []
    for judgment in judgments:
        product = by_title.get(judgment.title)
        if product is None:
            logger.debug(f"Dropping judgment for unknown product {judgment.title!r}")
            continue
        enriched.append(
            RankedCandidate(
                **judgment.model_dump(), id=product.id, metrics=product.metrics
            )
        )
    return enriched


def summarize(ranked: list[RankedCandidate]) -> RelevanceSummary:
    return RelevanceSummary(
        true_matches=sum(1 for r in ranked if r.match_type == "TRUE_MATCH"),
        close_alternatives=sum(1 for r in ranked if r.match_type == "CLOSE_ALTERNATIVE"),
        false_positives_removed=sum(1 for r in ranked if r.match_type == "FALSE_POSITIVE"),
    )


def select_best(ranked: list[RankedCandidate]) -> RankingOutput:
    valid = [r for r in ranked if r.match_type != "FALSE_POSITIVE"]
    if not valid:
        return RankingOutput()
    best, rest = valid[0], valid[1:]
    selected = SelectedCandidate(
        **best.model_dump(), reason_selected=best.reason or "Best match."
    )
    alternatives = [
        AlternativeCandidate(
            **alt.model_dump(),
            reason_not_selected=(
                f"Relevance {alt.relevance_score}/100 vs {best.relevance_score}/100 "
                "for the selected product."
            ),
        )
        for alt in rest
    ]
    return RankingOutput(
        selected=selected, alternatives=alternatives, total_relevant=len(valid)
    )


class ProductMatchPipeline:
    """Finds the best benchmark product in a catalog for a user query."""

    def __init__(
        self,
        repository: TraceRepository | None = None,
        catalog: list[Product] | None = None,
        filters: FilterRules | None = None,
        keyword_generator: KeywordGenerator | None = None,
        relevance_judge: RelevanceJudge | None = None,
        config: GlassboxConfig | None = None,
    ) -> None:
        config = config or load_config()
        self._repository = repository or get_repository(config=config)
        self._catalog = catalog if catalog is not None else load_catalog(config.demo.catalog_path)
        self._filters = filters or config.demo.filters
        self._flush_timeout = config.flush_timeout

        default_keywords, default_judge = (None, None)
        if keyword_generator is None or relevance_judge is None:
            default_keywords, default_judge = default_helpers(config.demo.model)
        self._generate_keywords = keyword_generator or default_keywords
        self._judge_relevance = relevance_judge or default_judge

    async def run(self, query: str) -> MatchResult:
        """Run every stage under a fresh tracer.

        The execution is ended as ``failed`` and the exception re-raised
        when any stage fails.
        """
        tracer = Tracer(self._repository, flush_timeout=self._flush_timeout)
        async with tracer.execution(
            f"Competitor Analysis: {query}", {"user_intent": USER_INTENT}
        ):
            if tracer.execution_id is None:
                logger.warning(f"Running pipeline for {query!r} without tracing")

            keywords = await tracer.run_step(
                "keyword_generation",
                lambda: self._keyword_step(query),
                {"input_product": query},
            )
            candidates = await tracer.run_step(
                "candidate_search",
                lambda: self._search_step(keywords),
                {"search_keywords": keywords},
            )
            filtered = await tracer.run_step(
                "apply_filters",
                lambda: self._filter_step(candidates),
                {
                    "candidates_count": len(candidates),
                    "filters": self._filters.model_dump(),
                },
            )
            qualified = [e for e in filtered.evaluations if e.qualified]
            relevance = await tracer.run_step(
                "llm_relevance_evaluation",
                lambda: self._relevance_step(query, qualified),
                {
                    "user_query": query,
                    "candidates_for_review": [q.title for q in qualified],
                },
            )
            ranking = await tracer.run_step(
                "rank_and_select",
                lambda: self._ranking_step(relevance.ranked_list),
                {"ranked_candidates": [r.title for r in relevance.ranked_list]},
            )
        return MatchResult(execution_id=tracer.execution_id, selected=ranking.selected)

    # ------------------------------------------------------------------
    async def _keyword_step(self, query: str) -> StepResult[list[str]]:
        keywords = await self._generate_keywords(query)
        if not keywords:
            raise ValueError(f"No search keywords generated for {query!r}")
        return StepResult(
            output=keywords,
            reasoning="Generated search terms to find relevant products in our catalog.",
        )

    async def _search_step(self, keywords: list[str]) -> StepResult[list[Product]]:
        products = search_products(self._catalog, keywords)
        return StepResult(
            output=products,
            reasoning=f"Found {len(products)} products matching search terms: {', '.join(keywords)}",
        )

    async def _filter_step(self, candidates: list[Product]) -> StepResult[FilterEvaluationOutput]:
        result = evaluate_filters(candidates, self._filters)
        return StepResult(
            output=result,
            reasoning=(
                f"Applied quality filters. {result.passed_count} passed, "
                f"{result.failed_count} rejected."
            ),
        )

    async def _relevance_step(
        self, query: str, qualified: list[FilterEvaluation]
    ) -> StepResult[RelevanceEvaluationOutput]:
        judgments = await self._judge_relevance(query, qualified) if qualified else []
        evaluations = rank_candidates(judgments, qualified)
        ranked = sorted(evaluations, key=lambda r: r.relevance_score, reverse=True)
        summary = summarize(evaluations)
        return StepResult(
            output=RelevanceEvaluationOutput(
                user_query=query,
                evaluations=evaluations,
                ranked_list=ranked,
                summary=summary,
            ),
            reasoning=(
                f"LLM evaluated {len(evaluations)} products. Found {summary.true_matches} "
                f"true matches, {summary.close_alternatives} alternatives, removed "
                f"{summary.false_positives_removed} false positives."
            ),
        )

    async def _ranking_step(self, ranked: list[RankedCandidate]) -> StepResult[RankingOutput]:
        result = select_best(ranked)
        title = result.selected.title if result.selected else "none"
        return StepResult(
            output=result,
            reasoning=(
                f'Selected "{title}" as #1. {len(result.alternatives)} alternatives '
                "with reasons why each wasn't chosen."
            ),
        )
