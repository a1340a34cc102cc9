import pytest
from pydantic_ai.models.test import TestModel as StubModel

from glassbox.config import GlassboxConfig
from glassbox.demo import ProductMatchPipeline
from glassbox.demo.agents import (
    FALLBACK_REASON,
    agent_keyword_generator,
    agent_relevance_judge,
    build_keyword_agent,
    build_relevance_agent,
    fallback_judgments,
    split_keywords,
)
from glassbox.demo.catalog import Product
from glassbox.demo.filters import evaluate_filters
from glassbox.outputs import RelevanceJudgment
from glassbox.persistence import InMemoryTraceRepository
from glassbox.tracer import EXCEPTION_REASONING

STEP_NAMES = [
    "keyword_generation",
    "candidate_search",
    "apply_filters",
    "llm_relevance_evaluation",
    "rank_and_select",
]

CATALOG = [
    Product(id="1", title="Steel Water Bottle", price=30.0, rating=4.7, reviews=900, keywords=["water", "bottle"]),
    Product(id="2", title="Kids Water Bottle", price=15.0, rating=4.2, reviews=300, keywords=["water", "bottle"]),
    Product(id="3", title="Bottle Brush", price=6.0, rating=4.5, reviews=500, keywords=["bottle", "brush"]),
    Product(id="4", title="Water Balloon Pack", price=12.0, rating=4.0, reviews=80, keywords=["water", "balloon"]),
    Product(id="5", title="Yoga Mat", price=40.0, rating=4.8, reviews=2000, keywords=["yoga"]),
]


async def keywords_for(query):
    return ["water", "bottle"]


async def judge(query, candidates):
    scores = {
        "Steel Water Bottle": ("TRUE_MATCH", 95),
        "Kids Water Bottle": ("CLOSE_ALTERNATIVE", 70),
        "Water Balloon Pack": ("FALSE_POSITIVE", 10),
    }
    return [
        RelevanceJudgment(title=c.title, match_type=scores[c.title][0],
                          relevance_score=scores[c.title][1], reason=f"{c.title} reason")
        for c in candidates
    ] + [RelevanceJudgment(title="Invented Product", match_type="TRUE_MATCH", relevance_score=99)]


def _pipeline(repo, **overrides):
    kwargs = dict(
        repository=repo,
        catalog=CATALOG,
        keyword_generator=keywords_for,
        relevance_judge=judge,
        config=GlassboxConfig(),
    )
    kwargs.update(overrides)
    return ProductMatchPipeline(**kwargs)


@pytest.mark.asyncio
async def test_pipeline_records_every_stage():
    repo = InMemoryTraceRepository()
    result = await _pipeline(repo).run("water bottle")

    assert result.selected is not None
    assert result.selected.title == "Steel Water Bottle"
    assert result.selected.reason_selected == "Steel Water Bottle reason"

    execution = await repo.get_execution(result.execution_id)
    assert execution.name == "Competitor Analysis: water bottle"
    assert execution.metadata == {"user_intent": "find_benchmark_product"}
    assert execution.status == "completed"

    steps = await repo.list_steps(result.execution_id)
    assert [s.step_name for s in steps] == STEP_NAMES
    assert [s.step_order for s in steps] == [1, 2, 3, 4, 5]
    assert all(s.status == "success" for s in steps)

    keywords, search, filters, relevance, ranking = steps
    assert keywords.input == {"input_product": "water bottle"}
    assert keywords.output == ["water", "bottle"]
    assert [p["id"] for p in search.output] == ["1", "2", "3", "4"]
    assert search.reasoning == "Found 4 products matching search terms: water, bottle"

    assert filters.output["kind"] == "filter_evaluation"
    assert filters.output["passed_count"] == 3
    assert filters.input["candidates_count"] == 4
    assert filters.reasoning == "Applied quality filters. 3 passed, 1 rejected."

    assert relevance.output["kind"] == "relevance_evaluation"
    assert [r["title"] for r in relevance.output["ranked_list"]] == [
        "Steel Water Bottle",
        "Kids Water Bottle",
        "Water Balloon Pack",
    ]
    assert relevance.output["ranked_list"][0]["metrics"]["price"] == 30.0
    assert relevance.output["summary"] == {
        "true_matches": 1,
        "close_alternatives": 1,
        "false_positives_removed": 1,
    }

    assert ranking.output["kind"] == "ranking"
    assert ranking.output["total_relevant"] == 2
    [alternative] = ranking.output["alternatives"]
    assert alternative["title"] == "Kids Water Bottle"
    assert "70/100" in alternative["reason_not_selected"]


@pytest.mark.asyncio
async def test_pipeline_without_qualified_products_still_logs_all_steps():
    repo = InMemoryTraceRepository()

    async def only_brush(query):
        return ["brush"]

    result = await _pipeline(repo, keyword_generator=only_brush).run("bottle brush")

    assert result.selected is None
    steps = await repo.list_steps(result.execution_id)
    assert [s.step_name for s in steps] == STEP_NAMES
    relevance, ranking = steps[3], steps[4]
    assert relevance.output["ranked_list"] == []
    assert relevance.output["summary"]["true_matches"] == 0
    assert ranking.output["selected"] is None
    assert ranking.reasoning.startswith('Selected "none" as #1.')
    assert (await repo.get_execution(result.execution_id)).status == "completed"


@pytest.mark.asyncio
async def test_pipeline_failure_marks_execution_failed():
    repo = InMemoryTraceRepository()

    async def broken_judge(query, candidates):
        raise RuntimeError("model offline")

    with pytest.raises(RuntimeError, match="model offline"):
        await _pipeline(repo, relevance_judge=broken_judge).run("water bottle")

    [execution] = await repo.list_executions()
    assert execution.status == "failed"
    steps = await repo.list_steps(execution.id)
    assert [s.step_name for s in steps] == STEP_NAMES[:4]
    failed = steps[-1]
    assert failed.status == "failed"
    assert failed.reasoning == EXCEPTION_REASONING
    assert failed.output["error"] == "model offline"


@pytest.mark.asyncio
async def test_empty_keywords_fail_the_first_step():
    repo = InMemoryTraceRepository()

    async def nothing(query):
        return []

    with pytest.raises(ValueError, match="No search keywords"):
        await _pipeline(repo, keyword_generator=nothing).run("???")

    [execution] = await repo.list_executions()
    assert execution.status == "failed"
    [step] = await repo.list_steps(execution.id)
    assert step.status == "failed"


@pytest.mark.asyncio
async def test_pipeline_defaults_without_model():
    repo = InMemoryTraceRepository()
    pipeline = ProductMatchPipeline(repository=repo, catalog=CATALOG, config=GlassboxConfig())
    result = await pipeline.run("Water Bottle")

    assert result.selected is not None
    assert result.selected.match_type == "CLOSE_ALTERNATIVE"
    assert result.selected.relevance_score == 70


@pytest.mark.asyncio
async def test_split_keywords_and_fallback_judgments():
    assert await split_keywords("Insulated water bottle, water!") == ["insulated", "water", "bottle"]
    assert await split_keywords("") == []

    candidates = evaluate_filters(CATALOG[:2], GlassboxConfig().demo.filters).evaluations
    judgments = await fallback_judgments("water", candidates)
    assert [j.title for j in judgments] == ["Steel Water Bottle", "Kids Water Bottle"]
    assert all(j.reason == FALLBACK_REASON and j.relevance_score == 70 for j in judgments)


@pytest.mark.asyncio
async def test_agent_helpers_with_test_model():
    generate = agent_keyword_generator(build_keyword_agent(StubModel()))
    keywords = await generate("water bottle")
    assert isinstance(keywords, list)
    assert all(isinstance(k, str) for k in keywords)

    candidates = evaluate_filters(CATALOG[:2], GlassboxConfig().demo.filters).evaluations
    judge_with_model = agent_relevance_judge(build_relevance_agent(StubModel()))
    judgments = await judge_with_model("water bottle", candidates)
    assert all(isinstance(j, RelevanceJudgment) for j in judgments)


@pytest.mark.asyncio
async def test_relevance_judge_falls_back_when_model_fails():
    class BrokenAgent:
        async def run(self, prompt):
            raise ConnectionError("no network")

    candidates = evaluate_filters(CATALOG[:1], GlassboxConfig().demo.filters).evaluations
    judgments = await agent_relevance_judge(BrokenAgent())("water", candidates)
    assert [j.reason for j in judgments] == [FALLBACK_REASON]
