"""Keyword generation and relevance judging for the demo pipeline.

Both concerns are plain async callables so the pipeline can run with a
pydantic-ai model, or without one using deterministic fallbacks.
"""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable, Optional

from pydantic_ai import Agent

from ..outputs import FilterEvaluation, RelevanceJudgment

logger = logging.getLogger(__name__)

KeywordGenerator = Callable[[str], Awaitable[list[str]]]
RelevanceJudge = Callable[[str, list[FilterEvaluation]], Awaitable[list[RelevanceJudgment]]]

MAX_KEYWORDS = 3
FALLBACK_SCORE = 70
FALLBACK_REASON = "Unable to determine exact relevance."

KEYWORD_PROMPT = (
    "Extract up to 3 short search keywords for the product the user is looking for. "
    "Return only the keywords."
)
RELEVANCE_PROMPT = (
    "Evaluate each product's relevance to what the user searched for. Classify each as "
    "TRUE_MATCH (directly what the user wants), CLOSE_ALTERNATIVE (similar but not exact) "
    "or FALSE_POSITIVE (not relevant), give a relevance score from 0 to 100 and a short "
    "reason. Use the product titles exactly as given."
)


async def split_keywords(query: str) -> list[str]:
    """Keywords taken from the query itself, in order, without duplicates."""
    words: list[str] = []
    for word in re.findall(r"[a-z0-9]+", query.lower()):
        if word not in words:
            words.append(word)
    return words[:MAX_KEYWORDS]


async def fallback_judgments(
    query: str, candidates: list[FilterEvaluation]
) -> list[RelevanceJudgment]:
    return [
        RelevanceJudgment(
            title=c.title,
            match_type="CLOSE_ALTERNATIVE",
            relevance_score=FALLBACK_SCORE,
            reason=FALLBACK_REASON,
        )
        for c in candidates
    ]


def build_keyword_agent(model) -> Agent:
    return Agent(model, output_type=list[str], system_prompt=KEYWORD_PROMPT)


def build_relevance_agent(model) -> Agent:
    return Agent(model, output_type=list[RelevanceJudgment], system_prompt=RELEVANCE_PROMPT)


def agent_keyword_generator(agent: Agent) -> KeywordGenerator:
    async def generate(query: str) -> list[str]:
        result = await agent.run(f'Product: "{query}"')
        keywords = [k.strip() for k in result.output if k and k.strip()]
        return keywords[:MAX_KEYWORDS]

    return generate


def _describe_candidates(candidates: list[FilterEvaluation]) -> str:
    lines = []
    for idx, c in enumerate(candidates, start=1):
        line = f'{idx}. "{c.title}"'
        if c.metrics:
            line += f" - ${c.metrics.price}, {c.metrics.rating} stars, {c.metrics.reviews} reviews"
        lines.append(line)
    return "\n".join(lines)


def agent_relevance_judge(agent: Agent) -> RelevanceJudge:
    async def judge(query: str, candidates: list[FilterEvaluation]) -> list[RelevanceJudgment]:
        prompt = f'User searched for: "{query}"\n\nProducts:\n{_describe_candidates(candidates)}'
        try:
            result = await agent.run(prompt)
        except Exception as exc:
            logger.warning(f"Relevance model failed, using fallback judgments: {exc}")
            return await fallback_judgments(query, candidates)
        return list(result.output)

    return judge


def default_helpers(
    model: Optional[str],
) -> tuple[KeywordGenerator, RelevanceJudge]:
    """Model-backed helpers when ``model`` is set, fallbacks otherwise."""
    if not model:
        return split_keywords, fallback_judgments
    logger.info(f"Using model {model} for keyword generation and relevance judging")
    return (
        agent_keyword_generator(build_keyword_agent(model)),
        agent_relevance_judge(build_relevance_agent(model)),
    )
