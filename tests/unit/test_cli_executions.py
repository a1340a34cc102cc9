import asyncio

from typer.testing import CliRunner

import glassbox.persistence as persistence
from glassbox.cli import app
from glassbox.persistence import ExecutionRecord, InMemoryTraceRepository, StepRecord


def _setup_repo() -> InMemoryTraceRepository:
    repo = InMemoryTraceRepository()
    persistence._repository_instance = repo
    return repo


def test_executions_list_shows_executions():
    repo = _setup_repo()
    first = ExecutionRecord(name="Competitor Analysis: mug")
    second = ExecutionRecord(name="Competitor Analysis: shoes", status="completed")
    asyncio.run(repo.insert_execution(first))
    asyncio.run(repo.insert_execution(second))

    runner = CliRunner()
    result = runner.invoke(app, ["executions", "list"])
    assert result.exit_code == 0, f"Command failed. Output: {result.output}"
    assert first.id in result.output
    assert second.id in result.output
    assert "completed" in result.output


def test_executions_list_empty():
    _setup_repo()
    result = CliRunner().invoke(app, ["executions", "list"])
    assert result.exit_code == 0
    assert "No executions found" in result.output


def test_executions_show_details_and_missing():
    repo = _setup_repo()
    execution = ExecutionRecord(name="Competitor Analysis: mug", status="failed")
    asyncio.run(repo.insert_execution(execution))
    asyncio.run(
        repo.insert_step(
            StepRecord(
                execution_id=execution.id,
                step_name="keyword_generation",
                step_order=1,
                output=["mug"],
                reasoning="Generated search terms",
                status="success",
                duration_ms=4,
            )
        )
    )

    runner = CliRunner()
    result = runner.invoke(app, ["executions", "show", execution.id])
    assert result.exit_code == 0, f"Command failed. Output: {result.output}"
    assert "Competitor Analysis: mug [failed]" in result.output
    assert "keyword_generation" in result.output
    assert "Reasoning: Generated search terms" in result.output

    missing = runner.invoke(app, ["executions", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Execution not found" in missing.output
