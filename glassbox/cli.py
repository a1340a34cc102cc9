"""Command line interface for inspecting decision traces."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from glassbox.config import load_config
from glassbox.persistence import DATABASE_URL_ENV, InMemoryTraceRepository, get_repository
from glassbox.viewer import render_execution_detail, render_execution_list

app = typer.Typer(help="CLI for glassbox decision traces")

# Command groups
executions_app = typer.Typer(help="Commands for inspecting executions")
demo_app = typer.Typer(help="Commands for the product matching demo")

app.add_typer(executions_app, name="executions")
app.add_typer(demo_app, name="demo")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """glassbox CLI entry point."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@executions_app.command("list")
def executions_list(
    limit: int = typer.Option(50, help="Maximum number of executions to show"),
) -> None:
    """
    List recent executions, newest first.

    Example:
        glassbox executions list --limit 10
        # Output: 0b6f...    completed    2024-01-01T10:00:00+00:00    Competitor Analysis: water bottle
    """
    repo = get_repository()
    executions = asyncio.run(repo.list_executions(limit=limit))
    for line in render_execution_list(executions):
        typer.echo(line)


@executions_app.command("show")
def executions_show(execution_id: str) -> None:
    """
    Show an execution and its steps in order.

    Each step lists its status, duration, reasoning and a rendering of its
    output. Outputs without a known shape are shown as JSON.

    Args:
        execution_id: Execution to inspect (get from 'executions list')
    """
    repo = get_repository()

    async def _load():
        execution = await repo.get_execution(execution_id)
        if execution is None:
            return None, []
        return execution, await repo.list_steps(execution_id)

    execution, steps = asyncio.run(_load())
    if execution is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    for line in render_execution_detail(execution, steps):
        typer.echo(line)


@demo_app.command("run")
def demo_run(
    query: str,
    catalog: Optional[Path] = typer.Option(None, help="JSON file with the product catalog"),
) -> None:
    """
    Run the product matching pipeline for QUERY and record its trace.

    Example:
        glassbox demo run "water bottle"
        # Output: Selected: HydroFlask 32oz Wide Mouth Water Bottle
        #         Inspect with: glassbox executions show <execution_id>
    """
    from glassbox.demo import ProductMatchPipeline, load_catalog

    config = load_config()
    repository = get_repository()
    pipeline = ProductMatchPipeline(
        repository=repository,
        catalog=load_catalog(catalog) if catalog else None,
        config=config,
    )
    try:
        result = asyncio.run(pipeline.run(query))
    except Exception as exc:
        typer.secho(f"Pipeline failed: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if result.selected is None:
        typer.echo("No suitable competitor found.")
    else:
        typer.echo(f"Selected: {result.selected.title}")
    if not result.execution_id:
        typer.echo("Trace was not recorded")
    elif isinstance(repository, InMemoryTraceRepository):
        # the in-memory store goes away with this process
        typer.secho(
            "Trace was kept in memory only and is lost on exit. Set "
            f"{DATABASE_URL_ENV} (for example sqlite://glassbox.db) to keep traces.",
            fg=typer.colors.YELLOW,
        )
    else:
        typer.echo(f"Inspect with: glassbox executions show {result.execution_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
