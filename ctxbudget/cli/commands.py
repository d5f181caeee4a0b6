"""CLI commands for ctxbudget."""

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from ctxbudget import __logo__, __version__
from ctxbudget.compaction.estimator import TokenEstimator, estimate_conversation_cost
from ctxbudget.compaction.serialization import dump_messages, load_messages
from ctxbudget.compaction.service import ConversationOptimizer
from ctxbudget.config.loader import load_config
from ctxbudget.memory.dictionary import DictionaryService
from ctxbudget.memory.extractor import extract_facts

app = typer.Typer(
    name="ctxbudget",
    help=f"{__logo__} ctxbudget - conversation context budget engine",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} ctxbudget v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """ctxbudget - conversation context budget engine."""
    pass


def _load_or_exit(path: Path):
    try:
        return load_messages(path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Cannot read conversation {path}: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def estimate(
    file: Path = typer.Argument(..., help="JSON file with a list of UI messages"),
    threshold: int = typer.Option(None, "--threshold", "-t", help="Optimization threshold in tokens"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Show the token cost of a conversation."""
    config = load_config(config_path)
    messages = _load_or_exit(file)
    threshold = threshold or config.optimizer.target_tokens

    cost = asyncio.run(
        estimate_conversation_cost(messages, threshold, TokenEstimator(config.estimator))
    )

    table = Table(title=f"{file.name}: {len(messages)} messages")
    table.add_column("Kind", style="cyan")
    table.add_column("Tokens", justify="right")
    table.add_row("text", str(cost.breakdown.text_tokens))
    table.add_row("tool", str(cost.breakdown.tool_tokens))
    table.add_row("  of which images", str(cost.breakdown.image_tokens))
    table.add_row("total", f"[bold]{cost.total_tokens}[/bold]")
    console.print(table)

    if cost.needs_optimization:
        console.print(f"[yellow]Over threshold ({threshold}), optimization needed[/yellow]")
    else:
        console.print(f"[green]✓[/green] Within threshold ({threshold})")


@app.command()
def optimize(
    file: Path = typer.Argument(..., help="JSON file with a list of UI messages"),
    target: int = typer.Option(None, "--target", help="Target tokens"),
    max_tokens: int = typer.Option(None, "--max", help="Max tokens"),
    preserve: int = typer.Option(None, "--preserve", "-p", help="Recent messages to keep verbatim"),
    output: Path = typer.Option(None, "--output", "-o", help="Write the optimized conversation here"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Fit a conversation into its token budget."""
    config = load_config(config_path)
    updates = {
        "target_tokens": target,
        "max_output_tokens": max_tokens,
        "preserve_recent_messages": preserve,
    }
    settings = config.optimizer.model_copy(update={k: v for k, v in updates.items() if v is not None})
    if settings.target_tokens > settings.max_output_tokens:
        console.print("[red]--target must not exceed --max[/red]")
        raise typer.Exit(1)

    messages = _load_or_exit(file)
    optimizer = ConversationOptimizer(settings, TokenEstimator(config.estimator))
    result = asyncio.run(optimizer.optimize(messages))

    if result.decision:
        console.print(f"Strategy: [cyan]{result.decision.strategy.value}[/cyan] ({result.decision.reason})")
    if result.processors:
        console.print(f"Processors: {', '.join(result.processors)}")
    if result.tokens_before is not None:
        console.print(f"Tokens: {result.tokens_before} -> {result.tokens_after}")
    console.print(f"Messages: {len(messages)} -> {len(result.messages)}")
    if result.warning:
        console.print(f"[yellow]{result.warning}[/yellow]")

    if output:
        dump_messages(result.messages, output)
        console.print(f"[green]✓[/green] Written to {output}")


@app.command()
def extract(
    text: str = typer.Argument(..., help="Text to extract facts from"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Extract brands, locations, age, schedule and urgency from text."""
    config = load_config(config_path)
    facts = extract_facts(text, DictionaryService(ttl_seconds=config.dictionary.ttl_seconds))

    table = Table(show_header=False)
    table.add_column("Fact", style="cyan")
    table.add_column("Value")
    table.add_row("brands", ", ".join(facts.brands) or "-")
    table.add_row("locations", ", ".join(facts.locations) or "-")
    table.add_row("age", str(facts.age) if facts.age is not None else "-")
    table.add_row("schedule", ", ".join(facts.time_preferences) or "-")
    table.add_row("urgency", facts.urgency or "-")
    console.print(table)


if __name__ == "__main__":
    app()
