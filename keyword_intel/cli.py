"""Typer CLI application for Keyword Intel.

Provides commands for the full analysis pipeline and its one-shot
operations: keyword metrics, suggestions, SERP analysis, cluster discovery,
provider health and service status.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from keyword_intel.app import KeywordIntelApp
from keyword_intel.config import DEFAULT_CONFIG_PATH
from keyword_intel.errors import ConfigurationError, RateLimitExceeded
from keyword_intel.utils.helpers import format_number

console = Console()
app = typer.Typer(
    name="kwintel",
    help="Keyword Intel -- keyword research, clustering and content strategy.",
    add_completion=False,
    no_args_is_help=True,
)

ConfigOption = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to settings YAML.")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")


def _setup_logging(verbose: bool = False, level_name: str = "INFO") -> None:
    """Configure logging level and format."""
    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def _build_app(config: str, verbose: bool) -> KeywordIntelApp:
    _setup_logging(verbose)
    instance = KeywordIntelApp(config_path=config)
    try:
        instance.initialize()
    except ConfigurationError as exc:
        console.print(f"[red]✘ Configuration error:[/red] {exc}")
        raise typer.Exit(code=2)
    if not verbose:
        _setup_logging(False, instance.settings.log_level)
    return instance


def _run(
    instance: KeywordIntelApp,
    operation: Callable[[KeywordIntelApp], Awaitable[Any]],
    description: str,
) -> Any:
    """Run an async operation with a spinner, closing provider sessions afterwards."""

    async def _go():
        try:
            return await operation(instance)
        finally:
            await instance.close()

    with Progress(
        SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console
    ) as progress:
        progress.add_task(description=description, total=None)
        try:
            return asyncio.run(_go())
        except ValueError as exc:
            console.print(f"[red]✘ Invalid input:[/red] {exc}")
            raise typer.Exit(code=2)
        except RateLimitExceeded as exc:
            console.print(f"[yellow]⚠ {exc}[/yellow]")
            raise typer.Exit(code=1)


def _keyword_table(rows: list[dict], title: str) -> Table:
    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Keyword", style="cyan", min_width=25)
    table.add_column("Volume", justify="right")
    table.add_column("Difficulty", justify="right")
    table.add_column("CPC", justify="right")
    table.add_column("Intent")
    table.add_column("Source")
    for row in rows:
        table.add_row(
            row["keyword"],
            format_number(row["searchVolume"]),
            str(row["difficulty"]),
            f"${row['cpc']:.2f}",
            row["intent"],
            row["source"],
        )
    return table


def _print_summary(summary: dict) -> None:
    for key, value in summary.items():
        console.print(f"  [bold]{key}[/bold]: {value}")


# ------------------------------------------------------------------
# analyze
# ------------------------------------------------------------------
@app.command()
def analyze(
    seed: str = typer.Argument(..., help="Seed keyword or website URL."),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Target location."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Run the full seven-stage keyword analysis pipeline."""
    instance = _build_app(config, verbose)
    console.print(Panel(f"[bold cyan]Keyword Analysis: {seed}[/bold cyan]"))
    result = _run(
        instance,
        lambda a: a.orchestrator.run(seed, location=location),
        "Running analysis pipeline...",
    )

    if as_json:
        console.print_json(json.dumps(result, default=str))
    elif result["status"] == "completed":
        results = result["results"]
        console.print(_keyword_table(results["keywordAnalysis"], "Keyword Analysis"))
        console.print(_keyword_table(results["keywordSuggestions"], "Keyword Suggestions"))
        console.print("\n[bold]Summary[/bold]")
        _print_summary(result["summary"])

    if result["status"] != "completed":
        console.print(
            f"[red]✘ Analysis failed at {result['failedStage']}:[/red] {result['cause']}"
        )
        if "retryAfter" in result:
            console.print(f"Retry after {result['retryAfter']}s")
        raise typer.Exit(code=1)
    console.print("[green]✔[/green] Analysis complete.")


# ------------------------------------------------------------------
# keywords
# ------------------------------------------------------------------
@app.command()
def keywords(
    keyword_list: list[str] = typer.Argument(..., metavar="KEYWORDS", help="Keywords to analyze."),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Target location."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Fetch metrics and commercial ranking for explicit keywords."""
    instance = _build_app(config, verbose)
    result = _run(
        instance,
        lambda a: a.orchestrator.analyze_keywords(keyword_list, location=location),
        "Analyzing keywords...",
    )
    table = _keyword_table(result["keywords"], "Keyword Metrics")
    console.print(table)
    _print_summary(result["summary"])


# ------------------------------------------------------------------
# suggest
# ------------------------------------------------------------------
@app.command()
def suggest(
    keyword: str = typer.Argument(..., help="Seed keyword."),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum suggestions (capped at 100)."),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Target location."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Expand a keyword into related suggestions."""
    instance = _build_app(config, verbose)
    result = _run(
        instance,
        lambda a: a.orchestrator.keyword_suggestions(keyword, limit=limit, location=location),
        "Fetching suggestions...",
    )
    console.print(_keyword_table(result["suggestions"], f"Suggestions for {keyword}"))
    _print_summary(result["summary"])


# ------------------------------------------------------------------
# serp
# ------------------------------------------------------------------
@app.command()
def serp(
    keyword: str = typer.Argument(..., help="Keyword to analyze."),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Target location."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show top organic results and competition for a keyword."""
    instance = _build_app(config, verbose)
    report = _run(
        instance,
        lambda a: a.orchestrator.serp_analysis(keyword, location=location),
        "Analyzing SERP...",
    )
    table = Table(title=f"SERP: {keyword} ({report['source']})", header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Domain", style="cyan")
    table.add_column("Title", max_width=60)
    for row in report["topResults"]:
        table.add_row(str(row["position"]), row["domain"], row["title"])
    console.print(table)
    _print_summary(report["difficultyMetrics"])


# ------------------------------------------------------------------
# clusters
# ------------------------------------------------------------------
@app.command()
def clusters(
    seed: str = typer.Argument(..., help="Seed keyword or website URL."),
    limit: int = typer.Option(20, "--limit", "-n", help="Suggestions to cluster."),
    location: Optional[str] = typer.Option(None, "--location", "-l", help="Target location."),
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Group keyword suggestions into scored thematic clusters."""
    instance = _build_app(config, verbose)
    result = _run(
        instance,
        lambda a: a.orchestrator.discover_clusters(seed, limit=limit, location=location),
        "Clustering keywords...",
    )
    table = Table(title=f"Keyword Clusters: {result['seed']}", header_style="bold magenta")
    table.add_column("Theme", style="cyan", min_width=25)
    table.add_column("Keywords", justify="right")
    table.add_column("Volume", justify="right")
    table.add_column("Avg Difficulty", justify="right")
    table.add_column("Opportunity")
    colors = {"high": "green", "medium": "yellow", "low": "red"}
    for row in result["clusters"]:
        color = colors.get(row["opportunity"], "white")
        table.add_row(
            row["theme"],
            str(len(row["keywords"])),
            format_number(row["totalVolume"]),
            str(row["avgDifficulty"]),
            f"[{color}]{row['opportunity']}[/{color}]",
        )
    console.print(table)
    _print_summary(result["summary"])


# ------------------------------------------------------------------
# health
# ------------------------------------------------------------------
@app.command()
def health(
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Check every provider concurrently."""
    instance = _build_app(config, verbose)
    report = _run(instance, lambda a: a.orchestrator.health_check(), "Checking providers...")
    table = Table(title="Provider Health", show_header=True, header_style="bold magenta")
    table.add_column("Service", style="cyan")
    table.add_column("Status")
    table.add_column("Mode")
    table.add_column("Details", max_width=60)
    for name, entry in report["services"].items():
        if entry.get("status") == "healthy":
            status_display = "[green]✔ healthy[/green]"
        else:
            status_display = "[red]✘ unhealthy[/red]"
        details = entry.get("error") or entry.get("message") or entry.get("model", "")
        table.add_row(name, status_display, entry.get("mode", "-"), str(details)[:60])
    console.print(table)
    console.print(f"Overall: [bold]{report['status']}[/bold]")
    if report["status"] != "healthy":
        raise typer.Exit(code=1)


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------
@app.command()
def status(
    config: str = ConfigOption,
    verbose: bool = VerboseOption,
) -> None:
    """Show provider modes, rate-limit usage and cache statistics."""
    instance = _build_app(config, verbose)
    info = instance.get_status()
    table = Table(title="Service Status", show_header=True, header_style="bold magenta")
    table.add_column("Service", style="cyan", min_width=15)
    table.add_column("Mode")
    table.add_column("Rate Limit")
    table.add_column("Requests")
    for name, entry in info["services"].items():
        mode = entry["mode"]
        mode_display = "[green]live[/green]" if mode == "live" else "[yellow]mock[/yellow]"
        limit = entry.get("rateLimit")
        limit_display = (
            f"{limit['used']}/{limit['maxRequests']} per {limit['windowSeconds']:.0f}s"
            if limit else "-"
        )
        usage = entry.get("usage")
        usage_display = (
            f"{usage['total_requests']} ({usage['failed_requests']} failed)" if usage else "-"
        )
        table.add_row(name, mode_display, limit_display, usage_display)
    console.print(table)
    cache = info["cache"]
    console.print(
        f"Cache: {cache['entries']} entries, hit rate {cache['hit_rate']:.0%}, "
        f"TTL {cache['default_ttl_seconds']:.0f}s"
    )


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
