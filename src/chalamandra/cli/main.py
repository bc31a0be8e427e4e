"""Command Line Interface for Chalamandra.

Analyze a message from the terminal, inspect which backends are available,
and review past results.

Example:
    chalamandra analyze "Per my last email, please advise." --mode deep
    chalamandra capabilities
    chalamandra history --limit 5
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from chalamandra import __version__
from chalamandra.ai.explanations import explain
from chalamandra.ai.orchestrator import AnalysisOrchestrator
from chalamandra.config import APIKeyManager, AppConfig, ConfigError, get_config, load_config
from chalamandra.core.capabilities import CapabilityRegistry
from chalamandra.core.history import HistoryStore
from chalamandra.core.models import (
    AnalysisMode,
    AnalysisOptions,
    AnalysisRequest,
    AnalysisResult,
    CascadeAttempt,
    Content,
    ImageRef,
)
from chalamandra.core.privacy import PrivacyViolationError
from chalamandra.logging_setup import setup_logging

logger = logging.getLogger(__name__)

console = Console()

RISK_STYLES = ((70, "bold red"), (40, "yellow"), (0, "green"))


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def print_success(text: str) -> None:
    console.print(f"[bold green]✓[/bold green] {text}")


def print_warning(text: str) -> None:
    console.print(f"[bold yellow]⚠[/bold yellow] {text}")


def print_error(text: str) -> None:
    console.print(f"[bold red]✗[/bold red] {text}")


def print_info_panel(title: str, content: str, border_style: str = "blue") -> None:
    console.print(Panel(content, title=title, border_style=border_style))


def risk_style(value: int) -> str:
    for threshold, style in RISK_STYLES:
        if value >= threshold:
            return style
    return "green"


def build_orchestrator(config: AppConfig, record_history: bool = True) -> AnalysisOrchestrator:
    """Create the orchestrator used by CLI commands."""
    return AnalysisOrchestrator(config=config, history=None if record_history else False)


def print_result(result: AnalysisResult, attempts: list[CascadeAttempt]) -> None:
    """Render a result with its explanation and audit log."""
    explanation = explain(result)

    table = Table(title="Analysis", show_header=True)
    table.add_column("Dimension", style="cyan")
    table.add_column("Value")
    table.add_row("Risk", f"[{risk_style(result.overall_risk)}]{result.overall_risk}/100[/]")
    table.add_row("Sarcasm", f"{result.sarcasm_score}/100")
    table.add_row("Tone", result.tone)
    table.add_row("Confidence", f"{result.confidence:.0%}")
    table.add_row("Source", result.source.value)
    for section in (result.strategic, result.emotional, result.relational):
        for key, value in section.items():
            if key == "tone":
                continue
            shown = ", ".join(map(str, value)) if isinstance(value, list) else str(value)
            table.add_row(key.replace("_", " ").title(), shown or "-")
    if result.detected_patterns:
        table.add_row("Patterns", ", ".join(result.detected_patterns))
    console.print(table)

    print_info_panel(explanation.band.replace("_", " ").title(), explanation.summary)

    if explanation.dimensions:
        for text in explanation.dimensions.values():
            console.print(f"  • {text}")

    console.print("\n[bold]Recommendations[/bold]")
    for i, recommendation in enumerate(explanation.recommendations, 1):
        console.print(f"  {i}. {recommendation}")

    if attempts:
        audit = Table(title="Backend attempts", show_header=True)
        audit.add_column("Backend")
        audit.add_column("Outcome")
        audit.add_column("Duration", justify="right")
        audit.add_column("Error")
        for attempt in attempts:
            audit.add_row(
                attempt.backend_id.value,
                attempt.outcome.value,
                f"{attempt.duration_ms:.0f}ms",
                attempt.error_kind.value if attempt.error_kind else "",
            )
        console.print(audit)

    if result.markers:
        console.print(f"[dim]Markers: {', '.join(result.markers)}[/dim]")


# =============================================================================
# MAIN CLI GROUP
# =============================================================================


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Custom config file")
@click.version_option(__version__, prog_name="chalamandra")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool, config_path: Path | None) -> None:
    """Chalamandra - communication analysis with graceful degradation."""
    config = load_config(config_path) if config_path else get_config()
    if debug or config.debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    else:
        level = "WARNING"
    setup_logging(level=level, log_file=config.paths.log_dir / "chalamandra.log" if debug else None)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# ANALYZE COMMAND
# =============================================================================


@cli.command()
@click.argument("text", required=False)
@click.option("--file", "-f", "file_path", type=click.Path(exists=True, path_type=Path), help="Read text from a file")
@click.option(
    "--mode",
    "-m",
    type=click.Choice([m.value for m in AnalysisMode]),
    default=None,
    help="Analysis mode (default from config)",
)
@click.option("--no-remote", is_flag=True, help="Keep this request local regardless of settings")
@click.option("--timeout-ms", type=click.IntRange(min=1), help="Bound for the remote call")
@click.option("--url", help="Page the message came from (platform context)")
@click.option("--image-alt", multiple=True, help="Alt text of an attached image (repeatable)")
@click.option("--no-history", is_flag=True, help="Do not record this result")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def analyze(
    ctx: click.Context,
    text: str | None,
    file_path: Path | None,
    mode: str | None,
    no_remote: bool,
    timeout_ms: int | None,
    url: str | None,
    image_alt: tuple[str, ...],
    no_history: bool,
    as_json: bool,
) -> None:
    """Analyze a message.

    TEXT may be omitted to read from --file or standard input.

    Example:
        chalamandra analyze "Great job, but next time read the brief." --mode deep
    """
    config: AppConfig = ctx.obj["config"]

    if file_path is not None:
        text = file_path.read_text(encoding="utf-8")
    elif text is None or text == "-":
        text = click.get_text_stream("stdin").read()
    if not text or not text.strip():
        print_error("Nothing to analyze.")
        sys.exit(1)

    content = Content(
        text=text,
        images=tuple(ImageRef(alt_text=alt) for alt in image_alt),
        metadata={"url": url} if url else {},
    )
    request = AnalysisRequest(
        content=content,
        mode=AnalysisMode(mode) if mode else config.analysis.default_mode,
        options=AnalysisOptions(timeout_ms=timeout_ms, allow_remote=False if no_remote else None),
    )

    orchestrator = build_orchestrator(config, record_history=not no_history)
    try:
        result = asyncio.run(orchestrator.analyze(request))
    except PrivacyViolationError as e:
        print_error(f"Privacy check failed: {e}")
        sys.exit(2)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    print_result(result, orchestrator.last_attempts)
    if result.is_degraded():
        print_warning("No analysis backend succeeded; showing a limited result.")


# =============================================================================
# CAPABILITIES COMMAND
# =============================================================================


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print capabilities as JSON")
@click.pass_context
def capabilities(ctx: click.Context, as_json: bool) -> None:
    """Show which analysis backends are available."""
    config: AppConfig = ctx.obj["config"]
    snapshot = CapabilityRegistry(config).detect()

    if as_json:
        click.echo(json.dumps(snapshot.model_dump(mode="json"), indent=2))
        return

    table = Table(title="Capabilities")
    table.add_column("Capability", style="cyan")
    table.add_column("Available")
    for name, available in snapshot.flags().items():
        table.add_row(name, "[green]yes[/green]" if available else "[red]no[/red]")
    console.print(table)
    print_info_panel("Privacy", config.privacy.to_settings().to_user_summary())


# =============================================================================
# HISTORY COMMAND
# =============================================================================


@cli.command()
@click.option("--limit", "-n", type=click.IntRange(min=1), default=10, show_default=True)
@click.option("--clear", is_flag=True, help="Delete all recorded results")
@click.option("--json", "as_json", is_flag=True, help="Print history as JSON")
@click.pass_context
def history(ctx: click.Context, limit: int, clear: bool, as_json: bool) -> None:
    """Show recent analysis results."""
    config: AppConfig = ctx.obj["config"]
    store = HistoryStore(config.paths.history_file, limit=config.analysis.history_limit)

    if clear:
        if store.clear():
            print_success("History cleared.")
        else:
            print_error("Could not clear history.")
            sys.exit(1)
        return

    entries = store.recent(limit)
    if as_json:
        click.echo(json.dumps([entry.to_dict() for entry in entries], indent=2))
        return

    if not entries:
        console.print("No results recorded yet.")
        return

    table = Table(title=f"Last {len(entries)} results")
    table.add_column("When")
    table.add_column("Source")
    table.add_column("Tone")
    table.add_column("Risk", justify="right")
    table.add_column("Sarcasm", justify="right")
    for entry in entries:
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            entry.source.value,
            entry.tone,
            f"[{risk_style(entry.overall_risk)}]{entry.overall_risk}[/]",
            str(entry.sarcasm_score),
        )
    console.print(table)


# =============================================================================
# CONFIG COMMANDS
# =============================================================================


@cli.group()
def config() -> None:
    """View configuration and manage the API key."""


@config.command()
@click.pass_context
def show(ctx: click.Context) -> None:
    """Show the effective configuration."""
    app_config: AppConfig = ctx.obj["config"]
    data = app_config.model_dump(mode="json")
    data["remote"]["api_key_configured"] = app_config.has_api_key()
    click.echo(json.dumps(data, indent=2))


@config.command("set-key")
@click.option("--key", prompt="Gemini API key", hide_input=True, help="API key to store")
def set_key(key: str) -> None:
    """Store the Gemini API key in the system keyring."""
    try:
        APIKeyManager().store_key(key)
    except ConfigError as e:
        print_error(str(e))
        sys.exit(1)
    print_success("API key stored in system keyring.")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
