"""
Command-line interface for the SEO compliance optimizer.

Documents are read from JSON files with ``title``, ``content`` (HTML),
``meta_description``, ``focus_keyword`` and ``secondary_keywords``.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import OptimizerConfig
from .errors import SEOOptimizerError
from .llm_client import PROVIDERS, create_corrector
from .models import Document, OptimizationResult, ValidationResult
from .optimizer import MultiPassOptimizer
from .pipeline import ValidationPipeline

console = Console()


def _load_document(path: Path) -> Document:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} must contain a JSON object")
    return Document.from_dict(data)


def _load_config(path: Optional[Path], **overrides: Any) -> OptimizerConfig:
    data: dict[str, Any] = {}
    if path is not None:
        data = json.loads(path.read_text(encoding="utf-8"))
    data.update({k: v for k, v in overrides.items() if v is not None})
    return OptimizerConfig.from_dict(data)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """
    SEO Compliance Optimizer - detect and correct SEO issues.

    Examples:

        seo-comply analyze page.json

        seo-comply optimize page.json --provider anthropic -o optimized.json
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose)


@main.command()
@click.argument("document_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path),
              help="JSON file with configuration options.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the raw validation result.")
@click.option("--existing-title", "existing_titles", multiple=True,
              help="Already published title to check uniqueness against; repeatable.")
@click.pass_context
def analyze(
    ctx: click.Context,
    document_path: Path,
    config_path: Optional[Path],
    as_json: bool,
    existing_titles: tuple[str, ...],
) -> None:
    """Validate a document and list its SEO issues."""
    try:
        document = _load_document(document_path)
        config = _load_config(config_path)
        result = ValidationPipeline(config).validate(document, existing_titles=list(existing_titles))
    except (SEOOptimizerError, click.BadParameter, OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
        return
    _display_validation(result, ctx.obj["verbose"])


@main.command()
@click.argument("document_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--provider", "-p", "providers", multiple=True,
              type=click.Choice(sorted(PROVIDERS)), default=("anthropic",), show_default=True,
              help="Correction provider; repeat for failover order.")
@click.option("--model", type=str, help="Model override for the first provider.")
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path),
              help="JSON file with configuration options.")
@click.option("--max-iterations", type=int, help="Maximum optimization passes.")
@click.option("--target-score", type=float, help="Target compliance score (0-100).")
@click.option("--output", "-o", type=click.Path(path_type=Path),
              help="Write the optimization result as JSON.")
@click.option("--existing-title", "existing_titles", multiple=True,
              help="Already published title to check uniqueness against; repeatable.")
@click.pass_context
def optimize(
    ctx: click.Context,
    document_path: Path,
    providers: tuple[str, ...],
    model: Optional[str],
    config_path: Optional[Path],
    max_iterations: Optional[int],
    target_score: Optional[float],
    output: Optional[Path],
    existing_titles: tuple[str, ...],
) -> None:
    """Run multi-pass optimization on a document."""
    verbose = ctx.obj["verbose"]
    console.print(Panel.fit(
        "[bold blue]SEO Compliance Optimizer[/bold blue]\n"
        "Multi-pass detection and correction",
        border_style="blue",
    ))

    try:
        document = _load_document(document_path)
        config = _load_config(
            config_path,
            max_iterations=max_iterations,
            target_compliance_score=target_score,
        )
        correctors = [
            create_corrector(name, model=model if i == 0 else None)
            for i, name in enumerate(providers)
        ]
        optimizer = MultiPassOptimizer(correctors, config)

        with console.status("[bold green]Optimizing content..."):
            result = optimizer.optimize(document, existing_titles=list(existing_titles))
    except (SEOOptimizerError, click.BadParameter, OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        if verbose:
            import traceback
            console.print(traceback.format_exc())
        sys.exit(1)

    _display_summary(result, verbose)

    if output is not None:
        output.write_text(json.dumps(result.to_dict(), indent=2, default=str), encoding="utf-8")
        console.print(f"\n[bold green]Success![/bold green] Result saved to: {output}")

    if result.error:
        sys.exit(2)


def _display_validation(result: ValidationResult, verbose: bool) -> None:
    """Display validation issues."""
    console.print(f"\n[bold]Compliance score:[/bold] {result.compliance_score}")
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")

    if verbose:
        for name, value in result.metrics.items():
            console.print(f"[dim]{name}: {value}[/dim]")

    if not result.issues:
        console.print("[green]No issues found.[/green]")
        return

    table = Table(title="Detected Issues", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Severity", style="yellow")
    table.add_column("Current")
    table.add_column("Target")
    table.add_column("Message")

    for issue in result.issues:
        table.add_row(
            issue.type.value,
            issue.severity.value,
            str(issue.current_value),
            str(issue.target_value),
            issue.message,
        )
    console.print(table)


def _display_summary(result: OptimizationResult, verbose: bool) -> None:
    """Display optimization summary."""
    summary = result.summary
    console.print("\n[bold]Optimization Summary[/bold]")

    table = Table(show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Initial score", str(summary["initialScore"]))
    table.add_row("Final score", str(summary["finalScore"]))
    table.add_row("Improvement", str(summary["improvement"]))
    table.add_row("Passes", str(summary["iterationsUsed"]))
    table.add_row("Termination", summary["terminationReason"])
    table.add_row("Compliant", "Yes" if summary["complianceAchieved"] else "No")
    console.print(table)

    if verbose:
        passes = Table(title="Passes", show_header=True)
        passes.add_column("#")
        passes.add_column("Before")
        passes.add_column("After")
        passes.add_column("Resolved")
        passes.add_column("Rolled back")
        for record in result.pass_records:
            passes.add_row(
                str(record.pass_number),
                str(record.before_score),
                str(record.after_score),
                str(record.issues_resolved),
                "Yes" if record.rolled_back else "No",
            )
        console.print(passes)

    if result.error:
        console.print(f"[red]Stopped on error:[/red] {result.error}")


def run_cli() -> None:
    """Entry point for the CLI."""
    main()


if __name__ == "__main__":
    run_cli()
