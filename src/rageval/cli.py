"""
Command-line interface for rageval.

Commands:
- evaluate: Run the RAG pipeline over a dataset and score it
- stats: Show what an evaluation dataset contains
"""

from pathlib import Path

import click
from rich.console import Console

from rageval.evaluation.exceptions import RagEvalError
from rageval.evaluation.models import ALL_METRICS, MetricName
from rageval.logging import configure_logging

console = Console()

PLACEHOLDER_TENANT_ID = "YOUR_TENANT_ID"


def parse_metrics(value: str | None) -> tuple[MetricName, ...]:
    """
    Parse a comma-separated metric list.

    Raises:
        click.BadParameter: If any name is not a known metric
    """
    if not value:
        return ALL_METRICS

    names = [name.strip() for name in value.split(",") if name.strip()]
    valid = {metric.value: metric for metric in MetricName}
    invalid = [name for name in names if name not in valid]
    if invalid or not names:
        raise click.BadParameter(
            f"Invalid metrics: {', '.join(invalid) or value!r}. "
            f"Available: {', '.join(valid)}"
        )

    # Keep the canonical order, drop duplicates
    requested = {valid[name] for name in names}
    return tuple(metric for metric in ALL_METRICS if metric in requested)


def _load(path: str):
    from rageval.evaluation.dataset import get_dataset_stats, load_dataset

    try:
        dataset = load_dataset(path)
    except RagEvalError as e:
        console.print(f"[red]✗ Failed to load dataset: {e}[/red]")
        raise SystemExit(1)

    return dataset, get_dataset_stats(dataset)


def _print_dataset(dataset, stats) -> None:
    console.print(f"[blue]Name:[/blue] {dataset.name}")
    console.print(f"[blue]Version:[/blue] {dataset.version}")
    console.print(f"[blue]Tenant ID:[/blue] {dataset.tenant_id}")
    console.print(f"[blue]Items:[/blue] {stats.total_items}")
    breakdown = ", ".join(f"{qt.value}({count})" for qt, count in stats.by_question_type.items())
    console.print(f"[blue]Question types:[/blue] {breakdown}")

    if stats.with_conversation_history:
        console.print(f"[blue]Follow-up items:[/blue] {stats.with_conversation_history}")
    if stats.with_ground_truth_chunks:
        console.print(f"[blue]Items with ground-truth chunks:[/blue] {stats.with_ground_truth_chunks}")

    if dataset.tenant_id == PLACEHOLDER_TENANT_ID:
        console.print(
            f'[yellow]⚠ tenantId is still "{PLACEHOLDER_TENANT_ID}". '
            "Retrieval will find nothing and every score will be 0.[/yellow]"
        )


@click.group()
@click.version_option(package_name="rageval")
def main() -> None:
    """rageval - offline quality evaluation for RAG pipelines."""
    configure_logging()


@main.command()
@click.argument("dataset_path", metavar="DATASET", required=False)
@click.option("--dataset", "-d", "dataset_option", default=None, help="Evaluation dataset JSON file")
@click.option("--output", "-o", default=None, help="Write the JSON report to this path")
@click.option(
    "--metrics", "-m", default=None,
    help="Comma-separated metrics: faithfulness,answerRelevancy,contextPrecision,contextRecall",
)
@click.option("--concurrency", "-c", type=click.IntRange(min=1), default=None, help="Concurrent judge calls (default: 3)")
@click.option("--max-chunks", type=click.IntRange(min=1), default=None, help="Chunks to retrieve per question (default: 5)")
@click.option("--markdown", is_flag=True, help="Also write a Markdown report next to --output")
@click.option("--verbose", "-v", is_flag=True, help="Show per-item results and debug logs")
@click.option("--model", default=None, help="Judge model override")
def evaluate(
    dataset_path: str | None,
    dataset_option: str | None,
    output: str | None,
    metrics: str | None,
    concurrency: int | None,
    max_chunks: int | None,
    markdown: bool,
    verbose: bool,
    model: str | None,
) -> None:
    """Evaluate the RAG pipeline against DATASET."""
    from rageval.evaluation import evaluator
    from rageval.evaluation.reporter import (
        print_item_details,
        print_summary,
        save_markdown_report,
        save_report,
    )

    if verbose:
        configure_logging("DEBUG")

    path = dataset_option or dataset_path
    if not path:
        console.print("[red]✗ A dataset path is required (DATASET or --dataset)[/red]")
        raise SystemExit(1)

    try:
        requested_metrics = parse_metrics(metrics)
    except click.BadParameter as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise SystemExit(1)

    console.print(f"[yellow]Loading dataset {path}...[/yellow]")
    dataset, stats = _load(path)
    _print_dataset(dataset, stats)

    if metrics:
        console.print(f"[blue]Metrics:[/blue] {', '.join(m.value for m in requested_metrics)}")

    last_step = 0

    def on_progress(current: int, total: int, item) -> None:
        nonlocal last_step
        step = (current * 10) // total
        if step > last_step or current == total:
            console.print(f"  Progress: {current}/{total} ({round(current / total * 100)}%)")
            last_step = step

    options = evaluator.EvaluationOptions.from_settings(
        evaluation_model=model,
        max_chunks=max_chunks,
        concurrency=concurrency,
        metrics=requested_metrics,
        on_progress=on_progress,
    )

    console.print("[yellow]Running evaluation...[/yellow]")
    try:
        report = evaluator.run_evaluation(dataset, options)
    except Exception as e:
        console.print(f"[red]✗ Evaluation failed: {e}[/red]")
        raise SystemExit(1)

    console.print(
        f"[green]✓ Evaluation complete ({report.execution_metadata.total_duration / 1000:.0f}s)[/green]"
    )
    print_summary(report, console)

    if output:
        save_report(report, output)
        console.print(f"[green]✓ Saved JSON report to {output}[/green]")

        if markdown:
            md_path = Path(output).with_suffix(".md")
            save_markdown_report(report, md_path)
            console.print(f"[green]✓ Saved Markdown report to {md_path}[/green]")
    elif markdown:
        console.print("[yellow]--markdown needs --output; no Markdown report written[/yellow]")

    if verbose:
        console.rule("Item details")
        print_item_details(report, console)


@main.command()
@click.argument("dataset_path", metavar="DATASET")
def stats(dataset_path: str) -> None:
    """Show statistics for an evaluation dataset."""
    dataset, dataset_stats = _load(dataset_path)
    _print_dataset(dataset, dataset_stats)


if __name__ == "__main__":
    main()
