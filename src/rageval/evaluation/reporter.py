"""
Evaluation report output: console summary, JSON file, Markdown file.

Usage:
    from rageval.evaluation.reporter import print_summary, save_report

    print_summary(report)
    save_report(report, "data/evaluation/results/latest.json")
"""

import json
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from rageval.config import settings
from rageval.evaluation.models import EvaluationReport, ItemEvaluationResult, QuestionType
from rageval.logging import get_logger

logger = get_logger(__name__, component="reporter")

BAR_LENGTH = 20

GOOD_THRESHOLD = 0.9
ACCEPTABLE_THRESHOLD = 0.7

QUESTION_TYPE_LABELS = {
    QuestionType.FACTUAL: "Factual",
    QuestionType.FOLLOWUP: "Follow-up",
    QuestionType.COMPARISON: "Comparison",
    QuestionType.PROCEDURAL: "Procedural",
    QuestionType.REASONING: "Reasoning",
    QuestionType.UNANSWERABLE: "Unanswerable",
}

_STATUS_STYLE = {"good": "green", "acceptable": "yellow", "poor": "red"}
_STATUS_LABEL = {"good": "✅ Good", "acceptable": "🟡 Acceptable", "poor": "🔴 Needs improvement"}


def score_status(score: float) -> str:
    """Tier a score: 'good' (>= 0.9), 'acceptable' (>= 0.7) or 'poor'."""
    if score >= GOOD_THRESHOLD:
        return "good"
    if score >= ACCEPTABLE_THRESHOLD:
        return "acceptable"
    return "poor"


def format_duration(ms: float) -> str:
    """
    Human-readable duration.

    Example:
        format_duration(850)     # "850ms"
        format_duration(12_345)  # "12.3s"
        format_duration(125_000) # "2m 5s"
    """
    if ms < 1000:
        return f"{round(ms)}ms"
    if ms < 60_000:
        return f"{ms / 1000:.1f}s"
    minutes = int(ms // 60_000)
    seconds = (ms % 60_000) / 1000
    return f"{minutes}m {seconds:.0f}s"


def _percent(score: float) -> str:
    return f"{score * 100:.1f}%"


def _optional_percent(score: float | None) -> str:
    return _percent(score) if score is not None else "-"


def _score_bar(score: float) -> str:
    filled = round(max(0.0, min(1.0, score)) * BAR_LENGTH)
    return "█" * filled + "░" * (BAR_LENGTH - filled)


def _summary_scores(report: EvaluationReport) -> list[tuple[str, float]]:
    summary = report.summary
    scores = [
        ("Faithfulness", summary.avg_faithfulness),
        ("Answer Relevancy", summary.avg_answer_relevancy),
        ("Context Precision", summary.avg_context_precision),
    ]
    if summary.avg_context_recall is not None:
        scores.append(("Context Recall", summary.avg_context_recall))
    return scores


def _label(question_type: QuestionType) -> str:
    return QUESTION_TYPE_LABELS.get(question_type, question_type.value)


# ============================================================================
# Console
# ============================================================================

def print_summary(report: EvaluationReport, console: Console | None = None) -> None:
    """Print the run summary: identity, overall scores, per-type table, rewriting impact."""
    console = console or Console()
    summary = report.summary
    metadata = report.execution_metadata

    console.print()
    console.rule("[bold]RAG Evaluation Results[/bold]")
    console.print(f"[blue]Dataset:[/blue] {report.dataset_name} (v{report.dataset_version})")
    console.print(f"[blue]Items:[/blue] {summary.total_items}")
    if summary.failed_items:
        console.print(f"[red]Failed items:[/red] {summary.failed_items}")
    console.print(f"[blue]Duration:[/blue] {format_duration(metadata.total_duration)}")
    console.print(f"[blue]Judge model:[/blue] {metadata.evaluation_model}")

    console.print()
    console.rule("Overall scores")
    for label, score in _summary_scores(report):
        status = score_status(score)
        style = _STATUS_STYLE[status]
        console.print(
            f"  {label:<18} │ [{style}]{_score_bar(score)}[/{style}] │ "
            f"{score * 100:5.1f}% [{style}]{status}[/{style}]"
        )

    if summary.by_question_type:
        table = Table(title="By question type")
        table.add_column("Type")
        table.add_column("Count", justify="right")
        table.add_column("Faithfulness", justify="right")
        table.add_column("Answer Relevancy", justify="right")
        table.add_column("Context Precision", justify="right")
        table.add_column("Context Recall", justify="right")

        for question_type, stats in summary.by_question_type.items():
            table.add_row(
                _label(question_type),
                str(stats.count),
                _percent(stats.avg_faithfulness),
                _percent(stats.avg_answer_relevancy),
                _percent(stats.avg_context_precision),
                _optional_percent(stats.avg_context_recall),
            )

        console.print()
        console.print(table)

    impact = summary.query_rewriting_impact
    if impact:
        sign = "+" if impact.avg_score_improvement >= 0 else ""
        console.print()
        console.rule("Query rewriting")
        console.print(f"  Rewritten queries: {impact.items_with_rewriting}")
        console.print(f"  Follow-up relevancy delta: {sign}{impact.avg_score_improvement * 100:.1f}%")

    console.print()


def print_item_details(report: EvaluationReport, console: Console | None = None) -> None:
    """Verbose per-item listing, plus empty-retrieval and failure counts."""
    console = console or Console()
    results = report.results

    empty = [r for r in results if not r.failed and not r.retrieved_chunks]
    if empty:
        console.print(f"[yellow]⚠ {len(empty)} item(s) retrieved no chunks[/yellow]")

    for result in results:
        if result.failed:
            console.print(f"  [red]✗ {result.item_id}[/red] {escape(result.error or '')}")
            continue

        scores = result.scores
        console.print(
            f"  [green]✓[/green] {result.item_id} "
            f"F:{scores.faithfulness * 100:.0f}% "
            f"AR:{scores.answer_relevancy * 100:.0f}% "
            f"CP:{scores.context_precision * 100:.0f}%"
            + (f" CR:{scores.context_recall * 100:.0f}%" if scores.context_recall is not None else "")
            + f" [dim]({format_duration(result.execution_time)})[/dim]"
        )


# ============================================================================
# JSON
# ============================================================================

def save_report(report: EvaluationReport, path: str | Path) -> Path:
    """Write the report as indented UTF-8 JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)

    logger.info("report_saved", path=str(path), results=len(report.results))
    return path


def load_report(path: str | Path) -> EvaluationReport:
    """Read a report previously written by save_report()."""
    with open(path, encoding="utf-8") as f:
        return EvaluationReport.from_dict(json.load(f))


# ============================================================================
# Markdown
# ============================================================================

def _low_score_items(
    results: list[ItemEvaluationResult],
    threshold: float,
) -> list[ItemEvaluationResult]:
    return [
        r for r in results
        if r.scores.faithfulness < threshold or r.scores.answer_relevancy < threshold
    ]


def generate_markdown_report(report: EvaluationReport, max_items: int | None = None) -> str:
    """
    Render the report as Markdown.

    Sections: overview, overall scores, per question type, and the items
    whose faithfulness or answer relevancy is below the low-score
    threshold (at most max_items, then an overflow line).
    """
    max_items = settings.report_max_items if max_items is None else max_items
    threshold = settings.report_low_score_threshold
    summary = report.summary
    metadata = report.execution_metadata

    lines = [
        "# RAG Evaluation Report",
        "",
        "## Overview",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| Dataset | {report.dataset_name} (v{report.dataset_version}) |",
        f"| Evaluated at | {report.evaluated_at} |",
        f"| Items | {summary.total_items} |",
        f"| Failed items | {summary.failed_items} |",
        f"| Duration | {format_duration(metadata.total_duration)} |",
        f"| Judge model | {metadata.evaluation_model} |",
        "",
        "## Overall Scores",
        "",
        "| Metric | Score | Status |",
        "|--------|-------|--------|",
    ]
    for label, score in _summary_scores(report):
        lines.append(f"| {label} | {_percent(score)} | {_STATUS_LABEL[score_status(score)]} |")

    if summary.by_question_type:
        lines += [
            "",
            "## By Question Type",
            "",
            "| Type | Count | Faithfulness | Answer Relevancy | Context Precision | Context Recall |",
            "|------|-------|--------------|------------------|-------------------|----------------|",
        ]
        for question_type, stats in summary.by_question_type.items():
            lines.append(
                f"| {_label(question_type)} | {stats.count} | "
                f"{_percent(stats.avg_faithfulness)} | "
                f"{_percent(stats.avg_answer_relevancy)} | "
                f"{_percent(stats.avg_context_precision)} | "
                f"{_optional_percent(stats.avg_context_recall)} |"
            )

    impact = summary.query_rewriting_impact
    if impact:
        sign = "+" if impact.avg_score_improvement >= 0 else ""
        lines += [
            "",
            "## Query Rewriting",
            "",
            f"- Rewritten queries: {impact.items_with_rewriting}",
            f"- Follow-up relevancy delta: {sign}{impact.avg_score_improvement * 100:.1f}%",
        ]

    low = _low_score_items(report.results, threshold)
    if low:
        lines += ["", f"## Needs Improvement ({len(low)} items)", ""]

        for item in low[:max_items]:
            lines += [
                f"### {item.item_id}",
                "",
                f"- **Question**: {item.question}",
                f"- **Faithfulness**: {_percent(item.scores.faithfulness)}",
                f"- **Answer Relevancy**: {_percent(item.scores.answer_relevancy)}",
            ]
            if item.failed:
                lines.append(f"- **Error**: {item.error}")
            faithfulness = item.analysis.faithfulness
            if faithfulness and faithfulness.unsupported_claims:
                lines.append(f"- **Unsupported claims**: {', '.join(faithfulness.unsupported_claims)}")
            lines.append("")

        if len(low) > max_items:
            lines.append(f"... and {len(low) - max_items} more")

    return "\n".join(lines) + "\n"


def save_markdown_report(report: EvaluationReport, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(generate_markdown_report(report), encoding="utf-8")

    logger.info("markdown_report_saved", path=str(path))
    return path
