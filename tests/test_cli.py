"""Tests for the command-line interface."""

import asyncio
import json

import click
import pytest
from click.testing import CliRunner

from rageval import cli
from rageval.evaluation import evaluator
from rageval.evaluation.models import ALL_METRICS, MetricName


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda level=None: None)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def dataset_file(write_json, sample_dataset_dict):
    return write_json(sample_dataset_dict)


@pytest.fixture
def captured_runs(monkeypatch, judge_factory, retriever_factory, generator_factory,
                  rewriter_factory, sample_chunks):
    """Replace the real services with fakes and record the options used."""
    runs = []

    def fake_run_evaluation(dataset, options=None):
        runs.append(options)
        return asyncio.run(evaluator.evaluate_dataset(
            dataset,
            judge=judge_factory(),
            retriever=retriever_factory(chunks=sample_chunks),
            generator=generator_factory(),
            rewriter=rewriter_factory(rewritten="Standalone question?"),
            options=options,
        ))

    monkeypatch.setattr(evaluator, "run_evaluation", fake_run_evaluation)
    return runs


class TestParseMetrics:
    def test_defaults_to_all(self):
        assert cli.parse_metrics(None) == ALL_METRICS

    def test_canonical_order_and_dedup(self):
        assert cli.parse_metrics("contextRecall, faithfulness,contextRecall") == (
            MetricName.FAITHFULNESS,
            MetricName.CONTEXT_RECALL,
        )

    def test_rejects_unknown(self):
        with pytest.raises(click.BadParameter, match="bleu"):
            cli.parse_metrics("faithfulness,bleu")


class TestEvaluateCommand:
    """Tests for `rageval evaluate`."""

    def test_runs_and_writes_reports(self, runner, dataset_file, captured_runs, tmp_path):
        output = tmp_path / "results" / "report.json"

        result = runner.invoke(
            cli.main,
            ["evaluate", str(dataset_file), "-o", str(output), "--markdown", "-v"],
        )

        assert result.exit_code == 0, result.output
        assert "Evaluation complete" in result.output
        assert "Progress: 3/3 (100%)" in result.output

        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["summary"]["totalItems"] == 3
        assert output.with_suffix(".md").exists()

    def test_dataset_option(self, runner, dataset_file, captured_runs):
        result = runner.invoke(cli.main, ["evaluate", "--dataset", str(dataset_file)])

        assert result.exit_code == 0, result.output
        assert len(captured_runs) == 1

    def test_options_passed_through(self, runner, dataset_file, captured_runs):
        result = runner.invoke(cli.main, [
            "evaluate", str(dataset_file),
            "-m", "faithfulness,answerRelevancy",
            "-c", "5",
            "--max-chunks", "3",
            "--model", "judge-override",
        ])

        assert result.exit_code == 0, result.output
        options = captured_runs[0]
        assert options.metrics == (MetricName.FAITHFULNESS, MetricName.ANSWER_RELEVANCY)
        assert options.concurrency == 5
        assert options.max_chunks == 3
        assert options.evaluation_model == "judge-override"

    def test_missing_dataset_path(self, runner, captured_runs):
        result = runner.invoke(cli.main, ["evaluate"])

        assert result.exit_code == 1
        assert captured_runs == []

    def test_invalid_dataset_exits_1(self, runner, write_json, sample_dataset_dict, captured_runs):
        sample_dataset_dict["items"][2]["questionType"] = "trivia"

        result = runner.invoke(cli.main, ["evaluate", str(write_json(sample_dataset_dict))])

        assert result.exit_code == 1
        assert "Failed to load dataset" in result.output
        assert captured_runs == []

    def test_missing_file_exits_1(self, runner, tmp_path, captured_runs):
        result = runner.invoke(cli.main, ["evaluate", str(tmp_path / "nope.json")])

        assert result.exit_code == 1

    def test_unreadable_dataset_exits_1(self, runner, tmp_path, captured_runs):
        result = runner.invoke(cli.main, ["evaluate", str(tmp_path)])

        assert result.exit_code == 1
        assert "Failed to load dataset" in result.output
        assert captured_runs == []

    def test_invalid_metrics_exit_1(self, runner, dataset_file, captured_runs):
        result = runner.invoke(cli.main, ["evaluate", str(dataset_file), "-m", "faithfulness,bleu"])

        assert result.exit_code == 1
        assert "bleu" in result.output
        assert captured_runs == []

    def test_run_level_exception_exits_1(self, runner, dataset_file, monkeypatch):
        def exploding_run(dataset, options=None):
            raise RuntimeError("ANTHROPIC_API_KEY is not set")

        monkeypatch.setattr(evaluator, "run_evaluation", exploding_run)

        result = runner.invoke(cli.main, ["evaluate", str(dataset_file)])

        assert result.exit_code == 1
        assert "Evaluation failed" in result.output

    def test_failed_items_still_exit_0(self, runner, dataset_file, monkeypatch,
                                       judge_factory, retriever_factory, generator_factory):
        def run_with_broken_generator(dataset, options=None):
            return asyncio.run(evaluator.evaluate_dataset(
                dataset,
                judge=judge_factory(),
                retriever=retriever_factory(chunks=[]),
                generator=generator_factory(fail_for={"What are the business hours?"}),
                options=options,
            ))

        monkeypatch.setattr(evaluator, "run_evaluation", run_with_broken_generator)

        result = runner.invoke(cli.main, ["evaluate", str(dataset_file), "-v"])

        assert result.exit_code == 0, result.output
        assert "Failed items: 1" in result.output

    def test_placeholder_tenant_warning(self, runner, write_json, sample_dataset_dict, captured_runs):
        sample_dataset_dict["tenantId"] = "YOUR_TENANT_ID"

        result = runner.invoke(cli.main, ["evaluate", str(write_json(sample_dataset_dict))])

        assert result.exit_code == 0, result.output
        assert "YOUR_TENANT_ID" in result.output


def test_stats_command(runner, dataset_file):
    result = runner.invoke(cli.main, ["stats", str(dataset_file)])

    assert result.exit_code == 0, result.output
    assert "support-faq" in result.output
    assert "factual(1)" in result.output
    assert "Follow-up items: 1" in result.output


def test_help(runner):
    result = runner.invoke(cli.main, ["evaluate", "--help"])

    assert result.exit_code == 0
    assert "--max-chunks" in result.output
