"""Unit tests for the mlmodules CLI commands."""

import json
import time
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from conftest import FakeDocumentStore

from mlmodules.cli import main, parse_tokens
from mlmodules.exceptions import DocumentStoreError


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def fake_client():
    """Patch the CLI's client class with an in-memory store."""
    store = FakeDocumentStore()
    store.close = lambda: None
    with patch("mlmodules.cli.DocumentStoreClient", return_value=store):
        yield store


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "load" in result.output
        assert "reset-state" in result.output
        assert "eval" in result.output


class TestParseTokens:
    """Tests for parse_tokens."""

    def test_parse(self):
        assert parse_tokens(("%%A%%=1", "B=x=y")) == {"%%A%%": "1", "B": "x=y"}

    def test_missing_equals(self):
        import click

        with pytest.raises(click.BadParameter):
            parse_tokens(("novalue",))


class TestLoadCommand:
    """Tests for the load command."""

    def test_load_and_reload(self, runner, fake_client, sample_base_dir, state_file):
        args = ["--quiet", "load", str(sample_base_dir), "--state-file", str(state_file)]

        result = runner.invoke(main, args)
        assert result.exit_code == 0, result.output
        assert len(fake_client.writes) == 26

        result = runner.invoke(main, args)
        assert result.exit_code == 0
        assert len(fake_client.writes) == 26

    def test_load_json_output(self, runner, fake_client, sample_base_dir):
        result = runner.invoke(
            main,
            [
                "--json",
                "load",
                str(sample_base_dir),
                "--no-state",
                "--include",
                ".*services.*",
                "--batch-size",
                "2",
            ],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert len(data["loaded"]) == 3
        assert data["batches"] == 2
        assert data["errors"] == []

    def test_load_with_tokens(self, runner, fake_client, tmp_path):
        base = tmp_path / "modules"
        (base / "root").mkdir(parents=True)
        (base / "root" / "a.xqy").write_text("'%%NAME%%'")

        result = runner.invoke(
            main, ["-q", "load", str(base), "--no-state", "-t", "%%NAME%%=world"]
        )

        assert result.exit_code == 0, result.output
        assert fake_client.documents["/a.xqy"] == b"'world'"

    def test_load_reset_state(self, runner, fake_client, sample_base_dir, state_file):
        args = ["-q", "load", str(sample_base_dir), "--state-file", str(state_file)]
        runner.invoke(main, args)

        result = runner.invoke(main, args + ["--reset-state"])

        assert result.exit_code == 0
        assert len(fake_client.writes) == 52

    def test_load_options_file(self, runner, fake_client, sample_base_dir, tmp_path):
        options_file = tmp_path / "options.json"
        options_file.write_text(json.dumps({"includePattern": ".*transforms.*"}))

        result = runner.invoke(
            main,
            ["-q", "load", str(sample_base_dir), "--no-state", "--options-file", str(options_file)],
        )

        assert result.exit_code == 0, result.output
        assert len(fake_client.writes) == 5

    def test_invalid_pattern(self, runner, fake_client, sample_base_dir):
        result = runner.invoke(
            main, ["load", str(sample_base_dir), "--no-state", "--include", "(bad"]
        )
        assert result.exit_code == 1
        assert fake_client.writes == []

    def test_upload_failure_exit_code(self, runner, fake_client, sample_base_dir):
        fake_client.fail_uris.add("/module3.xqy")

        result = runner.invoke(main, ["-q", "load", str(sample_base_dir), "--no-state"])

        assert result.exit_code == 1
        assert len(fake_client.writes) == 25

    def test_min_timestamp(self, runner, fake_client, sample_base_dir, state_file):
        args = ["-q", "load", str(sample_base_dir), "--state-file", str(state_file)]
        future = str(time.time() + 10000)

        result = runner.invoke(main, args + ["--min-timestamp", future])
        assert result.exit_code == 0, result.output
        assert fake_client.writes == []

        result = runner.invoke(main, args)
        assert result.exit_code == 0, result.output
        assert len(fake_client.writes) == 26

    def test_min_timestamp_without_state(self, runner, fake_client, sample_base_dir):
        future = str(time.time() + 10000)

        result = runner.invoke(
            main,
            ["-q", "load", str(sample_base_dir), "--no-state", "--min-timestamp", future],
        )

        assert result.exit_code == 0, result.output
        assert fake_client.writes == []

    def test_negative_min_timestamp(self, runner, fake_client, sample_base_dir):
        result = runner.invoke(
            main,
            ["load", str(sample_base_dir), "--no-state", "--min-timestamp", "-5"],
        )
        assert result.exit_code == 1
        assert fake_client.writes == []

    def test_dry_run(self, runner, fake_client, sample_base_dir, state_file):
        result = runner.invoke(
            main,
            ["load", str(sample_base_dir), "--state-file", str(state_file), "--dry-run"],
        )

        assert result.exit_code == 0, result.output
        assert "Dry run" in result.output
        assert fake_client.writes == []


class TestResetStateCommand:
    """Tests for the reset-state command."""

    def test_reset_state(self, runner, tmp_path, state_file):
        state_file.parent.mkdir(parents=True)
        state_file.write_text('{"version": 1, "files": {}}')

        for _ in range(2):
            result = runner.invoke(
                main, ["reset-state", str(tmp_path), "--state-file", str(state_file)]
            )
            assert result.exit_code == 0
            assert not state_file.exists()


class TestEvalCommand:
    """Tests for the eval command."""

    def test_eval(self, runner, fake_client):
        result = runner.invoke(main, ["eval", "count(cts:uris())"])
        assert result.exit_code == 0
        assert result.output.strip() == "0"

    def test_eval_error(self, runner):
        with patch("mlmodules.cli.DocumentStoreClient") as mock_class:
            mock_class.return_value.eval_query.side_effect = DocumentStoreError("boom")
            result = runner.invoke(main, ["eval", "bad("])

        assert result.exit_code == 1


class TestStatusCommand:
    """Tests for the status command."""

    def test_status_json(self, runner):
        result = runner.invoke(
            main, ["--json", "--host", "ml.example", "--port", "8010", "status"]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["Host"] == "ml.example"
        assert data["Port"] == "8010"
