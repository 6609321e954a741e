"""Tests for the command line interface."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from docindexer.cli import EXIT_SETUP_ERROR, EXIT_TOY_DICTIONARY, _setup_logging, app
from docindexer.config import SMOKETESTER_ENV
from docindexer.exceptions import SetupError, ToyDictionaryError
from docindexer.index.indexer import run_indexing
from docindexer.index.storage import SQLiteIndexWriter
from docindexer.models import WriteMode


runner = CliRunner()


@pytest.fixture(autouse=True)
def _no_smoketester(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(SMOKETESTER_ENV, raising=False)


@pytest.fixture
def docs(tmp_path: Path) -> Path:
    root = tmp_path / "docs"
    root.mkdir()
    for name, text in [("one.txt", "first file"), ("two.txt", "second file"), ("three.txt", "third")]:
        (root / name).write_text(text)
    return root


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("docindexer.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("docindexer.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestIndexCommand:
    """Tests for the index command."""

    def test_missing_docs_prints_usage(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["--index", str(tmp_path / "index")])

        assert result.exit_code == EXIT_SETUP_ERROR
        assert "Usage: docindexer" in result.output
        assert not (tmp_path / "index").exists()

    def test_unknown_option_is_rejected(self, docs: Path) -> None:
        result = runner.invoke(app, ["--docs", str(docs), "--bogus"])

        assert result.exit_code != 0

    def test_unreadable_docs(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["--docs", str(tmp_path / "missing"), "--index", str(tmp_path / "index")]
        )

        assert result.exit_code == EXIT_SETUP_ERROR
        assert "Setup error" in result.output

    def test_index_three_files(self, tmp_path: Path, docs: Path) -> None:
        index_path = tmp_path / "index"

        result = runner.invoke(app, ["--docs", str(docs), "--index", str(index_path)])

        assert result.exit_code == 0
        assert "Indexed 3 documents" in result.output
        assert "Added: 3, updated: 0, failed: 0" in result.output
        assert (index_path / "index.db").exists()

    def test_update_replaces_documents(self, tmp_path: Path, docs: Path) -> None:
        index_path = tmp_path / "index"
        runner.invoke(app, ["--docs", str(docs), "--index", str(index_path)])

        result = runner.invoke(app, ["--docs", str(docs), "--index", str(index_path), "--update"])

        assert result.exit_code == 0
        assert "Indexed 3 documents" in result.output
        assert "Added: 0, updated: 3, failed: 0" in result.output
        with SQLiteIndexWriter.open(index_path, WriteMode.UPSERT) as writer:
            assert writer.count_documents(str(docs / "one.txt")) == 1

    def test_create_flag_is_default(self, tmp_path: Path, docs: Path) -> None:
        with patch("docindexer.cli.run_indexing") as mock_run:
            mock_run.return_value = MagicMock(
                document_count=0, elapsed_ms=1, added=0, updated=0, failed=0
            )
            result = runner.invoke(app, ["--docs", str(docs), "--create"])

        assert result.exit_code == 0
        config = mock_run.call_args[0][0]
        assert config.mode is WriteMode.CREATE
        assert config.index_path == Path.cwd() / "index"

    def test_relative_index_resolved_against_cwd(
        self, tmp_path: Path, docs: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)

        with patch("docindexer.cli.run_indexing", wraps=run_indexing) as mock_run:
            result = runner.invoke(app, ["--docs", str(docs), "--index", "relative-index"])

        assert result.exit_code == 0
        assert mock_run.call_args[0][0].index_path == tmp_path / "relative-index"
        assert (tmp_path / "relative-index" / "index.db").exists()

    def test_knn_dict_option(self, tmp_path: Path, docs: Path) -> None:
        source = tmp_path / "vectors.txt"
        source.write_text("first 1 0\nsecond 0 1\n")
        index_path = tmp_path / "index"

        result = runner.invoke(
            app, ["--docs", str(docs), "--index", str(index_path), "--knn-dict", str(source)]
        )

        assert result.exit_code == 0
        assert (index_path / "knn-dict.npy").exists()
        with SQLiteIndexWriter.open(index_path, WriteMode.UPSERT) as writer:
            assert writer.get_document(str(docs / "one.txt")).vector is not None

    def test_setup_error_exit_code(self, docs: Path) -> None:
        with patch("docindexer.cli.run_indexing", side_effect=SetupError("index locked")):
            result = runner.invoke(app, ["--docs", str(docs)])

        assert result.exit_code == EXIT_SETUP_ERROR
        assert "index locked" in result.output

    def test_toy_dictionary_exit_code(self, docs: Path) -> None:
        with patch(
            "docindexer.cli.run_indexing", side_effect=ToyDictionaryError(150, 500_000)
        ):
            result = runner.invoke(app, ["--docs", str(docs)])

        assert result.exit_code == EXIT_TOY_DICTIONARY
        assert "Vector dictionary check failed" in result.output

    def test_verbose(self, tmp_path: Path, docs: Path) -> None:
        """Verbose flag is accepted."""
        result = runner.invoke(
            app, ["--docs", str(docs), "--index", str(tmp_path / "index"), "-v"]
        )

        assert result.exit_code == 0

    @pytest.mark.parametrize(
        ("error", "message"),
        [
            (SetupError("index locked"), "Setup error: index locked"),
            (ToyDictionaryError(150, 500_000), "Vector dictionary check failed"),
        ],
    )
    def test_failures_are_reported_on_stderr(self, docs: Path, error: Exception, message: str) -> None:
        out, err = io.StringIO(), io.StringIO()
        with patch("docindexer.cli.console", Console(file=out, width=200)), patch(
            "docindexer.cli.err_console", Console(file=err, width=200)
        ), patch("docindexer.cli.run_indexing", side_effect=error):
            result = runner.invoke(app, ["--docs", str(docs)])

        assert result.exit_code != 0
        assert message in err.getvalue()
        assert message not in out.getvalue()
        assert "Indexing to directory" in out.getvalue()
