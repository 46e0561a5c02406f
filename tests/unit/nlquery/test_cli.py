"""
Unit tests for the nlquery CLI.

Covers the offline commands and the configuration error paths of the
commands that need API keys.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from src import __version__
from src.nlquery.cli import app
from src.nlquery.exceptions import MissingConfigError
from src.nlquery.models import Classification

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_credentials(monkeypatch):
    for name in (
        "OPENAI_API_KEY",
        "NLQUERY_OPENAI_API_KEY",
        "PINECONE_API_KEY",
        "NLQUERY_PINECONE_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


class TestParseTime:

    def test_quarter(self):
        result = runner.invoke(app, ["parse-time", "Q4 2024"])

        assert result.exit_code == 0
        assert "start: 2024-10-01" in result.stdout
        assert "end:   2024-12-31" in result.stdout

    def test_open_end(self):
        result = runner.invoke(app, ["parse-time", "since 2021", "--today", "2026-01-20"])

        assert result.exit_code == 0
        assert "end:   (open)" in result.stdout

    def test_unrecognized(self):
        result = runner.invoke(app, ["parse-time", "during the olympics"])

        assert result.exit_code == 1
        assert "No time range recognized" in result.stdout


class TestParseNumber:

    def test_limit(self):
        result = runner.invoke(app, ["parse-number", "top 10 projects"])

        assert result.exit_code == 0
        assert "limit" in result.stdout
        assert "10" in result.stdout


class TestCommandsNeedingKeys:

    def test_classify_without_openai_key(self):
        result = runner.invoke(app, ["classify", "Won projects", "--no-context"])

        assert result.exit_code == 1
        assert "openai_api_key" in result.stdout

    def test_index_without_pinecone_key(self):
        result = runner.invoke(app, ["index"])

        assert result.exit_code == 1
        assert "pinecone_api_key" in result.stdout

    def test_interpret_missing_rows_file(self, tmp_path):
        result = runner.invoke(app, ["interpret", "Won projects", "--rows", str(tmp_path / "nope.json")])

        assert result.exit_code == 1
        assert "File not found" in result.stdout

    def test_classify_prints_classification(self):
        classification = Classification("get_projects_by_status", {"status": "Won"})

        with patch("src.nlquery.cli._classify", AsyncMock(return_value=classification)):
            result = runner.invoke(app, ["classify", "Won projects"])

        assert result.exit_code == 0
        assert "get_projects_by_status" in result.stdout

    def test_interpret_rows_file_loaded(self, tmp_path):
        rows_file = tmp_path / "rows.json"
        rows_file.write_text(json.dumps([{"Title": "Bridge", "State": "California"}]))
        captured = {}

        async def fake_interpret(question, data):
            captured["data"] = data
            raise MissingConfigError("openai_api_key")

        with patch("src.nlquery.cli._interpret", fake_interpret):
            result = runner.invoke(app, ["interpret", "California projects", "--rows", str(rows_file)])

        assert result.exit_code == 1
        assert captured["data"] == [{"Title": "Bridge", "State": "California"}]


class TestVersion:

    def test_version(self):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout
