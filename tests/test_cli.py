"""Tests for the replmux command line."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from replmux.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("REPLMUX_IMPLEMENTATION", "REPLMUX_NAME", "REPLMUX_BUFFER_MAX_CHARS"):
        monkeypatch.delenv(var, raising=False)


class TestUnit:
    def test_unit_at_end(self, tmp_path) -> None:
        transcript = tmp_path / "session.txt"
        transcript.write_text("> (foo 1)\n=1\n> bar baz")
        result = runner.invoke(app, ["unit", str(transcript)])
        assert result.exit_code == 0
        assert result.stdout == "bar\n"

    def test_unit_at_cursor(self, tmp_path) -> None:
        transcript = tmp_path / "session.txt"
        transcript.write_text("> (foo 1)\n=1\n> bar")
        result = runner.invoke(app, ["unit", str(transcript), "--cursor", "4"])
        assert result.exit_code == 0
        assert result.stdout == "(foo 1)\n"

    def test_custom_prompt(self, tmp_path) -> None:
        transcript = tmp_path / "session.txt"
        transcript.write_text(">>> [1, 2]")
        result = runner.invoke(app, ["unit", str(transcript), "-p", r"^>>> "])
        assert result.exit_code == 0
        assert result.stdout == "[1, 2]\n"

    def test_no_prompt(self, tmp_path) -> None:
        transcript = tmp_path / "session.txt"
        transcript.write_text("just output\n")
        result = runner.invoke(app, ["unit", str(transcript)])
        assert result.exit_code == 2

    def test_unbalanced(self, tmp_path) -> None:
        transcript = tmp_path / "session.txt"
        transcript.write_text("> (foo")
        result = runner.invoke(app, ["unit", str(transcript)])
        assert result.exit_code == 1

    def test_missing_transcript(self, tmp_path) -> None:
        result = runner.invoke(app, ["unit", str(tmp_path / "absent.txt")])
        assert result.exit_code == 1


class TestImplementations:
    def test_lists_configured(self, tmp_path) -> None:
        path = tmp_path / "replmux.json"
        path.write_text(
            json.dumps(
                {
                    "implementations": {"cs": {"command": "coffee -i"}},
                    "default_implementation": "cs",
                }
            )
        )
        result = runner.invoke(app, ["implementations", "--config", str(path)])
        assert result.exit_code == 0
        assert "coffee -i" in result.stdout
        assert "(default)" in result.stdout


class TestRun:
    def test_unknown_implementation(self) -> None:
        result = runner.invoke(app, ["run", "cat", "--impl", "nope"])
        assert result.exit_code == 1
