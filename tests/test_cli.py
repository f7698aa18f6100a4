# tests/test_cli.py
"""
Tests for the shellcue command-line interface.
"""
import json
import os

import pytest
from typer.testing import CliRunner

from shellcue import __version__
from shellcue.cli.main import app
from shellcue.config import ConfigManager
from shellcue.engine import ShellCueEngine


@pytest.fixture
def cli(monkeypatch, app_config):
    """Invoke the CLI against a temporary database."""
    monkeypatch.setattr(
        "shellcue.cli.main.open_engine",
        lambda: ShellCueEngine(app_config, start_background=False),
    )
    monkeypatch.setattr("shellcue.cli.main.setup_logging", lambda debug=False: None)
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(app, list(args), **kwargs)
    return invoke


def _json(result):
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


def test_version(cli):
    result = cli("--version")
    assert result.exit_code == 0
    assert f"shellcue version: {__version__}" in result.output


def test_record_then_suggest(cli):
    assert cli("record", "git commit -m wip").exit_code == 0
    assert cli("record", "git commit --amend").exit_code == 0

    suggestions = _json(cli("suggest", "git commit ", "--json"))
    texts = {s["text"] for s in suggestions}
    assert {"-m", "--amend"} <= texts
    assert all(0.0 <= s["score"] <= 1.0 for s in suggestions)
    assert suggestions[0]["source"] == "learned"


def test_parameter_values_over_cli(cli):
    cli("record", 'git commit -m "fix tests"')
    [value] = _json(cli("suggest", "git commit -m ", "--json"))
    assert value["text"] == "fix tests"
    assert value["source"] == "parameter-value"


def test_suggest_without_data(cli):
    assert _json(cli("suggest", "docker ", "--json")) == []
    result = cli("suggest", "docker ")
    assert "No suggestions" in result.output


def test_suggest_table(cli):
    cli("record", "ls -a")
    result = cli("suggest", "ls ")
    assert result.exit_code == 0
    assert "-a" in result.output
    assert "learned" in result.output


def test_failed_command_is_not_suggested(cli):
    cli("record", "ls --bogus", "--failed")
    assert _json(cli("suggest", "ls ", "--json")) == []


def test_next_command_prediction(cli):
    cli("record", "git add .")
    predictions = _json(cli("next", "--json"))
    assert [p["text"] for p in predictions][:2] == ["git commit", "git status"]


def test_jump_first(cli, tmp_path):
    (tmp_path / "projects" / "shellcue").mkdir(parents=True)
    cli("record", "cd projects/shellcue", "--cwd", str(tmp_path))

    result = cli("jump", "shell", "--cwd", str(tmp_path), "--first")
    assert result.exit_code == 0
    assert result.output.strip() == os.path.join(str(tmp_path), "projects", "shellcue")


def test_jump_first_without_match_fails(cli, tmp_path):
    result = cli("jump", "nothing-here", "--cwd", str(tmp_path), "--first")
    assert result.exit_code == 1
    assert result.output == ""


def test_jump_json(cli, tmp_path):
    (tmp_path / "docs").mkdir()
    [suggestion] = _json(cli("jump", "docs", "--cwd", str(tmp_path), "--json"))
    assert suggestion["path"] == "docs"
    assert suggestion["match_type"] == "exact"


def test_stats(cli):
    cli("record", "git status")
    cli("record", "git status")
    cli("record", "make", "--failed")
    result = cli("stats")
    assert result.exit_code == 0
    assert "Learning statistics" in result.output
    assert "git" in result.output
    assert "67%" in result.output


def test_export_clear_import(cli, tmp_path):
    export_path = tmp_path / "export.json"
    cli("record", "ls -a")

    assert cli("export", str(export_path)).exit_code == 0
    assert json.loads(export_path.read_text(encoding="utf-8"))["format_version"] == 1

    assert "cleared" in cli("clear", "--yes").output
    assert _json(cli("suggest", "ls ", "--json")) == []

    result = cli("import", str(export_path))
    assert result.exit_code == 0
    assert "Merged 1 commands" in result.output
    assert [s["text"] for s in _json(cli("suggest", "ls ", "--json"))] == ["-a"]


def test_import_replace(cli, tmp_path):
    export_path = tmp_path / "export.json"
    cli("record", "ls -a")
    cli("export", str(export_path))
    cli("record", "git status")

    result = cli("import", str(export_path), "--replace")
    assert result.exit_code == 0
    assert "Replaced data with 1 commands" in result.output
    assert _json(cli("suggest", "git ", "--json")) == []


def test_import_bad_file(cli, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("not json at all", encoding="utf-8")
    result = cli("import", str(bad))
    assert result.exit_code == 1
    assert "Error" in result.output


def test_clear_asks_for_confirmation(cli):
    cli("record", "ls -a")
    result = cli("clear", input="n\n")
    assert "Cancelled" in result.output
    assert _json(cli("suggest", "ls ", "--json")) != []


def test_config_show_and_save(cli, monkeypatch, tmp_path):
    manager = ConfigManager(tmp_path / "config.toml")
    monkeypatch.setattr("shellcue.cli.main.config_manager", manager)

    result = cli("config")
    assert result.exit_code == 0
    assert "[learning]" in result.output

    assert cli("config", "--save").exit_code == 0
    assert (tmp_path / "config.toml").exists()
