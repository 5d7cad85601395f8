import json

import pytest

from dotcoach import cli

HISTORY = "\n".join(["git status"] * 4 + ["DB_PASSWORD=hunter2 ./migrate.sh"] * 3 + ["rm -rf build"]) + "\n"


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("HISTFILE", raising=False)
    monkeypatch.delenv("DOTCOACH_HISTORY_FILE", raising=False)
    return tmp_path


@pytest.fixture
def hist(home):
    p = home / "history.txt"
    p.write_text(HISTORY)
    return p


def _run(home, *argv):
    return cli.main(["--config", str(home / "config.yaml"), *argv])


def test_analyze_table(home, hist, capsys):
    assert _run(home, "analyze", "--history-file", str(hist), "--min-frequency", "2") == 0
    out = capsys.readouterr().out
    assert "git status" in out
    assert "hunter2" not in out


def test_analyze_missing_file_exits_1(home, capsys):
    assert _run(home, "analyze", "--history-file", str(home / "missing")) == 1
    assert "cannot read history" in capsys.readouterr().err


def test_analyze_invalid_config_exits_2(home, hist):
    assert _run(home, "analyze", "--history-file", str(hist), "--min-frequency", "0") == 2


def test_invalid_config_is_reported_before_io(home):
    assert _run(home, "analyze", "--history-file", str(home / "missing"), "--top", "0") == 2


def test_empty_history_exits_0(home, capsys):
    empty = home / "empty"
    empty.write_text("")
    assert _run(home, "analyze", "--history-file", str(empty)) == 0
    assert "No commands found" in capsys.readouterr().out


def test_report_json_to_file_is_scrubbed(home, hist):
    out = home / "report.json"
    assert _run(home, "report", "--history-file", str(hist), "--min-frequency", "2",
                "--format", "json", "--output", str(out)) == 0
    text = out.read_text()
    assert "hunter2" not in text
    data = json.loads(text)
    assert data["total_commands"] == 8
    assert data["patterns"][0]["pattern"] == "git status"
    assert data["safety_alerts"][0]["pattern"] == "DB_PASSWORD=[REDACTED] ./migrate.sh"


def test_report_markdown(home, hist, capsys):
    assert _run(home, "report", "--history-file", str(hist), "--min-frequency", "2") == 0
    out = capsys.readouterr().out
    assert out.startswith("# Shell history report")
    assert "`rm -rf build`" in out
    assert "hunter2" not in out


def test_suggest_dry_run_writes_file(home, hist):
    out = home / "suggestions.sh"
    assert _run(home, "suggest", "--history-file", str(hist), "--min-frequency", "2",
                "--dry-run", "--output", str(out)) == 0
    text = out.read_text()
    assert "safe-rm" in text
    assert "hunter2" not in text


def test_doctor(home, capsys):
    assert cli.main(["doctor"]) == 0
    assert "dotcoach doctor" in capsys.readouterr().out


def test_non_numeric_env_setting_exits_2(home, hist, monkeypatch, capsys):
    monkeypatch.setenv("DOTCOACH_MIN_FREQUENCY", "abc")
    assert _run(home, "analyze", "--history-file", str(hist)) == 2
    assert "invalid configuration" in capsys.readouterr().err
