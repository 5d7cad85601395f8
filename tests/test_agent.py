import pytest

from dotcoach.agent import agent
from dotcoach.agent.agent import coerce_suggestions, resolve_model, run_suggest, safety_suggestions
from dotcoach.analysis import analyze_history

HISTORY = "\n".join(["git status"] * 5 + ["TOKEN=abc123 make deploy"] * 5 + ["rm -rf build"]) + "\n"


def _result():
    return analyze_history(HISTORY, shell="bash", config={"min_frequency": 5})


def test_coerce_drops_invalid_items_with_a_note():
    suggestions, notes = coerce_suggestions(
        {
            "suggestions": [
                {"pattern": "git status", "type": "alias", "name": "gs", "code": "alias gs='git status'", "safety": ""},
                {"pattern": "x", "type": "macro", "code": "x"},
                "not a dict",
            ],
            "notes": ["from model"],
        }
    )
    assert [s.name for s in suggestions] == ["gs"]
    assert suggestions[0].safety is None
    assert notes == ["from model", "dropped 2 malformed suggestion(s)"]


def test_coerce_free_text_is_a_note():
    assert coerce_suggestions("  just words ") == ([], ["just words"])
    assert coerce_suggestions(None) == ([], ["empty_model_response"])


def test_safety_suggestions_are_scrubbed_wrappers():
    alerts = analyze_history("sudo rm -rf /tmp/x\nmysql -phunter2 db\n", shell="bash").safety_alerts
    suggestions = safety_suggestions(alerts)
    assert {s.name for s in suggestions} == {"safe-sudo", "safe-mysql"}
    assert all(s.type == "function" for s in suggestions)
    assert all("hunter2" not in s.pattern for s in suggestions)
    assert {s.safety for s in suggestions} == {"danger", "warning"}


def test_dry_run_makes_no_call(monkeypatch):
    def fail(model, payload):
        raise AssertionError("provider called during dry run")

    monkeypatch.setitem(agent.PROVIDERS, "local", fail)
    suggestions, notes = run_suggest(_result(), provider="local", dry_run=True)
    assert notes == ["dry-run enabled: no model call"]
    assert [s.pattern for s in suggestions] == ["TOKEN=[REDACTED] make deploy", "rm -rf build"]


def test_provider_gets_scrubbed_payload(monkeypatch):
    seen = {}

    def fake(model, payload):
        seen["model"] = model
        seen["payload"] = payload
        return {
            "suggestions": [
                {"pattern": "git status", "type": "alias", "name": "gs", "code": "alias gs='git status'"}
            ],
            "notes": [],
        }

    monkeypatch.setitem(agent.PROVIDERS, "openai", fake)
    suggestions, notes = run_suggest(_result(), provider="openai", model="gpt-test")
    assert seen["model"] == "gpt-test"
    assert "abc123" not in repr(seen["payload"])
    assert [s.name for s in suggestions][0] == "gs"
    assert notes == []


def test_unknown_provider():
    with pytest.raises(ValueError):
        run_suggest(_result(), provider="copilot")


def test_resolve_model_precedence(monkeypatch):
    monkeypatch.setenv("DOTCOACH_OPENAI_MODEL", "from-env")
    cfg = {"providers": {"openai": {"model": "from-config"}}}
    assert resolve_model("openai", cfg, "explicit") == "explicit"
    assert resolve_model("openai", cfg) == "from-config"
    assert resolve_model("openai", {}) == "from-env"
