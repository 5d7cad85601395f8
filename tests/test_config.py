import os
from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from dotcoach.utils.config import DEFAULT_CFG, analysis_config, deepmerge, env_overrides, load_config
from dotcoach.utils.env import load_env, parse_env
from dotcoach.utils.shells import default_history_path, detect_shell, resolve_history_path


def test_load_config_writes_defaults_on_first_run(tmp_path):
    path = tmp_path / "dotcoach" / "config.yaml"
    cfg = load_config(str(path))
    assert path.exists()
    assert yaml.safe_load(path.read_text()) == DEFAULT_CFG
    cfg["analysis"]["top"] = 1
    assert DEFAULT_CFG["analysis"]["top"] != 1


def test_load_config_merges_user_values(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("analysis:\n  min_frequency: 3\nproviders:\n  openai:\n    model: gpt-4o\n")
    cfg = load_config(str(path))
    assert cfg["analysis"]["min_frequency"] == 3
    assert cfg["analysis"]["top"] == DEFAULT_CFG["analysis"]["top"]
    assert cfg["providers"]["openai"]["model"] == "gpt-4o"
    assert cfg["providers"]["local"] == DEFAULT_CFG["providers"]["local"]


def test_load_config_rejects_non_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_deepmerge_does_not_mutate_inputs():
    base = {"a": {"b": 1, "c": 2}}
    out = deepmerge(base, {"a": {"b": 5}})
    assert out == {"a": {"b": 5, "c": 2}}
    assert base == {"a": {"b": 1, "c": 2}}


def test_analysis_config_overrides_skip_none():
    cfg = {"analysis": {"min_frequency": 3, "top": 10}}
    config = analysis_config(cfg, min_frequency=None, top=4)
    assert config.min_frequency == 3
    assert config.top == 4


def test_analysis_config_validates():
    with pytest.raises(ValidationError):
        analysis_config({"analysis": {"min_frequency": 0}})
    with pytest.raises(ValidationError):
        analysis_config(None, similarity_threshold=2.0)


def test_env_overrides_are_read_at_call_time(tmp_path, monkeypatch):
    monkeypatch.setenv("DOTCOACH_TOP", "7")
    monkeypatch.setenv("DOTCOACH_OPENAI_MODEL", "gpt-env")
    cfg = load_config(str(tmp_path / "config.yaml"))
    assert analysis_config(cfg).top == 7
    assert cfg["providers"]["openai"]["model"] == "gpt-env"
    assert yaml.safe_load((tmp_path / "config.yaml").read_text()) == DEFAULT_CFG


def test_env_overrides_stay_raw_until_validated():
    cfg = deepmerge(DEFAULT_CFG, env_overrides({"DOTCOACH_MIN_FREQUENCY": "abc", "DOTCOACH_SHELL": ""}))
    assert cfg["analysis"]["min_frequency"] == "abc"
    assert cfg["history"]["shell"] == "auto"
    with pytest.raises(ValidationError):
        analysis_config(cfg)


def test_load_env_sets_without_clobbering(tmp_path, monkeypatch):
    monkeypatch.setenv("DOTCOACH_TEST_NEW", "")
    monkeypatch.delenv("DOTCOACH_TEST_NEW")
    monkeypatch.setenv("DOTCOACH_TEST_KEEP", "real")
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# provider keys\n"
        "\n"
        'export DOTCOACH_TEST_NEW="quoted value"\n'
        "DOTCOACH_TEST_KEEP=from-file\n"
        "not a pair\n"
    )
    parsed = load_env(str(env_file))
    assert parsed == {"DOTCOACH_TEST_NEW": "quoted value", "DOTCOACH_TEST_KEEP": "from-file"}
    assert os.environ["DOTCOACH_TEST_NEW"] == "quoted value"
    assert os.environ["DOTCOACH_TEST_KEEP"] == "real"


def test_load_env_missing_file(tmp_path):
    assert load_env(str(tmp_path / "absent.env")) == {}


def test_parse_env_drops_invalid_keys():
    text = "GOOD=1\n2BAD=x\nexport  SPACED = 'a b' \nEMPTY=\n"
    assert parse_env(text) == {"GOOD": "1", "SPACED": "a b", "EMPTY": ""}


@pytest.mark.parametrize(
    "env, platform, expected",
    [
        ({"SHELL": "/bin/zsh"}, "darwin", "zsh"),
        ({"SHELL": "/usr/bin/bash"}, "linux", "bash"),
        ({"SHELL": "/usr/bin/pwsh"}, "linux", "powershell"),
        ({"PSModulePath": "C:\\x"}, "win32", "powershell"),
        ({}, "win32", "powershell"),
        ({}, "linux", "bash"),
    ],
)
def test_detect_shell_from_environment(env, platform, expected):
    assert detect_shell(env, platform) == expected


def test_default_history_paths():
    env = {"HOME": "/home/u"}
    assert default_history_path("bash", env, "linux") == Path("/home/u/.bash_history")
    assert default_history_path("zsh", env, "darwin") == Path("/home/u/.zsh_history")
    assert default_history_path("powershell", env, "linux") == Path(
        "/home/u/.local/share/powershell/PSReadLine/ConsoleHost_history.txt"
    )
    win = {"HOME": "/home/u", "APPDATA": "/appdata"}
    assert default_history_path("powershell", win, "win32") == Path(
        "/appdata/Microsoft/Windows/PowerShell/PSReadLine/ConsoleHost_history.txt"
    )


def test_histfile_and_override_win():
    env = {"HOME": "/home/u", "HISTFILE": "/tmp/h"}
    assert default_history_path("zsh", env, "linux") == Path("/tmp/h")
    assert resolve_history_path("zsh", "/elsewhere/hist", env, "linux") == Path("/elsewhere/hist")


def test_unknown_shell_has_no_default_path():
    with pytest.raises(ValueError):
        default_history_path("fish", {"HOME": "/home/u"}, "linux")
