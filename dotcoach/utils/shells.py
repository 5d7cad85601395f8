# dotcoach/utils/shells.py
from __future__ import annotations

import os
import pathlib
import sys
from typing import Mapping, Optional

PSREADLINE_FILE = "ConsoleHost_history.txt"


def detect_shell(env: Optional[Mapping[str, str]] = None, platform: Optional[str] = None) -> str:
    """
    Guess the user's interactive shell from the environment: $SHELL for
    bash/zsh, PowerShell's PSModulePath otherwise. Falls back to bash
    (powershell on Windows).
    """
    env = os.environ if env is None else env
    platform = platform or sys.platform
    name = pathlib.PurePath(env.get("SHELL", "")).name.lower()
    if name.startswith("zsh"):
        return "zsh"
    if name.startswith("bash"):
        return "bash"
    if name.startswith("pwsh") or name.startswith("powershell"):
        return "powershell"
    if env.get("PSModulePath") and (platform.startswith("win") or not name):
        return "powershell"
    return "powershell" if platform.startswith("win") else "bash"


def default_history_path(
    shell: str,
    env: Optional[Mapping[str, str]] = None,
    platform: Optional[str] = None,
) -> pathlib.Path:
    env = os.environ if env is None else env
    platform = platform or sys.platform
    home = pathlib.Path(env.get("HOME") or env.get("USERPROFILE") or pathlib.Path.home())

    if shell in ("bash", "zsh"):
        histfile = env.get("HISTFILE")
        if histfile:
            return pathlib.Path(os.path.expanduser(histfile))
        return home / (".zsh_history" if shell == "zsh" else ".bash_history")

    if shell == "powershell":
        if platform.startswith("win"):
            appdata = env.get("APPDATA") or str(home / "AppData" / "Roaming")
            return pathlib.Path(appdata) / "Microsoft" / "Windows" / "PowerShell" / "PSReadLine" / PSREADLINE_FILE
        data_home = env.get("XDG_DATA_HOME") or str(home / ".local" / "share")
        return pathlib.Path(data_home) / "powershell" / "PSReadLine" / PSREADLINE_FILE

    raise ValueError(f"no default history file for shell {shell!r}")


def resolve_history_path(
    shell: str,
    override: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    platform: Optional[str] = None,
) -> pathlib.Path:
    """An explicit path always wins; otherwise the shell's usual history file."""
    if override:
        return pathlib.Path(os.path.expanduser(override))
    return default_history_path(shell, env=env, platform=platform)
