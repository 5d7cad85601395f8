# dotcoach/doctor.py
from __future__ import annotations

import os
import shutil

from rich.console import Console
from rich.table import Table

from .utils.config import CONFIG_PATH
from .utils.env import ENV_PATH, load_env
from .utils.shells import detect_shell, resolve_history_path


def _yes(flag: bool) -> str:
    return "[green]yes[/green]" if flag else "[red]no[/red]"


def main(console: Console = None) -> int:
    """Print what dotcoach would use, without reading history or calling any engine."""
    console = console or Console()
    load_env()

    shell = os.getenv("DOTCOACH_SHELL", "")
    if shell not in ("bash", "zsh", "powershell"):
        shell = detect_shell()
    history = resolve_history_path(shell, os.getenv("DOTCOACH_HISTORY_FILE") or None)

    t = Table(title="dotcoach doctor", show_header=False)
    t.add_column("check")
    t.add_column("value")
    t.add_row("shell", shell)
    t.add_row("history file", str(history))
    t.add_row("history file readable?", _yes(os.access(history, os.R_OK)))
    t.add_row("config", os.path.expanduser(CONFIG_PATH))
    t.add_row(".env", f"{os.path.expanduser(ENV_PATH)} ({'present' if os.path.exists(os.path.expanduser(ENV_PATH)) else 'absent'})")
    t.add_row("OPENAI_API_KEY set?", _yes(bool(os.getenv("OPENAI_API_KEY"))))
    t.add_row("ANTHROPIC_API_KEY set?", _yes(bool(os.getenv("ANTHROPIC_API_KEY"))))
    t.add_row("OLLAMA_HOST", os.getenv("OLLAMA_URL") or os.getenv("OLLAMA_HOST") or "(default)")
    t.add_row("ollama binary?", _yes(shutil.which("ollama") is not None))
    console.print(t)
    return 0
