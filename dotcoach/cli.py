# dotcoach/cli.py
from __future__ import annotations

import argparse
import logging
import pathlib
import sys
from typing import Optional, Sequence

import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from .agent.agent import PROVIDERS, run_suggest
from .analysis import analyze_history, load_history
from .parsers.history import SHELL_KINDS
from .ui.report import render_analysis, render_suggestions, suggestions_to_text, to_json, to_markdown
from .utils.config import analysis_config, load_config
from .utils.env import load_env
from .utils.schema import AnalysisResult
from .utils.shells import detect_shell, resolve_history_path

log = logging.getLogger("dotcoach")

EXIT_OK = 0
EXIT_IO = 1
EXIT_CONFIG = 2

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _add_source_args(p: argparse.ArgumentParser, with_top: bool = True) -> None:
    p.add_argument("--shell", default=None, choices=list(SHELL_KINDS), help="history format (default: auto)")
    p.add_argument("--history-file", default=None, help="history file to read, '-' for stdin")
    p.add_argument("--min-frequency", type=int, default=None, help="minimum repetitions for a pattern")
    if with_top:
        p.add_argument("--top", type=int, default=None, help="show at most N patterns")
    p.add_argument("--similarity", type=float, default=None, help="near-duplicate threshold in (0, 1]")
    p.add_argument("--normalize-numbers", action="store_true", default=None,
                   help="treat commands differing only in numbers as the same")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dotcoach", description="Mine shell history for repeated and risky commands.")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    p.add_argument("--config", default=None, help="config file (default: ~/.dotcoach/config.yaml)")
    sub = p.add_subparsers(dest="cmd", required=True)

    a = sub.add_parser("analyze", help="show repeated command patterns and risky commands")
    _add_source_args(a)
    a.add_argument("--format", default="table", choices=["table", "json", "markdown"])

    s = sub.add_parser("suggest", help="ask a suggestion engine for aliases and functions")
    _add_source_args(s, with_top=False)
    s.add_argument("--provider", default="local", choices=list(PROVIDERS))
    s.add_argument("--model", default=None, help="model name for the provider")
    s.add_argument("--dry-run", action="store_true", help="build the scrubbed payload but do not call the engine")
    s.add_argument("--output", default=None, help="write suggestions to a file instead of the terminal")

    r = sub.add_parser("report", help="write a summary report")
    _add_source_args(r)
    r.add_argument("--format", default="markdown", choices=["markdown", "json"])
    r.add_argument("--output", default=None, help="write the report to a file (default: stdout)")

    sub.add_parser("doctor", help="check environment and provider setup")
    return p


def _analyze(args: argparse.Namespace, cfg: dict) -> AnalysisResult:
    # validate before reading anything
    config = analysis_config(
        cfg,
        min_frequency=args.min_frequency,
        top=getattr(args, "top", None),
        similarity_threshold=args.similarity,
        normalize_numbers=args.normalize_numbers,
    )
    shell = args.shell or cfg.get("history", {}).get("shell") or "auto"
    override = args.history_file or cfg.get("history", {}).get("file") or None

    if override == "-":
        return analyze_history(sys.stdin.buffer.read(), shell=shell, config=config, history_file="<stdin>")

    path = resolve_history_path(detect_shell() if shell == "auto" else shell, override)
    log.debug("reading history from %s", path)
    return analyze_history(load_history(path), shell=shell, config=config, history_file=str(path))


def _write(path: str, text: str) -> None:
    p = pathlib.Path(path).expanduser()
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    console.print(f"[green]written to {p}[/green]")


def _cmd_analyze(args: argparse.Namespace, result: AnalysisResult) -> int:
    if args.format == "json":
        console.print_json(to_json(result))
    elif args.format == "markdown":
        console.out(to_markdown(result), end="")
    else:
        render_analysis(result, console)
    return EXIT_OK


def _cmd_suggest(args: argparse.Namespace, result: AnalysisResult, cfg: dict) -> int:
    with console.status(f"asking {args.provider} for suggestions..."):
        suggestions, notes = run_suggest(
            result, provider=args.provider, model=args.model, cfg=cfg, dry_run=args.dry_run
        )
    if args.output:
        _write(args.output, suggestions_to_text(suggestions))
        return EXIT_OK
    render_suggestions(suggestions, notes, shell=result.shell, console=console)
    return EXIT_OK


def _cmd_report(args: argparse.Namespace, result: AnalysisResult) -> int:
    text = to_json(result) + "\n" if args.format == "json" else to_markdown(result)
    if args.output:
        _write(args.output, text)
    else:
        console.out(text, end="")
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    load_env()

    if args.cmd == "doctor":
        from .doctor import main as doctor_main
        return doctor_main()

    try:
        cfg = load_config(args.config)
        result = _analyze(args, cfg)
    except ValidationError as e:
        err_console.print(f"[red]invalid configuration:[/red] {e}")
        return EXIT_CONFIG
    except OSError as e:
        err_console.print(f"[red]cannot read history:[/red] {e}")
        err_console.print("[yellow]Tip: use --history-file <path> to point at your history file.[/yellow]")
        return EXIT_IO
    except (ValueError, yaml.YAMLError) as e:
        err_console.print(f"[red]{e}[/red]")
        return EXIT_CONFIG

    if result.total_commands == 0:
        console.print("[yellow]No commands found in history file.[/yellow]")
        return EXIT_OK

    if args.cmd == "analyze":
        return _cmd_analyze(args, result)
    if args.cmd == "suggest":
        return _cmd_suggest(args, result, cfg)
    if args.cmd == "report":
        return _cmd_report(args, result)
    return EXIT_IO
