# dotcoach/ui/report.py
"""
Rendering of analysis results and suggestions: rich tables for the terminal,
plus JSON and Markdown for files. Every command text shown here is scrubbed
first, so a report can be pasted anywhere.
"""
from __future__ import annotations

import json
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from ..analysis import scrub_alerts, scrub_patterns
from ..utils.schema import AnalysisResult, Suggestion

SEVERITY_STYLE = {"safe": "green", "warning": "yellow", "danger": "bold red"}

_SYNTAX = {"bash": "bash", "zsh": "bash", "powershell": "powershell"}


def _when(ts) -> str:
    return ts.strftime("%Y-%m-%d %H:%M") if ts else "-"


def scrubbed_copy(result: AnalysisResult) -> AnalysisResult:
    return result.model_copy(
        update={
            "patterns": scrub_patterns(result.patterns),
            "safety_alerts": scrub_alerts(result.safety_alerts),
        }
    )


def patterns_table(result: AnalysisResult) -> Table:
    t = Table(title="Repeated commands", box=box.SIMPLE_HEAVY, show_lines=False)
    t.add_column("#", justify="right", style="dim")
    t.add_column("Pattern", style="cyan", overflow="fold")
    t.add_column("Count", justify="right")
    t.add_column("Variations", justify="right", style="dim")
    t.add_column("Last used", style="dim")
    for i, p in enumerate(result.patterns, 1):
        t.add_row(str(i), escape(p.pattern), str(p.frequency), str(len(p.variations)), _when(p.last_used))
    return t


def alerts_table(result: AnalysisResult) -> Table:
    t = Table(title="Risky commands", box=box.SIMPLE_HEAVY)
    t.add_column("Severity")
    t.add_column("Command", overflow="fold")
    t.add_column("Count", justify="right")
    t.add_column("Risk", overflow="fold")
    t.add_column("Safer alternative", overflow="fold", style="green")
    for a in result.safety_alerts:
        style = SEVERITY_STYLE.get(a.severity, "")
        t.add_row(
            f"[{style}]{a.severity}[/{style}]",
            escape(a.pattern),
            str(a.frequency),
            escape(a.risk),
            escape(a.safer_alternative),
        )
    return t


def render_analysis(result: AnalysisResult, console: Optional[Console] = None) -> None:
    console = console or Console()
    safe = scrubbed_copy(result)
    source = escape(safe.history_file or "<stdin>")
    console.print(
        f"[bold]{safe.shell}[/bold] history {source}: "
        f"{safe.total_commands} commands, {safe.unique_commands} unique"
    )
    if safe.patterns:
        console.print(patterns_table(safe))
    else:
        console.print("[yellow]No repeated patterns found. Try lowering --min-frequency.[/yellow]")
    if safe.safety_alerts:
        console.print(alerts_table(safe))


def render_suggestions(
    suggestions: List[Suggestion],
    notes: List[str],
    shell: str = "bash",
    console: Optional[Console] = None,
) -> None:
    console = console or Console()
    if not suggestions:
        console.print("[yellow]No suggestions returned.[/yellow]")
    for i, s in enumerate(suggestions, 1):
        style = SEVERITY_STYLE.get(s.safety or "safe", "")
        title = f"[{i}] {s.type} {escape(s.name) or ''}".rstrip()
        body = Syntax(s.code, _SYNTAX.get(shell, "bash"), word_wrap=True)
        console.print(Panel(body, title=title, subtitle=escape(s.pattern), border_style=style))
        if s.explanation:
            console.print(f"    {escape(s.explanation)}")
    if notes:
        console.print("[yellow]Notes:[/yellow]", escape("; ".join(notes)))


def to_json(result: AnalysisResult, suggestions: Optional[List[Suggestion]] = None) -> str:
    data = scrubbed_copy(result).model_dump(mode="json")
    if suggestions is not None:
        data["suggestions"] = [s.model_dump(mode="json") for s in suggestions]
    return json.dumps(data, indent=2, ensure_ascii=False)


def _md_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def to_markdown(result: AnalysisResult, suggestions: Optional[List[Suggestion]] = None) -> str:
    safe = scrubbed_copy(result)
    lines = [
        "# Shell history report",
        "",
        f"- Shell: {safe.shell}",
        f"- History file: {safe.history_file or '-'}",
        f"- Commands: {safe.total_commands} ({safe.unique_commands} unique)",
        "",
        "## Repeated commands",
        "",
    ]
    if safe.patterns:
        lines += ["| # | Pattern | Count | Last used |", "|---|---|---|---|"]
        for i, p in enumerate(safe.patterns, 1):
            lines.append(f"| {i} | `{_md_cell(p.pattern)}` | {p.frequency} | {_when(p.last_used)} |")
    else:
        lines.append("No repeated patterns found.")

    lines += ["", "## Risky commands", ""]
    if safe.safety_alerts:
        lines += ["| Severity | Command | Count | Risk | Safer alternative |", "|---|---|---|---|---|"]
        for a in safe.safety_alerts:
            lines.append(
                f"| {a.severity} | `{_md_cell(a.pattern)}` | {a.frequency} | "
                f"{_md_cell(a.risk)} | {_md_cell(a.safer_alternative)} |"
            )
    else:
        lines.append("None found.")

    if suggestions:
        lang = _SYNTAX.get(safe.shell, "bash")
        lines += ["", "## Suggestions", ""]
        for s in suggestions:
            lines += [f"### {s.name or s.type}", "", f"For `{_md_cell(s.pattern)}`. {s.explanation}".rstrip(), ""]
            lines += [f"```{lang}", s.code, "```", ""]

    return "\n".join(lines).rstrip() + "\n"


def suggestions_to_text(suggestions: List[Suggestion]) -> str:
    """Plain shell-comment text, suitable for sourcing after review."""
    chunks = []
    for s in suggestions:
        head = f"# {s.name or s.type}: {s.explanation}".rstrip(": ")
        if s.safety and s.safety != "safe":
            head += f" [{s.safety}]"
        chunks.append(f"{head}\n# pattern: {s.pattern}\n{s.code}\n")
    return "\n".join(chunks)
