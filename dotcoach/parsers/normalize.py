# dotcoach/parsers/normalize.py
from __future__ import annotations

import re
from typing import Iterator, Tuple, Union

_NEWLINE_RE = re.compile(r"\r\n|\r|\n")

# zsh writes bytes >= 0x83 as META followed by (byte ^ 32)
ZSH_META = 0x83

# trailing continuation marker per shell
CONTINUATION = {
    "bash": "\\",
    "zsh": "\\",
    "powershell": "`",
}


def unmetafy(data: bytes) -> bytes:
    """Undo zsh's history metafication. Bytes without META pass through untouched."""
    if ZSH_META not in data:
        return data
    out = bytearray()
    it = iter(data)
    for b in it:
        if b == ZSH_META:
            nxt = next(it, None)
            if nxt is None:
                break
            out.append(nxt ^ 32)
        else:
            out.append(b)
    return bytes(out)


def decode_history(raw: Union[str, bytes], shell: str = "bash") -> str:
    if isinstance(raw, str):
        return raw
    if shell == "zsh":
        raw = unmetafy(raw)
    text = raw.decode("utf-8", errors="replace")
    # PowerShell on Windows likes to write a BOM
    return text.lstrip("\ufeff")


def physical_lines(text: str) -> list[str]:
    if not text:
        return []
    lines = _NEWLINE_RE.split(text)
    # a trailing newline does not start another line
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _continues(line: str, marker: str) -> bool:
    if marker == "\\":
        # an even run of backslashes is escaped backslashes, not a continuation
        stripped = line.rstrip("\\")
        return (len(line) - len(stripped)) % 2 == 1
    return line.endswith(marker)


def logical_lines(text: str, shell: str = "bash") -> Iterator[Tuple[int, str]]:
    """
    Yield (line_number, logical_line) pairs. line_number is the 1-based number
    of the first physical line that contributed to the logical line.

    A physical line ending in the shell's continuation marker is joined to the
    next one: the marker is dropped and the two pieces are joined with a single
    space. A dangling continuation on the final line is flushed as-is.
    """
    marker = CONTINUATION.get(shell, "\\")
    start = 0
    parts: list[str] = []

    for idx, line in enumerate(physical_lines(text), 1):
        if not parts:
            start = idx
        if _continues(line, marker):
            parts.append(line[: -len(marker)].rstrip())
            continue
        parts.append(line)
        yield start, _join(parts)
        parts = []

    if parts:
        yield start, _join(parts)


def _join(parts: list[str]) -> str:
    head, *rest = parts
    pieces = [head] + [p.strip() for p in rest]
    return " ".join(p for p in pieces if p).strip()
