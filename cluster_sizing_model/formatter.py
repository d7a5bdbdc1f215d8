"""
Plain-text formatting primitives for sizing summaries.

Every function returns plain text drawn with box-drawing characters.
ANSI color is added afterwards by colorize(), only for terminal display,
so the same text can be written to summary.md unchanged.
"""

import os
import re
import sys
from typing import Any, List, Optional, Sequence, Tuple


def supports_color() -> bool:
    """Detect whether the terminal supports ANSI color output.

    Respects NO_COLOR (https://no-color.org/) and FORCE_COLOR env vars.
    """
    if os.environ.get('NO_COLOR') is not None:
        return False
    if os.environ.get('FORCE_COLOR') is not None:
        return True
    if not hasattr(sys.stdout, 'isatty'):
        return False
    return sys.stdout.isatty()


# ── Box-drawing characters ──────────────────────────────────────────

_HEAVY_H = '═'
_LIGHT_H = '─'
_VL = '│'
_CORNERS = {
    'top': ('┌', '┬', '┐'),
    'mid': ('├', '┼', '┤'),
    'bottom': ('└', '┴', '┘'),
}


# ── Formatting primitives ──────────────────────────────────────────

def title(text: str, width: int = 60) -> str:
    """Title centered between heavy rules.

    Example::

        ═════════ Cluster Sizing: prod ═════════
    """
    padding = max(4, width - len(text) - 2)
    left = padding // 2
    return f"{_HEAVY_H * left} {text} {_HEAVY_H * (padding - left)}"


def heading(text: str) -> str:
    """Section heading underlined with a light rule."""
    return f"  {text}\n  {_LIGHT_H * len(text)}"


def kv_block(items: Sequence[Tuple[str, str]], indent: int = 2) -> str:
    """Key-value pairs aligned with dot leaders.

    Example::

        VMs ······ 120
        vCPUs ···· 480
    """
    if not items:
        return ""
    width = max(len(k) for k, _ in items)
    prefix = ' ' * indent
    return "\n".join(
        f"{prefix}{key} {'·' * (width - len(key) + 2)} {value}"
        for key, value in items
    )


def table(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
    aligns: Optional[Sequence[str]] = None,
) -> str:
    """Bordered table.

    Args:
        headers: Column header strings.
        rows: Row values; missing trailing cells render empty.
        aligns: Per-column 'l', 'r' or 'c' (default all 'l').

    Example::

        ┌──────────────────┬───────┬────────┐
        │ Profile          │ Total │ Result │
        ├──────────────────┼───────┼────────┤
        │ bx2d-metal-96x384│     6 │  PASS  │
        └──────────────────┴───────┴────────┘
    """
    if not headers:
        return ""

    n_cols = len(headers)
    aligns = list(aligns) if aligns is not None else ['l'] * n_cols

    widths = [len(str(h)) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[:n_cols]):
            widths[i] = max(widths[i], len(str(cell)))

    def _cell(value: Any, i: int) -> str:
        s = str(value)
        if aligns[i] == 'r':
            s = s.rjust(widths[i])
        elif aligns[i] == 'c':
            s = s.center(widths[i])
        else:
            s = s.ljust(widths[i])
        return f" {s} "

    def _rule(kind: str) -> str:
        left, mid, right = _CORNERS[kind]
        return left + mid.join(_LIGHT_H * (w + 2) for w in widths) + right

    def _row(values: Sequence[Any]) -> str:
        cells = [_cell(values[i] if i < len(values) else '', i) for i in range(n_cols)]
        return _VL + _VL.join(cells) + _VL

    lines = [_rule('top'), _row(headers), _rule('mid')]
    lines.extend(_row(row) for row in rows)
    lines.append(_rule('bottom'))
    return "\n".join(lines)


def badge(label: str, value: str, indent: int = 2) -> str:
    """Highlighted key result, e.g. ``▸ Tolerates: 2 node failures``."""
    return f"{' ' * indent}▸ {label}: {value}"


def note_block(lines_list: Sequence[str], indent: int = 2) -> str:
    """Indented notes with dot markers."""
    prefix = ' ' * indent
    return "\n".join(f"{prefix}· {line}" for line in lines_list)


# ── ANSI Color Post-Processing ─────────────────────────────────────

_RESET = '\033[0m'
_BOLD = '\033[1m'
_DIM = '\033[2m'
_GREEN = '\033[32m'
_RED = '\033[31m'
_YELLOW = '\033[33m'
_CYAN = '\033[36m'

_STATUS_COLORS = {
    'PASS': _GREEN,
    'FAIL': _RED,
    'N/A': _DIM + _YELLOW,
}
_STATUS_RE = re.compile(r'\b(PASS|FAIL)\b|N/A')


def colorize(text: str) -> str:
    """Apply ANSI colors to text produced by the primitives above.

    Titles are bold cyan, rules and notes dim, badge markers yellow,
    PASS green, FAIL red and N/A dim yellow.
    """
    return '\n'.join(_colorize_line(line) for line in text.split('\n'))


def _colorize_status(line: str) -> str:
    def _repl(m: re.Match) -> str:
        s = m.group(0)
        return f"{_STATUS_COLORS[s]}{s}{_RESET}"
    return _STATUS_RE.sub(_repl, line)


def _colorize_line(line: str) -> str:
    stripped = line.strip()

    if _HEAVY_H in line:
        return f"{_BOLD}{_CYAN}{line}{_RESET}"

    if stripped and all(c == _LIGHT_H for c in stripped):
        return f"{_DIM}{line}{_RESET}"

    # Table borders
    if stripped and stripped[0] in ('┌', '├', '└'):
        return f"{_DIM}{line}{_RESET}"

    if _VL in line:
        cells: List[str] = line.split(_VL)
        return f"{_DIM}{_VL}{_RESET}".join(_colorize_status(c) for c in cells)

    if stripped.startswith('·'):
        return f"{_DIM}{line}{_RESET}"

    if '▸' in line:
        line = line.replace('▸', f"{_YELLOW}▸{_RESET}")

    return _colorize_status(line)
