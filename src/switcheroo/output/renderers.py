"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console backed by a StringIO buffer, so
:func:`render_result` can return plain text (Rich drops color codes when the
buffer is not a terminal, as under CliRunner or in a pipe).

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from io import StringIO
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

if TYPE_CHECKING:
    from switcheroo.services.result import ServiceResult

SWITCHEROO_THEME = Theme(
    {
        "sw.ok": "bold green",
        "sw.error": "bold red",
        "sw.op": "bold cyan",
        "sw.key": "dim",
        "sw.chain": "bold blue",
        "sw.port": "magenta",
        "sw.pid": "yellow",
    }
)
CONSOLE_WIDTH = 120


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = Console(
        file=StringIO(), theme=SWITCHEROO_THEME, highlight=False, width=CONSOLE_WIDTH
    )

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    assert isinstance(console.file, StringIO)
    return console.file.getvalue().rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    items = result.data.get("items")
    if items and isinstance(items, list):
        return "\n".join(_rule_ref(item) for item in items)

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _rule_ref(item: dict[str, Any]) -> str:
    return f"{item.get('chain', '')}:{item.get('number', '')}"


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK status line."""
    label = Text("OK", style="sw.ok")
    op = Text(f"  {result.op}", style="sw.op")
    console.print(label, op, end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}:", style="sw.key")
    if key == "port" or key.endswith("_port"):
        v = Text(str(value), style="sw.port")
    else:
        v = Text(str(value))
    console.print(k, v, end="")
    console.print()


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print the meta block (verbose only)."""
    if not result.meta:
        return
    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        console.print(Text(f"    {k}: {v}"))


def _rule_table(items: list[dict[str, Any]]) -> Table:
    """Build a Rich Table of rules in deletion order."""
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Chain", style="sw.chain", no_wrap=True)
    table.add_column("Num", justify="right")
    table.add_column("Port", style="sw.port", justify="right")
    table.add_column("PID", style="sw.pid", justify="right")
    for item in items:
        table.add_row(
            str(item.get("chain", "")),
            str(item.get("number", "")),
            str(item.get("port", "")),
            str(item.get("pid", "")),
        )
    return table


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="sw.error")
    op = Text(f"  {result.op}", style="sw.op")
    sep = Text(" — ")
    console.print(label, op, sep, Text(msg))

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(Text(f"    {k}: {v}"))


# ── Operation renderers ───────────────────────────────────────────────


def _render_rules(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render discovered rules as a table."""
    _status_line(console, result)
    items = result.data.get("items", [])
    if items:
        console.print(_rule_table(items))
    console.print(f"\n{result.data.get('count', len(items))} rules")
    if verbose:
        _render_meta(console, result)


def _render_cleanup(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _field(console, "rules_deleted", result.data.get("rules_deleted", 0))
    items = result.data.get("items", [])
    if verbose and items:
        console.print(_rule_table(items))
    if verbose:
        _render_meta(console, result)


def _render_finalize(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    data = result.data
    _field(console, "route", f":{data.get('incoming_port')} -> :{data.get('port')}")
    _field(console, "chains", "+".join(data.get("chains", [])))
    _field(console, "rules_deleted", data.get("rules_deleted", 0))
    _field(console, "processes_signaled", data.get("processes_signaled", 0))
    if verbose:
        _render_meta(console, result)


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        if isinstance(value, (dict, list)):
            _field(console, key, json.dumps(value, separators=(",", ":")))
        else:
            _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "rules": _render_rules,
    "cleanup": _render_cleanup,
    "finalize": _render_finalize,
}
