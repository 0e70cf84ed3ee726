"""Colorized console output for the ``atlas-prov`` CLI.

Thin wrapper around :mod:`rich`.  Human-readable status goes through this
module; ``--json`` output and ``logger.*`` calls bypass it.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel

from atlas_prov.state.models import Outcome, OperationStatus

# Shared console; force_terminal=None lets Rich decide.
console = Console(stderr=False, force_terminal=None)

# ── Symbols ────────────────────────────────────────────────────────────────

_PASS = "[bold green]✓[/]"
_FAIL = "[bold red]✗[/]"
_ARROW = "[bold cyan]›[/]"
_DOT = "[dim]·[/]"

_STATUS_STYLE = {
    OperationStatus.SUCCESS: ("green", _PASS),
    OperationStatus.IN_PROGRESS: ("cyan", _ARROW),
    OperationStatus.FAILED: ("red", _FAIL),
}


# ── Lines ──────────────────────────────────────────────────────────────────


def phase(title: str) -> None:
    """Section header for one CLI invocation."""
    console.print()
    console.print(f"[bold blue]── {title} ──[/]")


def info(msg: str) -> None:
    console.print(f"  {_DOT} [dim]{msg}[/]")


def error_msg(msg: str) -> None:
    """Bold red error message (not indented)."""
    console.print(f"[bold red]ERROR:[/] {msg}")


def _field(key: str, value: Any) -> None:
    console.print(f"    [bold]{key}[/]: {value}", highlight=False)


def _panel(status: OperationStatus, title: str, body: str) -> None:
    color, symbol = _STATUS_STYLE[status]
    console.print()
    console.print(
        Panel(
            body,
            title=f"{symbol} [bold {color}]{title}[/]",
            border_style=color,
            padding=(1, 2),
        )
    )


def _pretty(data: Optional[Any]) -> str:
    return json.dumps(data, indent=2, sort_keys=True, default=str)


# ── Outcome rendering ─────────────────────────────────────────────────────


def render_outcome(outcome: Outcome) -> None:
    """Print *outcome* for a human reader."""
    status = outcome.status

    if status == OperationStatus.SUCCESS and outcome.models is not None:
        console.print(f"  {_PASS} {outcome.message} ({len(outcome.models)} resources)")
        for model in outcome.models:
            console.print(_pretty(model), highlight=False)
        return

    if status == OperationStatus.SUCCESS:
        body = _pretty(outcome.model) if outcome.model else outcome.message
        _panel(status, outcome.message or "Complete", body)
        return

    if status == OperationStatus.IN_PROGRESS:
        console.print(f"  {_ARROW} {outcome.message or 'Pending'}")
        _field("retry in", f"{outcome.callback_delay_seconds}s")
        context: Dict[str, Any] = outcome.callback_context or {}
        _field("context", json.dumps(context, sort_keys=True))
        info("Re-run the same command with --context to continue.")
        return

    category = outcome.error_category.value if outcome.error_category else "Unknown"
    body = outcome.message
    if outcome.retryable:
        body += "\n\nThe failure is transient; the operation may be retried."
    _panel(status, f"FAILED ({category})", body)
