"""Rich-based rendering for mail listings, messages and CLI status lines.

Status lines (success/warning/error) go to stderr; listings and message
bodies are rendered onto whichever console the caller passes in.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any, Optional

from rich import box
from rich.console import Console, Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from .message import Message, MessageType, Priority

# Global console instance for status output.
console = Console(stderr=True, soft_wrap=True)

_TS_SHORT = "%Y-%m-%d %H:%M"
_TS_LONG = "%Y-%m-%d %H:%M:%S"


def _safe_json_format(data: Any, max_length: int = 2000) -> str:
    """Format data as JSON with truncation."""
    json_str = json.dumps(data, indent=2, default=str, ensure_ascii=False)
    if len(json_str) > max_length:
        json_str = json_str[:max_length] + "\n... (truncated)"
    return json_str


def _details_panel(title: str, data: dict[str, Any], border_style: str) -> Panel:
    syntax = Syntax(_safe_json_format(data, max_length=500), "json", theme="monokai", line_numbers=False, word_wrap=True)
    return Panel(
        syntax,
        title=f"[bold {border_style}]{title}[/bold {border_style}]",
        border_style=border_style,
        box=box.ROUNDED,
        padding=(0, 1),
    )


def log_success(message: str, **kwargs: Any) -> None:
    """Log a success message with Rich formatting."""
    console.print(Text(f"✓ {message}", style="bold bright_green"))
    if kwargs:
        console.print(_details_panel("Details", kwargs, "bright_green"))


def log_error(message: str, error: Optional[Exception] = None, **kwargs: Any) -> None:
    """Log an error message with Rich formatting."""
    console.print(Text(f"❌ {message}", style="bold bright_red"))
    if error or kwargs:
        error_data = kwargs.copy()
        if error:
            error_data["error_type"] = type(error).__name__
            error_data["error_message"] = str(error)
        console.print(_details_panel("Error Details", error_data, "bright_red"))


def _type_marker(msg: Message) -> str:
    if msg.type is MessageType.NOTIFICATION:
        return ""
    return f" [{msg.type.value}]"


def _priority_marker(msg: Message) -> str:
    return " [bold]![/bold]" if msg.is_important else ""


def _timestamp(msg: Message, fmt: str) -> str:
    return msg.timestamp.strftime(fmt) if msg.timestamp else "-"


def build_inbox_table(messages: Sequence[Message], title: str) -> Table:
    """Tabulate an inbox listing, newest first as given."""
    table = Table(title=title, box=box.SIMPLE, show_edge=False, header_style="bold")
    table.add_column("", width=1, no_wrap=True)
    table.add_column("Subject", overflow="fold")
    table.add_column("From", no_wrap=True)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Date", style="dim", no_wrap=True)
    for msg in messages:
        table.add_row(
            "○" if msg.read else "●",
            escape(msg.subject) + escape(_type_marker(msg)) + _priority_marker(msg),
            escape(msg.from_),
            msg.id,
            _timestamp(msg, _TS_SHORT),
        )
    return table


def render_message(msg: Message) -> RenderableType:
    """Full view of one message: header fields then the body."""
    if msg.priority is Priority.URGENT:
        flag = " [bold red][URGENT][/bold red]"
    elif msg.priority is Priority.HIGH:
        flag = " [bold yellow][HIGH PRIORITY][/bold yellow]"
    else:
        flag = ""

    header = Table(show_header=False, box=None, padding=(0, 1))
    header.add_column("Key", style="bold bright_yellow", no_wrap=True)
    header.add_column("Value", overflow="fold")
    header.add_row("From", escape(msg.from_))
    header.add_row("To", escape(msg.to))
    header.add_row("Date", _timestamp(msg, _TS_LONG))
    header.add_row("ID", f"[dim]{msg.id}[/dim]")
    if msg.thread_id:
        header.add_row("Thread", f"[dim]{msg.thread_id}[/dim]")
    if msg.reply_to:
        header.add_row("Reply-To", f"[dim]{escape(msg.reply_to)}[/dim]")

    components: list[RenderableType] = [
        Text.from_markup(f"[bold]Subject:[/bold] {escape(msg.subject)}{escape(_type_marker(msg))}{flag}"),
        header,
    ]
    if msg.body:
        components.append(Panel(escape(msg.body), border_style="bright_cyan", box=box.ROUNDED, padding=(0, 1)))
    return Group(*components)


def render_thread(messages: Sequence[Message], thread_id: str) -> RenderableType:
    """Render a thread oldest first, joined by a vertical rule."""
    components: list[RenderableType] = [
        Text.from_markup(f"[bold]🧵 Thread:[/bold] {escape(thread_id)} ({len(messages)} messages)"),
    ]
    if not messages:
        components.append(Text("  (no messages in thread)", style="dim"))
    for i, msg in enumerate(messages):
        if i > 0:
            components.append(Text("  │", style="dim"))
        components.append(
            Text.from_markup(f"  [bold]●[/bold] {escape(msg.subject)}{escape(_type_marker(msg))}{_priority_marker(msg)}")
        )
        components.append(
            Text.from_markup(
                f"    [dim]{msg.id}[/dim] from {escape(msg.from_)} to {escape(msg.to)}\n"
                f"    [dim]{_timestamp(msg, _TS_SHORT)}[/dim]"
            )
        )
        if msg.body:
            components.append(Text(f"    {msg.body}"))
    return Group(*components)


__all__ = [
    "build_inbox_table",
    "console",
    "log_error",
    "log_success",
    "render_message",
    "render_thread",
]
