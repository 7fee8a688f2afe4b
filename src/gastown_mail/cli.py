"""Command-line interface for agent mail (``gt-mail mail ...``)."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import get_settings
from .context import detect_sender
from .errors import MailError
from .logs import configure_logging, get_logger
from .message import Delivery, Message, Priority, parse_message_type, parse_priority
from .registry import DEFAULT_PREFIX, HQ_PREFIX, default_registry
from .rich_logger import build_inbox_table, log_error, log_success, render_message, render_thread
from .router import Router
from .store import build_store
from .tmux import Tmux
from .wait import WaitState, deadline_after, wait_for_mail

console = Console()
log = get_logger(__name__)

app = typer.Typer(help="Agent messaging between the Mayor, polecats and refineries.", no_args_is_help=True)
mail_app = typer.Typer(
    help=(
        "Send and receive messages between agents.\n\n"
        "Addresses: mayor/, <rig>/refinery, <rig>/<polecat>, <rig>/ (broadcast)."
    ),
    no_args_is_help=True,
)
app.add_typer(mail_app, name="mail")


@app.callback()
def _app_callback() -> None:
    configure_logging()


def _build_router() -> Router:
    settings = get_settings()
    sessions = Tmux(settings.tmux.bin, display_ms=settings.tmux.display_ms)
    return Router(build_store(settings), sessions)


@contextmanager
def _mail_errors(action: str) -> Iterator[None]:
    """Report mail errors on stderr and exit 1."""
    try:
        yield
    except MailError as exc:
        log_error(f"{action}: {exc}", type=exc.code, **exc.data)
        raise typer.Exit(code=1) from exc


def _print_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False))


@mail_app.command("send")
def mail_send(
    address: Annotated[str, typer.Argument(help="Recipient address (mayor/, <rig>/<polecat>, <rig>/refinery, <rig>/)")],
    subject: Annotated[str, typer.Option("--subject", "-s", help="Message subject")],
    body: Annotated[str, typer.Option("--message", "-m", help="Message body")] = "",
    priority: Annotated[str, typer.Option("--priority", help="low, normal, high or urgent")] = "normal",
    message_type: Annotated[
        str, typer.Option("--type", help="task, scavenge, notification or reply")
    ] = "notification",
    reply_to: Annotated[str, typer.Option("--reply-to", help="Message ID this is replying to")] = "",
    notify: Annotated[bool, typer.Option("--notify", "-n", help="Raise normal priority to high")] = False,
    interrupt: Annotated[
        bool, typer.Option("--interrupt", help="Inject the message directly into the recipient's session")
    ] = False,
) -> None:
    """Send a message to an agent."""
    if not subject:
        log_error("a subject is required (-s/--subject)")
        raise typer.Exit(code=1)

    msg_priority = parse_priority(priority)
    if notify and msg_priority is Priority.NORMAL:
        msg_priority = Priority.HIGH

    msg = Message(
        from_=detect_sender(),
        to=address,
        subject=subject,
        body=body,
        priority=msg_priority,
        type=parse_message_type(message_type),
        delivery=Delivery.INTERRUPT if interrupt else Delivery.QUEUE,
        reply_to=reply_to,
    )
    with _mail_errors("sending message"):
        sent = _build_router().send(msg)
    log.info("mail.sent", id=sent.id, to=address, thread_id=sent.thread_id)

    console.print(f"✓ Message sent to {address}", style="bold", markup=False, highlight=False)
    console.print(f"  Subject: {subject}", markup=False, highlight=False)
    if sent.type.value != "notification":
        console.print(f"  Type: {sent.type.value}", markup=False, highlight=False)
    console.print(f"  ID: {sent.id}", markup=False, highlight=False)
    console.print(f"  Thread: {sent.thread_id}", markup=False, highlight=False)


@mail_app.command("inbox")
def mail_inbox(
    address: Annotated[Optional[str], typer.Argument(help="Inbox address (default: this agent)")] = None,
    unread: Annotated[bool, typer.Option("--unread", "-u", help="Show only unread messages")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Check messages in an inbox."""
    target = address or detect_sender()
    with _mail_errors("listing messages"):
        mailbox = _build_router().get_mailbox(target)
        messages = mailbox.list_unread() if unread else mailbox.list()
        if as_json:
            _print_json([m.to_dict() for m in messages])
            return
        total, unread_count = mailbox.count()

    title = f"📬 Inbox: {target} ({total} messages, {unread_count} unread)"
    if not messages:
        console.print(title, markup=False, highlight=False)
        console.print("  (no messages)", style="dim", markup=False)
        return
    console.print(build_inbox_table(messages, title))


@mail_app.command("read")
def mail_read(
    message_id: Annotated[str, typer.Argument(help="Message ID from 'mail inbox'")],
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Read a message and mark it as read."""
    with _mail_errors("reading message"):
        msg = _build_router().get_mailbox(detect_sender()).read(message_id)
    if as_json:
        _print_json(msg.to_dict())
        return
    console.print(render_message(msg))


@mail_app.command("delete")
def mail_delete(
    message_id: Annotated[str, typer.Argument(help="Message ID to delete (acknowledge)")],
) -> None:
    """Delete (acknowledge) a message."""
    with _mail_errors("deleting message"):
        _build_router().get_mailbox(detect_sender()).delete(message_id)
    log_success("Message deleted")


@mail_app.command("check")
def mail_check(
    inject: Annotated[bool, typer.Option("--inject", help="Print a system-reminder for hooks")] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Silent non-blocking check (always exit 0)")] = False,
) -> None:
    """Check for new mail.

    Exits 0 when unread mail exists and 1 otherwise. With --quiet or --inject
    it always exits 0 and never fails.
    """
    silent = inject or quiet
    address = detect_sender()
    try:
        mailbox = _build_router().get_mailbox(address)
        _total, unread = mailbox.count()
        subjects = [f"- From {m.from_}: {m.subject}" for m in mailbox.list_unread()] if inject and unread else []
    except MailError as exc:
        if silent:
            log.debug("mail.check_failed", error=str(exc))
            return
        log_error(f"checking mail: {exc}")
        raise typer.Exit(code=1) from exc

    if quiet:
        return
    if as_json:
        _print_json({"address": address, "unread": unread, "has_new": unread > 0})
        return
    if inject:
        if unread > 0:
            typer.echo("<system-reminder>")
            typer.echo(f"You have {unread} unread message(s) in your inbox.\n")
            for line in subjects:
                typer.echo(line)
            typer.echo("")
            typer.echo("Run 'gt mail inbox' to see your messages, or 'gt mail read <id>' for a specific message.")
            typer.echo("</system-reminder>")
        return
    if unread > 0:
        typer.echo(f"📬 {unread} unread message(s)")
        raise typer.Exit(code=0)
    typer.echo("No new mail")
    raise typer.Exit(code=1)


@mail_app.command("thread")
def mail_thread(
    thread_id: Annotated[str, typer.Argument(help="Thread ID")],
    as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """View all messages in a conversation thread, oldest first."""
    with _mail_errors("getting thread"):
        messages = _build_router().get_mailbox(detect_sender()).list_by_thread(thread_id)
    if as_json:
        _print_json([m.to_dict() for m in messages])
        return
    console.print(render_thread(messages, thread_id))


@mail_app.command("wait")
def mail_wait(
    timeout: Annotated[int, typer.Option("--timeout", help="Timeout in seconds (0 = wait indefinitely)")] = 0,
) -> None:
    """Block until new mail arrives.

    Exit codes: 0 mail arrived, 1 timeout, 2 error.
    """
    settings = get_settings()
    address = detect_sender()
    try:
        mailbox = _build_router().get_mailbox(address)
    except MailError as exc:
        log_error(f"getting mailbox: {exc}")
        raise typer.Exit(code=2) from exc

    typer.echo(f"Waiting for mail in {address}...")
    result = wait_for_mail(mailbox, deadline_after(timeout), interval=settings.wait_poll_seconds)
    if result.state is WaitState.MAIL_ARRIVED:
        typer.echo(f"📬 {result.unread} message(s) arrived!")
    elif result.state is WaitState.TIMED_OUT:
        typer.echo("Timeout waiting for mail")
    else:
        log_error(f"checking mail: {result.error}")
    raise typer.Exit(code=result.state.exit_code)


@app.command("rigs")
def rigs() -> None:
    """List the session prefixes registered for rigs."""
    registry = default_registry()
    table = Table(title="Session prefixes", show_edge=False)
    table.add_column("Prefix", style="bold")
    table.add_column("Rig")
    table.add_row(HQ_PREFIX.rstrip("-"), "(hq, always known)")
    for prefix, rig_name in sorted(registry.snapshot().items()):
        table.add_row(prefix, rig_name)
    console.print(table)
    console.print(f"Unregistered rigs use prefix '{DEFAULT_PREFIX}'.", markup=False, highlight=False)


def main() -> None:
    app(prog_name="gt-mail")


__all__ = ["app", "main", "mail_app"]
