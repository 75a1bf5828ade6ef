"""Rich-based display functions for Inbox Triage."""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.prompt import Prompt
from rich.table import Table

from .constants import LOG_LEVEL_ENV_VAR
from .models import Category, MessageCategory

console = Console()

_CATEGORY_COLORS = {
    MessageCategory.IMPORTANT.value: "red",
    MessageCategory.RECEIPTS.value: "green",
    MessageCategory.SUBSCRIPTIONS.value: "cyan",
    MessageCategory.NEWSLETTERS.value: "blue",
    MessageCategory.MARKETING.value: "magenta",
    MessageCategory.NOTIFICATIONS.value: "white",
}


def configure_logging(verbose: bool = False) -> None:
    """Send package logs through Rich, at INFO/DEBUG or INBOX_TRIAGE_LOG_LEVEL."""
    level_name = "DEBUG" if verbose else os.environ.get(LOG_LEVEL_ENV_VAR, "WARNING").upper()
    level = getattr(logging, level_name, logging.WARNING)

    logger = logging.getLogger("inbox_triage")
    logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=console, show_path=False, rich_tracebacks=True))


def create_progress(description: str) -> Progress:
    """Create a configured Rich Progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn(f"[bold blue]{description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    )


def display_scan_results(result: dict, limit: int = 25) -> None:
    """Show per-category counts, a sample of messages and the completion flags."""
    counts = Table(title="Scan Results")
    counts.add_column("Category")
    counts.add_column("Count", justify="right")
    for category, count in result["countsByCategory"].items():
        color = _CATEGORY_COLORS.get(category, "white")
        counts.add_row(f"[{color}]{category}[/{color}]", str(count))
    console.print(counts)

    messages = result["messages"]
    if messages:
        table = Table(title=f"Messages (first {min(limit, len(messages))} of {len(messages)})")
        table.add_column("#", justify="right", style="dim")
        table.add_column("From")
        table.add_column("Subject")
        table.add_column("Category")
        table.add_column("Reason", style="dim")
        for idx, msg in enumerate(messages[:limit], start=1):
            color = _CATEGORY_COLORS.get(msg["category"], "white")
            table.add_row(
                str(idx),
                msg["sender_email"],
                msg["subject"],
                f"[{color}]{msg['category']}[/{color}]",
                msg["reason"],
            )
        console.print(table)

    flags = []
    if result["hitTimeLimit"]:
        flags.append("[yellow]time limit reached[/yellow]")
    if result["hitMaxLimit"]:
        flags.append("[yellow]message limit reached[/yellow]")
    if result["isComplete"]:
        flags.append("[green]complete[/green]")

    console.print(
        Panel(
            f"Session: [bold]{result['sessionId']}[/bold]\n"
            f"Scanned: {result['scannedCount']}  |  "
            f"Unread estimate: {result['totalUnreadEstimate']}  |  "
            f"Elapsed: {result['elapsedMs'] / 1000:.1f}s\n"
            + "  ".join(flags),
            title="Summary",
        )
    )


def display_categories(categories: list[Category]) -> None:
    table = Table(title="Categories")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Name")
    table.add_column("Color")
    table.add_column("Enabled")
    table.add_column("Role", style="dim")
    table.add_column("Description")
    for c in categories:
        name = f"[bold]{c.display_name}[/bold]" if c.required else c.display_name
        table.add_row(
            str(c.key),
            name,
            f"[{c.color_hex}]{c.color_hex}[/{c.color_hex}]",
            "yes" if c.enabled else "[dim]no[/dim]",
            c.role.value if c.role else "",
            c.description,
        )
    console.print(table)


def display_sync_result(result: dict) -> None:
    stats = result["stats"]
    lines = [
        f"[bold]Created:[/bold] {stats['created']}",
        f"[bold]Deleted:[/bold] {stats['deleted']}",
        f"[bold]Updated:[/bold] {stats['updated']}",
        f"[bold]Stale removed:[/bold] {stats['staleRemoved']}",
        "",
        "[bold]Owned labels:[/bold]",
    ]
    lines.extend(f"  - {name} ({label_id})" for name, label_id in result["labels"].items())
    console.print(Panel("\n".join(lines), title="Label Sync"))


def display_session(session: dict) -> None:
    lines = [
        f"[bold]Session:[/bold] {session['id']}",
        f"[bold]Type:[/bold] {session['session_type']}",
        f"[bold]Created:[/bold] {session['created_at']}",
    ]
    if session["session_type"] == "bulk_cleanup":
        lines.append(
            f"[bold]Processed:[/bold] {session['processed']}  "
            f"(archived {session['archived']}, deleted {session['deleted']})"
        )
    else:
        lines.append(f"[bold]Messages:[/bold] {len(session['messages'])}")
        for category, count in session["counts_by_category"].items():
            lines.append(f"  - {category}: {count}")
        if session["marked_read_count"] is not None:
            lines.append(f"[bold]Marked read:[/bold] {session['marked_read_count']}")
    console.print(Panel("\n".join(lines), title="Session Detail"))


def display_subscriptions(result: dict, limit: int = 50) -> None:
    """Show senders of bulk mail with their unsubscribe link and the decision taken."""
    subs = result["subscriptions"]
    stats = result["stats"]
    if not subs:
        console.print("[dim]No subscriptions found in your scans.[/dim]")
        return

    table = Table(title=f"Subscriptions (first {min(limit, len(subs))} of {len(subs)})")
    table.add_column("Sender")
    table.add_column("Messages", justify="right")
    table.add_column("Categories", style="dim")
    table.add_column("Status")
    table.add_column("Unsubscribe", overflow="fold")
    for s in subs[:limit]:
        status = s["status"] if s["status"] != "active" else "[yellow]active[/yellow]"
        table.add_row(
            s["sender_email"],
            str(s["message_count"]),
            ", ".join(s["categories"]),
            status,
            s["unsubscribe_link"] or "[dim]-[/dim]",
        )
    console.print(table)
    console.print(
        f"[bold]Total:[/bold] {stats['total']}  |  "
        f"kept {stats['kept']}, unsubscribed {stats['unsubscribed']}, "
        f"blocked {stats['blocked']}, pending {stats['pending']}"
    )


def display_block_result(result: dict) -> None:
    where = "spam" if result["mode"] == "spam" else "out of the inbox"
    lines = [
        f"[bold]Sender:[/bold] {result['senderEmail']}",
        f"[bold]Recent messages moved {where}:[/bold] {result['moved']}",
    ]
    if result["filterId"]:
        lines.append(f"[bold]Filter:[/bold] {result['filterId']}")
    else:
        lines.append("[yellow]No filter was created; future mail will still arrive.[/yellow]")
    console.print(Panel("\n".join(lines), title="Blocked Sender"))


def confirm_action(description: str, count_hint: str) -> bool:
    """Ask the user to type the action name in capitals to go ahead."""
    word = description.upper()
    console.print(Panel(f"[bold]{count_hint}[/bold]", title=f"Confirm {description}"))
    answer = Prompt.ask(f'[bold red]Type "{word}" to confirm[/bold red]', console=console)
    return answer == word
