"""CLI entry point for Inbox Triage."""

from __future__ import annotations

import functools

import click

from .auth import login
from .constants import DEFAULT_MAX_MESSAGES, USER_ENV_VAR
from .display import (
    confirm_action,
    configure_logging,
    console,
    create_progress,
    display_block_result,
    display_categories,
    display_scan_results,
    display_session,
    display_subscriptions,
    display_sync_result,
)
from .errors import TriageError
from .export import export_session
from .service import TriageService
from .store import TriageStore
from .subscriptions import SUBSCRIPTION_ACTIONS


def handle_errors(func):
    """Turn domain errors into clean CLI errors."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (TriageError, ValueError, FileNotFoundError) as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def _user(ctx: click.Context) -> str:
    user = ctx.obj.get("user")
    if not user:
        raise click.UsageError(f"No user selected. Pass --user or set {USER_ENV_VAR}.")
    return user


@click.group()
@click.version_option(version="0.1.0", prog_name="inbox-triage")
@click.option("-u", "--user", envvar=USER_ENV_VAR, default=None, help="Mailbox (email address) to act on.")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
@click.pass_context
def cli(ctx: click.Context, user: str | None, verbose: bool) -> None:
    """Inbox Triage - classify, label and bulk-clean your Gmail inbox."""
    configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["user"] = user


@cli.command()
@handle_errors
def auth() -> None:
    """Sign in with Google and store the mailbox credentials."""
    with TriageStore() as store:
        account = login(store)
    console.print(f"[green]Authenticated as {account.email}[/green]")


@cli.command()
@click.option("--all", "scan_all", is_flag=True, help="Scan up to the hard ceiling instead of one chunk.")
@click.option("-m", "--max-messages", default=DEFAULT_MAX_MESSAGES, type=int, help="Maximum messages to scan.")
@click.pass_context
@handle_errors
def scan(ctx: click.Context, scan_all: bool, max_messages: int) -> None:
    """Scan unread mail and classify it into categories."""
    user = _user(ctx)
    with TriageStore() as store, create_progress("Fetching headers") as progress:
        task = progress.add_task("fetching", total=None)

        def on_batch(batch_num: int, total: int) -> None:
            progress.update(task, completed=batch_num, total=total)

        result = TriageService(store).scan(user, scan_all=scan_all, max_messages=max_messages, callback=on_batch)

    display_scan_results(result)


@cli.command(name="mark-read")
@click.argument("session_id")
@click.option(
    "--except",
    "except_",
    type=click.Choice(["important", "none"]),
    default="important",
    help="Keep messages the scan marked important unread.",
)
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
@handle_errors
def mark_read_cmd(ctx: click.Context, session_id: str, except_: str, yes: bool) -> None:
    """Mark all unread mail as read, except what a scan kept as important."""
    user = _user(ctx)
    with TriageStore() as store:
        service = TriageService(store)
        session = service.get_session(user, session_id)
        if not yes:
            kept = sum(1 for m in session["messages"] if m["category"] == "important")
            hint = f"All unread messages will be marked read; {kept if except_ == 'important' else 0} kept unread."
            if not confirm_action("read", hint):
                console.print("[dim]Cancelled.[/dim]")
                return
        with create_progress("Marking read") as progress:
            task = progress.add_task("marking", total=None)

            def on_batch(batch_num: int, total: int) -> None:
                progress.update(task, completed=batch_num, total=total)

            result = service.mark_read(user, session_id, except_, callback=on_batch)

    console.print(
        f"[green]Marked {result['markedRead']} messages read, kept {result['keptUnread']} unread.[/green]"
    )


@cli.command()
@click.option("--action", type=click.Choice(["archive", "delete"]), required=True)
@click.option("--older-than", "older_than_days", type=int, required=True, help="Age in days.")
@click.option("-c", "--category", "categories", multiple=True, help="Only messages with this category label.")
@click.option("-s", "--sender", "senders", multiple=True, help="Only messages from this sender.")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
@handle_errors
def cleanup(
    ctx: click.Context,
    action: str,
    older_than_days: int,
    categories: tuple[str, ...],
    senders: tuple[str, ...],
    yes: bool,
) -> None:
    """Archive or delete old messages in bulk."""
    user = _user(ctx)
    if not yes and not confirm_action(action, f"Messages older than {older_than_days} days will be {action}d."):
        console.print("[dim]Cancelled.[/dim]")
        return

    with TriageStore() as store:
        result = TriageService(store).bulk_cleanup(
            user,
            action,
            older_than_days,
            categories=list(categories) or None,
            senders=list(senders) or None,
        )

    console.print(
        f"[green]Processed {result['processed']} messages "
        f"(archived {result['archived']}, deleted {result['deleted']}).[/green] "
        f"[dim]Session {result['sessionId']}[/dim]"
    )


@cli.command(name="sync-labels")
@click.pass_context
@handle_errors
def sync_labels_cmd(ctx: click.Context) -> None:
    """Create, recolor and remove Gmail labels to match your categories."""
    user = _user(ctx)
    with TriageStore() as store:
        result = TriageService(store).sync_labels(user)
    display_sync_result(result)


@cli.command(name="block")
@click.argument("sender")
@click.option("--spam", is_flag=True, help="File the sender's mail as spam instead of skipping the inbox.")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
@handle_errors
def block_cmd(ctx: click.Context, sender: str, spam: bool, yes: bool) -> None:
    """Block a sender with a Gmail filter and move their recent mail."""
    user = _user(ctx)
    mode = "spam" if spam else "block"
    if not yes and not confirm_action("block", f"Mail from {sender} will no longer reach your inbox."):
        console.print("[dim]Cancelled.[/dim]")
        return

    with TriageStore() as store:
        result = TriageService(store).block_sender(user, sender, mode)
    display_block_result(result)


@cli.group(name="subscriptions")
def subscriptions_group() -> None:
    """Review senders of bulk mail found by your scans."""


@subscriptions_group.command(name="list")
@click.option("--session", "session_id", default=None, help="Only senders seen by this scan session.")
@click.option(
    "--status",
    type=click.Choice(["active", "kept", "unsubscribed", "blocked"]),
    default=None,
    help="Only senders with this status.",
)
@click.pass_context
@handle_errors
def subscriptions_list(ctx: click.Context, session_id: str | None, status: str | None) -> None:
    """List senders with an unsubscribe link, busiest first."""
    user = _user(ctx)
    with TriageStore() as store:
        display_subscriptions(TriageService(store).subscriptions(user, session_id=session_id, status=status))


@subscriptions_group.command(name="set")
@click.argument("sender")
@click.argument("action", type=click.Choice(SUBSCRIPTION_ACTIONS))
@click.pass_context
@handle_errors
def subscriptions_set(ctx: click.Context, sender: str, action: str) -> None:
    """Record keep, unsubscribe or block for a sender."""
    user = _user(ctx)
    with TriageStore() as store:
        result = TriageService(store).subscription_action(user, sender, action)

    sub = result["subscription"]
    console.print(f"[green]{sub['sender_email']}: {sub['status']}[/green]")
    if result["block"]:
        display_block_result(result["block"])
    elif action == "unsubscribe" and sub["unsubscribe_link"]:
        console.print(f"Open this link to finish unsubscribing: {sub['unsubscribe_link']}")


@cli.group(name="categories")
def categories_group() -> None:
    """View and edit your category taxonomy."""


@categories_group.command(name="list")
@click.pass_context
def categories_list(ctx: click.Context) -> None:
    """Show your categories."""
    user = _user(ctx)
    with TriageStore() as store:
        display_categories(TriageService(store).categories(user))


@categories_group.command(name="add")
@click.argument("name")
@click.option("--color", default="#4a86e8", help="Hex colour for the label.")
@click.option("--description", default="", help="What belongs in this category.")
@click.pass_context
@handle_errors
def categories_add(ctx: click.Context, name: str, color: str, description: str) -> None:
    """Add a category."""
    user = _user(ctx)
    with TriageStore() as store:
        display_categories(TriageService(store).add_category(user, name, color, description))


@categories_group.command(name="remove")
@click.argument("name")
@click.pass_context
@handle_errors
def categories_remove(ctx: click.Context, name: str) -> None:
    """Remove a category."""
    user = _user(ctx)
    with TriageStore() as store:
        display_categories(TriageService(store).remove_category(user, name))


@categories_group.command(name="enable")
@click.argument("name")
@click.pass_context
@handle_errors
def categories_enable(ctx: click.Context, name: str) -> None:
    """Enable a category."""
    user = _user(ctx)
    with TriageStore() as store:
        display_categories(TriageService(store).set_enabled(user, name, True))


@categories_group.command(name="disable")
@click.argument("name")
@click.pass_context
@handle_errors
def categories_disable(ctx: click.Context, name: str) -> None:
    """Disable a category."""
    user = _user(ctx)
    with TriageStore() as store:
        display_categories(TriageService(store).set_enabled(user, name, False))


@categories_group.command(name="reset")
@click.pass_context
def categories_reset(ctx: click.Context) -> None:
    """Restore the default categories."""
    user = _user(ctx)
    with TriageStore() as store:
        display_categories(TriageService(store).reset_categories(user))


@cli.group(name="session")
def session_group() -> None:
    """Inspect saved sessions."""


@session_group.command(name="show")
@click.argument("session_id")
@click.pass_context
@handle_errors
def session_show(ctx: click.Context, session_id: str) -> None:
    """Show a saved session."""
    user = _user(ctx)
    with TriageStore() as store:
        display_session(TriageService(store).get_session(user, session_id))


@session_group.command(name="list")
@click.pass_context
def session_list(ctx: click.Context) -> None:
    """List recent sessions."""
    user = _user(ctx)
    with TriageStore() as store:
        sessions = store.list_sessions(user)

    if not sessions:
        console.print("[dim]No sessions yet.[/dim]")
        return
    for s in sessions:
        console.print(f"{s['id']}  [dim]{s['created_at']}[/dim]  {s['session_type']}  {s['message_count']} messages")


@cli.command(name="export")
@click.argument("session_id")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["csv", "json"]),
    default="csv",
    help="Output format.",
)
@click.option("-o", "--output", required=True, help="Output file path.")
@click.pass_context
def export_cmd(ctx: click.Context, session_id: str, fmt: str, output: str) -> None:
    """Export a scan session to CSV or JSON."""
    user = _user(ctx)
    with TriageStore() as store:
        session = store.get_session(session_id, user)

    if not session:
        raise click.ClickException(f"Session '{session_id}' not found.")

    count = export_session(session, format=fmt, output_path=output)
    console.print(f"Saved {count} messages to {output}")
