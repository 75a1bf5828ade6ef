"""Bulk mailbox changes: mark-read, archive, delete and sender blocking."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Callable

from .constants import (
    BLOCK_RECENT_LIMIT,
    CLEANUP_MAX_MESSAGES,
    MODIFY_BATCH_SIZE,
    PAGE_SIZE,
    UNREAD_QUERY,
)
from .errors import NotFoundError
from .gmail_client import REMOTE_ERRORS
from .models import BlockResult, CleanupResult, MarkReadResult, ScanSession

logger = logging.getLogger(__name__)

EXCEPT_CHOICES = ("important", "none")
CLEANUP_ACTIONS = ("archive", "delete")

# mode -> (add label ids, remove label ids) for the filter and the recent mail
BLOCK_MODES = {
    "block": (None, ["INBOX", "UNREAD"]),
    "spam": (["SPAM"], ["INBOX"]),
}

_LABEL_QUERY_RE = re.compile(r"[\s/()]+")


def _list_ids(mailbox, query: str, limit: int | None = None) -> list[str]:
    """Page through ``query``; a failing page ends the listing."""
    ids: list[str] = []
    page_token: str | None = None
    while limit is None or len(ids) < limit:
        try:
            page, page_token = mailbox.list_message_ids_page(query, PAGE_SIZE, page_token)
        except REMOTE_ERRORS:
            logger.exception("Error listing messages for %r, stopping at %d", query, len(ids))
            break
        ids.extend(page)
        if not page_token:
            break
    return ids[:limit] if limit is not None else ids


def apply_in_batches(
    mailbox,
    message_ids: list[str],
    add_label_ids: list[str] | None = None,
    remove_label_ids: list[str] | None = None,
    batch_size: int = MODIFY_BATCH_SIZE,
    callback: Callable[[int, int], None] | None = None,
) -> int:
    """batchModify ``message_ids`` in chunks; returns how many were changed.

    A failed chunk is logged and skipped.  There is no retry or rollback.
    """
    total_batches = (len(message_ids) + batch_size - 1) // batch_size
    changed = 0

    for batch_num in range(total_batches):
        chunk = message_ids[batch_num * batch_size : (batch_num + 1) * batch_size]
        try:
            mailbox.batch_modify(chunk, add_label_ids=add_label_ids, remove_label_ids=remove_label_ids)
        except REMOTE_ERRORS:
            logger.exception("Batch %d/%d failed, skipping %d messages", batch_num + 1, total_batches, len(chunk))
        else:
            changed += len(chunk)

        if callback:
            callback(batch_num + 1, total_batches)

    return changed


def mark_read(
    mailbox,
    store,
    user_id: str,
    session_id: str,
    except_: str = "important",
    callback: Callable[[int, int], None] | None = None,
) -> MarkReadResult:
    """Mark every unread message read, except what the session kept as important.

    The unread list is fetched fresh, since the mailbox may have changed
    since the scan.
    """
    if except_ not in EXCEPT_CHOICES:
        raise ValueError(f"Invalid except value {except_!r}. Must be 'important' or 'none'.")

    session = store.get_session(session_id, user_id)
    if session is None:
        raise NotFoundError(f"Session '{session_id}' not found.")

    keep = session.important_ids() if except_ == "important" else set()
    unread = _list_ids(mailbox, UNREAD_QUERY)
    to_mark = [msg_id for msg_id in unread if msg_id not in keep]
    logger.info("Marking %d of %d unread messages as read, keeping %d", len(to_mark), len(unread), len(keep))

    marked = apply_in_batches(mailbox, to_mark, remove_label_ids=["UNREAD"], callback=callback)
    store.record_marked_read(session.id, marked)
    return MarkReadResult(marked_read=marked, kept_unread=len(keep))


def _label_term(name: str) -> str:
    return "label:" + _LABEL_QUERY_RE.sub("-", name.strip().lower()).strip("-")


def build_cleanup_query(
    older_than_days: int,
    label_names: list[str] | None = None,
    senders: list[str] | None = None,
    now: datetime | None = None,
) -> str:
    """Gmail search query for messages older than the cutoff, filtered by label and sender."""
    cutoff = (now or datetime.now()) - timedelta(days=older_than_days)
    query = f"before:{int(cutoff.timestamp())}"
    if label_names:
        query += " (" + " OR ".join(_label_term(n) for n in label_names) + ")"
    if senders:
        query += " (" + " OR ".join(f"from:{s}" for s in senders) + ")"
    return query


def _resolve_label_names(mailbox, store, user_id: str, categories: list[str]) -> list[str]:
    """Map category names to the labels actually carrying them (which may be suffixed)."""
    ownership = store.load_label_ownership(user_id)
    remote_names: dict[str, str] = {}
    if any(c in ownership for c in categories):
        try:
            remote_names = {lbl.id: lbl.name for lbl in mailbox.list_labels()}
        except REMOTE_ERRORS:
            logger.exception("Could not list labels, using category names as-is")
    return [remote_names.get(ownership.get(c, ""), c) for c in categories]


def bulk_cleanup(
    mailbox,
    store,
    user_id: str,
    action: str,
    older_than_days: int,
    categories: list[str] | None = None,
    senders: list[str] | None = None,
    now: datetime | None = None,
    callback: Callable[[int, int], None] | None = None,
) -> CleanupResult:
    """Archive or trash old messages matching the category and sender filters."""
    if action not in CLEANUP_ACTIONS:
        raise ValueError(f"Invalid action {action!r}. Must be 'archive' or 'delete'.")
    if older_than_days <= 0:
        raise ValueError("older_than_days must be a positive number of days.")

    label_names = _resolve_label_names(mailbox, store, user_id, categories) if categories else None
    query = build_cleanup_query(older_than_days, label_names, senders, now)
    ids = _list_ids(mailbox, query, limit=CLEANUP_MAX_MESSAGES)
    logger.info("Bulk %s: %d messages match %r", action, len(ids), query)

    if action == "archive":
        processed = apply_in_batches(mailbox, ids, remove_label_ids=["INBOX"], callback=callback)
        archived, deleted = processed, 0
    else:
        processed = apply_in_batches(
            mailbox, ids, add_label_ids=["TRASH"], remove_label_ids=["INBOX"], callback=callback
        )
        archived, deleted = 0, processed

    session = ScanSession(
        id=str(uuid.uuid4()),
        user_id=user_id,
        session_type="bulk_cleanup",
        processed=processed,
        archived=archived,
        deleted=deleted,
    )
    store.save_session(session)
    return CleanupResult(processed=processed, archived=archived, deleted=deleted, session_id=session.id)


def block_sender(
    mailbox,
    store,
    user_id: str,
    sender_email: str,
    mode: str = "block",
    recent_limit: int = BLOCK_RECENT_LIMIT,
) -> BlockResult:
    """Keep a sender out of the inbox from now on, and clear its recent mail.

    ``block`` skips the inbox and marks read; ``spam`` files under spam.
    Filter creation and each batch fail independently: whatever succeeded
    is reported, and the decision is recorded either way.
    """
    if mode not in BLOCK_MODES:
        raise ValueError(f"Invalid mode {mode!r}. Must be 'block' or 'spam'.")
    sender_email = sender_email.strip().lower()
    if not sender_email:
        raise ValueError("A sender address is required.")

    add, remove = BLOCK_MODES[mode]
    ids = _list_ids(mailbox, f"from:{sender_email}", limit=recent_limit)
    moved = apply_in_batches(mailbox, ids, add_label_ids=add, remove_label_ids=remove)

    filter_id: str | None = None
    try:
        filter_id = mailbox.create_filter(sender_email, add_label_ids=add, remove_label_ids=remove)
    except REMOTE_ERRORS:
        logger.exception("Could not create a filter for %s", sender_email)

    store.save_sender_action(user_id, sender_email, "block")
    logger.info("Blocked %s (%s): moved %d messages, filter %s", sender_email, mode, moved, filter_id)
    return BlockResult(sender_email=sender_email, mode=mode, filter_id=filter_id, moved=moved)
