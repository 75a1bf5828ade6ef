"""Per-sender view of bulk mail, and the user's keep/unsubscribe/block decisions."""

from __future__ import annotations

import logging
from collections import defaultdict

from .actions import block_sender
from .errors import NotFoundError
from .models import BlockResult, SenderSubscription

logger = logging.getLogger(__name__)

SUBSCRIPTION_ACTIONS = ("keep", "unsubscribe", "block")

_STATUS_BY_ACTION = {"keep": "kept", "unsubscribe": "unsubscribed", "block": "blocked"}


def summarize_subscriptions(store, user_id: str, session_id: str | None = None) -> list[SenderSubscription]:
    """Group messages with an unsubscribe header by sender, busiest first.

    Messages seen by several scans are counted once.
    """
    actions = store.load_sender_actions(user_id)
    seen: set[str] = set()
    grouped: dict[str, list] = defaultdict(list)
    for row in store.bulk_sender_messages(user_id, session_id):
        if row["remote_id"] in seen or not row["sender_email"]:
            continue
        seen.add(row["remote_id"])
        grouped[row["sender_email"]].append(row)

    subscriptions = []
    for sender_email, rows in grouped.items():
        link = next((r["unsubscribe_link"] for r in rows if r["unsubscribe_link"]), None)
        action = actions.get(sender_email)
        subscriptions.append(
            SenderSubscription(
                sender_email=sender_email,
                sender=rows[0]["sender"],
                message_count=len(rows),
                unsubscribe_link=link,
                categories=sorted({r["category"] for r in rows}),
                status=_STATUS_BY_ACTION.get(action, "active"),
                user_action=action,
            )
        )
    subscriptions.sort(key=lambda s: (-s.message_count, s.sender_email))
    return subscriptions


def subscription_stats(subscriptions: list[SenderSubscription]) -> dict[str, int]:
    stats = {"total": len(subscriptions), "active": 0, "kept": 0, "unsubscribed": 0, "blocked": 0}
    for s in subscriptions:
        stats[s.status] += 1
    stats["pending"] = sum(1 for s in subscriptions if s.user_action is None)
    return stats


def set_subscription_action(
    store,
    user_id: str,
    sender_email: str,
    action: str,
    mailbox_factory=None,
) -> tuple[SenderSubscription, BlockResult | None]:
    """Record a decision for one sender.  ``block`` also files its mail as spam.

    ``mailbox_factory`` is only called for ``block``.  Raises NotFoundError
    when no scan of this user has seen bulk mail from the sender.
    """
    if action not in SUBSCRIPTION_ACTIONS:
        raise ValueError(f"Invalid action {action!r}. Must be 'keep', 'unsubscribe' or 'block'.")
    sender_email = sender_email.strip().lower()
    if not any(s.sender_email == sender_email for s in summarize_subscriptions(store, user_id)):
        raise NotFoundError(f"No subscription from '{sender_email}' in your scans.")

    block = None
    if action == "block":
        block = block_sender(mailbox_factory(), store, user_id, sender_email, mode="spam")
    else:
        store.save_sender_action(user_id, sender_email, action)
    logger.info("Subscription %s -> %s", sender_email, action)

    updated = next(s for s in summarize_subscriptions(store, user_id) if s.sender_email == sender_email)
    return updated, block
