"""Deterministic pattern classification of scanned messages."""

from __future__ import annotations

from .constants import (
    MARKETING_SENDER_PATTERNS,
    MARKETING_SUBJECT_PATTERNS,
    NEWSLETTER_SENDER_PATTERNS,
    NEWSLETTER_SUBJECT_PATTERNS,
    NOTIFICATION_SENDER_PATTERNS,
    RECEIPT_SENDER_PATTERNS,
    RECEIPT_SUBJECT_PATTERNS,
    SUBSCRIPTION_SENDER_PATTERNS,
    SUBSCRIPTION_SUBJECT_PATTERNS,
)
from .models import ClassifiedMessage, MessageCategory, MessageSummary


def _matches(sender_email: str, subject: str, sender_patterns, subject_patterns) -> bool:
    subject = subject.lower()
    return any(p in sender_email for p in sender_patterns) or any(
        p in subject for p in subject_patterns
    )


def is_receipt(msg: MessageSummary) -> bool:
    return _matches(msg.sender_email, msg.subject, RECEIPT_SENDER_PATTERNS, RECEIPT_SUBJECT_PATTERNS)


def is_subscription(msg: MessageSummary) -> bool:
    return _matches(
        msg.sender_email, msg.subject, SUBSCRIPTION_SENDER_PATTERNS, SUBSCRIPTION_SUBJECT_PATTERNS
    )


def is_newsletter(msg: MessageSummary) -> bool:
    return _matches(
        msg.sender_email, msg.subject, NEWSLETTER_SENDER_PATTERNS, NEWSLETTER_SUBJECT_PATTERNS
    )


def is_marketing(msg: MessageSummary) -> bool:
    return _matches(
        msg.sender_email, msg.subject, MARKETING_SENDER_PATTERNS, MARKETING_SUBJECT_PATTERNS
    )


def is_notification_sender(msg: MessageSummary) -> bool:
    return any(p in msg.sender_email for p in NOTIFICATION_SENDER_PATTERNS)


# Evaluated top to bottom; the first match wins.
_RULES = [
    (is_receipt, MessageCategory.RECEIPTS, "Receipt/Order"),
    (is_subscription, MessageCategory.SUBSCRIPTIONS, "Subscription"),
    (is_newsletter, MessageCategory.NEWSLETTERS, "Newsletter"),
    (is_marketing, MessageCategory.MARKETING, "Marketing"),
    (lambda m: m.has_unsubscribe_header, MessageCategory.MARKETING, "Has unsubscribe"),
    (is_notification_sender, MessageCategory.NOTIFICATIONS, "Notification"),
]


def classify_message(
    msg: MessageSummary,
    known_senders: set[str] | frozenset[str] = frozenset(),
) -> ClassifiedMessage | None:
    """Bucket a message by sender and subject signals.

    Known contacts are always important, whatever the content.  Returns
    None when no rule fires so the caller can hand the message to the LLM.
    """
    if msg.sender_email in known_senders:
        return ClassifiedMessage.from_summary(msg, MessageCategory.IMPORTANT, "Known contact")

    for predicate, category, reason in _RULES:
        if predicate(msg):
            return ClassifiedMessage.from_summary(msg, category, reason)

    return None


def classify_all(
    messages: list[MessageSummary],
    known_senders: set[str] | frozenset[str] = frozenset(),
) -> tuple[list[ClassifiedMessage], list[MessageSummary]]:
    """Run the pattern pass over a batch.

    Returns (classified, uncategorized) preserving input order.
    """
    classified: list[ClassifiedMessage] = []
    backlog: list[MessageSummary] = []
    for msg in messages:
        result = classify_message(msg, known_senders)
        if result is None:
            backlog.append(msg)
        else:
            classified.append(result)
    return classified, backlog


def count_by_category(messages: list[ClassifiedMessage]) -> dict[str, int]:
    counts = {c.value: 0 for c in MessageCategory}
    for msg in messages:
        counts[msg.category.value] += 1
    return counts
