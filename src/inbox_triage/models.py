"""Data models for Inbox Triage."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum


class MessageCategory(str, Enum):
    """Buckets a scanned message can land in."""

    IMPORTANT = "important"
    RECEIPTS = "receipts"
    SUBSCRIPTIONS = "subscriptions"
    NEWSLETTERS = "newsletters"
    MARKETING = "marketing"
    NOTIFICATIONS = "notifications"


class CategoryRole(str, Enum):
    """Semantic role of a user category, independent of its display name."""

    RESPOND = "respond"
    OTHER = "other"
    MARKETING = "marketing"
    NOTIFICATION = "notification"


@dataclass
class Category:
    """One entry of the user's label taxonomy."""

    key: int
    display_name: str
    color_hex: str
    enabled: bool = True
    required: bool = False
    description: str = ""
    extra_rules: str = ""
    generates_reply: bool = False
    order: int = 0
    role: CategoryRole | None = None


@dataclass(frozen=True)
class MessageSummary:
    """Header-only view of a single Gmail message."""

    remote_id: str
    thread_id: str
    sender: str  # Full From header value
    sender_email: str  # Extracted, lower-cased address
    subject: str
    date: str = ""
    has_unsubscribe_header: bool = False
    unsubscribe_link: str | None = None
    is_threaded: bool = False


@dataclass(frozen=True)
class ClassifiedMessage(MessageSummary):
    """A message plus the bucket it was assigned during a scan."""

    category: MessageCategory = MessageCategory.NOTIFICATIONS
    reason: str = ""

    @classmethod
    def from_summary(
        cls, summary: MessageSummary, category: MessageCategory, reason: str
    ) -> ClassifiedMessage:
        base = {f.name: getattr(summary, f.name) for f in fields(MessageSummary)}
        return cls(**base, category=category, reason=reason)


def empty_counts() -> dict[str, int]:
    return {c.value: 0 for c in MessageCategory}


@dataclass
class ScanSession:
    """Persisted outcome of a scan or bulk cleanup."""

    id: str
    user_id: str
    session_type: str = "scan"  # "scan" or "bulk_cleanup"
    total_unread_estimate: int = 0
    counts_by_category: dict[str, int] = field(default_factory=empty_counts)
    messages: list[ClassifiedMessage] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    marked_read_count: int | None = None
    processed: int = 0
    archived: int = 0
    deleted: int = 0

    def important_ids(self) -> set[str]:
        return {m.remote_id for m in self.messages if m.category == MessageCategory.IMPORTANT}


@dataclass
class ScanResult:
    """Result of one classification pipeline run."""

    session_id: str
    messages: list[ClassifiedMessage] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=empty_counts)
    total_unread_estimate: int = 0
    scanned_count: int = 0
    has_more: bool = False
    is_complete: bool = True
    hit_max_limit: bool = False
    hit_time_limit: bool = False
    elapsed_ms: int = 0


@dataclass
class RemoteLabel:
    id: str
    name: str


@dataclass
class SyncStats:
    created: int = 0
    deleted: int = 0
    updated: int = 0
    stale_removed: int = 0


@dataclass
class SyncResult:
    labels: dict[str, str]
    stats: SyncStats


@dataclass
class MarkReadResult:
    marked_read: int
    kept_unread: int


@dataclass
class CleanupResult:
    processed: int
    archived: int
    deleted: int
    session_id: str


@dataclass
class UserAccount:
    """Stored OAuth credentials for one mailbox owner."""

    user_id: str
    email: str
    refresh_token: str
    access_token: str = ""
    client_id: str = ""
    client_secret: str = ""


@dataclass
class BlockResult:
    sender_email: str
    mode: str  # "block" or "spam"
    filter_id: str | None
    moved: int


@dataclass
class SenderSubscription:
    """One bulk sender seen across a user's scans, with the user's decision."""

    sender_email: str
    sender: str
    message_count: int
    unsubscribe_link: str | None = None
    categories: list[str] = field(default_factory=list)
    status: str = "active"  # active, kept, unsubscribed, blocked
    user_action: str | None = None
