"""Request-level operations: scan, mark-read, cleanup, label sync, taxonomy edits.

Each method takes plain arguments and returns a JSON-ready dict, so the
CLI (or any other front end) only deals with presentation.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict

from . import taxonomy
from .actions import block_sender, bulk_cleanup, mark_read
from .auth import open_mailbox
from .errors import NotFoundError
from .labels import sync_labels
from .llm import LLMClassifier
from .models import BlockResult, Category, ClassifiedMessage, ScanSession
from .pipeline import PipelineLimits, run_scan
from .subscriptions import set_subscription_action, subscription_stats, summarize_subscriptions

logger = logging.getLogger(__name__)


def _default_classifier():
    if not os.environ.get("ANTHROPIC_API_KEY"):
        logger.warning("ANTHROPIC_API_KEY is not set; unmatched messages default to notifications")
        return None
    return LLMClassifier()


def message_to_dict(msg: ClassifiedMessage) -> dict:
    data = asdict(msg)
    data["category"] = msg.category.value
    return data


def session_to_dict(session: ScanSession) -> dict:
    data = asdict(session)
    data["messages"] = [message_to_dict(m) for m in session.messages]
    return data


def _block_to_dict(result: BlockResult) -> dict:
    return {
        "senderEmail": result.sender_email,
        "mode": result.mode,
        "filterId": result.filter_id,
        "moved": result.moved,
    }


class TriageService:
    """Entry points for a single store, one call per user request."""

    def __init__(
        self,
        store,
        mailbox_factory=open_mailbox,
        classifier_factory=_default_classifier,
        limits: PipelineLimits | None = None,
    ) -> None:
        self.store = store
        self._mailbox_factory = mailbox_factory
        self._classifier_factory = classifier_factory
        self._limits = limits

    def _mailbox(self, user_id: str):
        return self._mailbox_factory(self.store, user_id)

    def scan(self, user_id: str, scan_all: bool = False, max_messages: int = 500, callback=None) -> dict:
        mailbox = self._mailbox(user_id)
        result = run_scan(
            mailbox,
            self.store,
            user_id,
            scan_all=scan_all,
            max_messages=max_messages,
            classifier=self._classifier_factory(),
            limits=self._limits,
            callback=callback,
        )
        return {
            "sessionId": result.session_id,
            "messages": [message_to_dict(m) for m in result.messages],
            "countsByCategory": result.counts,
            "totalUnreadEstimate": result.total_unread_estimate,
            "scannedCount": result.scanned_count,
            "hasMore": result.has_more,
            "isComplete": result.is_complete,
            "hitMaxLimit": result.hit_max_limit,
            "hitTimeLimit": result.hit_time_limit,
            "elapsedMs": result.elapsed_ms,
        }

    def mark_read(self, user_id: str, session_id: str, except_: str = "important", callback=None) -> dict:
        if self.store.get_session(session_id, user_id) is None:
            raise NotFoundError(f"Session '{session_id}' not found.")
        result = mark_read(self._mailbox(user_id), self.store, user_id, session_id, except_, callback)
        return {"markedRead": result.marked_read, "keptUnread": result.kept_unread}

    def bulk_cleanup(
        self,
        user_id: str,
        action: str,
        older_than_days: int,
        categories: list[str] | None = None,
        senders: list[str] | None = None,
        callback=None,
    ) -> dict:
        result = bulk_cleanup(
            self._mailbox(user_id),
            self.store,
            user_id,
            action,
            older_than_days,
            categories=categories,
            senders=senders,
            callback=callback,
        )
        return {
            "processed": result.processed,
            "archived": result.archived,
            "deleted": result.deleted,
            "sessionId": result.session_id,
        }

    def sync_labels(self, user_id: str) -> dict:
        categories = self.categories(user_id)
        result = sync_labels(self._mailbox(user_id), self.store, user_id, categories)
        return {
            "labels": result.labels,
            "stats": {
                "created": result.stats.created,
                "deleted": result.stats.deleted,
                "updated": result.stats.updated,
                "staleRemoved": result.stats.stale_removed,
            },
        }

    def block_sender(self, user_id: str, sender_email: str, mode: str = "block") -> dict:
        result = block_sender(self._mailbox(user_id), self.store, user_id, sender_email, mode)
        return _block_to_dict(result)

    def subscriptions(self, user_id: str, session_id: str | None = None, status: str | None = None) -> dict:
        if session_id is not None and self.store.get_session(session_id, user_id) is None:
            raise NotFoundError(f"Session '{session_id}' not found.")
        subs = summarize_subscriptions(self.store, user_id, session_id)
        stats = subscription_stats(subs)
        if status:
            subs = [s for s in subs if s.status == status]
        return {"subscriptions": [asdict(s) for s in subs], "stats": stats}

    def subscription_action(self, user_id: str, sender_email: str, action: str) -> dict:
        subscription, block = set_subscription_action(
            self.store,
            user_id,
            sender_email,
            action,
            mailbox_factory=lambda: self._mailbox(user_id),
        )
        return {
            "subscription": asdict(subscription),
            "block": _block_to_dict(block) if block else None,
        }

    def get_session(self, user_id: str, session_id: str) -> dict:
        session = self.store.get_session(session_id, user_id)
        if session is None:
            raise NotFoundError(f"Session '{session_id}' not found.")
        return session_to_dict(session)

    # --- taxonomy ---

    def categories(self, user_id: str) -> list[Category]:
        return self.store.load_categories(user_id) or taxonomy.default_categories()

    def _save(self, user_id: str, categories: list[Category]) -> list[Category]:
        self.store.save_categories(user_id, categories)
        return categories

    def add_category(self, user_id: str, name: str, color_hex: str, description: str = "") -> list[Category]:
        return self._save(
            user_id, taxonomy.add_category(self.categories(user_id), name, color_hex, description)
        )

    def remove_category(self, user_id: str, name: str) -> list[Category]:
        return self._save(user_id, taxonomy.remove_category(self.categories(user_id), name))

    def set_enabled(self, user_id: str, name: str, enabled: bool) -> list[Category]:
        return self._save(user_id, taxonomy.set_enabled(self.categories(user_id), name, enabled))

    def reset_categories(self, user_id: str) -> list[Category]:
        return self._save(user_id, taxonomy.default_categories())
