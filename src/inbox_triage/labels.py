"""Keep Gmail labels in step with the user's category taxonomy.

The ownership record (category name -> Gmail label id) lists only labels
this tool created.  A sync runs verify -> delete -> create -> recolor in
that order, and each step is safe to repeat.  Labels that are not in the
ownership record are never deleted, renamed or recorded.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict

from .constants import APP_LABEL_SUFFIX
from .gmail_client import REMOTE_ERRORS
from .models import Category, RemoteLabel, SyncResult, SyncStats
from .taxonomy import enabled_categories

logger = logging.getLogger(__name__)

_user_locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
_user_locks_guard = threading.Lock()


def user_lock(user_id: str) -> threading.Lock:
    """Per-user lock so two syncs for the same mailbox never interleave."""
    with _user_locks_guard:
        return _user_locks[user_id]


def suffixed_name(name: str) -> str:
    return f"{name}{APP_LABEL_SUFFIX}"


def _by_name(labels: list[RemoteLabel]) -> dict[str, RemoteLabel]:
    # Gmail label names are unique case-insensitively
    return {lbl.name.lower(): lbl for lbl in labels}


class LabelReconciler:
    """Converges one mailbox's labels towards a desired set of categories."""

    def __init__(self, mailbox) -> None:
        self.mailbox = mailbox

    def sync(self, categories: list[Category], ownership: dict[str, str]) -> SyncResult:
        """Run one full reconciliation and return the new ownership record."""
        desired = {c.display_name: c for c in enabled_categories(categories)}
        stats = SyncStats()

        remote = self.mailbox.list_labels()
        owned = self._verify(ownership, remote, stats)
        kept = self._delete_unwanted(owned, desired, stats)
        deleted_ids = set(owned.values()) - set(kept.values())
        remaining = [lbl for lbl in remote if lbl.id not in deleted_ids]
        owned = self._create_missing(kept, desired, remaining, stats)
        self._recolor(owned, desired, stats)

        logger.info(
            "Label sync: created=%d deleted=%d updated=%d stale_removed=%d",
            stats.created,
            stats.deleted,
            stats.updated,
            stats.stale_removed,
        )
        return SyncResult(labels=owned, stats=stats)

    def _verify(
        self, ownership: dict[str, str], remote: list[RemoteLabel], stats: SyncStats
    ) -> dict[str, str]:
        remote_ids = {lbl.id for lbl in remote}
        owned: dict[str, str] = {}
        for name, label_id in ownership.items():
            if label_id in remote_ids:
                owned[name] = label_id
            else:
                logger.info("Label '%s' (%s) no longer exists, dropping from tracking", name, label_id)
                stats.stale_removed += 1
        return owned

    def _delete_unwanted(
        self, owned: dict[str, str], desired: dict[str, Category], stats: SyncStats
    ) -> dict[str, str]:
        kept: dict[str, str] = {}
        for name, label_id in owned.items():
            if name in desired:
                kept[name] = label_id
                continue
            try:
                self.mailbox.delete_label(label_id)
            except REMOTE_ERRORS:
                logger.exception("Failed to delete label '%s' (%s)", name, label_id)
                # still ours; the next sync retries the delete
                kept[name] = label_id
                continue
            logger.info("Deleted label '%s' (%s)", name, label_id)
            stats.deleted += 1
        return kept

    def _create_missing(
        self,
        owned: dict[str, str],
        desired: dict[str, Category],
        remote: list[RemoteLabel],
        stats: SyncStats,
    ) -> dict[str, str]:
        owned = dict(owned)
        owned_ids = set(owned.values())
        remote_by_name = _by_name(remote)

        for name, category in desired.items():
            if name in owned:
                continue

            target = name
            existing = remote_by_name.get(name.lower())
            if existing is not None and existing.id not in owned_ids:
                # Someone else's label has our name; work under the app suffix instead.
                target = suffixed_name(name)
                ours = remote_by_name.get(target.lower())
                if ours is not None and ours.id not in owned_ids:
                    logger.info("Reusing suffixed label '%s' (%s)", ours.name, ours.id)
                    owned[name] = ours.id
                    owned_ids.add(ours.id)
                    continue

            try:
                created = self.mailbox.create_label(target, category.color_hex)
            except REMOTE_ERRORS:
                logger.exception("Failed to create label '%s'", target)
                continue
            logger.info("Created label '%s' (%s)", created.name, created.id)
            owned[name] = created.id
            owned_ids.add(created.id)
            stats.created += 1

        return owned

    def _recolor(self, owned: dict[str, str], desired: dict[str, Category], stats: SyncStats) -> None:
        try:
            current_names = {lbl.id: lbl.name for lbl in self.mailbox.list_labels()}
        except REMOTE_ERRORS:
            logger.exception("Failed to re-read labels before recoloring")
            return

        for name, label_id in owned.items():
            category = desired.get(name)
            if category is None:
                continue
            actual = current_names.get(label_id, name)
            try:
                self.mailbox.update_label(label_id, actual, category.color_hex)
            except REMOTE_ERRORS:
                logger.exception("Failed to update label '%s' (%s)", actual, label_id)
                continue
            stats.updated += 1


def sync_labels(mailbox, store, user_id: str, categories: list[Category]) -> SyncResult:
    """Reconcile and persist the ownership record for ``user_id``."""
    with user_lock(user_id):
        ownership = store.load_label_ownership(user_id)
        result = LabelReconciler(mailbox).sync(categories, ownership)
        store.save_label_ownership(user_id, result.labels)
    return result
