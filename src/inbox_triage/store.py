"""SQLite store for accounts, settings, label ownership and scan sessions."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from inbox_triage import constants
from inbox_triage.models import (
    Category,
    ClassifiedMessage,
    MessageCategory,
    ScanSession,
    UserAccount,
)
from inbox_triage.taxonomy import categories_from_data, category_to_dict

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    email TEXT,
    refresh_token TEXT,
    access_token TEXT,
    client_id TEXT,
    client_secret TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS user_settings (
    user_id TEXT PRIMARY KEY,
    categories_json TEXT
);

CREATE TABLE IF NOT EXISTS label_ownership (
    user_id TEXT,
    category_name TEXT,
    label_id TEXT,
    PRIMARY KEY (user_id, category_name)
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    session_type TEXT,
    total_unread_estimate INTEGER,
    counts_json TEXT,
    created_at TEXT,
    marked_read_count INTEGER,
    processed INTEGER,
    archived INTEGER,
    deleted INTEGER
);

CREATE TABLE IF NOT EXISTS session_messages (
    session_id TEXT,
    position INTEGER,
    remote_id TEXT,
    thread_id TEXT,
    sender TEXT,
    sender_email TEXT,
    subject TEXT,
    date TEXT,
    has_unsubscribe INTEGER,
    unsubscribe_link TEXT,
    is_threaded INTEGER,
    category TEXT,
    reason TEXT,
    FOREIGN KEY (session_id) REFERENCES sessions(id)
);

CREATE TABLE IF NOT EXISTS sender_actions (
    user_id TEXT,
    sender_email TEXT,
    action TEXT,
    updated_at TEXT,
    PRIMARY KEY (user_id, sender_email)
);
"""


class TriageStore:
    """Persistent SQLite store shared by the pipeline, reconciler and executor."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = Path(db_path or constants.STORE_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(_CREATE_TABLES_SQL)

    # --- accounts ---

    def save_user(self, account: UserAccount) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO users (user_id, email, refresh_token, access_token, "
                "client_id, client_secret, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    account.user_id,
                    account.email,
                    account.refresh_token,
                    account.access_token,
                    account.client_id,
                    account.client_secret,
                    datetime.now().isoformat(),
                ),
            )

    def get_user(self, user_id: str) -> UserAccount | None:
        row = self._conn.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return UserAccount(
            user_id=row["user_id"],
            email=row["email"],
            refresh_token=row["refresh_token"],
            access_token=row["access_token"] or "",
            client_id=row["client_id"] or "",
            client_secret=row["client_secret"] or "",
        )

    def update_access_token(self, user_id: str, access_token: str) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE users SET access_token = ?, updated_at = ? WHERE user_id = ?",
                (access_token, datetime.now().isoformat(), user_id),
            )

    # --- settings ---

    def load_categories(self, user_id: str) -> list[Category] | None:
        """Return the user's saved taxonomy, or None if they never saved one."""
        row = self._conn.execute(
            "SELECT categories_json FROM user_settings WHERE user_id = ?", (user_id,)
        ).fetchone()
        if row is None or not row["categories_json"]:
            return None
        data = json.loads(row["categories_json"])
        return categories_from_data(data) if data else None

    def save_categories(self, user_id: str, categories: list[Category]) -> None:
        payload = json.dumps([category_to_dict(c) for c in categories])
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO user_settings (user_id, categories_json) VALUES (?, ?)",
                (user_id, payload),
            )

    # --- label ownership ---

    def load_label_ownership(self, user_id: str) -> dict[str, str]:
        rows = self._conn.execute(
            "SELECT category_name, label_id FROM label_ownership WHERE user_id = ?", (user_id,)
        ).fetchall()
        return {r["category_name"]: r["label_id"] for r in rows}

    def save_label_ownership(self, user_id: str, ownership: dict[str, str]) -> None:
        """Replace the user's ownership record in a single transaction."""
        with self._conn:
            self._conn.execute("DELETE FROM label_ownership WHERE user_id = ?", (user_id,))
            self._conn.executemany(
                "INSERT INTO label_ownership (user_id, category_name, label_id) VALUES (?, ?, ?)",
                [(user_id, name, label_id) for name, label_id in ownership.items()],
            )

    # --- sessions ---

    def save_session(self, session: ScanSession) -> None:
        """Insert a session and all of its messages in a single transaction."""
        with self._conn:
            self._conn.execute(
                "INSERT INTO sessions (id, user_id, session_type, total_unread_estimate, "
                "counts_json, created_at, marked_read_count, processed, archived, deleted) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    session.id,
                    session.user_id,
                    session.session_type,
                    session.total_unread_estimate,
                    json.dumps(session.counts_by_category),
                    session.created_at,
                    session.marked_read_count,
                    session.processed,
                    session.archived,
                    session.deleted,
                ),
            )
            self._conn.executemany(
                "INSERT INTO session_messages (session_id, position, remote_id, thread_id, "
                "sender, sender_email, subject, date, has_unsubscribe, unsubscribe_link, "
                "is_threaded, category, reason) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        session.id,
                        position,
                        msg.remote_id,
                        msg.thread_id,
                        msg.sender,
                        msg.sender_email,
                        msg.subject,
                        msg.date,
                        int(msg.has_unsubscribe_header),
                        msg.unsubscribe_link,
                        int(msg.is_threaded),
                        msg.category.value,
                        msg.reason,
                    )
                    for position, msg in enumerate(session.messages)
                ],
            )

    def get_session(self, session_id: str, user_id: str) -> ScanSession | None:
        """Load a session, scoped to its owner.  Other users' sessions read as missing."""
        row = self._conn.execute(
            "SELECT * FROM sessions WHERE id = ? AND user_id = ?", (session_id, user_id)
        ).fetchone()
        if row is None:
            return None

        message_rows = self._conn.execute(
            "SELECT * FROM session_messages WHERE session_id = ? ORDER BY position",
            (session_id,),
        ).fetchall()

        messages = [
            ClassifiedMessage(
                remote_id=m["remote_id"],
                thread_id=m["thread_id"],
                sender=m["sender"],
                sender_email=m["sender_email"],
                subject=m["subject"],
                date=m["date"],
                has_unsubscribe_header=bool(m["has_unsubscribe"]),
                unsubscribe_link=m["unsubscribe_link"],
                is_threaded=bool(m["is_threaded"]),
                category=MessageCategory(m["category"]),
                reason=m["reason"],
            )
            for m in message_rows
        ]

        return ScanSession(
            id=row["id"],
            user_id=row["user_id"],
            session_type=row["session_type"],
            total_unread_estimate=row["total_unread_estimate"],
            counts_by_category=json.loads(row["counts_json"]),
            messages=messages,
            created_at=row["created_at"],
            marked_read_count=row["marked_read_count"],
            processed=row["processed"],
            archived=row["archived"],
            deleted=row["deleted"],
        )

    def record_marked_read(self, session_id: str, count: int) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE sessions SET marked_read_count = ? WHERE id = ?", (count, session_id)
            )

    def known_senders(self, user_id: str) -> set[str]:
        """Addresses that earlier scans of this user classified as important."""
        rows = self._conn.execute(
            "SELECT DISTINCT m.sender_email FROM session_messages m "
            "JOIN sessions s ON s.id = m.session_id "
            "WHERE s.user_id = ? AND m.category = ?",
            (user_id, MessageCategory.IMPORTANT.value),
        ).fetchall()
        return {r["sender_email"] for r in rows if r["sender_email"]}

    def bulk_sender_messages(self, user_id: str, session_id: str | None = None) -> list[sqlite3.Row]:
        """Distinct messages carrying an unsubscribe header, from one session or all of them."""
        sql = (
            "SELECT DISTINCT m.remote_id, m.sender, m.sender_email, m.unsubscribe_link, m.category "
            "FROM session_messages m JOIN sessions s ON s.id = m.session_id "
            "WHERE s.user_id = ? AND m.has_unsubscribe = 1"
        )
        params: list = [user_id]
        if session_id is not None:
            sql += " AND s.id = ?"
            params.append(session_id)
        return self._conn.execute(sql + " ORDER BY m.sender_email", params).fetchall()

    # --- sender decisions ---

    def save_sender_action(self, user_id: str, sender_email: str, action: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO sender_actions (user_id, sender_email, action, updated_at) "
                "VALUES (?, ?, ?, ?)",
                (user_id, sender_email.lower(), action, datetime.now().isoformat()),
            )

    def load_sender_actions(self, user_id: str) -> dict[str, str]:
        rows = self._conn.execute(
            "SELECT sender_email, action FROM sender_actions WHERE user_id = ?", (user_id,)
        ).fetchall()
        return {r["sender_email"]: r["action"] for r in rows}

    def list_sessions(self, user_id: str, limit: int = 20) -> list[dict]:
        rows = self._conn.execute(
            "SELECT id, session_type, created_at, counts_json, processed "
            "FROM sessions WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
            (user_id, limit),
        ).fetchall()
        return [
            {
                "id": r["id"],
                "session_type": r["session_type"],
                "created_at": r["created_at"],
                "message_count": sum(json.loads(r["counts_json"]).values()),
                "processed": r["processed"],
            }
            for r in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- context manager ---

    def __enter__(self) -> TriageStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()
